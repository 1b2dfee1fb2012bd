"""
Structured Logging for Fuel

This module provides structured logging with correlation IDs for scheduling
cycles, operation tracing, and a JSON-lines audit trail of batch lifecycle
events.
"""

import json
import logging
import sys
import threading
import time
import uuid
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from .config import get_config

# Thread-local storage for correlation context
_correlation_context = threading.local()


class CorrelationContext:
    """Manages correlation IDs and tracing context across operations."""

    @staticmethod
    def get_correlation_id() -> str:
        """Get the current correlation ID, creating one if needed."""
        if not hasattr(_correlation_context, "correlation_id"):
            _correlation_context.correlation_id = str(uuid.uuid4())[:8]
        return _correlation_context.correlation_id

    @staticmethod
    def set_correlation_id(correlation_id: str):
        """Set the correlation ID for the current thread."""
        _correlation_context.correlation_id = correlation_id

    @staticmethod
    def clear_correlation_id():
        """Clear the correlation ID for the current thread."""
        if hasattr(_correlation_context, "correlation_id"):
            delattr(_correlation_context, "correlation_id")

    @staticmethod
    def get_trace_context() -> Dict[str, Any]:
        """Get full tracing context."""
        correlation_id = CorrelationContext.get_correlation_id()
        operation_stack = getattr(_correlation_context, "operation_stack", [])

        return {
            "correlation_id": correlation_id,
            "thread_id": threading.get_ident(),
            "operation_stack": list(operation_stack),
            "depth": len(operation_stack),
        }

    @staticmethod
    def push_operation(operation_name: str):
        """Push an operation onto the trace stack."""
        if not hasattr(_correlation_context, "operation_stack"):
            _correlation_context.operation_stack = []
        _correlation_context.operation_stack.append(operation_name)

    @staticmethod
    def pop_operation():
        """Pop an operation from the trace stack."""
        if (
            hasattr(_correlation_context, "operation_stack")
            and _correlation_context.operation_stack
        ):
            return _correlation_context.operation_stack.pop()
        return None


def with_correlation_id(correlation_id: str = None):
    """Decorator to run function with specific correlation ID."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            old_correlation_id = getattr(_correlation_context, "correlation_id", None)

            try:
                if correlation_id:
                    CorrelationContext.set_correlation_id(correlation_id)
                else:
                    CorrelationContext.set_correlation_id(str(uuid.uuid4())[:8])

                return func(*args, **kwargs)
            finally:
                if old_correlation_id:
                    CorrelationContext.set_correlation_id(old_correlation_id)
                else:
                    CorrelationContext.clear_correlation_id()

        return wrapper

    return decorator


def trace_operation(operation_name: str):
    """Decorator to trace function execution with operation stack."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(func.__module__)
            CorrelationContext.push_operation(operation_name)
            trace_context = CorrelationContext.get_trace_context()

            start_time = time.time()

            try:
                logger.debug(
                    f"Starting operation: {operation_name}",
                    operation=operation_name,
                    function=func.__name__,
                    **trace_context,
                )

                result = func(*args, **kwargs)

                logger.debug(
                    f"Completed operation: {operation_name}",
                    operation=operation_name,
                    function=func.__name__,
                    duration_seconds=time.time() - start_time,
                    success=True,
                    **trace_context,
                )

                return result

            except Exception as e:
                logger.error(
                    f"Failed operation: {operation_name}",
                    operation=operation_name,
                    function=func.__name__,
                    duration_seconds=time.time() - start_time,
                    success=False,
                    error=str(e),
                    **trace_context,
                )
                raise
            finally:
                CorrelationContext.pop_operation()

        return wrapper

    return decorator


class ContextFormatter(logging.Formatter):
    """Formatter that adds gateway mode and correlation IDs to log records."""

    def format(self, record: logging.LogRecord) -> str:
        config = get_config()
        record.dry_run = config.gateway.dry_run

        trace_context = CorrelationContext.get_trace_context()
        record.correlation_id = trace_context["correlation_id"]
        record.thread_id = trace_context["thread_id"]
        record.operation_depth = trace_context["depth"]

        operation_stack = trace_context.get("operation_stack", [])
        record.current_operation = operation_stack[-1] if operation_stack else None

        if not hasattr(record, "timestamp"):
            record.timestamp = datetime.utcnow().isoformat()

        return super().format(record)


class JSONFormatter(ContextFormatter):
    """JSON formatter for structured logging with correlation IDs."""

    EXCLUDED_FIELDS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "dry_run",
        "correlation_id",
        "thread_id",
        "operation_depth",
        "current_operation",
        "timestamp",
    }

    def format(self, record: logging.LogRecord) -> str:
        super().format(record)

        log_entry = {
            "timestamp": record.timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "correlation": {
                "correlation_id": getattr(record, "correlation_id", "unknown"),
                "thread_id": getattr(record, "thread_id", 0),
                "operation_depth": getattr(record, "operation_depth", 0),
                "current_operation": getattr(record, "current_operation", None),
            },
            "dry_run": getattr(record, "dry_run", True),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in self.EXCLUDED_FIELDS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(ContextFormatter):
    """Console formatter with color support and correlation IDs."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
        "GRAY": "\033[90m",
    }

    def format(self, record: logging.LogRecord) -> str:
        super().format(record)

        level_color = self.COLORS.get(record.levelname, "")
        reset_color = self.COLORS["RESET"]
        gray_color = self.COLORS["GRAY"]

        mode_indicator = "dry" if getattr(record, "dry_run", True) else "LIVE"
        timestamp = datetime.utcnow().strftime("%H:%M:%S.%f")[:-3]
        correlation_id = getattr(record, "correlation_id", "unknown")

        indent = "  " * getattr(record, "operation_depth", 0)
        current_op = getattr(record, "current_operation", None)
        operation_info = f"[{current_op}]" if current_op else ""

        message = record.getMessage()
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return (
            f"{mode_indicator} {gray_color}{timestamp}{reset_color} "
            f"{gray_color}[{correlation_id}]{reset_color} "
            f"{level_color}{record.levelname:8}{reset_color} "
            f"{record.name:20} "
            f"{indent}{gray_color}{operation_info}{reset_color} "
            f"{message}"
        )


class AuditLogger:
    """Audit trail for batch lifecycle events."""

    def __init__(self, name: str = "fuel_core.audit", audit_dir: Optional[str] = None):
        self.logger = structlog.get_logger(name)
        self.audit_file: Optional[Path] = None
        self._lock = threading.Lock()
        self._setup_audit_file(audit_dir)

    def _setup_audit_file(self, audit_dir: Optional[str]):
        """Setup audit log file."""
        audit_dir = audit_dir or get_config().logging.audit_dir
        if audit_dir:
            path = Path(audit_dir)
            path.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
            self.audit_file = path / f"batches_{timestamp}.log"

    def log_batch_event(self, batch_id: str, event_type: str, details: Dict[str, Any]):
        """Log a batch lifecycle event."""
        event = {
            "event_type": "batch",
            "batch_id": batch_id,
            "batch_event": event_type,
            "timestamp": datetime.utcnow().isoformat(),
            "details": details,
        }

        self.logger.info("Batch event", **event)
        self._write_to_audit_file(event)

    def _write_to_audit_file(self, event: Dict[str, Any]):
        """Write event to audit file."""
        if self.audit_file:
            try:
                with self._lock, open(self.audit_file, "a") as f:
                    f.write(json.dumps(event, default=str) + "\n")
            except OSError as e:
                # Audit failures never interrupt scheduling
                self.logger.error("Failed to write audit log", error=str(e))


def setup_logging():
    """Setup structured logging for Fuel."""
    config = get_config()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if config.logging.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    fuel_logger = logging.getLogger("fuel_core")
    fuel_logger.setLevel(getattr(logging, config.logging.log_level))

    for handler in fuel_logger.handlers[:]:
        fuel_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if config.logging.log_format == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter())

    fuel_logger.addHandler(console_handler)

    logging.getLogger("fuel_core.setup").debug(
        f"Logging initialized - dry_run={config.gateway.dry_run}, "
        f"log_level={config.logging.log_level}, "
        f"log_format={config.logging.log_format}"
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def get_audit_logger(audit_dir: Optional[str] = None) -> AuditLogger:
    """Get an audit logger instance."""
    return AuditLogger(audit_dir=audit_dir)


# Initialize logging on module import
setup_logging()

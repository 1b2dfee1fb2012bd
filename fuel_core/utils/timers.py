"""
High-precision timing utilities for scheduling cycles and gateway submissions.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..logging import get_logger

logger = get_logger(__name__)


@dataclass
class TimingResult:
    """Result of a timing operation."""

    operation: str
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    success: bool
    metadata: Dict[str, Any]

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds."""
        return self.duration_seconds * 1000


class Timer:
    """High-precision timer for measuring operation durations."""

    def __init__(self, operation: str, metadata: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.metadata = metadata or {}
        self.start_time: Optional[float] = None
        self.start_datetime: Optional[datetime] = None
        self.success = True
        self.result: Optional[TimingResult] = None

    def start(self) -> "Timer":
        """Start the timer."""
        self.start_time = time.perf_counter()
        self.start_datetime = datetime.utcnow()
        return self

    def stop(self) -> TimingResult:
        """Stop the timer and return results."""
        if self.start_time is None:
            raise ValueError("Timer not started")

        duration = time.perf_counter() - self.start_time

        self.result = TimingResult(
            operation=self.operation,
            start_time=self.start_datetime,
            end_time=datetime.utcnow(),
            duration_seconds=duration,
            success=self.success,
            metadata=self.metadata,
        )
        return self.result

    def mark_failure(self):
        """Mark the operation as failed."""
        self.success = False

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.mark_failure()
        self.stop()


@contextmanager
def time_operation(operation: str, metadata: Optional[Dict[str, Any]] = None):
    """Context manager for timing operations."""
    timer = Timer(operation, metadata)
    try:
        timer.start()
        yield timer
    except Exception:
        timer.mark_failure()
        raise
    finally:
        result = timer.stop()
        logger.debug(
            "Operation timed",
            operation=operation,
            duration_ms=result.duration_ms,
            success=result.success,
            **metadata or {},
        )


class SLAMonitor:
    """Monitor operations against SLA targets."""

    def __init__(self, sla_targets: Dict[str, float]):
        """
        Initialize SLA monitor.

        Args:
            sla_targets: Dict mapping operation names to target duration in seconds
        """
        self.sla_targets = sla_targets
        self.violations: Dict[str, int] = {}
        self.measurements: Dict[str, List[float]] = {}

    def check_sla(self, result: TimingResult) -> bool:
        """Record a timing result and return whether it met its target."""
        if result.operation not in self.sla_targets:
            return True

        target = self.sla_targets[result.operation]
        meets_sla = result.duration_seconds <= target

        self.measurements.setdefault(result.operation, []).append(result.duration_seconds)

        if not meets_sla:
            self.violations[result.operation] = self.violations.get(result.operation, 0) + 1

            logger.warning(
                "SLA violation",
                operation=result.operation,
                duration_ms=result.duration_ms,
                target_ms=target * 1000,
                violation_count=self.violations[result.operation],
            )

        return meets_sla

    def get_sla_stats(self, operation: str) -> Dict[str, Any]:
        """Get SLA statistics for an operation."""
        if operation not in self.measurements:
            return {"error": "No measurements found"}

        measurements = sorted(self.measurements[operation])
        count = len(measurements)
        violations = self.violations.get(operation, 0)

        return {
            "operation": operation,
            "target_seconds": self.sla_targets.get(operation, float("inf")),
            "total_measurements": count,
            "violations": violations,
            "violation_rate": violations / count,
            "min_seconds": measurements[0],
            "max_seconds": measurements[-1],
            "mean_seconds": sum(measurements) / count,
            "p95_seconds": measurements[min(int(0.95 * count), count - 1)],
        }

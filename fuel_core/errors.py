"""
Error Definitions for Fuel

This module defines custom exception classes used throughout the batching
scheduler and gas price predictor. None of these are fatal to the process;
they mark the boundary where a caller is told what went wrong.
"""

from typing import Any, Dict, Optional


class FuelError(Exception):
    """Base exception class for all Fuel-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(FuelError):
    """Raised when configuration is invalid or inconsistent."""

    def __init__(self, field: str, value: Any, expected: str, **details):
        message = f"Invalid configuration for {field}: got {value}, expected {expected}"

        super().__init__(message, {"field": field, "value": value, "expected": expected, **details})
        self.field = field
        self.value = value
        self.expected = expected


class ValidationError(FuelError):
    """Raised when a transaction is rejected at the scheduler boundary."""

    def __init__(self, field: str, value: Any, constraint: str, **details):
        message = f"Validation failed for {field}: {value!r} violates constraint '{constraint}'"

        super().__init__(
            message, {"field": field, "value": value, "constraint": constraint, **details}
        )
        self.field = field
        self.value = value
        self.constraint = constraint


class BatchingError(FuelError):
    """Raised when a batch operation is not allowed in its current state."""

    def __init__(self, batch_id: Optional[str], reason: str, **details):
        if batch_id:
            message = f"Batching error for batch {batch_id}: {reason}"
        else:
            message = f"Batching error: {reason}"

        super().__init__(message, {"batch_id": batch_id, "reason": reason, **details})
        self.batch_id = batch_id
        self.reason = reason


class SchedulingError(FuelError):
    """Raised when the scheduler cannot accept work."""

    def __init__(self, reason: str, transaction_ids: Optional[list] = None, **details):
        if transaction_ids:
            message = f"Scheduling failed for transactions {transaction_ids}: {reason}"
        else:
            message = f"Scheduling failed: {reason}"

        super().__init__(message, {"reason": reason, "transaction_ids": transaction_ids, **details})
        self.reason = reason
        self.transaction_ids = transaction_ids or []


class ExecutionError(FuelError):
    """Raised when a batch submission fails."""

    def __init__(self, batch_id: str, reason: str, **details):
        message = f"Batch execution failed for {batch_id}: {reason}"

        super().__init__(message, {"batch_id": batch_id, "reason": reason, **details})
        self.batch_id = batch_id
        self.reason = reason


class GatewayError(FuelError):
    """Raised by chain gateways when a submission cannot be performed."""

    def __init__(self, chain_id: Optional[str], reason: str, **details):
        if chain_id:
            message = f"Gateway error on chain {chain_id}: {reason}"
        else:
            message = f"Gateway error: {reason}"

        super().__init__(message, {"chain_id": chain_id, "reason": reason, **details})
        self.chain_id = chain_id
        self.reason = reason


class PredictorNotInitializedError(FuelError):
    """Raised when a prediction is requested before the model is seeded."""

    def __init__(self, operation: str = "predict"):
        super().__init__(
            f"Gas price predictor must be initialized before {operation}",
            {"operation": operation},
        )
        self.operation = operation


class TelemetryError(FuelError):
    """Raised when a telemetry source cannot produce a sample."""

    def __init__(self, source: str, reason: str, **details):
        message = f"Telemetry error from {source}: {reason}"

        super().__init__(message, {"source": source, "reason": reason, **details})
        self.source = source
        self.reason = reason


# Convenience functions for common error patterns


def raise_configuration_error(field: str, value: Any, expected: str, **details):
    """Raise a configuration error with helpful context."""
    suggestions = {
        "dry_run": "Set DRY_RUN=true unless FUEL_MODE=production",
        "min_batch_size": "Set MIN_BATCH_SIZE to at least 1",
        "max_batch_size": "Set MAX_BATCH_SIZE >= MIN_BATCH_SIZE",
        "savings_policy": "Use fee_first or latency_aware",
    }

    suggestion = suggestions.get(field.lower())
    if suggestion:
        details["suggestion"] = suggestion

    raise ConfigurationError(field, value, expected, **details)


def raise_execution_error(batch_id: str, reason: str, **details):
    """Raise an execution error with helpful context."""
    if "timeout" in reason.lower():
        details["suggestion"] = "Increase SUBMISSION_TIMEOUT_SECONDS or check gateway health"
    elif "nonce" in reason.lower():
        details["suggestion"] = "Transactions will be re-batched on the next cycle"

    raise ExecutionError(batch_id, reason, **details)

"""
Fuel Core - Transaction batching and gas price prediction.

This package decides when and with whom a pending blockchain transaction is
submitted: a strategy-driven batch scheduler with a critical fast lane and
failure requeueing, informed by a multi-horizon gas price forecaster.
"""

from .batching import BatchScheduler, TransactionPool
from .config import BatcherConfig, FuelConfig, PredictorConfig
from .errors import (
    BatchingError,
    ConfigurationError,
    ExecutionError,
    FuelError,
    PredictorNotInitializedError,
    ValidationError,
)
from .events import EventBus
from .gateway import ChainGateway, DryRunGateway, SubmissionResult
from .metrics import BatchMetrics
from .prediction import GasPricePredictor, NetworkFeatureSampler, PredictionResult
from .types import (
    BatchStatus,
    GasEstimate,
    PendingTransaction,
    TransactionBatch,
    TransactionPriority,
    TransactionType,
)

__all__ = [
    "FuelConfig",
    "BatcherConfig",
    "PredictorConfig",
    "BatchScheduler",
    "TransactionPool",
    "GasPricePredictor",
    "NetworkFeatureSampler",
    "PredictionResult",
    "ChainGateway",
    "DryRunGateway",
    "SubmissionResult",
    "EventBus",
    "BatchMetrics",
    "PendingTransaction",
    "TransactionBatch",
    "GasEstimate",
    "BatchStatus",
    "TransactionPriority",
    "TransactionType",
    "FuelError",
    "ConfigurationError",
    "ValidationError",
    "BatchingError",
    "ExecutionError",
    "PredictorNotInitializedError",
]

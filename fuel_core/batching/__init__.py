"""
Transaction Batching for Fuel

Strategy-driven partitioning of the pending pool, batch costing and timing,
and the scheduler that drives batches to execution.
"""

from .costing import BatchCostModel, BatchPlan
from .pool import TransactionPool
from .scheduler import BatchScheduler
from .strategies import (
    BatchingStrategy,
    ChainPriorityStrategy,
    FeeSimilarityStrategy,
    MixedPairwiseStrategy,
    TransactionTypeStrategy,
    default_strategies,
    select_strategy,
)

__all__ = [
    "BatchScheduler",
    "TransactionPool",
    "BatchCostModel",
    "BatchPlan",
    "BatchingStrategy",
    "ChainPriorityStrategy",
    "TransactionTypeStrategy",
    "FeeSimilarityStrategy",
    "MixedPairwiseStrategy",
    "default_strategies",
    "select_strategy",
]

"""
Core Type Definitions for Fuel

This module defines the fundamental data types shared by the batch scheduler,
the chain gateway and the event stream: pending transactions, fee quotes,
transaction batches and batch outcome events.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

GWEI = 10**9
GAS_PER_TRANSACTION = 21_000


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def to_wei(gwei: float) -> int:
    """Convert a gwei amount to integer wei."""
    return int(round(gwei * GWEI))


class TransactionType(Enum):
    """Kinds of transactions the scheduler batches."""

    DEPLOYMENT = "deployment"
    WITHDRAWAL = "withdrawal"
    REBALANCE = "rebalance"
    HARVEST = "harvest"
    COMPOUND = "compound"
    APPROVAL = "approval"


class TransactionPriority(Enum):
    """Urgency tier of a transaction."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class BatchStatus(Enum):
    """Lifecycle status of a transaction batch."""

    PENDING = "pending"  # Materialized, not yet handed to the dispatcher
    SCHEDULED = "scheduled"  # Waiting for its execution time
    EXECUTING = "executing"  # Submitted to the chain gateway
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_finished(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.FAILED)


# Allowed lifecycle transitions
BATCH_TRANSITIONS = {
    BatchStatus.PENDING: {BatchStatus.SCHEDULED},
    BatchStatus.SCHEDULED: {BatchStatus.EXECUTING},
    BatchStatus.EXECUTING: {BatchStatus.COMPLETED, BatchStatus.FAILED},
    BatchStatus.COMPLETED: set(),
    BatchStatus.FAILED: set(),
}


@dataclass(frozen=True)
class PendingTransaction:
    """A transaction waiting to be batched. Immutable once created."""

    tx_type: TransactionType
    chain_id: str
    priority: TransactionPriority = TransactionPriority.MEDIUM
    from_address: str = ""
    to_address: str = ""
    value: int = 0  # wei
    data: Union[bytes, str] = b""
    deadline: Optional[datetime] = None
    tx_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        """Coerce enum values and validate amounts."""
        if not isinstance(self.tx_type, TransactionType):
            object.__setattr__(self, "tx_type", TransactionType(self.tx_type))

        if not isinstance(self.priority, TransactionPriority):
            object.__setattr__(self, "priority", TransactionPriority(self.priority))

        if not self.tx_id:
            raise ValueError("tx_id cannot be empty")

        if self.value < 0:
            raise ValueError("value cannot be negative")

        if self.deadline is not None and self.deadline.tzinfo is None:
            object.__setattr__(self, "deadline", self.deadline.replace(tzinfo=timezone.utc))

    @property
    def is_critical(self) -> bool:
        return self.priority is TransactionPriority.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert transaction to dictionary representation."""
        return {
            "tx_id": self.tx_id,
            "tx_type": self.tx_type.value,
            "chain_id": self.chain_id,
            "priority": self.priority.value,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "value": str(self.value),
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class GasEstimate:
    """Fee quote for a batch, amounts in wei."""

    chain_id: str
    base_fee: int
    priority_fee: int
    gas_units: int
    estimated_cost: int
    confidence: float
    created_at: datetime = field(default_factory=utcnow)

    @property
    def max_fee_per_gas(self) -> int:
        return self.base_fee * 2 + self.priority_fee

    @property
    def unbatched_cost(self) -> int:
        """Cost of the same gas at the quoted rate without any batching discount."""
        return self.gas_units * (self.base_fee + self.priority_fee)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain_id": self.chain_id,
            "base_fee": str(self.base_fee),
            "priority_fee": str(self.priority_fee),
            "max_fee_per_gas": str(self.max_fee_per_gas),
            "gas_units": self.gas_units,
            "estimated_cost": str(self.estimated_cost),
            "confidence": self.confidence,
        }


@dataclass
class TransactionBatch:
    """A group of transactions submitted together."""

    transactions: List[PendingTransaction]
    estimated_gas: GasEstimate
    scheduled_time: datetime
    savings: int = 0  # wei
    status: BatchStatus = BatchStatus.PENDING
    strategy: str = ""
    batch_id: str = field(default_factory=lambda: f"batch_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    def __post_init__(self):
        if not self.transactions:
            raise ValueError("A batch must contain at least one transaction")

    @property
    def size(self) -> int:
        return len(self.transactions)

    @property
    def transaction_ids(self) -> List[str]:
        return [tx.tx_id for tx in self.transactions]

    @property
    def chain_ids(self) -> List[str]:
        return sorted({tx.chain_id for tx in self.transactions})

    def can_transition(self, new_status: BatchStatus) -> bool:
        return new_status in BATCH_TRANSITIONS[self.status]

    def to_dict(self) -> Dict[str, Any]:
        """Convert batch to dictionary representation."""
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "strategy": self.strategy,
            "size": self.size,
            "transaction_ids": self.transaction_ids,
            "chain_ids": self.chain_ids,
            "estimated_gas": self.estimated_gas.to_dict(),
            "scheduled_time": self.scheduled_time.isoformat(),
            "savings": str(self.savings),
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "failure_reason": self.failure_reason,
        }


@dataclass(frozen=True)
class BatchExecutedEvent:
    """Emitted when a batch completes on chain."""

    batch_id: str
    transaction_ids: List[str]
    savings: int
    execution_time: datetime

    NAME = "batch_executed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "transaction_ids": list(self.transaction_ids),
            "savings": str(self.savings),
            "execution_time": self.execution_time.isoformat(),
        }


@dataclass(frozen=True)
class BatchFailedEvent:
    """Emitted when a batch submission fails and its transactions are requeued."""

    batch_id: str
    reason: str
    transaction_ids: List[str] = field(default_factory=list)
    failed_at: datetime = field(default_factory=utcnow)

    NAME = "batch_failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "reason": self.reason,
            "transaction_ids": list(self.transaction_ids),
            "failed_at": self.failed_at.isoformat(),
        }


# Type aliases for convenience
TransactionID = str
BatchID = str
ChainID = str

"""
Batch Outcome Metrics for Fuel

Consumes the scheduler's event stream and keeps running totals of realized
savings, executed transactions and failures, plus summary statistics over
the per-batch values.
"""

import statistics
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .events import EventBus
from .logging import get_logger
from .types import BatchExecutedEvent, BatchFailedEvent

logger = get_logger(__name__)


@dataclass
class MetricSummary:
    """Summary statistics for a per-batch metric."""

    name: str
    count: int
    min_value: float
    max_value: float
    mean: float
    median: float
    std_dev: float
    p95: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "count": self.count,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "mean": self.mean,
            "median": self.median,
            "std_dev": self.std_dev,
            "p95": self.p95,
        }


class BatchMetrics:
    """
    Aggregates ``batch_executed`` and ``batch_failed`` events.

    Totals are exact; per-batch samples used for summaries are bounded to the
    most recent ``max_samples`` batches.
    """

    def __init__(self, max_samples: int = 10000):
        self.max_samples = max_samples
        self.samples: Dict[str, deque] = defaultdict(lambda: deque(maxlen=max_samples))

        self.total_savings = 0
        self.transactions_executed = 0
        self.batches_executed = 0
        self.batches_failed = 0
        self.transactions_requeued = 0
        self.failure_reasons: Dict[str, int] = defaultdict(int)

        self._lock = threading.RLock()

    def attach(self, event_bus: EventBus) -> "BatchMetrics":
        """Subscribe to the outcome events on a bus."""
        event_bus.subscribe(BatchExecutedEvent.NAME, self.on_batch_executed)
        event_bus.subscribe(BatchFailedEvent.NAME, self.on_batch_failed)
        return self

    def detach(self, event_bus: EventBus):
        event_bus.unsubscribe(BatchExecutedEvent.NAME, self.on_batch_executed)
        event_bus.unsubscribe(BatchFailedEvent.NAME, self.on_batch_failed)

    def on_batch_executed(self, event: BatchExecutedEvent):
        size = len(event.transaction_ids)
        with self._lock:
            self.total_savings += event.savings
            self.transactions_executed += size
            self.batches_executed += 1
            self.samples["savings"].append(float(event.savings))
            self.samples["batch_size"].append(float(size))

    def on_batch_failed(self, event: BatchFailedEvent):
        with self._lock:
            self.batches_failed += 1
            self.transactions_requeued += len(event.transaction_ids)
            self.failure_reasons[event.reason] += 1

        logger.debug("Batch failure recorded", batch_id=event.batch_id, reason=event.reason)

    @property
    def failure_rate(self) -> float:
        with self._lock:
            attempts = self.batches_executed + self.batches_failed
            return self.batches_failed / attempts if attempts else 0.0

    def get_summary(self, name: str) -> Optional[MetricSummary]:
        """Summary statistics for ``savings`` or ``batch_size``."""
        with self._lock:
            values = list(self.samples.get(name, ()))

        if not values:
            return None

        count = len(values)
        sorted_values = sorted(values)

        return MetricSummary(
            name=name,
            count=count,
            min_value=sorted_values[0],
            max_value=sorted_values[-1],
            mean=statistics.mean(values),
            median=statistics.median(values),
            std_dev=statistics.stdev(values) if count > 1 else 0.0,
            p95=sorted_values[min(int(0.95 * count), count - 1)],
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get aggregate outcome statistics."""
        with self._lock:
            stats = {
                "total_savings": self.total_savings,
                "transactions_executed": self.transactions_executed,
                "batches_executed": self.batches_executed,
                "batches_failed": self.batches_failed,
                "transactions_requeued": self.transactions_requeued,
                "failure_reasons": dict(self.failure_reasons),
            }

        stats["failure_rate"] = self.failure_rate
        for name in ("savings", "batch_size"):
            summary = self.get_summary(name)
            stats[name] = summary.to_dict() if summary else None
        return stats

    def reset(self):
        """Clear all totals and samples."""
        with self._lock:
            self.samples.clear()
            self.total_savings = 0
            self.transactions_executed = 0
            self.batches_executed = 0
            self.batches_failed = 0
            self.transactions_requeued = 0
            self.failure_reasons.clear()

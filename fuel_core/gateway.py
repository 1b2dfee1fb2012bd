"""
Chain Gateway Interface

The scheduler never signs or broadcasts transactions itself; it hands each
batch to a ``ChainGateway``. ``DryRunGateway`` is the deterministic stand-in
used in development mode and tests, with seeded failure injection for
exercising the requeue path.
"""

import hashlib
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .logging import get_logger
from .types import TransactionBatch, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of submitting a batch to a chain."""

    batch_id: str
    success: bool
    tx_hash: Optional[str] = None
    reason: Optional[str] = None
    submitted_at: datetime = field(default_factory=utcnow)


class ChainGateway(ABC):
    """Capability to submit a batch to its target chain."""

    #: True for gateways that never touch a real network
    is_dry_run: bool = False

    @abstractmethod
    def submit(self, batch: TransactionBatch) -> SubmissionResult:
        """
        Submit a batch.

        Implementations may block on network I/O. They report rejection with
        ``SubmissionResult(success=False)`` or by raising; the scheduler
        treats both as a failed batch.
        """


class DryRunGateway(ChainGateway):
    """Simulated gateway with seeded, reproducible failure injection."""

    is_dry_run = True

    def __init__(
        self,
        failure_rate: float = 0.0,
        seed: int = 42,
        fail_batch_ids: Optional[Iterable[str]] = None,
        latency_seconds: float = 0.0,
    ):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0.0 and 1.0")

        self.failure_rate = failure_rate
        self.rng = random.Random(seed)
        self.fail_batch_ids = set(fail_batch_ids or [])
        self.latency_seconds = latency_seconds
        self.submissions: List[SubmissionResult] = []
        self._lock = threading.Lock()

    def fail_next(self, batch_id: str):
        """Force the submission of a specific batch to fail."""
        with self._lock:
            self.fail_batch_ids.add(batch_id)

    def submit(self, batch: TransactionBatch) -> SubmissionResult:
        if self.latency_seconds:
            time.sleep(self.latency_seconds)

        with self._lock:
            forced = batch.batch_id in self.fail_batch_ids
            self.fail_batch_ids.discard(batch.batch_id)
            injected = self.failure_rate > 0 and self.rng.random() < self.failure_rate

            if forced or injected:
                result = SubmissionResult(
                    batch_id=batch.batch_id,
                    success=False,
                    reason="simulated submission failure",
                )
            else:
                digest = hashlib.sha256(
                    (batch.batch_id + "".join(batch.transaction_ids)).encode()
                ).hexdigest()
                result = SubmissionResult(
                    batch_id=batch.batch_id, success=True, tx_hash=f"0x{digest}"
                )

            self.submissions.append(result)

        logger.debug(
            "Dry-run submission",
            batch_id=batch.batch_id,
            size=batch.size,
            success=result.success,
        )
        return result

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            failures = sum(1 for s in self.submissions if not s.success)
            return {
                "submissions": len(self.submissions),
                "failures": failures,
                "failure_rate": self.failure_rate,
            }

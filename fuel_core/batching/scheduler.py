"""
Transaction Batch Scheduler

Owns the pending-transaction pool and drives every batch through its
lifecycle: ``PENDING -> SCHEDULED -> EXECUTING -> COMPLETED | FAILED``.

Each scheduling cycle scores all batching strategies against the full pool,
partitions it with the winner and materializes every group that reaches
``min_batch_size``. Critical transactions skip the cycle entirely and become
single-transaction batches due almost immediately. Failed batches hand their
transactions back to the pool, so re-batching on a later cycle is the retry.

Threads when started:

- worker: the only consumer of cycle requests; cycles never overlap
- timer: posts a cycle request every cycle interval while the pool holds at
  least ``min_batch_size`` transactions
- dispatcher: hands batches whose scheduled time has arrived to a thread pool
  that performs the (blocking) gateway submission outside the lock
"""

import heapq
import queue
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timedelta
from functools import partial
from itertools import count
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from ..config import BatcherConfig, get_config
from ..errors import (
    BatchingError,
    SchedulingError,
    ValidationError,
    raise_configuration_error,
    raise_execution_error,
)
from ..events import EventBus, EventHandler
from ..gateway import ChainGateway, DryRunGateway, SubmissionResult
from ..logging import (
    AuditLogger,
    get_audit_logger,
    get_logger,
    trace_operation,
    with_correlation_id,
)
from ..prediction import GasPricePredictor, TelemetrySource
from ..types import (
    BatchExecutedEvent,
    BatchFailedEvent,
    BatchStatus,
    PendingTransaction,
    TransactionBatch,
    utcnow,
)
from ..utils.timers import SLAMonitor, time_operation
from .costing import BatchCostModel
from .pool import TransactionPool
from .strategies import BatchingStrategy, default_strategies, group_by, select_strategy

logger = get_logger(__name__)

DISPATCH_TICK_SECONDS = 0.5
THREAD_JOIN_TIMEOUT = 5.0
SUBMISSION_OPERATION = "gateway_submission"

_STOP = object()


class BatchScheduler:
    """
    Batching scheduler for pending blockchain transactions.

    All pool mutations and scheduling cycles run under one re-entrant lock.
    ``add_transaction``, ``create_optimal_batches`` and ``execute_batch`` may
    be called directly (synchronously) whether or not the background threads
    are running.
    """

    def __init__(
        self,
        gateway: Optional[ChainGateway] = None,
        config: Optional[BatcherConfig] = None,
        predictor: Optional[GasPricePredictor] = None,
        telemetry_source: Optional[TelemetrySource] = None,
        event_bus: Optional[EventBus] = None,
        strategies: Optional[Sequence[BatchingStrategy]] = None,
        clock: Callable[[], datetime] = utcnow,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            gateway: Chain gateway used to submit batches (dry-run if None)
            config: Batcher configuration (global config if None)
            predictor: Optional gas price predictor informing fee quotes
            telemetry_source: Source used to refresh a stale predictor each cycle
            event_bus: Bus receiving batch outcome events
            strategies: Strategies evaluated every cycle (all four if None)
            clock: Returns the current UTC time
            audit_logger: Audit trail for batch lifecycle events
        """
        fuel_config = get_config()
        self.config = config or fuel_config.batcher

        self.gateway = gateway or DryRunGateway()
        if fuel_config.gateway.dry_run and not self.gateway.is_dry_run:
            raise_configuration_error(
                "dry_run",
                True,
                "a dry-run gateway while DRY_RUN is enabled",
                gateway=type(self.gateway).__name__,
            )

        self.predictor = predictor
        self.telemetry_source = telemetry_source
        self.cost_model = BatchCostModel(self.config, predictor)
        self.strategies = list(
            strategies
            or default_strategies(self.config.max_batch_size, self.config.priority_weights)
        )
        self.event_bus = event_bus or EventBus()
        self.audit = audit_logger or get_audit_logger()
        self.sla_monitor = SLAMonitor(
            {SUBMISSION_OPERATION: fuel_config.gateway.submission_timeout_seconds}
        )
        self.clock = clock

        # Pool and batches
        self.pool = TransactionPool()
        self.batches: Dict[str, TransactionBatch] = {}
        self._batched_tx_ids: Dict[str, str] = {}  # tx_id -> active batch_id

        # Thread safety
        self.lock = threading.RLock()
        self._due_condition = threading.Condition(self.lock)
        self._due: List[Tuple[datetime, int, str]] = []
        self._due_sequence = count()

        # Processing state
        self.is_running = False
        self._stop_event = threading.Event()
        self._cycle_requests: queue.Queue = queue.Queue()
        self._cycle_pending = False
        self._worker_thread: Optional[threading.Thread] = None
        self._timer_thread: Optional[threading.Thread] = None
        self._dispatcher_thread: Optional[threading.Thread] = None
        self.executor: Optional[ThreadPoolExecutor] = None
        self._inflight: Set[Future] = set()

        # Metrics
        self.transactions_received = 0
        self.cycles_run = 0
        self.batches_created = 0
        self.critical_batches = 0
        self.batches_completed = 0
        self.batches_failed = 0
        self.total_savings = 0
        self.strategy_wins: Counter = Counter()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the worker, timer and dispatcher threads."""
        with self.lock:
            if self.is_running:
                return

            self.is_running = True
            self._stop_event.clear()
            self.executor = ThreadPoolExecutor(
                max_workers=self.config.max_parallelism, thread_name_prefix="FuelExecutor"
            )

            self._worker_thread = threading.Thread(
                target=self._worker_loop, name="FuelScheduler", daemon=True
            )
            self._timer_thread = threading.Thread(
                target=self._timer_loop, name="FuelTimer", daemon=True
            )
            self._dispatcher_thread = threading.Thread(
                target=self._dispatch_loop, name="FuelDispatcher", daemon=True
            )
            self._worker_thread.start()
            self._timer_thread.start()
            self._dispatcher_thread.start()

        logger.info(
            "Batch scheduler started",
            min_batch_size=self.config.min_batch_size,
            max_batch_size=self.config.max_batch_size,
            cycle_interval_seconds=self.config.effective_cycle_interval,
            strategies=[s.name for s in self.strategies],
        )

    def stop(self, drain: bool = True):
        """
        Stop background processing.

        Submissions already running are always awaited. With ``drain`` the
        call also waits for batches queued on the executor; without it those
        are cancelled and go back on the due heap, still SCHEDULED, for the
        next ``start``. Batches still waiting for their scheduled time stay
        SCHEDULED.
        """
        with self.lock:
            if not self.is_running:
                return

            self.is_running = False
            self._stop_event.set()
            self._due_condition.notify_all()

        self._cycle_requests.put(_STOP)

        for thread in (self._worker_thread, self._timer_thread, self._dispatcher_thread):
            if thread is not None:
                thread.join(timeout=THREAD_JOIN_TIMEOUT)

        if self.executor is not None:
            self.executor.shutdown(wait=True, cancel_futures=not drain)
            self.executor = None

        with self.lock:
            waiting = [
                b.batch_id for b in self.batches.values() if b.status is BatchStatus.SCHEDULED
            ]
            self._cycle_pending = False

        logger.info(
            "Batch scheduler stopped",
            drained=drain,
            scheduled_batches_left=len(waiting),
            pending_transactions=len(self.pool),
        )

    def __enter__(self) -> "BatchScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def add_transaction(self, tx: PendingTransaction) -> Optional[TransactionBatch]:
        """
        Add a transaction to the pending pool.

        Returns:
            The single-transaction batch for a critical transaction, else None

        Raises:
            ValidationError: missing chain id or an id already being handled
        """
        if not tx.chain_id:
            raise ValidationError("chain_id", tx.chain_id, "must be non-empty", tx_id=tx.tx_id)

        with self.lock:
            if tx.tx_id in self.pool or tx.tx_id in self._batched_tx_ids:
                raise ValidationError(
                    "tx_id", tx.tx_id, "must be unique among pending transactions"
                )

            self.pool.add(tx)
            self.transactions_received += 1

            logger.debug(
                "Transaction added",
                tx_id=tx.tx_id,
                chain_id=tx.chain_id,
                priority=tx.priority.value,
                pool_size=len(self.pool),
            )

            if tx.is_critical:
                return self._create_critical_batch(tx)

            if len(self.pool) >= self.config.max_batch_size:
                self.request_cycle("size_threshold")

        return None

    def request_cycle(self, reason: str = "manual") -> bool:
        """
        Post a scheduling-cycle request for the worker thread.

        Requests coalesce: while one is queued, further requests are dropped.
        Returns whether a new request was posted.
        """
        with self.lock:
            if self._cycle_pending:
                return False
            self._cycle_pending = True

        self._cycle_requests.put(reason)
        logger.debug("Scheduling cycle requested", reason=reason)
        return True

    def _create_critical_batch(self, tx: PendingTransaction) -> TransactionBatch:
        """Move a critical transaction straight into its own scheduled batch."""
        now = self.clock()
        self.pool.remove(tx.tx_id)

        batch = TransactionBatch(
            transactions=[tx],
            estimated_gas=BatchCostModel.critical_estimate(tx),
            scheduled_time=now + timedelta(seconds=self.config.critical_delay_seconds),
            savings=0,
            status=BatchStatus.SCHEDULED,
            strategy="critical",
            created_at=now,
        )
        self._register(batch)
        self._push_due(batch)
        self.critical_batches += 1

        logger.info(
            "Critical transaction fast-tracked",
            tx_id=tx.tx_id,
            batch_id=batch.batch_id,
            scheduled_time=batch.scheduled_time.isoformat(),
        )
        self.audit.log_batch_event(batch.batch_id, "scheduled", batch.to_dict())
        return batch

    # ------------------------------------------------------------------
    # Scheduling cycle
    # ------------------------------------------------------------------

    @with_correlation_id()
    @trace_operation("scheduling_cycle")
    def create_optimal_batches(self) -> List[TransactionBatch]:
        """
        Run one scheduling cycle over the current pool.

        Groups smaller than ``min_batch_size`` and groups whose savings fall
        below ``gas_threshold`` stay in the pool for a later cycle.
        """
        self._refresh_predictor()

        with self.lock:
            now = self.clock()
            self._purge_finished(now)
            self.cycles_run += 1

            pending = self.pool.snapshot()
            strategy = select_strategy(self.strategies, pending)
            if strategy is None:
                logger.debug("Empty pool, nothing to batch")
                return []

            self.strategy_wins[strategy.name] += 1
            partition = strategy.partition(pending)
            self._check_partition(strategy, pending, partition)
            groups = self._candidate_groups(partition)

            created = []
            for group in groups:
                if len(group) < self.config.min_batch_size:
                    continue

                plan = self.cost_model.plan(group, now)
                if not plan.worthwhile:
                    logger.debug(
                        "Group below gas threshold, leaving in pool",
                        size=len(group),
                        savings=plan.savings,
                        gas_threshold=self.config.gas_threshold,
                    )
                    continue

                batch = TransactionBatch(
                    transactions=self.pool.take(tx.tx_id for tx in group),
                    estimated_gas=plan.estimate,
                    scheduled_time=plan.execution_time,
                    savings=plan.savings,
                    strategy=strategy.name,
                    created_at=now,
                )
                self._register(batch)
                self._transition(batch, BatchStatus.SCHEDULED)
                self._push_due(batch)
                created.append(batch)

            self.batches_created += len(created)

        logger.info(
            "Scheduling cycle complete",
            strategy=strategy.name,
            batches_created=len(created),
            transactions_batched=sum(b.size for b in created),
            pending_transactions=len(self.pool),
        )
        return created

    @staticmethod
    def _check_partition(
        strategy: BatchingStrategy,
        pending: List[PendingTransaction],
        groups: List[List[PendingTransaction]],
    ):
        """Every pending transaction must land in exactly one group."""
        grouped = [tx.tx_id for group in groups for tx in group]
        expected = {tx.tx_id for tx in pending}

        if len(grouped) != len(set(grouped)) or set(grouped) != expected:
            stray = sorted(set(grouped) ^ expected)
            raise SchedulingError(
                f"strategy {strategy.name} did not cover the pool exactly once",
                transaction_ids=stray,
                strategy=strategy.name,
            )

    def _candidate_groups(
        self, groups: List[List[PendingTransaction]]
    ) -> List[List[PendingTransaction]]:
        """Split groups by chain (unless cross-chain batching) and cap them at max size."""
        if not self.config.enable_cross_chain_batching:
            groups = [
                chain_group
                for group in groups
                for chain_group in group_by(group, lambda tx: tx.chain_id)
            ]

        size = self.config.max_batch_size
        return [group[i : i + size] for group in groups for i in range(0, len(group), size)]

    def _refresh_predictor(self):
        """Pull a fresh sample when the predictor's last forecast has gone stale."""
        if self.predictor is None or self.telemetry_source is None:
            return
        if not self.predictor.is_initialized:
            self.predictor.initialize()
        now = self.clock()
        if self.predictor.latest(self.predictor.config.update_interval_seconds, now) is not None:
            return

        try:
            self.predictor.refresh(self.telemetry_source, now=now)
        except Exception as e:
            logger.warning(
                "Predictor refresh failed, using default fees",
                source=self.telemetry_source.name,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_batch(self, batch_id: str) -> bool:
        """
        Submit a scheduled batch through the gateway.

        On failure the batch is marked FAILED and its transactions return to
        the pool. Returns whether the submission succeeded.

        Raises:
            BatchingError: unknown batch or batch not in SCHEDULED state
        """
        with self.lock:
            batch = self.batches.get(batch_id)
            if batch is None:
                raise BatchingError(batch_id, "unknown batch")
            self._transition(batch, BatchStatus.EXECUTING)

        logger.info(
            "Executing batch",
            batch_id=batch_id,
            size=batch.size,
            strategy=batch.strategy,
            chain_ids=batch.chain_ids,
        )

        try:
            with time_operation(SUBMISSION_OPERATION, {"batch_id": batch_id}) as timer:
                result = self.gateway.submit(batch)

            with self.lock:
                self.sla_monitor.check_sla(timer.result)

            if not result.success:
                raise_execution_error(batch_id, result.reason or "gateway rejected batch")

        except Exception as e:
            self._fail_batch(batch, str(e))
            return False

        self._complete_batch(batch, result)
        return True

    def _complete_batch(self, batch: TransactionBatch, result: SubmissionResult):
        with self.lock:
            self._transition(batch, BatchStatus.COMPLETED)
            batch.finished_at = self.clock()
            self._release(batch)
            self.batches_completed += 1
            self.total_savings += batch.savings

        logger.info(
            "Batch executed",
            batch_id=batch.batch_id,
            tx_hash=result.tx_hash,
            savings=batch.savings,
        )

        self.event_bus.emit(
            BatchExecutedEvent.NAME,
            BatchExecutedEvent(
                batch_id=batch.batch_id,
                transaction_ids=batch.transaction_ids,
                savings=batch.savings,
                execution_time=batch.finished_at,
            ),
        )

    def _fail_batch(self, batch: TransactionBatch, reason: str):
        with self.lock:
            self._transition(batch, BatchStatus.FAILED)
            batch.finished_at = self.clock()
            batch.failure_reason = reason
            self._release(batch)
            for tx in batch.transactions:
                self.pool.add(tx)
            self.batches_failed += 1

        logger.warning(
            "Batch failed, transactions requeued",
            batch_id=batch.batch_id,
            reason=reason,
            requeued=batch.size,
        )

        self.event_bus.emit(
            BatchFailedEvent.NAME,
            BatchFailedEvent(
                batch_id=batch.batch_id,
                reason=reason,
                transaction_ids=batch.transaction_ids,
                failed_at=batch.finished_at,
            ),
        )

    # ------------------------------------------------------------------
    # Batch bookkeeping (lock held)
    # ------------------------------------------------------------------

    def _register(self, batch: TransactionBatch):
        self.batches[batch.batch_id] = batch
        for tx_id in batch.transaction_ids:
            self._batched_tx_ids[tx_id] = batch.batch_id

    def _release(self, batch: TransactionBatch):
        for tx_id in batch.transaction_ids:
            self._batched_tx_ids.pop(tx_id, None)

    def _transition(self, batch: TransactionBatch, new_status: BatchStatus):
        if not batch.can_transition(new_status):
            raise BatchingError(
                batch.batch_id,
                f"illegal transition {batch.status.value} -> {new_status.value}",
            )

        old_status = batch.status
        batch.status = new_status
        self.audit.log_batch_event(
            batch.batch_id,
            new_status.value,
            {"from": old_status.value, "size": batch.size, "strategy": batch.strategy},
        )

    def _push_due(self, batch: TransactionBatch):
        heapq.heappush(self._due, (batch.scheduled_time, next(self._due_sequence), batch.batch_id))
        self._due_condition.notify_all()

    def _purge_finished(self, now: datetime):
        """Discard finished batches older than the retention period."""
        cutoff = now - timedelta(seconds=self.config.batch_retention_seconds)
        expired = [
            batch_id
            for batch_id, batch in self.batches.items()
            if batch.status.is_finished
            and batch.finished_at is not None
            and batch.finished_at <= cutoff
        ]
        for batch_id in expired:
            del self.batches[batch_id]

        if expired:
            logger.debug("Purged finished batches", count=len(expired))

    # ------------------------------------------------------------------
    # Background threads
    # ------------------------------------------------------------------

    def _worker_loop(self):
        """Run cycle requests one at a time."""
        logger.debug("Scheduler worker started")

        while True:
            reason = self._cycle_requests.get()
            if reason is _STOP:
                break

            with self.lock:
                self._cycle_pending = False

            try:
                self.create_optimal_batches()
            except Exception as e:
                logger.error("Scheduling cycle failed", reason=reason, error=str(e))

        logger.debug("Scheduler worker stopped")

    def _timer_loop(self):
        interval = self.config.effective_cycle_interval
        while not self._stop_event.wait(interval):
            with self.lock:
                ready = len(self.pool) >= self.config.min_batch_size
            if ready:
                self.request_cycle("timer")

    def _dispatch_loop(self):
        """Hand batches to the executor once their scheduled time arrives."""
        with self._due_condition:
            while self.is_running:
                if not self._due:
                    self._due_condition.wait(DISPATCH_TICK_SECONDS)
                    self._purge_finished(self.clock())
                    continue

                scheduled_time, _, batch_id = self._due[0]
                remaining = (scheduled_time - self.clock()).total_seconds()
                if remaining > 0:
                    self._due_condition.wait(min(remaining, DISPATCH_TICK_SECONDS))
                    continue

                heapq.heappop(self._due)
                batch = self.batches.get(batch_id)
                if batch is None or batch.status is not BatchStatus.SCHEDULED:
                    continue

                future = self.executor.submit(self._execute_dispatched, batch_id)
                self._inflight.add(future)
                future.add_done_callback(partial(self._on_dispatch_done, batch_id))

    def _on_dispatch_done(self, batch_id: str, future: Future):
        with self.lock:
            self._inflight.discard(future)
            if not future.cancelled():
                return
            # Cancelled before it ran: back on the heap for the next start
            batch = self.batches.get(batch_id)
            if batch is not None and batch.status is BatchStatus.SCHEDULED:
                self._push_due(batch)

    def _execute_dispatched(self, batch_id: str):
        try:
            self.execute_batch(batch_id)
        except BatchingError as e:
            # Executed directly by a caller in the meantime
            logger.debug("Skipping dispatched batch", batch_id=batch_id, reason=e.reason)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def subscribe(self, event_name: str, handler: EventHandler):
        """Subscribe to ``batch_executed`` or ``batch_failed`` events."""
        self.event_bus.subscribe(event_name, handler)

    def get_batch(self, batch_id: str) -> Optional[TransactionBatch]:
        with self.lock:
            return self.batches.get(batch_id)

    def pending_transactions(self) -> List[PendingTransaction]:
        with self.lock:
            return self.pool.snapshot()

    def active_batches(self) -> List[TransactionBatch]:
        with self.lock:
            return [b for b in self.batches.values() if not b.status.is_finished]

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status and statistics."""
        with self.lock:
            by_status = Counter(b.status.value for b in self.batches.values())

            submission_stats = None
            if SUBMISSION_OPERATION in self.sla_monitor.measurements:
                submission_stats = self.sla_monitor.get_sla_stats(SUBMISSION_OPERATION)

            return {
                "is_running": self.is_running,
                "pending_transactions": len(self.pool),
                "batches_by_status": {
                    status.value: by_status.get(status.value, 0) for status in BatchStatus
                },
                "transactions_received": self.transactions_received,
                "cycles_run": self.cycles_run,
                "batches_created": self.batches_created,
                "critical_batches": self.critical_batches,
                "batches_completed": self.batches_completed,
                "batches_failed": self.batches_failed,
                "total_savings": self.total_savings,
                "strategy_wins": dict(self.strategy_wins),
                "inflight_submissions": len(self._inflight),
                "gateway_submissions": submission_stats,
                "config": {
                    "min_batch_size": self.config.min_batch_size,
                    "max_batch_size": self.config.max_batch_size,
                    "max_wait_time_ms": self.config.max_wait_time_ms,
                    "savings_policy": self.config.savings_policy,
                    "enable_cross_chain_batching": self.config.enable_cross_chain_batching,
                },
            }

"""
Integration tests for the threaded batching pipeline.

Tests the end-to-end flow from transaction intake through scheduling
cycles, dispatch at the scheduled time, gateway submission and the
batch outcome events.
"""

import threading
import time

import pytest
from fuel_core.batching import BatchScheduler
from fuel_core.config import BatcherConfig, PredictorConfig
from fuel_core.gateway import DryRunGateway, SubmissionResult
from fuel_core.metrics import BatchMetrics
from fuel_core.prediction import GasPricePredictor, StaticTelemetrySource
from fuel_core.types import BatchStatus

WAIT_TIMEOUT = 5.0


def wait_for(condition, timeout=WAIT_TIMEOUT):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


class BlockingGateway(DryRunGateway):
    """Dry-run gateway that holds every submission until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def submit(self, batch):
        self.entered.set()
        self.release.wait(WAIT_TIMEOUT)
        return super().submit(batch)


class FlakyGateway(DryRunGateway):
    """Dry-run gateway whose first submission is rejected."""

    def __init__(self):
        super().__init__()
        self._rejected = threading.Event()

    def submit(self, batch):
        if not self._rejected.is_set():
            self._rejected.set()
            return SubmissionResult(batch_id=batch.batch_id, success=False, reason="nonce too low")
        return super().submit(batch)


@pytest.fixture
def fast_config():
    return BatcherConfig(
        min_batch_size=5,
        max_batch_size=20,
        max_wait_time_ms=0,
        cycle_interval_seconds=0.05,
        critical_delay_seconds=0.05,
    )


class TestBatchPipeline:
    """Test the complete background pipeline."""

    def test_pool_is_batched_and_executed(self, fast_config, make_tx):
        gateway = DryRunGateway()
        scheduler = BatchScheduler(gateway=gateway, config=fast_config)
        metrics = BatchMetrics().attach(scheduler.event_bus)

        with scheduler:
            for _ in range(5):
                scheduler.add_transaction(make_tx())

            assert wait_for(lambda: metrics.batches_executed == 1)

        assert metrics.transactions_executed == 5
        assert metrics.total_savings > 0
        assert scheduler.pending_transactions() == []
        assert len(gateway.submissions) == 1

        status = scheduler.get_status()
        assert status["is_running"] is False
        assert status["batches_completed"] == 1
        assert status["gateway_submissions"]["total_measurements"] == 1

    def test_critical_transaction_fast_lane(self, fast_config, make_tx):
        scheduler = BatchScheduler(config=fast_config)

        with scheduler:
            batch = scheduler.add_transaction(make_tx(priority="critical"))
            assert batch is not None
            assert wait_for(lambda: batch.status is BatchStatus.COMPLETED)

        assert batch.strategy == "critical"
        assert scheduler.get_status()["critical_batches"] == 1

    def test_failed_batch_is_requeued_and_retried(self, fast_config, make_tx):
        scheduler = BatchScheduler(gateway=FlakyGateway(), config=fast_config)
        metrics = BatchMetrics().attach(scheduler.event_bus)
        tx_ids = set()

        with scheduler:
            for _ in range(5):
                tx = make_tx()
                tx_ids.add(tx.tx_id)
                scheduler.add_transaction(tx)

            assert wait_for(lambda: metrics.batches_executed == 1)

        assert metrics.batches_failed == 1
        assert metrics.transactions_requeued == 5
        assert metrics.failure_reasons == {"nonce too low": 1}

        completed = [b for b in scheduler.batches.values() if b.status is BatchStatus.COMPLETED]
        assert len(completed) == 1
        assert set(completed[0].transaction_ids) == tx_ids

    def test_size_threshold_triggers_cycle(self, make_tx):
        # the timer alone would not fire within the test
        config = BatcherConfig(
            min_batch_size=5, max_batch_size=10, max_wait_time_ms=0, cycle_interval_seconds=60.0
        )
        scheduler = BatchScheduler(config=config)

        with scheduler:
            for _ in range(10):
                scheduler.add_transaction(make_tx())

            assert wait_for(lambda: scheduler.get_status()["batches_completed"] >= 1)

    def test_predictor_refreshed_from_telemetry(self, fast_config, make_tx):
        predictor = GasPricePredictor(PredictorConfig(enable_noise=False))
        source = StaticTelemetrySource([{"base_fee": 25.0, "priority_fee": 1.5}], loop=True)
        scheduler = BatchScheduler(
            config=fast_config, predictor=predictor, telemetry_source=source
        )
        metrics = BatchMetrics().attach(scheduler.event_bus)

        with scheduler:
            for _ in range(5):
                scheduler.add_transaction(make_tx())
            assert wait_for(lambda: metrics.batches_executed == 1)

        assert predictor.is_initialized
        assert predictor.predictions_made >= 1

    def test_drained_stop_leaves_nothing_executing(self, fast_config, make_tx):
        gateway = DryRunGateway(latency_seconds=0.05)
        scheduler = BatchScheduler(gateway=gateway, config=fast_config)
        scheduler.start()

        for _ in range(5):
            scheduler.add_transaction(make_tx())
        assert wait_for(lambda: scheduler.get_status()["batches_created"] >= 1)

        scheduler.stop(drain=True)

        statuses = {b.status for b in scheduler.batches.values()}
        assert BatchStatus.EXECUTING not in statuses
        assert scheduler.get_status()["inflight_submissions"] == 0

    def test_stop_without_drain_keeps_queued_batches(self, clock, make_tx):
        config = BatcherConfig(
            min_batch_size=5,
            max_batch_size=5,
            max_wait_time_ms=0,
            cycle_interval_seconds=60.0,
            max_parallelism=1,
        )
        gateway = BlockingGateway()
        scheduler = BatchScheduler(gateway=gateway, config=config, clock=clock)
        for _ in range(15):
            scheduler.add_transaction(make_tx())
        batches = scheduler.create_optimal_batches()
        assert len(batches) == 3

        scheduler.start()
        assert gateway.entered.wait(WAIT_TIMEOUT)
        assert wait_for(lambda: not scheduler._due)

        # the running submission finishes only after stop has begun
        threading.Timer(0.5, gateway.release.set).start()
        scheduler.stop(drain=False)

        statuses = [b.status for b in batches]
        assert statuses.count(BatchStatus.COMPLETED) == 1
        assert statuses.count(BatchStatus.SCHEDULED) == 2
        assert len(scheduler._due) == 2
        assert scheduler.get_status()["inflight_submissions"] == 0

        with scheduler:
            assert wait_for(lambda: all(b.status is BatchStatus.COMPLETED for b in batches))

        assert len(gateway.submissions) == 3
        assert scheduler.active_batches() == []

    def test_restart_after_stop(self, fast_config, make_tx):
        scheduler = BatchScheduler(config=fast_config)
        scheduler.start()
        scheduler.stop()

        with scheduler:
            for _ in range(5):
                scheduler.add_transaction(make_tx())
            assert wait_for(lambda: scheduler.get_status()["batches_completed"] == 1)

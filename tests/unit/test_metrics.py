"""Tests for batch outcome metrics."""

import pytest
from fuel_core.events import EventBus
from fuel_core.metrics import BatchMetrics
from fuel_core.types import BatchExecutedEvent, BatchFailedEvent, utcnow


def _executed(batch_id, size, savings):
    return BatchExecutedEvent(
        batch_id=batch_id,
        transaction_ids=[f"{batch_id}-{i}" for i in range(size)],
        savings=savings,
        execution_time=utcnow(),
    )


class TestBatchMetrics:
    def test_tracks_executed_batches(self):
        bus = EventBus()
        metrics = BatchMetrics().attach(bus)

        bus.emit("batch_executed", _executed("a", 5, 100))
        bus.emit("batch_executed", _executed("b", 3, 50))

        assert metrics.total_savings == 150
        assert metrics.transactions_executed == 8
        assert metrics.batches_executed == 2

    def test_tracks_failures(self):
        bus = EventBus()
        metrics = BatchMetrics().attach(bus)

        bus.emit("batch_executed", _executed("a", 5, 100))
        bus.emit("batch_failed", BatchFailedEvent("b", "timeout", ["t1", "t2"]))

        assert metrics.batches_failed == 1
        assert metrics.transactions_requeued == 2
        assert metrics.failure_reasons == {"timeout": 1}
        assert metrics.failure_rate == pytest.approx(0.5)

    def test_failure_rate_without_batches(self):
        assert BatchMetrics().failure_rate == 0.0

    def test_summary(self):
        metrics = BatchMetrics()
        for i, savings in enumerate((10, 20, 30)):
            metrics.on_batch_executed(_executed(str(i), 5, savings))

        summary = metrics.get_summary("savings")
        assert summary.count == 3
        assert summary.mean == pytest.approx(20.0)
        assert summary.median == pytest.approx(20.0)
        assert summary.min_value == 10.0
        assert summary.max_value == 30.0
        assert metrics.get_summary("unknown") is None

    def test_get_stats(self):
        metrics = BatchMetrics()
        assert metrics.get_stats()["savings"] is None

        metrics.on_batch_executed(_executed("a", 4, 40))
        stats = metrics.get_stats()
        assert stats["total_savings"] == 40
        assert stats["batch_size"]["mean"] == pytest.approx(4.0)

    def test_detach_and_reset(self):
        bus = EventBus()
        metrics = BatchMetrics().attach(bus)
        bus.emit("batch_executed", _executed("a", 1, 1))

        metrics.detach(bus)
        bus.emit("batch_executed", _executed("b", 1, 1))
        assert metrics.batches_executed == 1

        metrics.reset()
        assert metrics.batches_executed == 0
        assert metrics.get_summary("savings") is None

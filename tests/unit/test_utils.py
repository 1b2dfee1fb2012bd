"""Tests for timing utilities."""

import time
from datetime import datetime

import pytest
from fuel_core.utils.timers import SLAMonitor, Timer, TimingResult, time_operation


def _result(operation, duration):
    now = datetime.utcnow()
    return TimingResult(
        operation=operation,
        start_time=now,
        end_time=now,
        duration_seconds=duration,
        success=True,
        metadata={},
    )


class TestTimer:
    def test_basic_timing(self):
        timer = Timer("test_op")
        timer.start()
        time.sleep(0.01)
        result = timer.stop()

        assert result.operation == "test_op"
        assert result.duration_seconds >= 0.005
        assert result.success is True

    def test_context_manager(self):
        with Timer("test_op") as timer:
            time.sleep(0.01)
        assert timer.result is not None
        assert timer.result.duration_seconds > 0

    def test_context_manager_marks_failure(self):
        with pytest.raises(ValueError):
            with Timer("test_op") as timer:
                raise ValueError("boom")
        assert timer.result.success is False

    def test_stop_without_start(self):
        with pytest.raises(ValueError, match="not started"):
            Timer("test_op").stop()

    def test_duration_ms(self):
        assert _result("op", 0.5).duration_ms == 500.0


class TestTimeOperation:
    def test_yields_running_timer(self):
        with time_operation("gateway_submission", {"batch_id": "b1"}) as timer:
            assert timer.start_time is not None
        assert timer.result.success is True
        assert timer.result.metadata == {"batch_id": "b1"}

    def test_failure_tracking(self):
        with pytest.raises(RuntimeError):
            with time_operation("gateway_submission") as timer:
                raise RuntimeError("fail")
        assert timer.result.success is False


class TestSLAMonitor:
    def test_meets_sla(self):
        monitor = SLAMonitor(sla_targets={"gateway_submission": 1.0})
        assert monitor.check_sla(_result("gateway_submission", 0.5)) is True
        assert monitor.violations.get("gateway_submission", 0) == 0

    def test_violates_sla(self):
        monitor = SLAMonitor(sla_targets={"gateway_submission": 0.1})
        assert monitor.check_sla(_result("gateway_submission", 0.5)) is False
        assert monitor.violations["gateway_submission"] == 1

    def test_unknown_operation_passes(self):
        monitor = SLAMonitor(sla_targets={"other_op": 1.0})
        assert monitor.check_sla(_result("unknown_op", 99.0)) is True
        assert monitor.get_sla_stats("unknown_op") == {"error": "No measurements found"}

    def test_get_sla_stats(self):
        monitor = SLAMonitor(sla_targets={"op": 1.0})
        for duration in [0.1, 0.2, 0.3, 0.5, 2.0]:
            monitor.check_sla(_result("op", duration))

        stats = monitor.get_sla_stats("op")
        assert stats["total_measurements"] == 5
        assert stats["violations"] == 1
        assert stats["violation_rate"] == pytest.approx(0.2)
        assert stats["min_seconds"] == 0.1
        assert stats["max_seconds"] == 2.0
        assert stats["mean_seconds"] == pytest.approx(0.62)

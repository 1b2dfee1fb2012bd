"""Tests for correlation tracing and the batch audit trail."""

import json

import pytest
from fuel_core.logging import (
    AuditLogger,
    CorrelationContext,
    get_audit_logger,
    trace_operation,
    with_correlation_id,
)


@pytest.fixture(autouse=True)
def _clean_context():
    CorrelationContext.clear_correlation_id()
    yield
    CorrelationContext.clear_correlation_id()


class TestCorrelationContext:
    def test_id_is_stable_within_thread(self):
        first = CorrelationContext.get_correlation_id()
        assert len(first) == 8
        assert CorrelationContext.get_correlation_id() == first

    def test_set_and_clear(self):
        CorrelationContext.set_correlation_id("cycle-1")
        assert CorrelationContext.get_correlation_id() == "cycle-1"

        CorrelationContext.clear_correlation_id()
        assert CorrelationContext.get_correlation_id() != "cycle-1"

    def test_operation_stack(self):
        CorrelationContext.push_operation("outer")
        CorrelationContext.push_operation("inner")
        context = CorrelationContext.get_trace_context()

        assert context["operation_stack"] == ["outer", "inner"]
        assert context["depth"] == 2
        assert CorrelationContext.pop_operation() == "inner"
        assert CorrelationContext.pop_operation() == "outer"
        assert CorrelationContext.pop_operation() is None


class TestDecorators:
    def test_with_correlation_id_restores_previous(self):
        CorrelationContext.set_correlation_id("outer")

        @with_correlation_id("inner")
        def run():
            return CorrelationContext.get_correlation_id()

        assert run() == "inner"
        assert CorrelationContext.get_correlation_id() == "outer"

    def test_with_correlation_id_generates_fresh_id(self):
        @with_correlation_id()
        def run():
            return CorrelationContext.get_correlation_id()

        assert run() != run()

    def test_trace_operation_tracks_stack(self):
        @trace_operation("scheduling_cycle")
        def run():
            return CorrelationContext.get_trace_context()["operation_stack"]

        assert run() == ["scheduling_cycle"]
        assert CorrelationContext.get_trace_context()["depth"] == 0

    def test_trace_operation_pops_on_failure(self):
        @trace_operation("scheduling_cycle")
        def run():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run()
        assert CorrelationContext.get_trace_context()["depth"] == 0


class TestAuditLogger:
    def test_no_file_without_directory(self):
        assert AuditLogger().audit_file is None

    def test_batch_events_written_as_json_lines(self, tmp_path):
        audit = get_audit_logger(str(tmp_path / "audit"))
        audit.log_batch_event("batch_1", "scheduled", {"size": 5})
        audit.log_batch_event("batch_1", "executing", {})

        lines = audit.audit_file.read_text().splitlines()
        events = [json.loads(line) for line in lines]

        assert [e["batch_event"] for e in events] == ["scheduled", "executing"]
        assert events[0]["batch_id"] == "batch_1"
        assert events[0]["details"] == {"size": 5}


"""Tests for the batch outcome event bus."""

from fuel_core.events import EventBus


class TestEventBus:
    def test_emit_delivers_to_subscribers(self):
        bus = EventBus()
        received = []
        bus.subscribe("batch_executed", received.append)
        bus.subscribe("batch_executed", received.append)

        assert bus.emit("batch_executed", "event") == 2
        assert received == ["event", "event"]

    def test_events_routed_by_name(self):
        bus = EventBus()
        received = []
        bus.subscribe("batch_failed", received.append)

        assert bus.emit("batch_executed", "event") == 0
        assert received == []

    def test_handler_errors_are_contained(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("batch_failed", broken)
        bus.subscribe("batch_failed", received.append)

        assert bus.emit("batch_failed", "event") == 1
        assert received == ["event"]
        assert bus.get_metrics()["batch_failed"] == {"emitted": 1, "handler_errors": 1}

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe("batch_executed", received.append)

        assert bus.unsubscribe("batch_executed", received.append) is True
        assert bus.unsubscribe("batch_executed", received.append) is False
        bus.emit("batch_executed", "event")
        assert received == []

"""
Event Stream for Batch Outcomes

Synchronous publish/subscribe bus carrying ``batch_executed`` and
``batch_failed`` events from the scheduler to whoever orchestrates it.
Handlers run on the emitting thread; a failing handler is logged and never
interrupts the scheduler.
"""

import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List

from .logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Any], None]


class EventBus:
    """In-process event bus keyed by event name."""

    def __init__(self):
        self.subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self.metrics: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {"emitted": 0, "handler_errors": 0}
        )
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event name."""
        with self._lock:
            self.subscribers[event_name].append(handler)

        logger.debug(
            "Subscribed handler to event",
            event_name=event_name,
            handler=getattr(handler, "__qualname__", repr(handler)),
        )

    def unsubscribe(self, event_name: str, handler: EventHandler) -> bool:
        """Remove a handler; returns False if it was not subscribed."""
        with self._lock:
            handlers = self.subscribers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def emit(self, event_name: str, event: Any) -> int:
        """
        Deliver an event to every handler subscribed to its name.

        Returns:
            Number of handlers that processed the event without raising
        """
        with self._lock:
            handlers = list(self.subscribers.get(event_name, []))
            self.metrics[event_name]["emitted"] += 1

        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                with self._lock:
                    self.metrics[event_name]["handler_errors"] += 1
                logger.error(
                    "Event handler failed",
                    event_name=event_name,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )

        return delivered

    def get_metrics(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            return {name: dict(values) for name, values in self.metrics.items()}

"""Telemetry sources feeding the gas price predictor."""

import itertools
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Optional, Union

from ..errors import TelemetryError
from .features import NetworkSample


class TelemetrySource(ABC):
    """Produces raw network samples for a chain."""

    name: str = "telemetry"

    @abstractmethod
    def fetch(self, chain_id: Optional[str] = None) -> NetworkSample:
        """Return the latest raw sample; raise ``TelemetryError`` if unavailable."""


class StaticTelemetrySource(TelemetrySource):
    """Replays a fixed sequence of samples, optionally looping."""

    name = "static"

    def __init__(
        self,
        samples: Iterable[Union[NetworkSample, Mapping[str, Any]]],
        loop: bool = False,
    ):
        parsed = [
            s if isinstance(s, NetworkSample) else NetworkSample.model_validate(dict(s))
            for s in samples
        ]
        if not parsed:
            raise ValueError("StaticTelemetrySource needs at least one sample")

        self._iterator = itertools.cycle(parsed) if loop else iter(parsed)
        self._lock = threading.Lock()

    def fetch(self, chain_id: Optional[str] = None) -> NetworkSample:
        with self._lock:
            try:
                return next(self._iterator)
            except StopIteration:
                raise TelemetryError(
                    self.name, "sample sequence exhausted", chain_id=chain_id
                ) from None

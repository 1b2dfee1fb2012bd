"""
Network Feature Sampling

Turns raw chain telemetry into normalized ``NetworkFeatures`` records with
calendar attributes and a congestion score. Any missing telemetry field falls
back to a default so that sampling never fails on partial data.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import numpy as np
from pydantic import BaseModel, Field, field_validator

from ..types import utcnow

DEFAULT_BASE_FEE_GWEI = 30.0
DEFAULT_PRIORITY_FEE_GWEI = 2.0
DEFAULT_UTILIZATION = 0.5
DEFAULT_PENDING_TX_COUNT = 150
DEFAULT_MEMPOOL_SIZE = 5000
DEFAULT_BLOCK_TIME_SECONDS = 12.0

UTILIZATION_WEIGHT = 0.7
PENDING_WEIGHT = 0.3


class NetworkSample(BaseModel):
    """Raw telemetry sample as reported by a telemetry source."""

    timestamp: Optional[datetime] = Field(None, description="Observation time (UTC)")
    base_fee: Optional[float] = Field(None, ge=0, description="Base fee in gwei")
    priority_fee: Optional[float] = Field(None, ge=0, description="Priority fee in gwei")
    block_utilization: Optional[float] = Field(None, description="Gas used / gas limit")
    pending_tx_count: Optional[int] = Field(None, ge=0, description="Pending transactions")
    mempool_size: Optional[int] = Field(None, ge=0, description="Mempool size")
    last_block_time: Optional[float] = Field(None, ge=0, description="Seconds since previous block")

    model_config = {"extra": "ignore"}

    @field_validator("block_utilization")
    @classmethod
    def clamp_utilization(cls, v):
        if v is None:
            return v
        return min(max(v, 0.0), 1.0)


@dataclass(frozen=True)
class NetworkFeatures:
    """Point-in-time snapshot of network conditions."""

    timestamp: datetime
    day_of_week: int
    hour: int
    minute: int
    base_fee: float
    priority_fee: float
    block_utilization: float
    pending_tx_count: int
    mempool_size: int
    last_block_time: float
    congestion_score: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


RawSample = Union[NetworkSample, Mapping[str, Any], None]


class NetworkFeatureSampler:
    """Converts raw telemetry into ``NetworkFeatures``."""

    def __init__(self, pending_tx_reference: int = 1000):
        if pending_tx_reference < 1:
            raise ValueError("pending_tx_reference must be at least 1")
        self.pending_tx_reference = pending_tx_reference

    def congestion_score(self, block_utilization: float, pending_tx_count: int) -> float:
        """Weighted blend of utilization and pending backlog, in [0, 1]."""
        pending_ratio = min(pending_tx_count / self.pending_tx_reference, 1.0)
        score = block_utilization * UTILIZATION_WEIGHT + pending_ratio * PENDING_WEIGHT
        return min(max(score, 0.0), 1.0)

    def sample(self, raw: RawSample = None, now: Optional[datetime] = None) -> NetworkFeatures:
        """Derive a feature record from a raw sample, defaulting missing fields."""
        if raw is None:
            raw = NetworkSample()
        elif not isinstance(raw, NetworkSample):
            raw = NetworkSample.model_validate(dict(raw))

        timestamp = raw.timestamp or now or utcnow()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        utilization = _default(raw.block_utilization, DEFAULT_UTILIZATION)
        pending = _default(raw.pending_tx_count, DEFAULT_PENDING_TX_COUNT)

        return NetworkFeatures(
            timestamp=timestamp,
            day_of_week=timestamp.weekday(),
            hour=timestamp.hour,
            minute=timestamp.minute,
            base_fee=_default(raw.base_fee, DEFAULT_BASE_FEE_GWEI),
            priority_fee=_default(raw.priority_fee, DEFAULT_PRIORITY_FEE_GWEI),
            block_utilization=utilization,
            pending_tx_count=pending,
            mempool_size=_default(raw.mempool_size, DEFAULT_MEMPOOL_SIZE),
            last_block_time=_default(raw.last_block_time, DEFAULT_BLOCK_TIME_SECONDS),
            congestion_score=self.congestion_score(utilization, pending),
        )

    @staticmethod
    def as_vector(features: NetworkFeatures, names: Sequence[str]) -> np.ndarray:
        """Select the named numeric fields of a feature record as a float vector."""
        return np.array([float(getattr(features, name)) for name in names], dtype=float)


def _default(value, fallback):
    return fallback if value is None else value

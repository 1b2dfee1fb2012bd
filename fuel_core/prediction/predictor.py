"""
Multi-Horizon Gas Price Predictor

Statistical fee forecaster over a bounded window of network feature records.
Each forecast starts from the current fees and applies, in order, calendar
demand multipliers, a congestion premium, the recent linear trend and seeded
multiplicative noise scaled by recent volatility. Confidence decays with the
horizon and is penalized by volatility and heavy congestion.

With fewer than ``MIN_SAMPLES_FOR_STATS`` samples of history the predictor
falls back to pattern-only forecasting (zero trend, default volatility).
"""

import math
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from ..config import PredictorConfig, get_config
from ..errors import PredictorNotInitializedError
from ..logging import get_logger
from ..types import utcnow
from .features import NetworkFeatureSampler, NetworkFeatures, RawSample
from .telemetry import TelemetrySource

logger = get_logger(__name__)

# Intraday demand curve by UTC hour; peaks with US/EU overlap
HOURLY_MULTIPLIERS = (
    0.90, 0.87, 0.85, 0.84, 0.85, 0.88,
    0.92, 0.96, 1.00, 1.03, 1.06, 1.08,
    1.10, 1.13, 1.15, 1.16, 1.14, 1.10,
    1.06, 1.03, 1.00, 0.97, 0.94, 0.92,
)

# Weekly demand curve, Monday first
WEEKDAY_MULTIPLIERS = (1.04, 1.06, 1.06, 1.05, 1.02, 0.92, 0.88)

TREND_WINDOW = 20
MIN_SAMPLES_FOR_STATS = 10
DEFAULT_VOLATILITY = 0.1

BASE_CONFIDENCE = 0.9
CONFIDENCE_DECAY_MINUTES = 120.0
CONGESTION_PENALTY_THRESHOLD = 0.8
CONGESTION_PENALTY = 0.8
MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 1.0

MIN_BASE_FEE = 1.0
MIN_PRIORITY_FEE = 0.1


@dataclass(frozen=True)
class HorizonForecast:
    """Fee forecast at one horizon, fees in gwei."""

    horizon_minutes: int
    base_fee: float
    priority_fee: float
    confidence: float

    @property
    def total_fee(self) -> float:
        return self.base_fee + self.priority_fee


@dataclass(frozen=True)
class PredictionResult:
    """Forecasts for every configured horizon from one feature sample."""

    features: NetworkFeatures
    forecasts: Tuple[HorizonForecast, ...]
    trend: float
    volatility: float
    created_at: datetime = field(default_factory=utcnow)

    def forecast(self, horizon_minutes: int) -> HorizonForecast:
        for item in self.forecasts:
            if item.horizon_minutes == horizon_minutes:
                return item
        raise KeyError(f"No forecast for horizon {horizon_minutes}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "features": self.features.to_dict(),
            "forecasts": [
                {
                    "horizon_minutes": f.horizon_minutes,
                    "base_fee": f.base_fee,
                    "priority_fee": f.priority_fee,
                    "confidence": f.confidence,
                }
                for f in self.forecasts
            ],
            "trend": self.trend,
            "volatility": self.volatility,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ExecutionWindow:
    """Recommended time to submit, with the fees expected then."""

    execution_time: datetime
    horizon_minutes: int
    base_fee: float
    priority_fee: float
    confidence: float


class GasPricePredictor:
    """
    Gas price forecaster over a bounded feature history.

    Not order-dependent across calls other than through the shared history
    buffer. Thread-safe; ``start`` runs periodic refreshes from a telemetry
    source on a daemon thread.
    """

    def __init__(
        self,
        config: Optional[PredictorConfig] = None,
        sampler: Optional[NetworkFeatureSampler] = None,
    ):
        self.config = config or get_config().predictor
        self.sampler = sampler or NetworkFeatureSampler(self.config.pending_tx_reference)

        self.history: deque = deque(maxlen=self.config.history_window)
        self._rng = np.random.default_rng(self.config.random_seed)
        self._latest: Optional[PredictionResult] = None
        self._initialized = False
        self.predictions_made = 0

        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._refresh_thread: Optional[threading.Thread] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_running(self) -> bool:
        return self._refresh_thread is not None and self._refresh_thread.is_alive()

    def initialize(self, seed_samples: Optional[Iterable[RawSample]] = None):
        """Seed the model, optionally preloading history from past samples."""
        with self._lock:
            for raw in seed_samples or []:
                self.history.append(self.sampler.sample(raw))
            self._initialized = True

        logger.info(
            "Gas price predictor initialized",
            history_size=len(self.history),
            horizons=list(self.config.horizons),
        )

    def predict(
        self, sample: RawSample = None, now: Optional[datetime] = None
    ) -> PredictionResult:
        """
        Forecast fees for every configured horizon and record the sample.

        ``now`` stamps the result and stands in for a missing sample timestamp.
        """
        if not self._initialized:
            raise PredictorNotInitializedError("predict")

        with self._lock:
            features = self.sampler.sample(sample, now=now)
            trend, volatility = self._trend_and_volatility()

            forecasts = tuple(
                self._forecast(features, horizon, trend, volatility)
                for horizon in self.config.horizons
            )

            self.history.append(features)

            result = PredictionResult(
                features=features,
                forecasts=forecasts,
                trend=trend,
                volatility=volatility,
                created_at=now or utcnow(),
            )
            self._latest = result
            self.predictions_made += 1

        logger.debug(
            "Gas prices predicted",
            base_fee=features.base_fee,
            congestion=features.congestion_score,
            trend=trend,
            volatility=volatility,
        )
        return result

    def _trend_and_volatility(self) -> Tuple[float, float]:
        """Trend and coefficient of variation of base fee over the recent window."""
        if len(self.history) < MIN_SAMPLES_FOR_STATS:
            return 0.0, DEFAULT_VOLATILITY

        window = np.array(
            [f.base_fee for f in list(self.history)[-TREND_WINDOW:]], dtype=float
        )

        old_avg = window[:MIN_SAMPLES_FOR_STATS].mean()
        new_avg = window[-MIN_SAMPLES_FOR_STATS:].mean()
        trend = (new_avg - old_avg) / old_avg if old_avg > 0 else 0.0

        mean = window.mean()
        volatility = window.std() / mean if mean > 0 else DEFAULT_VOLATILITY

        return float(trend), float(volatility)

    def _forecast(
        self, features: NetworkFeatures, horizon: int, trend: float, volatility: float
    ) -> HorizonForecast:
        drift = horizon / 60.0

        multiplier = (
            HOURLY_MULTIPLIERS[features.hour]
            * WEEKDAY_MULTIPLIERS[features.day_of_week]
            * (1 + 0.5 * features.congestion_score)
            * (1 + trend * drift)
        )

        noise_scale = volatility * drift
        if self.config.enable_noise and noise_scale > 0:
            multiplier *= 1 + self._rng.normal(0.0, noise_scale)

        confidence = BASE_CONFIDENCE * math.exp(-horizon / CONFIDENCE_DECAY_MINUTES)
        confidence *= 1 - volatility * 0.5
        if features.congestion_score > CONGESTION_PENALTY_THRESHOLD:
            confidence *= CONGESTION_PENALTY
        confidence = min(max(confidence, MIN_CONFIDENCE), MAX_CONFIDENCE)

        return HorizonForecast(
            horizon_minutes=horizon,
            base_fee=max(MIN_BASE_FEE, features.base_fee * multiplier),
            priority_fee=round(max(MIN_PRIORITY_FEE, features.priority_fee * multiplier), 1),
            confidence=confidence,
        )

    def latest(
        self, max_age_seconds: float = 60.0, now: Optional[datetime] = None
    ) -> Optional[PredictionResult]:
        """Return the cached last prediction if it is fresh enough."""
        with self._lock:
            result = self._latest

        if result is None:
            return None

        age = ((now or utcnow()) - result.created_at).total_seconds()
        return result if age <= max_age_seconds else None

    def refresh(
        self,
        source: TelemetrySource,
        chain_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PredictionResult:
        """Pull one sample from a telemetry source and predict from it."""
        return self.predict(source.fetch(chain_id), now=now)

    def start(self, source: TelemetrySource, chain_id: Optional[str] = None):
        """Refresh predictions every ``update_interval_seconds`` on a daemon thread."""
        with self._lock:
            if self.is_running:
                return

            if not self._initialized:
                self.initialize()

            self._stop_event.clear()
            self._refresh_thread = threading.Thread(
                target=self._refresh_loop,
                args=(source, chain_id),
                name="FuelPredictor",
                daemon=True,
            )
            self._refresh_thread.start()

        logger.info(
            "Prediction refresh started",
            source=source.name,
            interval_seconds=self.config.update_interval_seconds,
        )

    def stop(self):
        """Stop the periodic refresh thread."""
        self._stop_event.set()
        thread = self._refresh_thread
        if thread is not None:
            thread.join(timeout=5.0)
        self._refresh_thread = None

    def _refresh_loop(self, source: TelemetrySource, chain_id: Optional[str]):
        while not self._stop_event.is_set():
            try:
                self.refresh(source, chain_id)
            except Exception as e:
                logger.error("Prediction refresh failed", source=source.name, error=str(e))

            self._stop_event.wait(self.config.update_interval_seconds)

    @staticmethod
    def forecast_for_delay(result: PredictionResult, delay_seconds: float) -> HorizonForecast:
        """Forecast whose horizon is nearest to the given delay."""
        delay_minutes = delay_seconds / 60.0
        return min(result.forecasts, key=lambda f: abs(f.horizon_minutes - delay_minutes))

    def recommend_window(
        self,
        result: PredictionResult,
        deadline: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ExecutionWindow:
        """
        Cheapest execution window that respects an optional deadline.

        The immediate window (current fees) is always a candidate; forecasts
        below ``confidence_threshold`` are ignored.
        """
        now = now or utcnow()
        features = result.features

        candidates: List[ExecutionWindow] = [
            ExecutionWindow(
                execution_time=now,
                horizon_minutes=0,
                base_fee=features.base_fee,
                priority_fee=features.priority_fee,
                confidence=MAX_CONFIDENCE,
            )
        ]

        for forecast in result.forecasts:
            if forecast.confidence < self.config.confidence_threshold:
                continue

            execution_time = now + timedelta(minutes=forecast.horizon_minutes)
            if deadline is not None and execution_time > deadline:
                continue

            candidates.append(
                ExecutionWindow(
                    execution_time=execution_time,
                    horizon_minutes=forecast.horizon_minutes,
                    base_fee=forecast.base_fee,
                    priority_fee=forecast.priority_fee,
                    confidence=forecast.confidence,
                )
            )

        return min(candidates, key=lambda w: (w.base_fee + w.priority_fee, w.horizon_minutes))

    def feature_matrix(self) -> np.ndarray:
        """History as a matrix of the configured features, oldest row first."""
        with self._lock:
            rows = [
                NetworkFeatureSampler.as_vector(f, self.config.features) for f in self.history
            ]

        if not rows:
            return np.empty((0, len(self.config.features)))
        return np.vstack(rows)

    def get_stats(self) -> Dict[str, Any]:
        """Get predictor statistics."""
        with self._lock:
            trend, volatility = self._trend_and_volatility()
            base_fees = [f.base_fee for f in self.history]

            return {
                "initialized": self._initialized,
                "is_running": self.is_running,
                "history_size": len(self.history),
                "history_window": self.config.history_window,
                "predictions_made": self.predictions_made,
                "trend": trend,
                "volatility": volatility,
                "mean_base_fee": float(np.mean(base_fees)) if base_fees else None,
                "horizons": list(self.config.horizons),
            }

"""Shared test fixtures for fuel-core."""

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fuel_core.batching import BatchScheduler
from fuel_core.config import BatcherConfig, PredictorConfig, get_config, reset_config
from fuel_core.gateway import DryRunGateway
from fuel_core.prediction import GasPricePredictor
from fuel_core.types import PendingTransaction

FUEL_ENV_VARS = (
    "FUEL_MODE",
    "DRY_RUN",
    "MAX_BATCH_SIZE",
    "MIN_BATCH_SIZE",
    "MAX_WAIT_TIME_MS",
    "GAS_THRESHOLD",
    "ENABLE_CROSS_CHAIN_BATCHING",
    "SAVINGS_POLICY",
    "HISTORY_WINDOW",
    "PREDICTION_UPDATE_INTERVAL",
    "CONFIDENCE_THRESHOLD",
    "RANDOM_SEED",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "AUDIT_DIR",
)

# Monday, noon UTC
START_TIME = datetime(2024, 3, 4, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for scheduler tests."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def _reset_global_config(monkeypatch):
    """Reset global config and ensure development mode for all tests."""
    for var in FUEL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config():
    """Return the default FuelConfig."""
    return get_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_tx():
    """Factory for pending transactions with sequential ids."""
    counter = itertools.count()

    def factory(chain_id="1", priority="medium", tx_type="deployment", **kwargs):
        kwargs.setdefault("tx_id", f"tx-{next(counter)}")
        return PendingTransaction(tx_type=tx_type, chain_id=chain_id, priority=priority, **kwargs)

    return factory


@pytest.fixture
def batcher_config():
    return BatcherConfig(min_batch_size=5, max_batch_size=20, max_wait_time_ms=900_000)


@pytest.fixture
def gateway():
    return DryRunGateway()


@pytest.fixture
def scheduler(gateway, batcher_config, clock):
    """Unstarted scheduler over a dry-run gateway and a fixed clock."""
    sched = BatchScheduler(gateway=gateway, config=batcher_config, clock=clock)
    yield sched
    sched.stop()


@pytest.fixture
def predictor_config():
    return PredictorConfig(history_window=20, enable_noise=False)


@pytest.fixture
def predictor(predictor_config):
    model = GasPricePredictor(predictor_config)
    model.initialize()
    return model

"""Configuration Management for Fuel

This module provides centralized configuration for the batching scheduler and
the gas price predictor. Gateway settings are immutable and validated with
Pydantic settings; operational settings are plain dataclasses.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

PRIORITY_TIERS = ("critical", "high", "medium", "low")

DEFAULT_PRIORITY_WEIGHTS = {
    "critical": 1.0,
    "high": 0.8,
    "medium": 0.5,
    "low": 0.2,
}

DEFAULT_FEATURES = (
    "base_fee",
    "priority_fee",
    "block_utilization",
    "pending_tx_count",
    "mempool_size",
    "last_block_time",
    "congestion_score",
    "hour",
    "day_of_week",
)

SAVINGS_POLICIES = ("fee_first", "latency_aware")


class GatewayConfig(BaseSettings):
    """Immutable chain gateway configuration."""

    dry_run: bool = Field(
        default=True, description="Simulate submissions (REQUIRED outside production)"
    )
    submission_timeout_seconds: float = Field(
        default=30.0, description="Upper bound on a single gateway submission"
    )

    @field_validator("dry_run")
    @classmethod
    def validate_dry_run(cls, v):
        from .mode import is_production

        if is_production():
            return v
        if not v:
            raise ValueError("DRY_RUN must be True outside production mode")
        return v

    @field_validator("submission_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("submission_timeout_seconds must be positive")
        return v

    model_config = {"frozen": True}


@dataclass
class BatcherConfig:
    """Configuration for the transaction batch scheduler."""

    max_batch_size: int = 20
    min_batch_size: int = 5
    max_wait_time_ms: int = 900_000
    priority_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_PRIORITY_WEIGHTS)
    )
    gas_threshold: int = 0  # wei
    enable_cross_chain_batching: bool = False
    batch_discount: float = 0.10
    savings_policy: str = "fee_first"
    latency_cost_per_tx_second: int = 0  # wei
    cycle_interval_seconds: Optional[float] = None
    batch_retention_seconds: float = 60.0
    critical_delay_seconds: float = 1.0
    max_parallelism: int = 4

    def __post_init__(self):
        """Validate batcher configuration."""
        if self.min_batch_size < 1:
            raise ValueError("min_batch_size must be at least 1")

        if self.max_batch_size < self.min_batch_size:
            raise ValueError("max_batch_size cannot be smaller than min_batch_size")

        if self.max_wait_time_ms < 0:
            raise ValueError("max_wait_time_ms must be non-negative")

        missing = [tier for tier in PRIORITY_TIERS if tier not in self.priority_weights]
        if missing:
            raise ValueError(f"priority_weights missing tiers: {missing}")

        for tier, weight in self.priority_weights.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"priority weight for {tier} must be between 0.0 and 1.0")

        if self.gas_threshold < 0:
            raise ValueError("gas_threshold must be non-negative")

        if not 0.0 <= self.batch_discount < 1.0:
            raise ValueError("batch_discount must be in [0.0, 1.0)")

        if self.savings_policy not in SAVINGS_POLICIES:
            raise ValueError(f"Invalid savings policy: {self.savings_policy}")

        if self.latency_cost_per_tx_second < 0:
            raise ValueError("latency_cost_per_tx_second must be non-negative")

        if self.cycle_interval_seconds is not None and self.cycle_interval_seconds <= 0:
            raise ValueError("cycle_interval_seconds must be positive")

        if self.batch_retention_seconds < 0:
            raise ValueError("batch_retention_seconds must be non-negative")

        if self.max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")

    @property
    def max_wait_time_seconds(self) -> float:
        return self.max_wait_time_ms / 1000.0

    @property
    def effective_cycle_interval(self) -> float:
        """Timer period for scheduling cycles, defaulting to the max wait time."""
        if self.cycle_interval_seconds is not None:
            return self.cycle_interval_seconds
        return max(self.max_wait_time_seconds, 1.0)


@dataclass
class PredictorConfig:
    """Configuration for the gas price predictor."""

    history_window: int = 288
    features: Tuple[str, ...] = DEFAULT_FEATURES
    horizons: Tuple[int, ...] = (5, 15, 30, 60)
    update_interval_seconds: float = 300.0
    confidence_threshold: float = 0.5
    pending_tx_reference: int = 1000
    enable_noise: bool = True
    random_seed: int = 42

    def __post_init__(self):
        """Validate predictor configuration."""
        if self.history_window < 20:
            raise ValueError("history_window must hold at least 20 samples")

        unknown = [name for name in self.features if name not in DEFAULT_FEATURES]
        if unknown:
            raise ValueError(f"Unknown features: {unknown}")

        if not self.horizons or any(h <= 0 for h in self.horizons):
            raise ValueError("horizons must be positive minutes")

        if self.update_interval_seconds <= 0:
            raise ValueError("update_interval_seconds must be positive")

        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be between 0.0 and 1.0")

        if self.pending_tx_reference < 1:
            raise ValueError("pending_tx_reference must be at least 1")

        self.features = tuple(self.features)
        self.horizons = tuple(sorted(self.horizons))


@dataclass
class LoggingConfig:
    """Configuration for logging and the batch audit trail."""

    log_level: str = "INFO"
    log_format: str = "console"
    audit_dir: Optional[str] = None

    def __post_init__(self):
        """Validate logging configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_levels:
            raise ValueError(f"Invalid log level: {self.log_level}")

        valid_formats = ["console", "json"]
        if self.log_format not in valid_formats:
            raise ValueError(f"Invalid log format: {self.log_format}")


@dataclass
class FuelConfig:
    """Main configuration class for Fuel."""

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    batcher: BatcherConfig = field(default_factory=BatcherConfig)
    predictor: PredictorConfig = field(default_factory=PredictorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    debug: bool = False

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "FuelConfig":
        """Load configuration from environment variables."""

        if env_file:
            cls._load_env_file(env_file)

        from .mode import is_production

        prod = is_production()

        gateway = GatewayConfig(
            dry_run=cls._get_bool_env("DRY_RUN", False if prod else True),
            submission_timeout_seconds=cls._get_float_env("SUBMISSION_TIMEOUT_SECONDS", 30.0),
        )

        batcher = BatcherConfig(
            max_batch_size=cls._get_int_env("MAX_BATCH_SIZE", 20),
            min_batch_size=cls._get_int_env("MIN_BATCH_SIZE", 5),
            max_wait_time_ms=cls._get_int_env("MAX_WAIT_TIME_MS", 900_000),
            gas_threshold=cls._get_int_env("GAS_THRESHOLD", 0),
            enable_cross_chain_batching=cls._get_bool_env("ENABLE_CROSS_CHAIN_BATCHING", False),
            savings_policy=os.getenv("SAVINGS_POLICY", "fee_first"),
            latency_cost_per_tx_second=cls._get_int_env("LATENCY_COST_PER_TX_SECOND", 0),
            max_parallelism=cls._get_int_env("MAX_PARALLELISM", 4),
        )

        predictor = PredictorConfig(
            history_window=cls._get_int_env("HISTORY_WINDOW", 288),
            update_interval_seconds=cls._get_float_env("PREDICTION_UPDATE_INTERVAL", 300.0),
            confidence_threshold=cls._get_float_env("CONFIDENCE_THRESHOLD", 0.5),
            random_seed=cls._get_int_env("RANDOM_SEED", 42),
        )

        logging = LoggingConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "console"),
            audit_dir=os.getenv("AUDIT_DIR") or None,
        )

        debug = cls._get_bool_env("DEBUG", False)

        return cls(
            gateway=gateway,
            batcher=batcher,
            predictor=predictor,
            logging=logging,
            debug=debug,
        )

    @staticmethod
    def _load_env_file(env_file: str):
        """Load environment variables from file."""
        env_path = Path(env_file)
        if not env_path.exists():
            return

        with open(env_path, "r") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    os.environ[key.strip()] = value.strip()

    @staticmethod
    def _get_bool_env(key: str, default: bool) -> bool:
        """Get boolean environment variable."""
        value = os.getenv(key, str(default)).lower()
        return value in ("true", "1", "yes", "on")

    @staticmethod
    def _get_int_env(key: str, default: int) -> int:
        """Get integer environment variable."""
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    @staticmethod
    def _get_float_env(key: str, default: float) -> float:
        """Get float environment variable."""
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    def validate(self) -> List[str]:
        """Validate the entire configuration and return any errors."""
        errors = []

        try:
            GatewayConfig(
                dry_run=self.gateway.dry_run,
                submission_timeout_seconds=self.gateway.submission_timeout_seconds,
            )
        except ValueError as e:
            errors.append(f"Gateway configuration error: {e}")

        if self.batcher.max_parallelism > 64:
            errors.append("max_parallelism > 64 may cause resource exhaustion")

        longest_horizon_s = max(self.predictor.horizons) * 60
        if self.batcher.max_wait_time_seconds > longest_horizon_s * 4:
            errors.append("max_wait_time_ms far exceeds the longest prediction horizon")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "gateway": {
                "dry_run": self.gateway.dry_run,
                "submission_timeout_seconds": self.gateway.submission_timeout_seconds,
            },
            "batcher": {
                "max_batch_size": self.batcher.max_batch_size,
                "min_batch_size": self.batcher.min_batch_size,
                "max_wait_time_ms": self.batcher.max_wait_time_ms,
                "priority_weights": dict(self.batcher.priority_weights),
                "gas_threshold": self.batcher.gas_threshold,
                "enable_cross_chain_batching": self.batcher.enable_cross_chain_batching,
                "batch_discount": self.batcher.batch_discount,
                "savings_policy": self.batcher.savings_policy,
                "latency_cost_per_tx_second": self.batcher.latency_cost_per_tx_second,
                "cycle_interval_seconds": self.batcher.effective_cycle_interval,
                "batch_retention_seconds": self.batcher.batch_retention_seconds,
                "max_parallelism": self.batcher.max_parallelism,
            },
            "predictor": {
                "history_window": self.predictor.history_window,
                "features": list(self.predictor.features),
                "horizons": list(self.predictor.horizons),
                "update_interval_seconds": self.predictor.update_interval_seconds,
                "confidence_threshold": self.predictor.confidence_threshold,
                "random_seed": self.predictor.random_seed,
            },
            "logging": {
                "log_level": self.logging.log_level,
                "log_format": self.logging.log_format,
                "audit_dir": self.logging.audit_dir,
            },
            "debug": self.debug,
        }

    def __str__(self) -> str:
        """String representation of configuration."""
        return (
            f"FuelConfig(dry_run={self.gateway.dry_run}, "
            f"batch_size={self.batcher.min_batch_size}-{self.batcher.max_batch_size})"
        )


# Global configuration instance
_global_config: Optional[FuelConfig] = None


def get_config() -> FuelConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = FuelConfig.from_env()
    return _global_config


def set_config(config: FuelConfig):
    """Set the global configuration instance."""
    global _global_config

    errors = config.validate()
    if errors:
        raise ValueError(f"Configuration validation failed: {errors}")

    _global_config = config


def reset_config():
    """Reset the global configuration to default."""
    global _global_config
    _global_config = None

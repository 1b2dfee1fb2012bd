"""Fuel execution mode: development (dry-run gateway) or production (real gateway)."""

import os
from enum import Enum


class FuelMode(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


def get_mode() -> FuelMode:
    """Get the current Fuel execution mode from FUEL_MODE env var."""
    raw = os.environ.get("FUEL_MODE", "development").lower().strip()
    if raw == "production":
        return FuelMode.PRODUCTION
    return FuelMode.DEVELOPMENT


def is_production() -> bool:
    """Check if running in production mode."""
    return get_mode() == FuelMode.PRODUCTION

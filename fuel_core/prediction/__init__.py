"""
Gas Price Prediction for Fuel

This package turns raw network telemetry into feature records and produces
multi-horizon fee forecasts with confidence scores.
"""

from .features import NetworkFeatures, NetworkFeatureSampler, NetworkSample
from .predictor import ExecutionWindow, GasPricePredictor, HorizonForecast, PredictionResult
from .telemetry import StaticTelemetrySource, TelemetrySource

__all__ = [
    "NetworkSample",
    "NetworkFeatures",
    "NetworkFeatureSampler",
    "GasPricePredictor",
    "PredictionResult",
    "HorizonForecast",
    "ExecutionWindow",
    "TelemetrySource",
    "StaticTelemetrySource",
]

"""Tests for network feature sampling."""

from datetime import datetime, timezone

import numpy as np
import pytest
from fuel_core.prediction import NetworkFeatureSampler, NetworkSample


@pytest.fixture
def sampler():
    return NetworkFeatureSampler()


class TestNetworkSample:
    def test_all_fields_optional(self):
        sample = NetworkSample()
        assert sample.base_fee is None
        assert sample.timestamp is None

    def test_unknown_keys_ignored(self):
        sample = NetworkSample.model_validate({"base_fee": 10.0, "gas_limit": 30_000_000})
        assert sample.base_fee == 10.0
        assert not hasattr(sample, "gas_limit")

    def test_utilization_clamped(self):
        assert NetworkSample(block_utilization=1.4).block_utilization == 1.0
        assert NetworkSample(block_utilization=-0.2).block_utilization == 0.0

    def test_negative_fee_rejected(self):
        with pytest.raises(ValueError):
            NetworkSample(base_fee=-1.0)


class TestSampler:
    def test_defaults_for_missing_fields(self, sampler):
        features = sampler.sample()

        assert features.base_fee == 30.0
        assert features.priority_fee == 2.0
        assert features.block_utilization == 0.5
        assert features.pending_tx_count == 150
        assert features.mempool_size == 5000
        assert features.last_block_time == 12.0
        assert features.timestamp.tzinfo is not None

    def test_calendar_fields(self, sampler):
        # Saturday
        ts = datetime(2024, 3, 9, 17, 45, tzinfo=timezone.utc)
        features = sampler.sample({"timestamp": ts})

        assert features.day_of_week == 5
        assert features.hour == 17
        assert features.minute == 45

    def test_naive_timestamp_treated_as_utc(self, sampler):
        features = sampler.sample({"timestamp": datetime(2024, 3, 4, 8, 0)})
        assert features.timestamp.tzinfo is timezone.utc
        assert features.hour == 8

    def test_fallback_clock(self, sampler):
        now = datetime(2024, 3, 4, 3, 0, tzinfo=timezone.utc)
        assert sampler.sample(now=now).timestamp == now

    def test_accepts_model_instances(self, sampler):
        features = sampler.sample(NetworkSample(base_fee=15.0))
        assert features.base_fee == 15.0

    def test_congestion_score(self, sampler):
        assert sampler.congestion_score(0.95, 2000) == pytest.approx(0.965)
        assert sampler.congestion_score(0.5, 500) == pytest.approx(0.5)
        assert sampler.congestion_score(0.0, 0) == 0.0
        assert sampler.congestion_score(1.0, 10**6) == pytest.approx(1.0)

    def test_custom_pending_reference(self):
        sampler = NetworkFeatureSampler(pending_tx_reference=100)
        assert sampler.congestion_score(0.0, 50) == pytest.approx(0.15)

    def test_invalid_pending_reference(self):
        with pytest.raises(ValueError):
            NetworkFeatureSampler(pending_tx_reference=0)

    def test_as_vector(self, sampler):
        features = sampler.sample({"base_fee": 40.0, "block_utilization": 0.25})
        vector = NetworkFeatureSampler.as_vector(features, ["base_fee", "block_utilization"])

        assert vector.dtype == float
        np.testing.assert_allclose(vector, [40.0, 0.25])

    def test_to_dict(self, sampler):
        data = sampler.sample({"base_fee": 40.0}).to_dict()
        assert data["base_fee"] == 40.0
        assert isinstance(data["timestamp"], str)

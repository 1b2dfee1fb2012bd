"""Tests for chain gateways."""

import pytest
from fuel_core.gateway import ChainGateway, DryRunGateway
from fuel_core.types import GasEstimate, PendingTransaction, TransactionBatch, utcnow


@pytest.fixture
def batch():
    tx = PendingTransaction(tx_type="approval", chain_id="1", tx_id="tx-1")
    estimate = GasEstimate(
        chain_id="1",
        base_fee=1,
        priority_fee=1,
        gas_units=21000,
        estimated_cost=42000,
        confidence=1.0,
    )
    return TransactionBatch(
        transactions=[tx], estimated_gas=estimate, scheduled_time=utcnow(), batch_id="batch_a"
    )


class TestDryRunGateway:
    def test_is_dry_run(self):
        assert DryRunGateway.is_dry_run is True
        assert ChainGateway.is_dry_run is False

    def test_successful_submission(self, batch):
        gateway = DryRunGateway()
        result = gateway.submit(batch)

        assert result.success is True
        assert result.batch_id == "batch_a"
        assert result.tx_hash.startswith("0x")
        assert len(result.tx_hash) == 66

    def test_hash_is_deterministic(self, batch):
        assert DryRunGateway().submit(batch).tx_hash == DryRunGateway().submit(batch).tx_hash

    def test_fail_next_applies_once(self, batch):
        gateway = DryRunGateway()
        gateway.fail_next("batch_a")

        first = gateway.submit(batch)
        second = gateway.submit(batch)

        assert first.success is False
        assert first.reason == "simulated submission failure"
        assert second.success is True

    def test_fail_batch_ids(self, batch):
        gateway = DryRunGateway(fail_batch_ids=["batch_a"])
        assert gateway.submit(batch).success is False

    def test_failure_rate_one_always_fails(self, batch):
        gateway = DryRunGateway(failure_rate=1.0)
        assert not any(gateway.submit(batch).success for _ in range(5))

    def test_seeded_failures_reproducible(self, batch):
        a = DryRunGateway(failure_rate=0.5, seed=3)
        b = DryRunGateway(failure_rate=0.5, seed=3)
        outcomes_a = [a.submit(batch).success for _ in range(20)]
        outcomes_b = [b.submit(batch).success for _ in range(20)]
        assert outcomes_a == outcomes_b

    def test_invalid_failure_rate(self):
        with pytest.raises(ValueError):
            DryRunGateway(failure_rate=1.5)

    def test_stats(self, batch):
        gateway = DryRunGateway()
        gateway.fail_next("batch_a")
        gateway.submit(batch)
        gateway.submit(batch)

        stats = gateway.get_stats()
        assert stats["submissions"] == 2
        assert stats["failures"] == 1
        assert len(gateway.submissions) == 2

"""Tests for the pending transaction pool."""

import pytest
from fuel_core.batching.pool import TransactionPool


@pytest.fixture
def pool():
    return TransactionPool()


class TestTransactionPool:
    def test_add_and_get(self, pool, make_tx):
        tx = make_tx()
        pool.add(tx)

        assert len(pool) == 1
        assert pool.contains(tx.tx_id)
        assert tx.tx_id in pool
        assert pool.get(tx.tx_id) is tx

    def test_get_missing(self, pool):
        assert pool.get("nope") is None

    def test_duplicate_rejected(self, pool, make_tx):
        tx = make_tx()
        pool.add(tx)
        with pytest.raises(KeyError):
            pool.add(tx)
        assert len(pool) == 1

    def test_remove_hands_back_transaction(self, pool, make_tx):
        tx = make_tx()
        pool.add(tx)

        assert pool.remove(tx.tx_id) is tx
        assert len(pool) == 0
        assert not pool.contains(tx.tx_id)

    def test_remove_missing(self, pool):
        with pytest.raises(KeyError):
            pool.remove("nope")

    def test_freed_slots_are_reused(self, pool, make_tx):
        txs = [make_tx() for _ in range(3)]
        for tx in txs:
            pool.add(tx)

        freed = pool._index[txs[1].tx_id]
        pool.remove(txs[1].tx_id)
        slot = pool.add(make_tx())

        assert slot == freed
        assert pool.capacity == 3

    def test_snapshot_in_arrival_order(self, pool, make_tx):
        txs = [make_tx() for _ in range(3)]
        for tx in txs:
            pool.add(tx)

        pool.remove(txs[0].tx_id)
        late = make_tx()
        pool.add(late)

        # late reuses the first slot but still sorts last
        assert pool.snapshot() == [txs[1], txs[2], late]
        assert list(pool) == pool.snapshot()

    def test_take(self, pool, make_tx):
        txs = [make_tx() for _ in range(4)]
        for tx in txs:
            pool.add(tx)

        taken = pool.take([txs[2].tx_id, txs[0].tx_id])

        assert taken == [txs[2], txs[0]]
        assert pool.snapshot() == [txs[1], txs[3]]

    def test_take_is_all_or_nothing(self, pool, make_tx):
        tx = make_tx()
        pool.add(tx)

        with pytest.raises(KeyError):
            pool.take([tx.tx_id, "missing"])
        assert pool.contains(tx.tx_id)

    def test_clear(self, pool, make_tx):
        txs = [make_tx() for _ in range(2)]
        for tx in txs:
            pool.add(tx)

        assert pool.clear() == txs
        assert len(pool) == 0
        assert pool.capacity == 0

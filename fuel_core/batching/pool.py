"""
Pending Transaction Pool

Slot arena holding transactions waiting to be batched. Each transaction
lives in one slot addressed through an id index, so moving a transaction
from the pool into a batch (and back on failure) is an O(1) ownership
transfer. Freed slots are reused by later arrivals.

The pool itself is not thread-safe; the scheduler guards it with its lock.
"""

from itertools import count
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..types import PendingTransaction

# (arrival sequence, transaction)
_Slot = Optional[Tuple[int, PendingTransaction]]


class TransactionPool:
    """Arena of pending transactions indexed by transaction id."""

    def __init__(self):
        self._slots: List[_Slot] = []
        self._index: Dict[str, int] = {}
        self._free: List[int] = []
        self._sequence = count()

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, tx_id: str) -> bool:
        return tx_id in self._index

    def __iter__(self) -> Iterator[PendingTransaction]:
        return iter(self.snapshot())

    def contains(self, tx_id: str) -> bool:
        return tx_id in self._index

    def add(self, tx: PendingTransaction) -> int:
        """Insert a transaction and return its slot."""
        if tx.tx_id in self._index:
            raise KeyError(f"Transaction {tx.tx_id} already in pool")

        entry = (next(self._sequence), tx)
        if self._free:
            slot = self._free.pop()
            self._slots[slot] = entry
        else:
            slot = len(self._slots)
            self._slots.append(entry)

        self._index[tx.tx_id] = slot
        return slot

    def get(self, tx_id: str) -> Optional[PendingTransaction]:
        slot = self._index.get(tx_id)
        if slot is None:
            return None
        return self._slots[slot][1]

    def remove(self, tx_id: str) -> PendingTransaction:
        """Release a transaction's slot and hand the transaction to the caller."""
        slot = self._index.pop(tx_id)
        _, tx = self._slots[slot]
        self._slots[slot] = None
        self._free.append(slot)
        return tx

    def take(self, tx_ids: Iterable[str]) -> List[PendingTransaction]:
        """Remove several transactions at once; all ids must be present."""
        tx_ids = list(tx_ids)
        missing = [tx_id for tx_id in tx_ids if tx_id not in self._index]
        if missing:
            raise KeyError(f"Transactions not in pool: {missing}")
        return [self.remove(tx_id) for tx_id in tx_ids]

    def snapshot(self) -> List[PendingTransaction]:
        """Pending transactions in arrival order."""
        entries = [entry for entry in self._slots if entry is not None]
        entries.sort(key=lambda entry: entry[0])
        return [tx for _, tx in entries]

    @property
    def capacity(self) -> int:
        """Number of allocated slots, occupied or free."""
        return len(self._slots)

    def clear(self) -> List[PendingTransaction]:
        """Empty the pool, returning what it held in arrival order."""
        drained = self.snapshot()
        self._slots.clear()
        self._index.clear()
        self._free.clear()
        return drained

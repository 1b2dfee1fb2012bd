"""
Batching Strategies

The closed set of algorithms the scheduler uses to partition its pending
pool. Every strategy scores the whole pending set and partitions it into
groups that cover each transaction exactly once; the scheduler runs the
single best-scoring strategy per cycle.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Dict, Hashable, List, Optional, Sequence

from ..config import DEFAULT_PRIORITY_WEIGHTS
from ..logging import get_logger
from ..types import PendingTransaction

logger = get_logger(__name__)

Group = List[PendingTransaction]

SIMILARITY_THRESHOLD = 0.6
CHAIN_MATCH_WEIGHT = 0.4
PRIORITY_MATCH_WEIGHT = 0.3
TYPE_MATCH_WEIGHT = 0.3


def group_by(
    transactions: Sequence[PendingTransaction], key: Callable[[PendingTransaction], Hashable]
) -> List[Group]:
    """Group transactions by key, preserving first-seen key order and arrival order."""
    groups: Dict[Hashable, Group] = OrderedDict()
    for tx in transactions:
        groups.setdefault(key(tx), []).append(tx)
    return list(groups.values())


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def _variance(values: Sequence[float]) -> float:
    mean = _mean(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


class BatchingStrategy(ABC):
    """
    Abstract base class for batching strategies.

    Subclasses implement ``_score`` and ``_partition`` for a non-empty pending
    set; an empty set always scores 0 and partitions into no groups.
    """

    name: str = ""

    def __init__(self, priority_weights: Optional[Dict[str, float]] = None):
        self.priority_weights = dict(priority_weights or DEFAULT_PRIORITY_WEIGHTS)

    def weight(self, tx: PendingTransaction) -> float:
        return self.priority_weights[tx.priority.value]

    def score(self, pending: Sequence[PendingTransaction]) -> float:
        """Fitness of this strategy for the pending set (higher is better)."""
        if not pending:
            return 0.0
        return float(self._score(pending))

    def partition(self, pending: Sequence[PendingTransaction]) -> List[Group]:
        """Split the pending set into candidate batches."""
        if not pending:
            return []
        return self._partition(pending)

    @abstractmethod
    def _score(self, pending: Sequence[PendingTransaction]) -> float:
        pass

    @abstractmethod
    def _partition(self, pending: Sequence[PendingTransaction]) -> List[Group]:
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


class ChainPriorityStrategy(BatchingStrategy):
    """Groups by (chain, priority); rewards large, uniformly sized chain groups."""

    name = "chain_priority"

    def _score(self, pending):
        sizes = [len(g) for g in group_by(pending, lambda tx: tx.chain_id)]
        return _mean(sizes) * 10 - _variance(sizes)

    def _partition(self, pending):
        return group_by(pending, lambda tx: (tx.chain_id, tx.priority))


class TransactionTypeStrategy(BatchingStrategy):
    """Groups by transaction type; rewards concentration in one type."""

    name = "transaction_type"

    def _score(self, pending):
        largest = max(len(g) for g in group_by(pending, lambda tx: tx.tx_type))
        return largest / len(pending) * 100

    def _partition(self, pending):
        return group_by(pending, lambda tx: tx.tx_type)


class FeeSimilarityStrategy(BatchingStrategy):
    """Groups by priority tier as a proxy for the fee each transaction needs."""

    name = "fee_similarity"

    def _score(self, pending):
        return 50 - _variance([self.weight(tx) for tx in pending]) * 100

    def _partition(self, pending):
        return group_by(pending, lambda tx: tx.priority)


class MixedPairwiseStrategy(BatchingStrategy):
    """
    Greedy pairwise clustering across chain, priority and type.

    Transactions are visited in arrival order; each unclustered transaction
    seeds a group and pulls in every later unclustered transaction similar
    enough to it, until the group reaches ``max_batch_size``.
    """

    name = "mixed_optimization"

    def __init__(
        self, max_batch_size: int = 20, priority_weights: Optional[Dict[str, float]] = None
    ):
        super().__init__(priority_weights)
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self.max_batch_size = max_batch_size
        self._components = (
            (ChainPriorityStrategy(self.priority_weights), 0.4),
            (TransactionTypeStrategy(self.priority_weights), 0.3),
            (FeeSimilarityStrategy(self.priority_weights), 0.3),
        )

    @staticmethod
    def similarity(a: PendingTransaction, b: PendingTransaction) -> float:
        score = 0.0
        if a.chain_id == b.chain_id:
            score += CHAIN_MATCH_WEIGHT
        if a.priority == b.priority:
            score += PRIORITY_MATCH_WEIGHT
        if a.tx_type == b.tx_type:
            score += TYPE_MATCH_WEIGHT
        return score

    def _score(self, pending):
        return sum(strategy.score(pending) * weight for strategy, weight in self._components)

    def _partition(self, pending):
        groups: List[Group] = []
        clustered = set()

        for seed in pending:
            if seed.tx_id in clustered:
                continue

            group = [seed]
            clustered.add(seed.tx_id)

            for other in pending:
                if len(group) >= self.max_batch_size:
                    break
                if other.tx_id in clustered:
                    continue
                # Float sums like 0.3 + 0.3 land just under 0.6
                if self.similarity(seed, other) >= SIMILARITY_THRESHOLD - 1e-9:
                    group.append(other)
                    clustered.add(other.tx_id)

            groups.append(group)

        return groups


def default_strategies(
    max_batch_size: int = 20, priority_weights: Optional[Dict[str, float]] = None
) -> List[BatchingStrategy]:
    """The four strategies evaluated every scheduling cycle."""
    return [
        ChainPriorityStrategy(priority_weights),
        TransactionTypeStrategy(priority_weights),
        FeeSimilarityStrategy(priority_weights),
        MixedPairwiseStrategy(max_batch_size, priority_weights),
    ]


def select_strategy(
    strategies: Sequence[BatchingStrategy], pending: Sequence[PendingTransaction]
) -> Optional[BatchingStrategy]:
    """
    Pick the highest-scoring strategy for the full pending set.

    Ties go to the earliest strategy in the sequence. Returns None for an
    empty pending set.
    """
    if not pending or not strategies:
        return None

    best, best_score = None, float("-inf")
    for strategy in strategies:
        score = strategy.score(pending)
        logger.debug("Strategy evaluated", strategy=strategy.name, score=score)
        if score > best_score:
            best, best_score = strategy, score

    return best

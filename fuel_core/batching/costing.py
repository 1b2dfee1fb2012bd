"""
Batch Costing and Timing

Computes when a group of transactions should execute, what the batch is
expected to cost and how much batching saves over submitting each
transaction on its own. Fee rates come from the attached gas price predictor
when it has a fresh forecast, otherwise from static defaults.

Savings policies:

- ``fee_first``: wait the priority-derived delay and take the batching
  discount.
- ``latency_aware``: charge ``latency_cost_per_tx_second`` for every second
  each transaction waits; when the net savings fall below ``gas_threshold``
  the batch executes immediately instead of waiting.

Under both policies a group whose fee savings fall below ``gas_threshold``
is not worth batching and stays in the pool.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence, Tuple

from ..config import BatcherConfig
from ..logging import get_logger
from ..prediction import GasPricePredictor
from ..types import GAS_PER_TRANSACTION, GasEstimate, PendingTransaction, to_wei

logger = get_logger(__name__)

DEFAULT_BASE_FEE_GWEI = 50.0
DEFAULT_PRIORITY_FEE_GWEI = 2.0
DEFAULT_CONFIDENCE = 0.8

CRITICAL_BASE_FEE_GWEI = 100.0
CRITICAL_PRIORITY_FEE_GWEI = 10.0
CRITICAL_CONFIDENCE = 0.95

DEADLINE_MARGIN = timedelta(seconds=60)


@dataclass(frozen=True)
class BatchPlan:
    """Timing and cost decision for one candidate group."""

    execution_time: datetime
    delay_seconds: float
    estimate: GasEstimate
    savings: int  # wei
    net_savings: int  # wei, after latency cost
    worthwhile: bool


class BatchCostModel:
    """Timing and fee estimation for candidate batches."""

    def __init__(self, config: BatcherConfig, predictor: Optional[GasPricePredictor] = None):
        self.config = config
        self.predictor = predictor

    def mean_priority_weight(self, transactions: Sequence[PendingTransaction]) -> float:
        weights = [self.config.priority_weights[tx.priority.value] for tx in transactions]
        return sum(weights) / len(weights)

    def calculate_delay(self, transactions: Sequence[PendingTransaction]) -> float:
        """Seconds to wait before executing; higher priority waits less."""
        return self.config.max_wait_time_seconds * (1 - self.mean_priority_weight(transactions))

    def calculate_execution_time(
        self, transactions: Sequence[PendingTransaction], now: datetime
    ) -> datetime:
        """
        Execution time for a group, clamped to its earliest deadline.

        If waiting the full delay would overrun the earliest explicit
        deadline, execute ``DEADLINE_MARGIN`` before that deadline instead.
        """
        if not transactions:
            raise ValueError("Cannot time an empty group")

        execution_time = now + timedelta(seconds=self.calculate_delay(transactions))

        deadlines = [tx.deadline for tx in transactions if tx.deadline is not None]
        if deadlines:
            earliest = min(deadlines)
            if execution_time > earliest:
                execution_time = earliest - DEADLINE_MARGIN

        return execution_time

    def fee_rates(
        self, delay_seconds: float, now: Optional[datetime] = None
    ) -> Tuple[float, float, float]:
        """(base fee gwei, priority fee gwei, confidence) expected after a delay from ``now``."""
        result = None
        if self.predictor is not None and self.predictor.is_initialized:
            result = self.predictor.latest(self.predictor.config.update_interval_seconds, now)

        if result is None:
            return DEFAULT_BASE_FEE_GWEI, DEFAULT_PRIORITY_FEE_GWEI, DEFAULT_CONFIDENCE

        forecast = GasPricePredictor.forecast_for_delay(result, delay_seconds)
        # Closer to now than to the first horizon: current fees apply
        if delay_seconds < forecast.horizon_minutes * 30:
            return result.features.base_fee, result.features.priority_fee, 1.0
        return forecast.base_fee, forecast.priority_fee, forecast.confidence

    def estimate_batch_gas(
        self,
        transactions: Sequence[PendingTransaction],
        base_fee_gwei: float = DEFAULT_BASE_FEE_GWEI,
        priority_fee_gwei: float = DEFAULT_PRIORITY_FEE_GWEI,
        confidence: float = DEFAULT_CONFIDENCE,
    ) -> GasEstimate:
        """Fee quote for a batch, with the batching discount applied to its cost."""
        if not transactions:
            raise ValueError("Cannot estimate gas for an empty group")

        base_fee = to_wei(base_fee_gwei)
        priority_fee = to_wei(priority_fee_gwei)
        gas_units = GAS_PER_TRANSACTION * len(transactions)
        unbatched = gas_units * (base_fee + priority_fee)

        return GasEstimate(
            chain_id=transactions[0].chain_id,
            base_fee=base_fee,
            priority_fee=priority_fee,
            gas_units=gas_units,
            estimated_cost=int(unbatched * (1 - self.config.batch_discount)),
            confidence=confidence,
        )

    @staticmethod
    def calculate_savings(
        transactions: Sequence[PendingTransaction], estimate: GasEstimate
    ) -> int:
        """Individual submission cost minus the batched estimate, in wei."""
        rate = estimate.base_fee + estimate.priority_fee
        individual = sum(GAS_PER_TRANSACTION * rate for _ in transactions)
        return max(individual - estimate.estimated_cost, 0)

    @staticmethod
    def critical_estimate(tx: PendingTransaction) -> GasEstimate:
        """Premium quote for a single critical transaction; no batching discount."""
        base_fee = to_wei(CRITICAL_BASE_FEE_GWEI)
        priority_fee = to_wei(CRITICAL_PRIORITY_FEE_GWEI)
        return GasEstimate(
            chain_id=tx.chain_id,
            base_fee=base_fee,
            priority_fee=priority_fee,
            gas_units=GAS_PER_TRANSACTION,
            estimated_cost=GAS_PER_TRANSACTION * (base_fee + priority_fee),
            confidence=CRITICAL_CONFIDENCE,
        )

    def plan(self, transactions: Sequence[PendingTransaction], now: datetime) -> BatchPlan:
        """Decide timing and cost for a group under the configured savings policy."""
        execution_time = self.calculate_execution_time(transactions, now)
        delay = max((execution_time - now).total_seconds(), 0.0)

        base_fee, priority_fee, confidence = self.fee_rates(delay, now)
        estimate = self.estimate_batch_gas(transactions, base_fee, priority_fee, confidence)
        savings = self.calculate_savings(transactions, estimate)

        net_savings = savings
        if self.config.savings_policy == "latency_aware":
            latency_cost = self.config.latency_cost_per_tx_second * len(transactions) * delay
            net_savings = int(savings - latency_cost)

            if net_savings < self.config.gas_threshold and delay > 0:
                logger.debug(
                    "Latency cost outweighs savings, executing immediately",
                    size=len(transactions),
                    savings=savings,
                    net_savings=net_savings,
                    delay_seconds=delay,
                )
                execution_time, delay = now, 0.0
                base_fee, priority_fee, confidence = self.fee_rates(delay, now)
                estimate = self.estimate_batch_gas(
                    transactions, base_fee, priority_fee, confidence
                )
                savings = net_savings = self.calculate_savings(transactions, estimate)

        return BatchPlan(
            execution_time=execution_time,
            delay_seconds=delay,
            estimate=estimate,
            savings=savings,
            net_savings=net_savings,
            worthwhile=savings >= self.config.gas_threshold,
        )

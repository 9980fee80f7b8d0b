"""Trade-sequence statistics.

Every function here is a pure function of an ordered PnL (or Trade) sequence.
Ratios never raise on empty or degenerate input: they fall back to 0.0, except
profit factor, Sortino and Calmar which report +inf when the denominator is 0
and the numerator is positive.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Union

import numpy as np

from .models import Trade


def _as_array(pnls: Iterable[float]) -> np.ndarray:
    return np.asarray([float(value) for value in pnls], dtype=np.float64)


def _ratio_or_inf(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return math.inf if numerator > 0 else 0.0
    return float(numerator / denominator)


def total_pnl(pnls: Sequence[float]) -> float:
    return float(_as_array(pnls).sum())


def win_rate(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    if values.size == 0:
        return 0.0
    return float((values > 0).sum() / values.size)


def gross_profit(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    return float(values[values > 0].sum())


def gross_loss(pnls: Sequence[float]) -> float:
    """Sum of losing PnL as a positive number."""
    values = _as_array(pnls)
    return float(-values[values < 0].sum())


def average_win(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    wins = values[values > 0]
    return float(wins.mean()) if wins.size else 0.0


def average_loss(pnls: Sequence[float]) -> float:
    """Mean losing PnL as a positive number."""
    values = _as_array(pnls)
    losses = values[values < 0]
    return float(-losses.mean()) if losses.size else 0.0


def largest_win(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    return float(max(0.0, values.max())) if values.size else 0.0


def largest_loss(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    return float(max(0.0, -values.min())) if values.size else 0.0


def max_drawdown(pnls: Sequence[float]) -> float:
    """Largest peak-to-trough fall of cumulative PnL, starting from zero."""
    values = _as_array(pnls)
    if values.size == 0:
        return 0.0
    cumulative = np.concatenate(([0.0], np.cumsum(values)))
    peaks = np.maximum.accumulate(cumulative)
    return float((peaks - cumulative).max())


def standard_deviation(pnls: Sequence[float]) -> float:
    """Sample standard deviation (n - 1), 0.0 for fewer than two values."""
    values = _as_array(pnls)
    if values.size <= 1:
        return 0.0
    return float(values.std(ddof=1))


def downside_deviation(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    negatives = values[values < 0]
    if negatives.size == 0:
        return 0.0
    return float(math.sqrt(float((negatives**2).sum()) / negatives.size))


def sharpe_ratio(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    deviation = standard_deviation(values)
    if values.size == 0 or deviation == 0:
        return 0.0
    return float(values.mean() / deviation)


def sortino_ratio(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    if values.size == 0:
        return 0.0
    return _ratio_or_inf(float(values.mean()), downside_deviation(values))


def calmar_ratio(pnls: Sequence[float]) -> float:
    """Total PnL over max drawdown."""
    values = _as_array(pnls)
    if values.size == 0:
        return 0.0
    return _ratio_or_inf(total_pnl(values), max_drawdown(values))


def profit_factor(pnls: Sequence[float]) -> float:
    return _ratio_or_inf(gross_profit(pnls), gross_loss(pnls))


def _max_streak(mask: np.ndarray) -> int:
    best = current = 0
    for hit in mask:
        current = current + 1 if hit else 0
        best = max(best, current)
    return best


def max_consecutive_wins(pnls: Sequence[float]) -> int:
    return _max_streak(_as_array(pnls) > 0)


def max_consecutive_losses(pnls: Sequence[float]) -> int:
    return _max_streak(_as_array(pnls) < 0)


def value_at_risk(pnls: Sequence[float], alpha: float) -> float:
    """Historical VaR: |sorted_pnl[floor(n * alpha)]|, index clamped to the last element."""
    values = np.sort(_as_array(pnls), kind="mergesort")
    if values.size == 0:
        return 0.0
    index = min(int(values.size * float(alpha)), values.size - 1)
    return float(abs(values[index]))


def expected_value(pnls: Sequence[float]) -> float:
    values = _as_array(pnls)
    return float(values.mean()) if values.size else 0.0


def risk_reward_ratio(pnls: Sequence[float]) -> float:
    loss = average_loss(pnls)
    if loss == 0:
        return 0.0
    return average_win(pnls) / loss


def average_holding_period(trades: Sequence[Trade]) -> timedelta:
    if not trades:
        return timedelta(0)
    total = sum((trade.duration for trade in trades), timedelta(0))
    return total / len(trades)


def trading_frequency(trades: Sequence[Trade]) -> float:
    """Trades per day between the first open and the last close."""
    opens = [trade.open_time for trade in trades if trade.open_time is not None]
    closes = [trade.close_time for trade in trades if trade.close_time is not None]
    if not opens or not closes:
        return 0.0
    span_days = (max(closes) - min(opens)).total_seconds() / 86400.0
    if span_days <= 0:
        return 0.0
    return len(trades) / span_days


def total_return(pnls: Sequence[float], initial_balance: Optional[float]) -> float:
    """Total PnL as a percentage of the initial balance."""
    if not initial_balance or initial_balance <= 0:
        return 0.0
    return total_pnl(pnls) / float(initial_balance) * 100.0


# ---- metric catalogue ----


class MetricCategory(str, Enum):
    BASIC = "basic"
    RISK = "risk"
    TRADING = "trading"


class MetricKind(str, Enum):
    TOTAL_PNL = "total_pnl"
    TOTAL_RETURN = "total_return"
    WIN_RATE = "win_rate"
    TOTAL_TRADES = "total_trades"
    WINNING_TRADES = "winning_trades"
    LOSING_TRADES = "losing_trades"
    GROSS_PROFIT = "gross_profit"
    GROSS_LOSS = "gross_loss"
    AVERAGE_WIN = "average_win"
    AVERAGE_LOSS = "average_loss"
    LARGEST_WIN = "largest_win"
    LARGEST_LOSS = "largest_loss"
    MAX_DRAWDOWN = "max_drawdown"
    SHARPE_RATIO = "sharpe_ratio"
    SORTINO_RATIO = "sortino_ratio"
    CALMAR_RATIO = "calmar_ratio"
    PROFIT_FACTOR = "profit_factor"
    STANDARD_DEVIATION = "standard_deviation"
    VAR_95 = "var_95"
    VAR_99 = "var_99"
    MAX_CONSECUTIVE_WINS = "max_consecutive_wins"
    MAX_CONSECUTIVE_LOSSES = "max_consecutive_losses"
    AVERAGE_HOLDING_PERIOD = "average_holding_period"
    TRADING_FREQUENCY = "trading_frequency"
    RISK_REWARD_RATIO = "risk_reward_ratio"
    EXPECTED_VALUE = "expected_value"

    @property
    def unit(self) -> str:
        return _METRIC_INFO[self][0]

    @property
    def description(self) -> str:
        return _METRIC_INFO[self][1]

    @property
    def categories(self) -> frozenset[MetricCategory]:
        return frozenset(category for category, kinds in _CATEGORY_KINDS.items() if self in kinds)


_METRIC_INFO: dict[MetricKind, tuple[str, str]] = {
    MetricKind.TOTAL_PNL: ("currency", "Total profit and loss"),
    MetricKind.TOTAL_RETURN: ("%", "Total PnL relative to the initial balance"),
    MetricKind.WIN_RATE: ("ratio", "Fraction of winning trades"),
    MetricKind.TOTAL_TRADES: ("count", "Total number of trades"),
    MetricKind.WINNING_TRADES: ("count", "Number of winning trades"),
    MetricKind.LOSING_TRADES: ("count", "Number of losing trades"),
    MetricKind.GROSS_PROFIT: ("currency", "Sum of winning trade PnL"),
    MetricKind.GROSS_LOSS: ("currency", "Sum of losing trade PnL, as a positive number"),
    MetricKind.AVERAGE_WIN: ("currency", "Average profit per winning trade"),
    MetricKind.AVERAGE_LOSS: ("currency", "Average loss per losing trade"),
    MetricKind.LARGEST_WIN: ("currency", "Largest single profit"),
    MetricKind.LARGEST_LOSS: ("currency", "Largest single loss"),
    MetricKind.MAX_DRAWDOWN: ("currency", "Maximum drawdown of cumulative PnL from its peak"),
    MetricKind.SHARPE_RATIO: ("ratio", "Mean trade PnL over its standard deviation"),
    MetricKind.SORTINO_RATIO: ("ratio", "Mean trade PnL over its downside deviation"),
    MetricKind.CALMAR_RATIO: ("ratio", "Total PnL over max drawdown"),
    MetricKind.PROFIT_FACTOR: ("ratio", "Gross profit over gross loss"),
    MetricKind.STANDARD_DEVIATION: ("currency", "Sample standard deviation of trade PnL"),
    MetricKind.VAR_95: ("currency", "Historical value at risk at 95% confidence"),
    MetricKind.VAR_99: ("currency", "Historical value at risk at 99% confidence"),
    MetricKind.MAX_CONSECUTIVE_WINS: ("count", "Longest run of winning trades"),
    MetricKind.MAX_CONSECUTIVE_LOSSES: ("count", "Longest run of losing trades"),
    MetricKind.AVERAGE_HOLDING_PERIOD: ("duration", "Average time a position stays open"),
    MetricKind.TRADING_FREQUENCY: ("trades/day", "Trades per day over the traded span"),
    MetricKind.RISK_REWARD_RATIO: ("ratio", "Average win over average loss"),
    MetricKind.EXPECTED_VALUE: ("currency", "Expected PnL per trade"),
}

_CATEGORY_KINDS: dict[MetricCategory, tuple[MetricKind, ...]] = {
    MetricCategory.BASIC: (
        MetricKind.TOTAL_PNL,
        MetricKind.TOTAL_RETURN,
        MetricKind.WIN_RATE,
        MetricKind.TOTAL_TRADES,
        MetricKind.PROFIT_FACTOR,
        MetricKind.MAX_DRAWDOWN,
        MetricKind.SHARPE_RATIO,
    ),
    MetricCategory.RISK: (
        MetricKind.MAX_DRAWDOWN,
        MetricKind.SHARPE_RATIO,
        MetricKind.SORTINO_RATIO,
        MetricKind.CALMAR_RATIO,
        MetricKind.STANDARD_DEVIATION,
        MetricKind.VAR_95,
        MetricKind.VAR_99,
    ),
    MetricCategory.TRADING: (
        MetricKind.MAX_CONSECUTIVE_WINS,
        MetricKind.MAX_CONSECUTIVE_LOSSES,
        MetricKind.AVERAGE_HOLDING_PERIOD,
        MetricKind.TRADING_FREQUENCY,
        MetricKind.RISK_REWARD_RATIO,
        MetricKind.EXPECTED_VALUE,
    ),
}


@dataclass(frozen=True)
class NumericValue:
    value: float

    def to_json(self) -> Any:
        if math.isinf(self.value):
            return "inf" if self.value > 0 else "-inf"
        return float(self.value)


@dataclass(frozen=True)
class CountValue:
    value: int

    def to_json(self) -> Any:
        return int(self.value)


@dataclass(frozen=True)
class DurationValue:
    value: timedelta

    def to_json(self) -> Any:
        return self.value.total_seconds()


MetricValue = Union[NumericValue, CountValue, DurationValue]


@dataclass(frozen=True)
class Metric:
    kind: MetricKind
    value: MetricValue

    @property
    def name(self) -> str:
        return self.kind.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value.to_json(),
            "unit": self.kind.unit,
            "description": self.kind.description,
        }


@dataclass
class MetricsSet:
    metrics: dict[MetricKind, Metric] = field(default_factory=dict)

    def add(self, kind: MetricKind, value: MetricValue) -> None:
        self.metrics[kind] = Metric(kind=kind, value=value)

    def get(self, kind: MetricKind) -> Optional[Metric]:
        return self.metrics.get(kind)

    def value(self, kind: MetricKind) -> Any:
        """Raw value of a metric, or None when absent."""
        metric = self.metrics.get(kind)
        return None if metric is None else metric.value.value

    def by_category(self, category: MetricCategory) -> dict[MetricKind, Metric]:
        return {kind: metric for kind, metric in self.metrics.items() if category in kind.categories}

    def basic(self) -> dict[MetricKind, Metric]:
        return self.by_category(MetricCategory.BASIC)

    def risk(self) -> dict[MetricKind, Metric]:
        return self.by_category(MetricCategory.RISK)

    def trading(self) -> dict[MetricKind, Metric]:
        return self.by_category(MetricCategory.TRADING)

    def to_dict(self) -> dict[str, Any]:
        return {kind.value: metric.value.to_json() for kind, metric in self.metrics.items()}


def analyze(trades: Sequence[Trade], initial_balance: Optional[float] = None) -> MetricsSet:
    """Compute the full metric catalogue for an ordered trade sequence."""
    pnls = [float(trade.pnl) for trade in trades]
    values = _as_array(pnls)
    metrics = MetricsSet()
    numeric = {
        MetricKind.TOTAL_PNL: total_pnl(values),
        MetricKind.TOTAL_RETURN: total_return(values, initial_balance),
        MetricKind.WIN_RATE: win_rate(values),
        MetricKind.GROSS_PROFIT: gross_profit(values),
        MetricKind.GROSS_LOSS: gross_loss(values),
        MetricKind.AVERAGE_WIN: average_win(values),
        MetricKind.AVERAGE_LOSS: average_loss(values),
        MetricKind.LARGEST_WIN: largest_win(values),
        MetricKind.LARGEST_LOSS: largest_loss(values),
        MetricKind.MAX_DRAWDOWN: max_drawdown(values),
        MetricKind.SHARPE_RATIO: sharpe_ratio(values),
        MetricKind.SORTINO_RATIO: sortino_ratio(values),
        MetricKind.CALMAR_RATIO: calmar_ratio(values),
        MetricKind.PROFIT_FACTOR: profit_factor(values),
        MetricKind.STANDARD_DEVIATION: standard_deviation(values),
        MetricKind.VAR_95: value_at_risk(values, 0.05),
        MetricKind.VAR_99: value_at_risk(values, 0.01),
        MetricKind.TRADING_FREQUENCY: trading_frequency(trades),
        MetricKind.RISK_REWARD_RATIO: risk_reward_ratio(values),
        MetricKind.EXPECTED_VALUE: expected_value(values),
    }
    counts = {
        MetricKind.TOTAL_TRADES: int(values.size),
        MetricKind.WINNING_TRADES: int((values > 0).sum()),
        MetricKind.LOSING_TRADES: int((values < 0).sum()),
        MetricKind.MAX_CONSECUTIVE_WINS: max_consecutive_wins(values),
        MetricKind.MAX_CONSECUTIVE_LOSSES: max_consecutive_losses(values),
    }
    for kind in MetricKind:
        if kind in numeric:
            metrics.add(kind, NumericValue(float(numeric[kind])))
        elif kind in counts:
            metrics.add(kind, CountValue(int(counts[kind])))
        else:
            metrics.add(kind, DurationValue(average_holding_period(trades)))
    return metrics

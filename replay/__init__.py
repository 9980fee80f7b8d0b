"""Market replay and order-execution simulation engine."""

from .analyzer import (
    CountValue,
    DurationValue,
    Metric,
    MetricCategory,
    MetricKind,
    MetricsSet,
    NumericValue,
    analyze,
)
from .broker import SimBroker
from .market import MarketClock
from .models import (
    AccountSnapshot,
    Candle,
    IndexEntry,
    Order,
    OrderSide,
    Position,
    ReplayConfig,
    Trade,
)
from .parser import parse_line, parse_record
from .provider import CandleProvider, candles_to_frame
from .reporting import write_replay_artifacts
from .simulation import (
    BacktestResult,
    Backtester,
    Strategy,
    build_strategy,
    load_trader_class,
    run_strategy,
)

__all__ = [
    "AccountSnapshot",
    "BacktestResult",
    "Backtester",
    "Candle",
    "CandleProvider",
    "CountValue",
    "DurationValue",
    "IndexEntry",
    "MarketClock",
    "Metric",
    "MetricCategory",
    "MetricKind",
    "MetricsSet",
    "NumericValue",
    "Order",
    "OrderSide",
    "Position",
    "ReplayConfig",
    "SimBroker",
    "Strategy",
    "Trade",
    "analyze",
    "build_strategy",
    "candles_to_frame",
    "load_trader_class",
    "parse_line",
    "parse_record",
    "run_strategy",
    "write_replay_artifacts",
]

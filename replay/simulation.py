"""Simulation loop binding the market clock and the broker behind one API."""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

import pandas as pd

from core.errors import NotInitializedError, PositionCloseError, ReplayError

from .analyzer import MetricsSet, analyze
from .broker import SimBroker
from .market import MarketClock
from .models import AccountSnapshot, Candle, Order, OrderSide, Position, ReplayConfig, Trade, iso_utc
from .provider import CandleProvider

logger = logging.getLogger(__name__)


class Strategy(Protocol):
    def on_step(self, backtester: "Backtester") -> Any:
        ...


@dataclass(frozen=True)
class BacktestResult:
    symbol: str
    initial_balance: float
    final_balance: float
    total_pnl: float
    total_trades: int
    open_positions: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    metrics: MetricsSet

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "initial_balance": float(self.initial_balance),
            "final_balance": float(self.final_balance),
            "total_pnl": float(self.total_pnl),
            "total_trades": int(self.total_trades),
            "open_positions": int(self.open_positions),
            "start_time_utc": iso_utc(self.start_time),
            "end_time_utc": iso_utc(self.end_time),
            "metrics": self.metrics.to_dict(),
        }


class Backtester:
    """Imperative replay API driven by a strategy.

    `initialize()` must succeed before any trading or stepping call. Price and
    time reads stay safe beforehand and return 0.0 / None.
    """

    def __init__(self, config: ReplayConfig, provider: Optional[CandleProvider] = None):
        self.config = config
        self.provider = provider or CandleProvider(config.data_path)
        self.market = MarketClock(
            self.provider,
            config.symbol,
            cache_size=config.cache_size,
            refill_threshold=config.refill_threshold,
        )
        self.broker = SimBroker(config, self.market)
        self._initialized = False
        self._order_seq = 0
        self._snapshots: list[AccountSnapshot] = []

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self, action: str) -> None:
        if not self._initialized:
            raise NotInitializedError(f"Backtester.initialize() must be called before {action}")

    def _record_snapshot(self, snapshot: Optional[AccountSnapshot] = None) -> None:
        snapshot = snapshot or self.broker.account_snapshot()
        if not self._snapshots or self._snapshots[-1] != snapshot:
            self._snapshots.append(snapshot)

    # ---- lifecycle ----

    def initialize(self) -> None:
        if self._initialized:
            return
        self.market.initialize()
        self._initialized = True
        self._record_snapshot()
        logger.info(
            "Backtester initialized symbol=%s candles=%s balance=%.2f",
            self.config.symbol,
            len(self.market),
            self.broker.get_balance(),
        )

    def forward(self) -> bool:
        self._require_initialized("forward()")
        has_next = self.market.forward()
        if has_next:
            self._record_snapshot(self.broker.update_positions())
        return has_next

    def is_finished(self) -> bool:
        if not self._initialized:
            return False
        return self.market.is_finished()

    # ---- orders ----

    def _place(self, symbol: str, side: OrderSide, size: float) -> str:
        self._order_seq += 1
        order = Order(
            order_id=f"ord-{self._order_seq:06d}",
            symbol=str(symbol),
            side=side,
            size=size,
            request_time=self.market.get_current_time(),
        )
        position_id = self.broker.place_order(order)
        self._record_snapshot()
        return position_id

    def buy(self, symbol: str, size: float) -> str:
        self._require_initialized("buy()")
        return self._place(symbol, OrderSide.BUY, size)

    def sell(self, symbol: str, size: float) -> str:
        self._require_initialized("sell()")
        return self._place(symbol, OrderSide.SELL, size)

    def close_position(self, position_id: str) -> Trade:
        self._require_initialized("close_position()")
        trade = self.broker.close_position(position_id)
        self._record_snapshot()
        return trade

    def close_all_positions(self) -> list[Trade]:
        """Close every open position, stopping at the first failure."""
        self._require_initialized("close_all_positions()")
        closed: list[Trade] = []
        for position in self.broker.get_positions():
            try:
                closed.append(self.close_position(position.position_id))
            except ReplayError as exc:
                raise PositionCloseError(position.position_id, exc) from exc
        return closed

    # ---- read-only views ----

    def get_positions(self) -> tuple[Position, ...]:
        self._require_initialized("get_positions()")
        return self.broker.get_positions()

    def get_balance(self) -> float:
        self._require_initialized("get_balance()")
        return self.broker.get_balance()

    def get_equity(self) -> float:
        self._require_initialized("get_equity()")
        return self.broker.get_equity()

    def get_trade_history(self) -> tuple[Trade, ...]:
        self._require_initialized("get_trade_history()")
        return self.broker.get_trade_history()

    def get_current_price(self, symbol: Optional[str] = None) -> float:
        if not self._initialized:
            return 0.0
        return self.market.get_current_price(symbol)

    def get_current_time(self) -> Optional[datetime]:
        if not self._initialized:
            return None
        return self.market.get_current_time()

    def get_current_candle(self) -> Optional[Candle]:
        if not self._initialized:
            return None
        return self.market.current_candle()

    def get_prev_candles(self, count: int) -> list[Candle]:
        self._require_initialized("get_prev_candles()")
        return self.market.get_prev_candles(count)

    def account_snapshots(self) -> tuple[AccountSnapshot, ...]:
        return tuple(self._snapshots)

    def equity_curve(self) -> pd.DataFrame:
        columns = [
            "time_utc",
            "balance",
            "equity",
            "used_margin",
            "free_margin",
            "unrealized_pnl",
            "realized_pnl",
            "open_positions",
            "margin_call",
        ]
        frame = pd.DataFrame([snapshot.to_dict() for snapshot in self._snapshots], columns=columns)
        frame["time_utc"] = pd.to_datetime(frame["time_utc"], utc=True)
        return frame

    def result(self) -> BacktestResult:
        self._require_initialized("result()")
        trades = self.broker.get_trade_history()
        start_time = self.provider.index_to_time(0) if len(self.provider) else None
        return BacktestResult(
            symbol=self.config.symbol,
            initial_balance=float(self.config.initial_balance),
            final_balance=self.broker.get_balance(),
            total_pnl=float(sum(trade.pnl for trade in trades)),
            total_trades=len(trades),
            open_positions=len(self.broker.get_positions()),
            start_time=start_time,
            end_time=self.market.get_current_time(),
            metrics=analyze(trades, initial_balance=self.config.initial_balance),
        )


def run_strategy(backtester: Backtester, strategy: Strategy, close_at_end: bool = True) -> BacktestResult:
    """Step the backtester to the end, calling `strategy.on_step` on every candle."""
    backtester.initialize()
    steps = 0
    while not backtester.is_finished():
        strategy.on_step(backtester)
        steps += 1
        if not backtester.forward():
            break
    if close_at_end and backtester.get_positions():
        closed = backtester.close_all_positions()
        logger.info("Closed %s open position(s) at end of data", len(closed))
    result = backtester.result()
    logger.info(
        "Replay finished symbol=%s steps=%s trades=%s final_balance=%.2f",
        result.symbol,
        steps,
        result.total_trades,
        result.final_balance,
    )
    return result


def _sanitize_module_name(path: Path) -> str:
    digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()
    return f"_replay_trader_{digest}"


def load_trader_class(spec: str, base_dir: Path | None = None) -> type:
    """Resolve `path/to/file.py:ClassName` or `package.module:ClassName`."""
    raw_spec = str(spec or "").strip()
    if not raw_spec:
        raise ValueError("trader_class is required")

    if ":" in raw_spec:
        target, class_name = raw_spec.rsplit(":", 1)
    elif "." in raw_spec:
        target, class_name = raw_spec.rsplit(".", 1)
    else:
        raise ValueError(f"Invalid trader_class spec: {spec}")
    target = target.strip()
    class_name = class_name.strip()
    if not target or not class_name:
        raise ValueError(f"Invalid trader_class spec: {spec}")

    if target.endswith(".py") or "/" in target or "\\" in target:
        file_path = Path(target)
        if not file_path.is_absolute():
            file_path = ((base_dir or Path.cwd()) / file_path).resolve()
        if not file_path.exists():
            raise FileNotFoundError(f"Trader module file not found: {file_path}")
        module_spec = importlib.util.spec_from_file_location(_sanitize_module_name(file_path), file_path)
        if module_spec is None or module_spec.loader is None:
            raise ImportError(f"Unable to import trader module from {file_path}")
        module = importlib.util.module_from_spec(module_spec)
        module_spec.loader.exec_module(module)
    else:
        module = importlib.import_module(target)

    try:
        return getattr(module, class_name)
    except AttributeError as exc:
        raise ImportError(f"Trader class {class_name} not found in {target}") from exc


def build_strategy(config: ReplayConfig) -> Strategy:
    """Instantiate the trader named by `config.trader_class`."""
    if not config.trader_class:
        raise ValueError("trader_class is required to build a strategy")
    trader_cls = load_trader_class(config.trader_class, base_dir=config.config_dir)
    return trader_cls(symbol=config.symbol, params=dict(config.params or {}))

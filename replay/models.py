"""Value types and run configuration for the replay engine."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from core.market_metadata import DEFAULT_SYMBOL, normalize_symbol

CANDLE_FIELDS: tuple[str, ...] = ("timestamp", "open", "high", "low", "close", "volume")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def iso_utc(value: Any) -> Optional[str]:
    """Serialize datetime-like values to ISO8601 UTC string when possible."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if hasattr(value, "isoformat"):
        try:
            return value.isoformat().replace("+00:00", "Z")
        except TypeError:
            return str(value)
    return str(value)


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def from_value(cls, value: Any) -> "OrderSide":
        if isinstance(value, OrderSide):
            return value
        side = str(value or "").strip().upper()
        if side in {"BUY", "LONG"}:
            return cls.BUY
        if side in {"SELL", "SHORT"}:
            return cls.SELL
        raise ValueError(f"Unsupported side value: {value}")

    @property
    def sign(self) -> float:
        return 1.0 if self is OrderSide.BUY else -1.0


def pnl_for(side: OrderSide, size: float, entry_price: float, exit_price: float) -> float:
    """Realized PnL of a full close: (exit - entry) * size * sign(side)."""
    return (float(exit_price) - float(entry_price)) * float(size) * side.sign


@dataclass(frozen=True)
class Candle:
    """OHLCV summary of one time bucket."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": iso_utc(self.timestamp),
            "open": float(self.open),
            "high": float(self.high),
            "low": float(self.low),
            "close": float(self.close),
            "volume": float(self.volume),
        }


@dataclass(frozen=True)
class IndexEntry:
    """Where one candle lives in the backing file."""

    timestamp: datetime
    offset: int
    line_number: int


@dataclass(frozen=True)
class Order:
    order_id: str
    symbol: str
    side: OrderSide
    size: float
    request_time: Optional[datetime] = None


@dataclass(frozen=True)
class Position:
    position_id: str
    symbol: str
    side: OrderSide
    size: float
    entry_price: float
    open_time: Optional[datetime]
    commission: float = 0.0

    def unrealized_pnl(self, mark_price: float) -> float:
        return pnl_for(self.side, self.size, self.entry_price, mark_price)

    def to_dict(self) -> dict[str, Any]:
        return {
            "position_id": self.position_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "size": float(self.size),
            "entry_price": float(self.entry_price),
            "open_time": iso_utc(self.open_time),
            "commission": float(self.commission),
        }


@dataclass(frozen=True)
class Trade:
    """Realized record of a closed position."""

    trade_id: str
    symbol: str
    side: OrderSide
    size: float
    entry_price: float
    exit_price: float
    pnl: float
    open_time: Optional[datetime]
    close_time: Optional[datetime]
    duration: timedelta = timedelta(0)
    commission: float = 0.0

    @classmethod
    def from_position(
        cls,
        position: Position,
        exit_price: float,
        close_time: Optional[datetime],
        exit_commission: float = 0.0,
    ) -> "Trade":
        duration = timedelta(0)
        if position.open_time is not None and close_time is not None:
            duration = close_time - position.open_time
        return cls(
            trade_id=position.position_id,
            symbol=position.symbol,
            side=position.side,
            size=float(position.size),
            entry_price=float(position.entry_price),
            exit_price=float(exit_price),
            pnl=pnl_for(position.side, position.size, position.entry_price, exit_price),
            open_time=position.open_time,
            close_time=close_time,
            duration=duration,
            commission=float(position.commission) + float(exit_commission),
        )

    @property
    def is_winning(self) -> bool:
        return self.pnl > 0

    @property
    def is_losing(self) -> bool:
        return self.pnl < 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "size": float(self.size),
            "entry_price": float(self.entry_price),
            "exit_price": float(self.exit_price),
            "pnl": float(self.pnl),
            "open_time": iso_utc(self.open_time),
            "close_time": iso_utc(self.close_time),
            "duration_minutes": self.duration.total_seconds() / 60.0,
            "commission": float(self.commission),
        }


@dataclass(frozen=True)
class AccountSnapshot:
    time_utc: Optional[datetime]
    balance: float
    equity: float
    used_margin: float
    free_margin: float
    unrealized_pnl: float
    realized_pnl: float
    open_positions: int
    margin_call: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "time_utc": iso_utc(self.time_utc),
            "balance": float(self.balance),
            "equity": float(self.equity),
            "used_margin": float(self.used_margin),
            "free_margin": float(self.free_margin),
            "unrealized_pnl": float(self.unrealized_pnl),
            "realized_pnl": float(self.realized_pnl),
            "open_positions": int(self.open_positions),
            "margin_call": bool(self.margin_call),
        }


@dataclass
class ReplayConfig:
    """Everything needed to build a provider, broker and backtester."""

    data_path: Path
    symbol: str = DEFAULT_SYMBOL
    initial_balance: float = 10_000.0
    spread: float = 0.0
    commission_rate: float = 0.0
    leverage: float = 100.0
    margin_call_level: float = 1.0
    cache_size: int = 500
    refill_threshold: int = 100
    report_dir: Optional[Path] = None
    trader_class: Optional[str] = None
    params: dict[str, Any] = field(default_factory=dict)
    _config_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        self.data_path = Path(self.data_path)
        if self.report_dir is not None:
            self.report_dir = Path(self.report_dir)
        self.symbol = normalize_symbol(self.symbol)
        self.validate()

    def validate(self) -> None:
        if not str(self.data_path):
            raise ValueError("data_path is required")
        if float(self.initial_balance) <= 0:
            raise ValueError("initial_balance must be positive")
        if float(self.spread) < 0:
            raise ValueError("spread must be non-negative")
        if float(self.commission_rate) < 0:
            raise ValueError("commission_rate must be non-negative")
        if float(self.leverage) <= 0:
            raise ValueError("leverage must be positive")
        if float(self.margin_call_level) < 0:
            raise ValueError("margin_call_level must be non-negative")
        if int(self.refill_threshold) < 0:
            raise ValueError("refill_threshold must be non-negative")
        if int(self.cache_size) <= int(self.refill_threshold):
            raise ValueError("cache_size must be greater than refill_threshold")

    @classmethod
    def from_dict(
        cls,
        payload: dict[str, Any],
        *,
        config_dir: Path | None = None,
    ) -> "ReplayConfig":
        if not isinstance(payload, dict):
            raise ValueError("Replay config must be a JSON object")
        data_path = str(payload.get("data_path") or "").strip()
        if not data_path:
            raise ValueError("data_path is required")
        params = payload.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError("params must be a mapping")
        report_dir = payload.get("report_dir")
        trader_class = str(payload.get("trader_class") or "").strip() or None
        return cls(
            data_path=Path(data_path),
            symbol=str(payload.get("symbol") or DEFAULT_SYMBOL),
            initial_balance=float(payload.get("initial_balance", 10_000.0)),
            spread=float(payload.get("spread", 0.0)),
            commission_rate=float(payload.get("commission_rate", 0.0)),
            leverage=float(payload.get("leverage", 100.0)),
            margin_call_level=float(payload.get("margin_call_level", 1.0)),
            cache_size=int(payload.get("cache_size", 500)),
            refill_threshold=int(payload.get("refill_threshold", 100)),
            report_dir=Path(report_dir) if report_dir else None,
            trader_class=trader_class,
            params=dict(params),
            _config_dir=config_dir,
        )

    @classmethod
    def from_path(cls, path: str | Path) -> "ReplayConfig":
        config_path = Path(path)
        payload = json.loads(config_path.read_text(encoding="utf-8"))
        config = cls.from_dict(payload, config_dir=config_path.parent)
        if not config.data_path.is_absolute():
            config.data_path = (config_path.parent / config.data_path).resolve()
        if config.report_dir is not None and not config.report_dir.is_absolute():
            config.report_dir = (config_path.parent / config.report_dir).resolve()
        return config

    @property
    def config_dir(self) -> Optional[Path]:
        return self._config_dir

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_path": str(self.data_path),
            "symbol": self.symbol,
            "initial_balance": float(self.initial_balance),
            "spread": float(self.spread),
            "commission_rate": float(self.commission_rate),
            "leverage": float(self.leverage),
            "margin_call_level": float(self.margin_call_level),
            "cache_size": int(self.cache_size),
            "refill_threshold": int(self.refill_threshold),
            "report_dir": None if self.report_dir is None else str(self.report_dir),
            "trader_class": self.trader_class,
            "params": dict(self.params or {}),
        }

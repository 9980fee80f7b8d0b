from __future__ import annotations

import logging
import math
from typing import Optional

from core.errors import InsufficientMarginError, InvalidSizeError, InvalidSymbolError, NotFoundError
from core.market_metadata import format_price, normalize_symbol

from .market import MarketClock
from .models import AccountSnapshot, Order, OrderSide, Position, ReplayConfig, Trade

logger = logging.getLogger(__name__)


class SimBroker:
    """Single-account position ledger filling market orders at the current close.

    Balance moves only on fills (commission) and closes (realized PnL). Margin
    is reserved against equity, never debited from balance.
    """

    def __init__(self, config: ReplayConfig, market: MarketClock):
        self.config = config
        self.market = market
        self.initial_balance = float(config.initial_balance)
        self._balance = float(config.initial_balance)
        self._positions: dict[str, Position] = {}
        self._trades: list[Trade] = []
        self._position_seq = 0
        self._margin_call = False

    # ---- pricing ----

    def _half_spread(self) -> float:
        return float(self.config.spread) / 2.0

    def _entry_price(self, side: OrderSide, price: float) -> float:
        return price + side.sign * self._half_spread()

    def _exit_price(self, side: OrderSide, price: float) -> float:
        return price - side.sign * self._half_spread()

    def _commission(self, size: float, fill_price: float) -> float:
        return float(self.config.commission_rate) * abs(float(size) * float(fill_price))

    def _margin_for(self, size: float, price: float) -> float:
        return abs(float(size) * float(price)) / float(self.config.leverage)

    def _next_position_id(self) -> str:
        self._position_seq += 1
        return f"pos-{self._position_seq:06d}"

    def _canonical_symbol(self, symbol: str) -> str:
        try:
            return normalize_symbol(symbol)
        except ValueError as exc:
            raise InvalidSymbolError(str(exc)) from exc

    def _quote(self, symbol: str) -> float:
        price = float(self.market.get_current_price(symbol))
        if not price > 0:
            raise InvalidSymbolError(f"No positive market price for symbol {symbol!r}")
        return price

    # ---- orders and positions ----

    def place_order(self, order: Order) -> str:
        """Fill a market order immediately and return the new position id."""
        size = float(order.size)
        if not math.isfinite(size) or size <= 0:
            raise InvalidSizeError(f"Order size must be positive, got {order.size}")
        side = OrderSide.from_value(order.side)
        symbol = self._canonical_symbol(order.symbol)
        price = self._quote(symbol)

        fill_price = self._entry_price(side, price)
        commission = self._commission(size, fill_price)
        required_margin = self._margin_for(size, fill_price)
        free_margin = self.get_free_margin() - commission
        if required_margin > free_margin + 1e-9:
            raise InsufficientMarginError(
                f"Order needs margin {required_margin:.2f} but only {free_margin:.2f} is free"
            )

        position = Position(
            position_id=self._next_position_id(),
            symbol=symbol,
            side=side,
            size=size,
            entry_price=fill_price,
            open_time=self.market.get_current_time(),
            commission=commission,
        )
        self._balance -= commission
        self._positions[position.position_id] = position
        logger.debug(
            "Opened %s %s %s size=%s price=%s",
            position.position_id,
            side.value,
            symbol,
            size,
            format_price(symbol, fill_price),
        )
        return position.position_id

    def get_positions(self) -> tuple[Position, ...]:
        return tuple(self._positions.values())

    def get_position(self, position_id: str) -> Optional[Position]:
        return self._positions.get(position_id)

    def close_position(self, position_id: str) -> Trade:
        position = self._positions.get(position_id)
        if position is None:
            raise NotFoundError(f"No open position with id {position_id!r}")
        price = self._quote(position.symbol)

        exit_price = self._exit_price(position.side, price)
        exit_commission = self._commission(position.size, exit_price)
        trade = Trade.from_position(position, exit_price, self.market.get_current_time(), exit_commission)

        self._balance += trade.pnl - exit_commission
        self._trades.append(trade)
        del self._positions[position_id]
        logger.debug(
            "Closed %s exit=%s pnl=%.2f",
            position_id,
            format_price(position.symbol, exit_price),
            trade.pnl,
        )
        return trade

    def update_positions(self) -> AccountSnapshot:
        """Mark open positions to market and refresh the margin-call flag."""
        snapshot = self.account_snapshot()
        if snapshot.margin_call and not self._margin_call:
            logger.warning(
                "Margin call at %s: equity=%.2f used_margin=%.2f",
                snapshot.time_utc,
                snapshot.equity,
                snapshot.used_margin,
            )
        self._margin_call = snapshot.margin_call
        return snapshot

    # ---- account views ----

    @property
    def margin_call(self) -> bool:
        return self._margin_call

    def get_balance(self) -> float:
        return self._balance

    def get_trade_history(self) -> tuple[Trade, ...]:
        return tuple(self._trades)

    def get_unrealized_pnl(self) -> float:
        total = 0.0
        for position in self._positions.values():
            price = float(self.market.get_current_price(position.symbol))
            if price > 0:
                total += position.unrealized_pnl(self._exit_price(position.side, price))
        return total

    def get_equity(self) -> float:
        return self._balance + self.get_unrealized_pnl()

    def get_used_margin(self) -> float:
        return sum(self._margin_for(p.size, p.entry_price) for p in self._positions.values())

    def get_free_margin(self) -> float:
        return self.get_equity() - self.get_used_margin()

    def get_margin_level(self) -> float:
        """Equity as a percentage of used margin, 0.0 with no open positions."""
        used = self.get_used_margin()
        if used == 0:
            return 0.0
        return self.get_equity() / used * 100.0

    def account_snapshot(self) -> AccountSnapshot:
        unrealized = self.get_unrealized_pnl()
        equity = self._balance + unrealized
        used_margin = self.get_used_margin()
        margin_call = used_margin > 0 and equity < used_margin * float(self.config.margin_call_level)
        return AccountSnapshot(
            time_utc=self.market.get_current_time(),
            balance=round(float(self._balance), 10),
            equity=round(float(equity), 10),
            used_margin=round(float(used_margin), 10),
            free_margin=round(float(equity - used_margin), 10),
            unrealized_pnl=round(float(unrealized), 10),
            realized_pnl=round(float(self._balance - self.initial_balance), 10),
            open_positions=len(self._positions),
            margin_call=margin_call,
        )

"""Moving-average crossover trader for the replay engine."""

from __future__ import annotations

from collections import deque
from typing import Any

from core.market_metadata import round_price


class SMA:
    """Rolling simple moving average over the last `period` values."""

    def __init__(self, period: int):
        if int(period) <= 0:
            raise ValueError("period must be positive")
        self.period = int(period)
        self._values: deque[float] = deque(maxlen=self.period)
        self._sum = 0.0

    def update(self, value: float) -> float:
        if len(self._values) == self.period:
            self._sum -= self._values[0]
        self._values.append(float(value))
        self._sum += float(value)
        return self.value

    @property
    def value(self) -> float:
        if not self._values:
            return 0.0
        return self._sum / len(self._values)

    @property
    def ready(self) -> bool:
        return len(self._values) == self.period

    def reset(self) -> None:
        self._values.clear()
        self._sum = 0.0


class MovingAverageCrossTrader:
    """Long when the fast SMA is above the slow one, short when below.

    A flip in signal closes whatever is open and reverses. Equal averages
    keep the current position.
    """

    def __init__(self, symbol: str, params: dict[str, Any]):
        self.symbol = symbol
        self.params = dict(params or {})
        self.fast_period = int(self.params.get("fast_period", 5))
        self.slow_period = int(self.params.get("slow_period", 20))
        if self.fast_period >= self.slow_period:
            raise ValueError("fast_period must be less than slow_period")
        self.size = float(self.params.get("size", 1.0))
        self.fast = SMA(self.fast_period)
        self.slow = SMA(self.slow_period)
        self.last_signal: str | None = None
        self.signals: list[tuple[str, str]] = []

    def signal(self) -> str | None:
        if not (self.fast.ready and self.slow.ready):
            return None
        fast = round_price(self.symbol, self.fast.value)
        slow = round_price(self.symbol, self.slow.value)
        if fast > slow:
            return "BUY"
        if fast < slow:
            return "SELL"
        return None

    def on_step(self, backtester) -> None:
        candle = backtester.get_current_candle()
        if candle is None:
            return
        self.fast.update(candle.close)
        self.slow.update(candle.close)

        signal = self.signal()
        if signal is None or signal == self.last_signal:
            return

        for position in backtester.get_positions():
            if position.symbol == self.symbol:
                backtester.close_position(position.position_id)
        if signal == "BUY":
            backtester.buy(self.symbol, self.size)
        else:
            backtester.sell(self.symbol, self.size)
        self.last_signal = signal
        self.signals.append((candle.timestamp.isoformat(), signal))

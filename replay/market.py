from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from core.errors import NotInitializedError
from core.market_metadata import normalize_symbol

from .models import Candle
from .provider import CandleProvider

logger = logging.getLogger(__name__)


class MarketClock:
    """Cursor over a CandleProvider with a sliding prefetch cache.

    The cursor starts at -1 and moves to 0 on a successful `initialize()`.
    Candles are pulled from the provider in blocks of `cache_size`; a new block
    is fetched before a step would leave fewer than `refill_threshold` candles
    ahead of the cursor, and always before the cursor leaves the cached block. Consumed candles are dropped from the cache, history queries go
    back to the provider.
    """

    def __init__(
        self,
        provider: CandleProvider,
        symbol: str,
        *,
        cache_size: int = 500,
        refill_threshold: int = 100,
    ):
        if int(cache_size) <= int(refill_threshold):
            raise ValueError("cache_size must be greater than refill_threshold")
        self.provider = provider
        self.symbol = normalize_symbol(symbol)
        self.cache_size = int(cache_size)
        self.refill_threshold = int(refill_threshold)
        self._cache: list[Candle] = []
        self._cache_start = 0
        self._last_fetched = -1
        self._total = 0
        self._current_index = -1
        self._initialized = False
        self._finished = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def current_index(self) -> int:
        return self._current_index

    def __len__(self) -> int:
        return self._total

    def initialize(self) -> None:
        if self._initialized:
            return
        self._total = len(self.provider)
        if self._total == 0:
            self._finished = True
        else:
            self._fetch_block(0)
            self._current_index = 0
        self._initialized = True
        logger.debug(
            "Market initialized symbol=%s candles=%s cache_size=%s",
            self.symbol,
            self._total,
            self.cache_size,
        )

    def _fetch_block(self, start_index: int) -> None:
        end_index = min(self._total - 1, start_index + self.cache_size - 1)
        if start_index > end_index:
            return
        block = self.provider.get_candles_by_index(start_index, end_index)
        if self._current_index > self._cache_start:
            # Drop everything behind the cursor before appending.
            del self._cache[: self._current_index - self._cache_start]
            self._cache_start = self._current_index
        self._cache.extend(block)
        self._last_fetched = end_index

    def _remaining_cached(self) -> int:
        return self._cache_start + len(self._cache) - 1 - self._current_index

    def forward(self) -> bool:
        """Advance one candle. Returns False, and marks the clock finished, at the end."""
        if not self._initialized:
            raise NotInitializedError("MarketClock.initialize() must be called before forward()")
        if self._finished:
            return False
        if self._remaining_cached() <= self.refill_threshold and self._last_fetched < self._total - 1:
            self._fetch_block(self._last_fetched + 1)
        if self._current_index + 1 >= self._total:
            self._finished = True
            return False
        self._current_index += 1
        return True

    def is_finished(self) -> bool:
        return self._finished

    def current_candle(self) -> Optional[Candle]:
        if not self._initialized or self._current_index < 0:
            return None
        position = self._current_index - self._cache_start
        if position < 0 or position >= len(self._cache):
            return None
        return self._cache[position]

    def get_current_price(self, symbol: Optional[str] = None) -> float:
        """Close of the current candle, 0.0 before initialization or for another symbol."""
        if symbol is not None and not self.quotes(symbol):
            return 0.0
        candle = self.current_candle()
        return 0.0 if candle is None else float(candle.close)

    def quotes(self, symbol: str) -> bool:
        """True when ``symbol`` names the replayed symbol under any accepted spelling."""
        try:
            return normalize_symbol(symbol) == self.symbol
        except ValueError:
            return False

    def get_current_time(self) -> Optional[datetime]:
        candle = self.current_candle()
        return None if candle is None else candle.timestamp

    def get_prev_candles(self, count: int) -> list[Candle]:
        """Up to `count` candles strictly before the cursor, oldest first."""
        if not self._initialized or self._current_index < 0:
            return []
        return self.provider.get_prev_candles_by_index(self._current_index, count)

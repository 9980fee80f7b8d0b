"""Lazily indexed candle source with random, time-ordered access.

The provider scans the CSV once, keeping only a timestamp and a byte offset per
valid record. Range and window queries seek to those offsets and re-parse just
the requested lines, so memory grows with the number of records rather than
their size.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import numpy as np
import pandas as pd

from core.errors import NotFoundError, OutOfRangeError, ParseError, SchemaError

from .models import TIMESTAMP_FORMAT, Candle, IndexEntry, iso_utc
from .parser import parse_line

logger = logging.getLogger(__name__)

_EPOCH_UTC = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _datetime_to_ns(value: datetime) -> int:
    dt_value = value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    delta = dt_value - _EPOCH_UTC
    return int((delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000)


def _ns_to_datetime(value: int) -> datetime:
    return pd.Timestamp(int(value), tz="UTC").to_pydatetime()


def _coerce_time_ns(value: Any) -> int:
    if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return _datetime_to_ns(value)
    raw = str(value or "").strip()
    if not raw:
        raise ValueError("time value is required")
    try:
        parsed = datetime.strptime(raw, TIMESTAMP_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    return _datetime_to_ns(parsed)


def _decode(raw_line: bytes, line_number: int) -> str:
    if line_number == 1 and raw_line.startswith(b"\xef\xbb\xbf"):
        raw_line = raw_line[3:]
    try:
        return raw_line.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError("record", f"not valid UTF-8: {exc}", line_number) from exc


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Materialize candles into a DataFrame for downstream consumers."""
    rows = [
        {
            "time": candle.timestamp,
            "open": candle.open,
            "high": candle.high,
            "low": candle.low,
            "close": candle.close,
            "volume": candle.volume,
        }
        for candle in candles
    ]
    frame = pd.DataFrame(rows, columns=["time", "open", "high", "low", "close", "volume"])
    frame["time"] = pd.to_datetime(frame["time"], utc=True)
    return frame


class CandleProvider:
    """Time-addressable view over an append-only candle CSV."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._time_ns: np.ndarray | None = None
        self._offsets: np.ndarray | None = None
        self._line_numbers: np.ndarray | None = None
        self._skipped_rows = 0

    # ---- index build ----

    @property
    def is_built(self) -> bool:
        return self._time_ns is not None

    def build(self) -> None:
        """Scan the source once and build the sorted index. Idempotent."""
        if self.is_built:
            return
        if not self.path.exists():
            raise NotFoundError(f"Candle file not found: {self.path}")

        time_values: list[int] = []
        offsets: list[int] = []
        line_numbers: list[int] = []
        skipped = 0

        with self.path.open("rb") as handle:
            offset = 0
            line_number = 0
            while True:
                raw_line = handle.readline()
                if not raw_line:
                    break
                line_number += 1
                line_offset = offset
                offset += len(raw_line)
                try:
                    candle = parse_line(_decode(raw_line, line_number), line_number)
                except (ParseError, SchemaError) as exc:
                    skipped += 1
                    logger.warning("Skipping line %s in %s: %s", line_number, self.path, exc)
                    continue
                if candle is None:
                    continue
                time_values.append(_datetime_to_ns(candle.timestamp))
                offsets.append(line_offset)
                line_numbers.append(line_number)

        time_ns = np.asarray(time_values, dtype=np.int64)
        order = np.argsort(time_ns, kind="mergesort")
        self._time_ns = time_ns[order]
        self._offsets = np.asarray(offsets, dtype=np.int64)[order]
        self._line_numbers = np.asarray(line_numbers, dtype=np.int64)[order]
        self._skipped_rows = skipped
        for array in (self._time_ns, self._offsets, self._line_numbers):
            array.setflags(write=False)
        logger.debug("Indexed %s rows=%s skipped=%s", self.path, self._time_ns.size, skipped)

    def _index(self) -> np.ndarray:
        self.build()
        assert self._time_ns is not None
        return self._time_ns

    def __len__(self) -> int:
        return int(self._index().size)

    @property
    def skipped_rows(self) -> int:
        self.build()
        return self._skipped_rows

    def describe(self) -> dict[str, Any]:
        """Coverage manifest for the backing file."""
        entry: dict[str, Any] = {
            "file_path": str(self.path),
            "exists": bool(self.path.exists()),
            "rows": 0,
            "skipped_rows": 0,
            "first_time_utc": None,
            "last_time_utc": None,
        }
        if not entry["exists"]:
            return entry
        times = self._index()
        entry["rows"] = int(times.size)
        entry["skipped_rows"] = self._skipped_rows
        if times.size:
            entry["first_time_utc"] = iso_utc(_ns_to_datetime(int(times[0])))
            entry["last_time_utc"] = iso_utc(_ns_to_datetime(int(times[-1])))
        return entry

    # ---- time <-> index ----

    def time_to_index(self, value: Any) -> int:
        """Position of the entry at `value`, or of the last entry before it.

        Times before the first entry clamp to 0; times after the last entry
        raise OutOfRangeError. An exact match on duplicated timestamps returns
        the first of them.
        """
        times = self._index()
        if times.size == 0:
            raise OutOfRangeError(f"No candles indexed in {self.path}")
        target = _coerce_time_ns(value)
        if target < int(times[0]):
            return 0
        if target > int(times[-1]):
            raise OutOfRangeError(f"{iso_utc(_ns_to_datetime(target))} is after the last candle")
        left = int(np.searchsorted(times, target, side="left"))
        if left < times.size and int(times[left]) == target:
            return left
        return left - 1

    def index_to_time(self, index: int) -> datetime:
        times = self._index()
        position = self._check_index(index, times.size)
        return _ns_to_datetime(int(times[position]))

    def entry(self, index: int) -> IndexEntry:
        times = self._index()
        position = self._check_index(index, times.size)
        assert self._offsets is not None and self._line_numbers is not None
        return IndexEntry(
            timestamp=_ns_to_datetime(int(times[position])),
            offset=int(self._offsets[position]),
            line_number=int(self._line_numbers[position]),
        )

    @staticmethod
    def _check_index(index: int, size: int) -> int:
        position = int(index)
        if position < 0 or position >= size:
            raise OutOfRangeError(f"Index {position} outside [0, {size})")
        return position

    # ---- range fetch ----

    def get_candles_by_index(self, start_index: int, end_index: int) -> list[Candle]:
        """Inclusive fetch of [start_index, end_index]."""
        times = self._index()
        lo, hi = int(start_index), int(end_index)
        if lo > hi:
            raise OutOfRangeError(f"start index {lo} is after end index {hi}")
        self._check_index(lo, times.size)
        self._check_index(hi, times.size)
        return self._read_range(lo, hi)

    def get_candles_by_time(self, start_time: Any, end_time: Any) -> list[Candle]:
        """Inclusive fetch between two times, resolved through time_to_index."""
        if _coerce_time_ns(start_time) > _coerce_time_ns(end_time):
            raise OutOfRangeError("start time is after end time")
        return self.get_candles_by_index(self.time_to_index(start_time), self.time_to_index(end_time))

    def get_prev_candles_by_index(self, base_index: int, count: int) -> list[Candle]:
        """Up to `count` candles strictly before `base_index`."""
        times = self._index()
        base = self._check_index(base_index, times.size)
        if int(count) <= 0:
            return []
        start = max(0, base - int(count))
        if start >= base:
            return []
        return self._read_range(start, base - 1)

    def get_prev_candles_by_time(self, base_time: Any, count: int) -> list[Candle]:
        return self.get_prev_candles_by_index(self.time_to_index(base_time), count)

    def get_next_candles_by_index(self, base_index: int, count: int) -> list[Candle]:
        """Up to `count` candles strictly after `base_index`."""
        times = self._index()
        base = self._check_index(base_index, times.size)
        if int(count) <= 0:
            return []
        end = min(times.size - 1, base + int(count))
        if end <= base:
            return []
        return self._read_range(base + 1, end)

    def get_next_candles_by_time(self, base_time: Any, count: int) -> list[Candle]:
        return self.get_next_candles_by_index(self.time_to_index(base_time), count)

    def _read_range(self, lo: int, hi: int) -> list[Candle]:
        assert self._offsets is not None and self._line_numbers is not None
        candles: list[Candle] = []
        with self.path.open("rb") as handle:
            for position in range(lo, hi + 1):
                line_number = int(self._line_numbers[position])
                handle.seek(int(self._offsets[position]))
                candle = parse_line(_decode(handle.readline(), line_number), line_number)
                if candle is None:
                    raise ParseError("record", "indexed record is no longer a candle", line_number)
                candles.append(candle)
        return candles

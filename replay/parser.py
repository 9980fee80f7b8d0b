"""Parse delimited candle records into validated Candle values."""

from __future__ import annotations

import csv
import math
from datetime import datetime, timezone
from typing import Optional, Sequence

from core.errors import ParseError, SchemaError

from .models import CANDLE_FIELDS, TIMESTAMP_FORMAT, Candle


def is_header(fields: Sequence[str]) -> bool:
    """A header/label row starts with a non-numeric first field."""
    if not fields:
        return False
    first = str(fields[0]).strip()
    return bool(first) and not first[0].isdigit()


def _parse_timestamp(raw: str, line_number: Optional[int]) -> datetime:
    try:
        parsed = datetime.strptime(raw.strip(), TIMESTAMP_FORMAT)
    except ValueError as exc:
        raise ParseError("timestamp", f"expected YYYY-MM-DD HH:MM:SS, got {raw!r}", line_number) from exc
    return parsed.replace(tzinfo=timezone.utc)


def _parse_number(name: str, raw: str, line_number: Optional[int]) -> float:
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise ParseError(name, f"not a number: {raw!r}", line_number) from exc
    if not math.isfinite(value):
        raise ParseError(name, f"not finite: {raw!r}", line_number)
    return value


def parse_record(fields: Sequence[str], line_number: Optional[int] = None) -> Optional[Candle]:
    """Turn one split record into a Candle.

    Returns None for blank and header rows. Raises SchemaError when the field
    count is wrong and ParseError naming the offending field otherwise.
    """
    if not fields or all(not str(item).strip() for item in fields):
        return None
    if is_header(fields):
        return None
    if len(fields) != len(CANDLE_FIELDS):
        raise SchemaError(len(fields), expected=len(CANDLE_FIELDS), line_number=line_number)

    timestamp = _parse_timestamp(fields[0], line_number)
    open_, high, low, close, volume = (
        _parse_number(name, raw, line_number) for name, raw in zip(CANDLE_FIELDS[1:], fields[1:])
    )

    if volume < 0:
        raise ParseError("volume", f"must be non-negative, got {volume}", line_number)
    if high < max(open_, close, low):
        raise ParseError("high", f"{high} is below open/close/low", line_number)
    if low > min(open_, close, high):
        raise ParseError("low", f"{low} is above open/close/high", line_number)

    return Candle(timestamp=timestamp, open=open_, high=high, low=low, close=close, volume=volume)


def split_line(line: str) -> list[str]:
    """Split one raw text line on commas, honouring CSV quoting."""
    text = line.strip("\r\n")
    if not text.strip():
        return []
    return next(csv.reader([text]))


def parse_line(line: str, line_number: Optional[int] = None) -> Optional[Candle]:
    return parse_record(split_line(line), line_number)

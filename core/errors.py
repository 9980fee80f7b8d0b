"""Typed errors raised by the replay engine."""

from __future__ import annotations

from typing import Optional


class ReplayError(Exception):
    """Base class for every error raised by the replay core."""


class NotFoundError(ReplayError, LookupError):
    """Missing candle source or unknown position id."""


class ParseError(ReplayError, ValueError):
    """A candle record has an invalid field."""

    def __init__(self, field: str, message: str, line_number: Optional[int] = None):
        self.field = field
        self.line_number = line_number
        location = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"invalid {field}{location}: {message}")


class SchemaError(ReplayError, ValueError):
    """A candle record has the wrong number of fields."""

    def __init__(self, field_count: int, expected: int = 6, line_number: Optional[int] = None):
        self.field_count = field_count
        self.expected = expected
        self.line_number = line_number
        location = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"expected {expected} fields, got {field_count}{location}")


class OutOfRangeError(ReplayError, IndexError):
    """Index or time outside the available data."""


class InvalidSizeError(ReplayError, ValueError):
    """Order size is not positive."""


class InvalidSymbolError(ReplayError, ValueError):
    """Symbol has no positive current price."""


class InsufficientMarginError(ReplayError, ValueError):
    """Free margin does not cover the margin required by an order."""


class NotInitializedError(ReplayError, RuntimeError):
    """API used before the backtester was initialized."""


class PositionCloseError(ReplayError):
    """Closing every open position stopped at the one that failed."""

    def __init__(self, position_id: str, cause: Exception):
        self.position_id = position_id
        self.cause = cause
        super().__init__(f"failed to close position {position_id}: {cause}")

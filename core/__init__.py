"""Core utilities shared by the replay engine and its CLI."""

from .errors import (
    InsufficientMarginError,
    InvalidSizeError,
    InvalidSymbolError,
    NotFoundError,
    NotInitializedError,
    OutOfRangeError,
    ParseError,
    PositionCloseError,
    ReplayError,
    SchemaError,
)
from .logging_setup import setup_logging, teardown_logging
from .market_metadata import (
    DEFAULT_SYMBOL,
    SYMBOL_ALIASES,
    format_price,
    get_price_precision,
    normalize_symbol,
    resolve_symbol_alias,
    round_price,
)

__all__ = [
    "setup_logging",
    "teardown_logging",
    "ReplayError",
    "NotFoundError",
    "ParseError",
    "SchemaError",
    "OutOfRangeError",
    "InvalidSizeError",
    "InvalidSymbolError",
    "InsufficientMarginError",
    "NotInitializedError",
    "PositionCloseError",
    "DEFAULT_SYMBOL",
    "SYMBOL_ALIASES",
    "resolve_symbol_alias",
    "normalize_symbol",
    "get_price_precision",
    "round_price",
    "format_price",
]

"""Shared symbol metadata and normalization helpers."""

from __future__ import annotations

import re

# User-facing aliases for common symbols.
SYMBOL_ALIASES: dict[str, str] = {
    "GOLD": "XAUUSD",
    "SILVER": "XAGUSD",
    "BTC": "BTCUSD",
    "ETH": "ETHUSD",
}

DEFAULT_SYMBOL = "SAMPLE"

_SYMBOL_RE = re.compile(r"^[A-Z0-9][A-Z0-9._]{0,31}$")


def resolve_symbol_alias(raw: str) -> str:
    """Resolve a user alias to its canonical symbol if one is known."""
    key = raw.strip().upper()
    return SYMBOL_ALIASES.get(key, key)


def normalize_symbol(raw: str, *, allow_aliases: bool = True) -> str:
    """
    Normalize user input to the canonical symbol form.

    Examples:
    - eurusd -> EURUSD
    - eur/usd -> EURUSD
    - gold -> XAUUSD
    """
    if raw is None or not str(raw).strip():
        raise ValueError("Symbol is required.")

    normalized = str(raw).strip().upper().replace("/", "").replace("-", "").replace(" ", "")

    if allow_aliases:
        normalized = resolve_symbol_alias(normalized)

    if not _SYMBOL_RE.match(normalized):
        raise ValueError(f"Invalid symbol format: {raw}")

    return normalized


def get_price_precision(symbol: str) -> int:
    """Get display precision by symbol class."""
    sym = normalize_symbol(symbol)
    if sym.endswith("JPY"):
        return 3
    if sym.startswith(("XAU", "XAG", "BTC", "ETH")):
        return 2
    return 5


def round_price(symbol: str, value: float) -> float:
    """Round price using symbol-aware precision."""
    return round(float(value), get_price_precision(symbol))


def format_price(symbol: str, value: float) -> str:
    """Format price string using symbol-aware precision."""
    precision = get_price_precision(symbol)
    return f"{float(value):,.{precision}f}"

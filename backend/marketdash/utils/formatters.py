"""
MarketDash — Shared Formatters

Parsing helpers for provider wire values: tickers, timestamps, and the
loosely typed numbers providers send back (strings, NaN, None).
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any


def format_ticker(raw: str) -> str:
    """Normalize a ticker symbol to uppercase, stripped of whitespace.

    >>> format_ticker('  aapl ')
    'AAPL'
    >>> format_ticker('BRK.B')
    'BRK.B'
    """
    return raw.strip().upper()


def safe_float(val: Any, default: float = 0.0) -> float:
    """Safely convert a value to float, handling NaN/None/'' from providers.

    >>> safe_float('227.52')
    227.52
    >>> safe_float(None, default=1.0)
    1.0
    """
    if val is None:
        return default
    try:
        f = float(val)
    except (ValueError, TypeError):
        return default
    if math.isnan(f) or math.isinf(f):
        return default
    return f


def safe_int(val: Any, default: int = 0) -> int:
    """Safely convert a value to int via float (accepts '123', 12.0, NaN).

    >>> safe_int('47234567')
    47234567
    """
    return int(safe_float(val, float(default)))


def parse_percent(raw: Any, default: float = 0.0) -> float:
    """Parse a percent string such as '1.5400%' into 1.54.

    >>> parse_percent('-1.18%')
    -1.18
    """
    if isinstance(raw, str):
        raw = raw.strip().rstrip("%")
    return safe_float(raw, default)


def to_epoch_ms(dt: datetime | date) -> int:
    """Convert a datetime (naive = UTC) or date into epoch milliseconds.

    >>> to_epoch_ms(datetime(2024, 1, 2, tzinfo=timezone.utc))
    1704153600000
    """
    if not isinstance(dt, datetime):
        dt = datetime(dt.year, dt.month, dt.day)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_timestamp_ms(raw: str) -> int:
    """Parse an ISO-8601 string ('2024-01-02T05:00:00Z', '2024-01-02 16:00:00',
    '2024-01-02') into epoch milliseconds. Naive values are read as UTC.

    >>> parse_timestamp_ms('2024-01-02T00:00:00Z')
    1704153600000
    """
    text = raw.strip().replace("Z", "+00:00")
    return to_epoch_ms(datetime.fromisoformat(text))

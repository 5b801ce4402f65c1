"""
MarketDash — Input Validators

Reusable validation helpers for symbols, search queries, and timeframes.
Raise InvalidRequestError (a ValueError) so callers can map to 400 responses.
"""

from __future__ import annotations

import re
from typing import Optional

from marketdash.exceptions import InvalidRequestError
from marketdash.models import Timeframe
from marketdash.utils.formatters import format_ticker

# US tickers plus the class/index/crypto forms providers accept:
# AAPL, BRK.B, BRK-B, ^GSPC, BTC-USD
_TICKER_RE = re.compile(r"^\^?[A-Z0-9]{1,10}([.\-][A-Z0-9]{1,4})?$")

_MAX_QUERY_LEN = 64


def validate_ticker(raw: Optional[str]) -> str:
    """Clean and validate a stock ticker symbol.

    Returns the normalized ticker or raises InvalidRequestError.

    >>> validate_ticker('aapl')
    'AAPL'
    >>> validate_ticker('BRK.B')
    'BRK.B'
    """
    ticker = format_ticker(raw or "")
    if not ticker:
        raise InvalidRequestError("Symbol parameter is required")
    if not _TICKER_RE.match(ticker):
        raise InvalidRequestError(
            f"Invalid symbol '{ticker}'. Expected letters/digits, "
            f"optionally followed by a class suffix (e.g. BRK.B)"
        )
    return ticker


def validate_query(raw: Optional[str]) -> str:
    """Validate a free-text symbol search query.

    >>> validate_query('  apple ')
    'apple'
    """
    query = (raw or "").strip()
    if not query:
        raise InvalidRequestError("Query parameter is required")
    if len(query) > _MAX_QUERY_LEN:
        raise InvalidRequestError(f"Query exceeds {_MAX_QUERY_LEN} characters")
    return query


def validate_timeframe(raw: Optional[str], default: Timeframe = Timeframe.D1) -> Timeframe:
    """Parse a timeframe label (case-insensitive); empty means *default*.

    >>> validate_timeframe('ytd')
    <Timeframe.YTD: 'YTD'>
    """
    if raw is None or not raw.strip():
        return default
    try:
        return Timeframe(raw.strip().upper())
    except ValueError:
        allowed = ", ".join(tf.value for tf in Timeframe)
        raise InvalidRequestError(f"Invalid timeframe '{raw}'. Expected one of: {allowed}")

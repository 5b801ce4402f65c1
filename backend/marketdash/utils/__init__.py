# Shared utilities — formatters, validators
from marketdash.utils.formatters import (
    format_ticker,
    parse_percent,
    parse_timestamp_ms,
    safe_float,
    safe_int,
    to_epoch_ms,
)
from marketdash.utils.validators import validate_query, validate_ticker, validate_timeframe

__all__ = [
    "format_ticker",
    "parse_percent",
    "parse_timestamp_ms",
    "safe_float",
    "safe_int",
    "to_epoch_ms",
    "validate_query",
    "validate_ticker",
    "validate_timeframe",
]

"""
MarketDash — Alpha Vantage Data Client

Keyword/quote provider: GLOBAL_QUOTE quotes, TIME_SERIES_* bars, and
SYMBOL_SEARCH keyword search via the Alpha Vantage query API.

Free tier: 25 calls/day. Rate-limit and error responses come back as
HTTP 200 with a "Note" / "Information" / "Error Message" body; those are
treated as provider failures.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

import httpx
import structlog

from marketdash.config import get_settings
from marketdash.data.base import MarketDataProvider
from marketdash.exceptions import ProviderError
from marketdash.models import (
    MAX_SEARCH_RESULTS,
    Bar,
    Quote,
    SearchResult,
    Timeframe,
    normalize_bars,
    now_ms,
)
from marketdash.utils.formatters import parse_percent, safe_float, safe_int, to_epoch_ms

log = structlog.get_logger(__name__)


_BASE_URL = "https://www.alphavantage.co/query"

# Series timestamps are exchange-local
_MARKET_TZ = ZoneInfo("America/New_York")

# Timeframe → (function, intraday interval)
_SERIES: dict[Timeframe, tuple[str, Optional[str]]] = {
    Timeframe.D1: ("TIME_SERIES_INTRADAY", "15min"),
    Timeframe.D5: ("TIME_SERIES_INTRADAY", "60min"),
    Timeframe.W1: ("TIME_SERIES_DAILY", None),
    Timeframe.M1: ("TIME_SERIES_DAILY", None),
    Timeframe.M6: ("TIME_SERIES_DAILY", None),
    Timeframe.YTD: ("TIME_SERIES_DAILY", None),
    Timeframe.Y1: ("TIME_SERIES_DAILY", None),
    Timeframe.Y5: ("TIME_SERIES_WEEKLY", None),
}

# "compact" returns the latest 100 points, too short for these windows
_FULL_OUTPUT = frozenset({Timeframe.M6, Timeframe.YTD, Timeframe.Y1, Timeframe.Y5})

_ERROR_KEYS = ("Error Message", "Note", "Information")


def _series_key(function: str, interval: Optional[str]) -> str:
    if function == "TIME_SERIES_INTRADAY":
        return f"Time Series ({interval})"
    if function == "TIME_SERIES_WEEKLY":
        return "Weekly Time Series"
    return "Time Series (Daily)"


def _parse_local_ms(raw: str) -> int:
    """'2024-01-02 16:00:00' or '2024-01-02' in US/Eastern → epoch ms."""
    dt = datetime.fromisoformat(raw.strip())
    return to_epoch_ms(dt.replace(tzinfo=_MARKET_TZ))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlphaVantageClient(MarketDataProvider):
    """Wrapper around the Alpha Vantage query API."""

    name = "alpha_vantage"
    timeout = 10.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(transport)
        self._api_key = get_settings().alpha_vantage_api_key if api_key is None else api_key
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _query(self, function: str, **params: Any) -> dict:
        data = await self._get_json(
            _BASE_URL,
            params={"function": function, "apikey": self._api_key, **params},
        )
        if not isinstance(data, dict):
            raise ProviderError(self.name, f"Unexpected {function} payload")
        for key in _ERROR_KEYS:
            if key in data:
                raise ProviderError(self.name, f"{key}: {data[key]}")
        return data

    # ── Quotes ──

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        self._require_configured()
        return await self._soft("get_quote", symbol, self._fetch_quote(symbol), None)

    async def _fetch_quote(self, symbol: str) -> Optional[Quote]:
        data = await self._query("GLOBAL_QUOTE", symbol=symbol.upper())
        raw = data.get("Global Quote") or {}
        price = safe_float(raw.get("05. price"))
        if not raw or price <= 0:
            log.info("alpha_vantage.no_quote", symbol=symbol)
            return None

        trading_day = raw.get("07. latest trading day")
        return Quote(
            symbol=raw.get("01. symbol") or symbol,
            price=price,
            change=safe_float(raw.get("09. change")),
            change_percent=parse_percent(raw.get("10. change percent")),
            high=safe_float(raw.get("03. high")),
            low=safe_float(raw.get("04. low")),
            open=safe_float(raw.get("02. open")),
            previous_close=safe_float(raw.get("08. previous close")),
            volume=safe_int(raw.get("06. volume")),
            timestamp=_parse_local_ms(trading_day) if trading_day else now_ms(),
        )

    # ── Historical Bars ──

    async def get_historical_data(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        self._require_configured()
        return await self._soft(
            "get_historical_data", symbol, self._fetch_bars(symbol, Timeframe(timeframe)), []
        )

    async def _fetch_bars(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        function, interval = _SERIES[timeframe]
        params: dict[str, Any] = {
            "symbol": symbol.upper(),
            "outputsize": "full" if timeframe in _FULL_OUTPUT else "compact",
        }
        if interval:
            params["interval"] = interval

        data = await self._query(function, **params)
        series = data.get(_series_key(function, interval)) or {}

        cutoff = to_epoch_ms(timeframe.window_start(self._clock()))
        bars = [
            Bar(
                timestamp=_parse_local_ms(ts),
                open=safe_float(values.get("1. open")),
                high=safe_float(values.get("2. high")),
                low=safe_float(values.get("3. low")),
                close=safe_float(values.get("4. close")),
                volume=safe_int(values.get("5. volume")),
            )
            for ts, values in series.items()
        ]
        return normalize_bars(b for b in bars if b.timestamp >= cutoff)

    # ── Search ──

    async def search_symbols(self, query: str) -> list[SearchResult]:
        self._require_configured()
        return await self._soft("search_symbols", query, self._fetch_search(query), [])

    async def _fetch_search(self, query: str) -> list[SearchResult]:
        data = await self._query("SYMBOL_SEARCH", keywords=query)
        results = []
        for match in (data.get("bestMatches") or [])[:MAX_SEARCH_RESULTS]:
            results.append(
                SearchResult(
                    symbol=match.get("1. symbol", ""),
                    name=match.get("2. name", ""),
                    type=match.get("3. type", "Equity"),
                    region=match.get("4. region", ""),
                    market_open=match.get("5. marketOpen", ""),
                    market_close=match.get("6. marketClose", ""),
                    timezone=match.get("7. timezone", ""),
                    currency=match.get("8. currency", ""),
                    match_score=min(max(safe_float(match.get("9. matchScore")), 0.0), 1.0),
                )
            )
        return results

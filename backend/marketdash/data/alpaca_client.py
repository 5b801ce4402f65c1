"""
MarketDash — Alpaca Markets Data Client

Bars-based provider: historical OHLCV bars from the Alpaca data API, with
quotes synthesized from the two most recent daily bars. Alpaca has no
company profiles or symbol search, so those come from a degraded stub and a
built-in list of liquid US symbols.

Bars keep Alpaca's ``t`` (interval start) as their timestamp.

Free tier: IEX feed (~8-10% market volume).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import structlog

from marketdash.config import get_settings
from marketdash.data.base import MarketDataProvider
from marketdash.models import (
    MAX_SEARCH_RESULTS,
    Bar,
    CompanyProfile,
    Quote,
    SearchResult,
    Timeframe,
    normalize_bars,
)
from marketdash.utils.formatters import parse_timestamp_ms, safe_float, safe_int

log = structlog.get_logger(__name__)


_DATA_URL = "https://data.alpaca.markets/v2"

# Timeframe → Alpaca bar size
_BAR_SIZES: dict[Timeframe, str] = {
    Timeframe.D1: "15Min",
    Timeframe.D5: "1Hour",
    Timeframe.W1: "1Day",
    Timeframe.M1: "1Day",
    Timeframe.M6: "1Day",
    Timeframe.YTD: "1Day",
    Timeframe.Y1: "1Day",
    Timeframe.Y5: "1Week",
}

_STOCK_LIST: list[tuple[str, str, str]] = [
    # Major Tech
    ("AAPL", "Apple Inc.", "Equity"),
    ("GOOGL", "Alphabet Inc. Class A", "Equity"),
    ("GOOG", "Alphabet Inc. Class C", "Equity"),
    ("MSFT", "Microsoft Corporation", "Equity"),
    ("AMZN", "Amazon.com Inc.", "Equity"),
    ("META", "Meta Platforms Inc.", "Equity"),
    ("TSLA", "Tesla Inc.", "Equity"),
    ("NFLX", "Netflix Inc.", "Equity"),
    ("NVDA", "NVIDIA Corporation", "Equity"),
    ("AMD", "Advanced Micro Devices Inc.", "Equity"),
    ("INTC", "Intel Corporation", "Equity"),
    ("CRM", "Salesforce Inc.", "Equity"),
    ("ORCL", "Oracle Corporation", "Equity"),
    ("IBM", "International Business Machines", "Equity"),
    # Financial
    ("JPM", "JPMorgan Chase & Co.", "Equity"),
    ("BAC", "Bank of America Corporation", "Equity"),
    ("WFC", "Wells Fargo & Company", "Equity"),
    ("GS", "Goldman Sachs Group Inc.", "Equity"),
    ("MS", "Morgan Stanley", "Equity"),
    # Healthcare
    ("JNJ", "Johnson & Johnson", "Equity"),
    ("PFE", "Pfizer Inc.", "Equity"),
    ("MRNA", "Moderna Inc.", "Equity"),
    ("UNH", "UnitedHealth Group Inc.", "Equity"),
    # Consumer
    ("WMT", "Walmart Inc.", "Equity"),
    ("KO", "Coca-Cola Company", "Equity"),
    ("PEP", "PepsiCo Inc.", "Equity"),
    ("NKE", "Nike Inc.", "Equity"),
    # ETFs
    ("SPY", "SPDR S&P 500 ETF Trust", "ETF"),
    ("QQQ", "Invesco QQQ Trust", "ETF"),
    ("IWM", "iShares Russell 2000 ETF", "ETF"),
    ("VTI", "Vanguard Total Stock Market ETF", "ETF"),
    ("VOO", "Vanguard S&P 500 ETF", "ETF"),
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlpacaClient(MarketDataProvider):
    """Wrapper around the Alpaca Markets data API."""

    name = "alpaca"
    timeout = 15.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        feed: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(transport)
        settings = get_settings()
        self._api_key = settings.alpaca_api_key if api_key is None else api_key
        self._secret_key = settings.alpaca_secret_key if secret_key is None else secret_key
        self._feed = feed or settings.alpaca_feed
        self._clock = clock
        self._headers = {
            "APCA-API-KEY-ID": self._api_key,
            "APCA-API-SECRET-KEY": self._secret_key,
            "accept": "application/json",
        }

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._secret_key)

    async def get_historical_data(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        """Fetch bars for a chart window, sorted ascending."""
        self._require_configured()
        return await self._soft(
            "get_historical_data", symbol, self._fetch_bars(symbol, Timeframe(timeframe)), []
        )

    async def _fetch_bars(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        symbol = symbol.upper()
        params = {
            "symbols": symbol,
            "timeframe": _BAR_SIZES[timeframe],
            "start": timeframe.window_start(self._clock()).isoformat(),
            "limit": 1000,
            "adjustment": "split",
            "feed": self._feed,
        }
        data = await self._get_json(f"{_DATA_URL}/stocks/bars", params=params, headers=self._headers)

        raw_bars = (data.get("bars") or {}).get(symbol) or []
        if not raw_bars:
            log.info("alpaca.no_bars", symbol=symbol, timeframe=timeframe.value)
            return []

        return normalize_bars(
            Bar(
                timestamp=parse_timestamp_ms(bar["t"]),
                open=safe_float(bar.get("o")),
                high=safe_float(bar.get("h")),
                low=safe_float(bar.get("l")),
                close=safe_float(bar.get("c")),
                volume=safe_int(bar.get("v")),
            )
            for bar in raw_bars
        )

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        """Latest quote from the last two daily bars."""
        bars = await self.get_historical_data(symbol, Timeframe.W1)
        return Quote.from_bars(symbol, bars)

    async def get_company_profile(self, symbol: str) -> CompanyProfile:
        # Alpaca has no company data; a placeholder is better than nothing.
        return CompanyProfile.placeholder(symbol)

    async def search_symbols(self, query: str) -> list[SearchResult]:
        """Substring search over the built-in symbol list."""
        term = query.strip().lower()
        if not term:
            return []

        results = []
        for symbol, name, kind in _STOCK_LIST:
            if term in symbol.lower() or term in name.lower():
                results.append(
                    SearchResult(
                        symbol=symbol,
                        name=name,
                        type=kind,
                        match_score=1.0 if symbol.lower() == term else 0.8,
                    )
                )
        return results[:MAX_SEARCH_RESULTS]

"""
MarketDash — Yahoo Finance Data Client

Generic finance provider for quotes, OHLCV history, symbol search, and
company profiles. Wraps yfinance with our Pydantic models.

yfinance is synchronous, so every call runs via asyncio.to_thread() under
an asyncio.wait_for() timeout. No credentials are needed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, TypeVar

import structlog
import yfinance as yf

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
from marketdash.utils.formatters import safe_float, safe_int, to_epoch_ms

log = structlog.get_logger(__name__)

T = TypeVar("T")

# Timeframe → (yfinance period, interval)
_YF_TIMEFRAMES: dict[Timeframe, tuple[str, str]] = {
    Timeframe.D1: ("1d", "15m"),
    Timeframe.D5: ("5d", "60m"),
    Timeframe.W1: ("5d", "1d"),
    Timeframe.M1: ("1mo", "1d"),
    Timeframe.M6: ("6mo", "1d"),
    Timeframe.YTD: ("ytd", "1d"),
    Timeframe.Y1: ("1y", "1d"),
    Timeframe.Y5: ("5y", "1wk"),
}

_QUOTE_TYPES = {
    "EQUITY": "Equity",
    "ETF": "ETF",
    "MUTUALFUND": "Mutual Fund",
    "INDEX": "Index",
    "CRYPTOCURRENCY": "Cryptocurrency",
}


def _frame_to_bars(df) -> list[Bar]:
    """Convert a yfinance history DataFrame into sorted, de-duplicated bars."""
    if df is None or df.empty:
        return []
    bars = []
    for idx, row in df.iterrows():
        close = safe_float(row.get("Close"), default=float("nan"))
        if close != close:  # NaN rows appear around halts and holidays
            continue
        bars.append(
            Bar(
                timestamp=to_epoch_ms(idx.to_pydatetime()),
                open=round(safe_float(row.get("Open")), 4),
                high=round(safe_float(row.get("High")), 4),
                low=round(safe_float(row.get("Low")), 4),
                close=round(close, 4),
                volume=safe_int(row.get("Volume")),
            )
        )
    return normalize_bars(bars)


class YahooFinanceClient(MarketDataProvider):
    """Wrapper around yfinance delivering typed Pydantic models."""

    name = "yahoo"
    timeout = 10.0

    def __init__(
        self,
        ticker_factory: Callable[[str], Any] = yf.Ticker,
        search_factory: Callable[..., Any] = yf.Search,
    ):
        super().__init__()
        self._ticker = ticker_factory
        self._search = search_factory

    async def _run(self, fn: Callable[[], T]) -> T:
        return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)

    # ── Quotes ──

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        return await self._soft("get_quote", symbol, self._run(lambda: self._fetch_quote(symbol)), None)

    def _fetch_quote(self, symbol: str) -> Optional[Quote]:
        t = self._ticker(symbol.upper())
        bars = _frame_to_bars(t.history(period="5d", interval="1d"))
        quote = Quote.from_bars(symbol, bars)
        if quote is None:
            log.info("yahoo.no_quote", symbol=symbol)
            return None

        try:
            market_cap = t.fast_info.market_cap
        except Exception:  # fast_info raises KeyError/TypeError for thin symbols
            market_cap = None
        if market_cap:
            quote = quote.model_copy(update={"market_cap": safe_float(market_cap)})
        return quote

    # ── Historical Bars ──

    async def get_historical_data(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        period, interval = _YF_TIMEFRAMES[Timeframe(timeframe)]

        def _fetch() -> list[Bar]:
            df = self._ticker(symbol.upper()).history(period=period, interval=interval)
            return _frame_to_bars(df)

        return await self._soft("get_historical_data", symbol, self._run(_fetch), [])

    # ── Search ──

    async def search_symbols(self, query: str) -> list[SearchResult]:
        return await self._soft("search_symbols", query, self._run(lambda: self._fetch_search(query)), [])

    def _fetch_search(self, query: str) -> list[SearchResult]:
        hits = self._search(query, max_results=MAX_SEARCH_RESULTS).quotes or []
        term = query.strip().lower()
        results = []
        for hit in hits[:MAX_SEARCH_RESULTS]:
            symbol = hit.get("symbol")
            if not symbol:
                continue
            results.append(
                SearchResult(
                    symbol=symbol,
                    name=hit.get("longname") or hit.get("shortname") or symbol,
                    type=_QUOTE_TYPES.get(hit.get("quoteType", ""), hit.get("typeDisp", "Equity")),
                    region=hit.get("exchDisp", "US"),
                    match_score=1.0 if symbol.lower() == term else 0.8,
                )
            )
        return results

    # ── Company Profile ──

    async def get_company_profile(self, symbol: str) -> Optional[CompanyProfile]:
        return await self._soft(
            "get_company_profile", symbol, self._run(lambda: self._fetch_profile(symbol)), None
        )

    def _fetch_profile(self, symbol: str) -> Optional[CompanyProfile]:
        info = self._ticker(symbol.upper()).info or {}
        name = info.get("longName") or info.get("shortName")
        if not name:
            return None
        employees = info.get("fullTimeEmployees")
        return CompanyProfile(
            symbol=symbol.upper(),
            name=name,
            description=info.get("longBusinessSummary", ""),
            sector=info.get("sector", ""),
            industry=info.get("industry", ""),
            employees=safe_int(employees) if employees is not None else None,
            market_cap=info.get("marketCap"),
            website=info.get("website"),
            logo=info.get("logo_url"),
        )

"""
MarketDash — Data Engine

Single entry point for all market data. Routes call the engine, never the
data clients directly.

For every request the engine normalizes the input, checks the cache, runs
the capability's fallback chain on a miss, and caches the first non-empty
result.

Provider Priority (per capability):
  quote     Alpaca → Alpha Vantage → Yahoo → Finnhub
  chart     Alpaca → Alpha Vantage → Yahoo
  search    Alpaca (built-in list) → Yahoo → Alpha Vantage
  company   Finnhub → Yahoo → Alpaca (placeholder profile)
  analyst   Finnhub (recommendations + price target, fetched concurrently)

With DEMO_DATA_ENABLED the sample provider joins every chain as the last
real source (ahead of the company placeholder).
"""

from __future__ import annotations

import asyncio
from typing import Mapping, Optional

import structlog

from marketdash.cache import (
    TTL_ANALYST,
    TTL_COMPANY,
    TTL_OUTLOOK,
    TTL_QUOTE,
    TTL_SEARCH,
    RedisCache,
    analyst_key,
    chart_key,
    chart_ttl,
    company_key,
    outlook_key,
    quote_key,
    search_key,
)
from marketdash.config import Settings, get_settings
from marketdash.data.alpaca_client import AlpacaClient
from marketdash.data.alpha_vantage_client import AlphaVantageClient
from marketdash.data.base import MarketDataProvider
from marketdash.data.finnhub_client import FinnhubClient
from marketdash.data.sample_data import SampleDataClient
from marketdash.data.yahoo_client import YahooFinanceClient
from marketdash.engines.fallback import FallbackChain
from marketdash.engines.outlook_engine import DEFAULT_ENGINE, get_outlook_engine
from marketdash.exceptions import ProviderNotConfiguredError
from marketdash.models import (
    AnalystData,
    Bar,
    CompanyProfile,
    OutlookPrediction,
    Quote,
    SearchResult,
    Timeframe,
)
from marketdash.observability import FailureHook, trace_span
from marketdash.utils.validators import validate_query, validate_ticker, validate_timeframe

_log = structlog.get_logger(__name__)


# capability → provider names, highest priority first. "sample" entries are
# dropped unless demo data is enabled.
CHAIN_ORDER: dict[str, tuple[str, ...]] = {
    "get_quote": ("alpaca", "alpha_vantage", "yahoo", "finnhub", "sample"),
    "get_historical_data": ("alpaca", "alpha_vantage", "yahoo", "sample"),
    "search_symbols": ("alpaca", "yahoo", "alpha_vantage", "sample"),
    "get_company_profile": ("finnhub", "yahoo", "sample", "alpaca"),
    "get_analyst_recommendations": ("finnhub", "sample"),
    "get_price_target": ("finnhub", "sample"),
}

# Chains that behave like direct calls: all-unconfigured surfaces as 401
_DIRECT_CAPABILITIES = frozenset({"get_analyst_recommendations", "get_price_target"})


def build_providers(settings: Settings) -> dict[str, MarketDataProvider]:
    """Instantiate every data client from settings."""
    providers: dict[str, MarketDataProvider] = {
        "alpaca": AlpacaClient(
            api_key=settings.alpaca_api_key,
            secret_key=settings.alpaca_secret_key,
            feed=settings.alpaca_feed,
        ),
        "alpha_vantage": AlphaVantageClient(api_key=settings.alpha_vantage_api_key),
        "yahoo": YahooFinanceClient(),
        "finnhub": FinnhubClient(api_key=settings.finnhub_api_key),
    }
    if settings.demo_data_enabled:
        providers["sample"] = SampleDataClient()
    return providers


class DataEngine:
    """Central data orchestrator.

    Owns the fallback chains and the cache handle. Every public method
    returns fresh model instances; None / [] means no provider had data.
    """

    def __init__(
        self,
        cache: RedisCache,
        providers: Optional[Mapping[str, MarketDataProvider]] = None,
        settings: Optional[Settings] = None,
        on_failure: Optional[FailureHook] = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache
        self.providers = dict(providers) if providers is not None else build_providers(self.settings)
        self.chains = {
            capability: FallbackChain(
                capability,
                [
                    self.providers[name]
                    for name in names
                    if name in self.providers and self.providers[name].supports(capability)
                ],
                on_failure=on_failure,
                raise_if_unconfigured=capability in _DIRECT_CAPABILITIES,
            )
            for capability, names in CHAIN_ORDER.items()
        }

    @property
    def configured_providers(self) -> list[str]:
        return [name for name, p in self.providers.items() if p.is_configured]

    # ── Quotes ──

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        """Latest quote for a symbol. Cached 30s."""
        symbol = validate_ticker(symbol)
        chain = self.chains["get_quote"]
        with trace_span("data_engine.quote", symbol=symbol):
            return await self.cache.get_or_load(
                quote_key(symbol),
                TTL_QUOTE,
                lambda: chain.run(symbol, symbol=symbol),
                decode=Quote.model_validate,
            )

    # ── Charts ──

    async def get_chart(self, symbol: str, timeframe: Timeframe | str | None = None) -> list[Bar]:
        """OHLCV bars for a chart window, ascending by timestamp."""
        symbol = validate_ticker(symbol)
        tf = validate_timeframe(timeframe)
        chain = self.chains["get_historical_data"]
        with trace_span("data_engine.chart", symbol=symbol, timeframe=tf.value):
            return await self.cache.get_or_load(
                chart_key(symbol, tf),
                chart_ttl(tf),
                lambda: chain.run(symbol, tf, symbol=symbol),
                decode=lambda raw: [Bar.model_validate(b) for b in raw],
            )

    # ── Search ──

    async def search(self, query: str) -> list[SearchResult]:
        """Symbol search. Empty list when nothing matches."""
        query = validate_query(query)
        chain = self.chains["search_symbols"]
        with trace_span("data_engine.search", query=query):
            return await self.cache.get_or_load(
                search_key(query),
                TTL_SEARCH,
                lambda: chain.run(query, symbol=query),
                decode=lambda raw: [SearchResult.model_validate(r) for r in raw],
            )

    # ── Company ──

    async def get_company(self, symbol: str) -> Optional[CompanyProfile]:
        """Company profile; the placeholder profile is the last resort."""
        symbol = validate_ticker(symbol)
        chain = self.chains["get_company_profile"]
        with trace_span("data_engine.company", symbol=symbol):
            return await self.cache.get_or_load(
                company_key(symbol),
                TTL_COMPANY,
                lambda: chain.run(symbol, symbol=symbol),
                decode=CompanyProfile.model_validate,
            )

    # ── Analyst ──

    async def get_analyst(self, symbol: str) -> AnalystData:
        """Recommendations and price target, fetched concurrently.

        Raises:
            ProviderNotConfiguredError: when no analyst source has credentials.
        """
        symbol = validate_ticker(symbol)
        with trace_span("data_engine.analyst", symbol=symbol):
            return await self.cache.get_or_load(
                analyst_key(symbol),
                TTL_ANALYST,
                lambda: self._load_analyst(symbol),
                decode=AnalystData.model_validate,
            )

    async def _load_analyst(self, symbol: str) -> AnalystData:
        recommendations, price_target = await asyncio.gather(
            self.chains["get_analyst_recommendations"].run(symbol, symbol=symbol),
            self.chains["get_price_target"].run(symbol, symbol=symbol),
        )
        return AnalystData(recommendations=recommendations, price_target=price_target)

    # ── Outlook ──

    async def get_outlook(self, symbol: str, engine: str = DEFAULT_ENGINE) -> Optional[OutlookPrediction]:
        """Outlook from the named engine; None when no quote is available.

        Raises:
            UnknownEngineError: for engine names outside the registry.
        """
        symbol = validate_ticker(symbol)
        outlook_engine = get_outlook_engine(engine)

        async def _load() -> Optional[OutlookPrediction]:
            quote, analyst = await asyncio.gather(
                self.get_quote(symbol),
                self._analyst_or_empty(symbol),
            )
            if quote is None:
                return None
            return outlook_engine.generate_outlook(
                symbol,
                quote,
                analyst.recommendations,
                analyst.price_target,
            )

        with trace_span("data_engine.outlook", symbol=symbol, engine=engine):
            return await self.cache.get_or_load(
                outlook_key(symbol, engine),
                TTL_OUTLOOK,
                _load,
                decode=OutlookPrediction.model_validate,
            )

    async def _analyst_or_empty(self, symbol: str) -> AnalystData:
        # Outlooks degrade to quote-only rules without analyst credentials
        try:
            return await self.get_analyst(symbol)
        except ProviderNotConfiguredError as exc:
            _log.info("data_engine.analyst_unavailable", symbol=symbol, error=str(exc))
            return AnalystData()

    async def close(self) -> None:
        await self.cache.close()

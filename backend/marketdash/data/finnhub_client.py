"""
MarketDash — Finnhub Data Client

Provides quotes, company profiles, analyst recommendations, and price
target consensus via the Finnhub API.

Free tier: 60 calls/min. Price targets require a paid plan; on the free
tier the endpoint answers 403 and the client returns None.
"""

from __future__ import annotations

from typing import Optional

import httpx
import structlog

from marketdash.config import get_settings
from marketdash.data.base import MarketDataProvider
from marketdash.models import AnalystRecommendation, CompanyProfile, PriceTarget, Quote, now_ms
from marketdash.utils.formatters import safe_float, safe_int

log = structlog.get_logger(__name__)


_BASE_URL = "https://finnhub.io/api/v1"


class FinnhubClient(MarketDataProvider):
    """Wrapper around Finnhub REST API."""

    name = "finnhub"
    timeout = 10.0

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport)
        self._api_key = get_settings().finnhub_api_key if api_key is None else api_key
        self._headers = {"X-Finnhub-Token": self._api_key}

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def _get(self, path: str, ticker: str):
        return await self._get_json(
            f"{_BASE_URL}{path}",
            params={"symbol": ticker.upper()},
            headers=self._headers,
        )

    async def get_quote(self, ticker: str) -> Optional[Quote]:
        """Fetch the latest quote. Finnhub reports unknown symbols as all zeros."""
        self._require_configured()
        return await self._soft("get_quote", ticker, self._fetch_quote(ticker), None)

    async def _fetch_quote(self, ticker: str) -> Optional[Quote]:
        data = await self._get("/quote", ticker)
        price = safe_float(data.get("c"))
        if price <= 0:
            log.info("finnhub.no_quote", ticker=ticker)
            return None
        ts = safe_int(data.get("t"))
        return Quote(
            symbol=ticker,
            price=price,
            change=safe_float(data.get("d")),
            change_percent=safe_float(data.get("dp")),
            high=safe_float(data.get("h")),
            low=safe_float(data.get("l")),
            open=safe_float(data.get("o")),
            previous_close=safe_float(data.get("pc")),
            volume=0,  # not part of the /quote payload
            timestamp=ts * 1000 if ts else now_ms(),
        )

    async def get_company_profile(self, ticker: str) -> Optional[CompanyProfile]:
        """Fetch the company profile (profile2). Unknown symbols return {}."""
        self._require_configured()
        return await self._soft("get_company_profile", ticker, self._fetch_profile(ticker), None)

    async def _fetch_profile(self, ticker: str) -> Optional[CompanyProfile]:
        data = await self._get("/stock/profile2", ticker)
        if not data or not data.get("name"):
            return None

        market_cap = data.get("marketCapitalization")
        industry = data.get("finnhubIndustry") or ""
        description = f"Market Cap: {market_cap}M" if market_cap else ""
        employees = data.get("employeeTotal")
        return CompanyProfile(
            symbol=ticker.upper(),
            name=data["name"],
            description=description,
            sector=industry,
            industry=industry,
            employees=safe_int(employees) if employees is not None else None,
            market_cap=safe_float(market_cap) if market_cap is not None else None,
            website=data.get("weburl") or None,
            logo=data.get("logo") or None,
        )

    async def get_analyst_recommendations(self, ticker: str) -> Optional[AnalystRecommendation]:
        """Fetch analyst recommendation counts for the most recent period."""
        self._require_configured()
        return await self._soft(
            "get_analyst_recommendations", ticker, self._fetch_recommendations(ticker), None
        )

    async def _fetch_recommendations(self, ticker: str) -> Optional[AnalystRecommendation]:
        trends = await self._get("/stock/recommendation", ticker)
        if not trends:
            return None

        # Newest period first
        latest = trends[0]
        return AnalystRecommendation(
            symbol=ticker.upper(),
            strong_buy=safe_int(latest.get("strongBuy")),
            buy=safe_int(latest.get("buy")),
            hold=safe_int(latest.get("hold")),
            sell=safe_int(latest.get("sell")),
            strong_sell=safe_int(latest.get("strongSell")),
            period=latest.get("period", ""),
        )

    async def get_price_target(self, ticker: str) -> Optional[PriceTarget]:
        """Fetch analyst price target consensus (high, low, mean, median)."""
        self._require_configured()
        return await self._soft("get_price_target", ticker, self._fetch_price_target(ticker), None)

    async def _fetch_price_target(self, ticker: str) -> Optional[PriceTarget]:
        data = await self._get("/stock/price-target", ticker)
        if not data or not data.get("targetMean"):
            return None
        return PriceTarget(
            symbol=ticker.upper(),
            target_high=safe_float(data.get("targetHigh")),
            target_low=safe_float(data.get("targetLow")),
            target_mean=safe_float(data.get("targetMean")),
            target_median=safe_float(data.get("targetMedian")),
            number_of_analysts=safe_int(data.get("numberOfAnalysts")),
            currency="USD",
        )

"""
MarketDash — Market Data Provider Base

Every data client implements a subset of the six capabilities below and
normalizes its provider's wire format into marketdash.models records.

Contract:
  - Missing credentials raise ProviderNotConfiguredError before any I/O.
  - Network errors, timeouts, HTTP errors, and bad payloads are logged and
    returned as None / [] (fail soft). No retries.
  - Inside ``propagate_failures()`` those errors are raised instead, so a
    fallback chain can classify them for its failure hook.
  - Unsupported capabilities raise NotImplementedError; such providers are
    simply left out of that capability's fallback chain.
"""

from __future__ import annotations

from abc import ABC
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Awaitable, Iterator, Optional, TypeVar

import httpx
import structlog

from marketdash.exceptions import ProviderNotConfiguredError
from marketdash.models import (
    AnalystRecommendation,
    Bar,
    CompanyProfile,
    PriceTarget,
    Quote,
    SearchResult,
    Timeframe,
)
from marketdash.observability import classify_error

log = structlog.get_logger(__name__)

T = TypeVar("T")

CAPABILITIES = (
    "get_quote",
    "get_historical_data",
    "search_symbols",
    "get_company_profile",
    "get_analyst_recommendations",
    "get_price_target",
)

_propagate: ContextVar[bool] = ContextVar("provider_propagate_failures", default=False)


@contextmanager
def propagate_failures() -> Iterator[None]:
    """Make provider failures raise instead of returning the empty default."""
    token = _propagate.set(True)
    try:
        yield
    finally:
        _propagate.reset(token)


class MarketDataProvider(ABC):
    """Common shape for all market data clients."""

    name: str = "provider"
    timeout: float = 10.0

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return True

    def supports(self, capability: str) -> bool:
        """True when this class overrides the base capability method."""
        return getattr(type(self), capability) is not getattr(MarketDataProvider, capability)

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.name)

    async def _get_json(
        self,
        url: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        """Single GET with this provider's timeout; raises on HTTP errors."""
        async with httpx.AsyncClient(
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()

    async def _soft(self, capability: str, symbol: str, call: Awaitable[T], default: T) -> T:
        """Await *call*; log and return *default* on any provider failure.

        Under ``propagate_failures()`` the failure is re-raised for the caller.
        """
        try:
            return await call
        except ProviderNotConfiguredError:
            raise
        except Exception as exc:
            if _propagate.get():
                raise
            log.warning(
                "provider.request_failed",
                provider=self.name,
                capability=capability,
                symbol=symbol,
                kind=classify_error(exc),
                error=str(exc) or type(exc).__name__,
            )
            return default

    # ── Capabilities ──

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        raise NotImplementedError(f"{self.name} does not provide quotes")

    async def get_historical_data(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        raise NotImplementedError(f"{self.name} does not provide historical data")

    async def search_symbols(self, query: str) -> list[SearchResult]:
        raise NotImplementedError(f"{self.name} does not provide symbol search")

    async def get_company_profile(self, symbol: str) -> Optional[CompanyProfile]:
        raise NotImplementedError(f"{self.name} does not provide company profiles")

    async def get_analyst_recommendations(self, symbol: str) -> Optional[AnalystRecommendation]:
        raise NotImplementedError(f"{self.name} does not provide analyst recommendations")

    async def get_price_target(self, symbol: str) -> Optional[PriceTarget]:
        raise NotImplementedError(f"{self.name} does not provide price targets")

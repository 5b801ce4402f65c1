"""
MarketDash — API Routes

All HTTP endpoints. Thin layer — delegates to the DataEngine, which lives
on ``app.state`` and is injected per request.
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from marketdash import __version__
from marketdash.engines.data_engine import DataEngine
from marketdash.engines.outlook_engine import DEFAULT_ENGINE
from marketdash.models import (
    AnalystData,
    Bar,
    CompanyProfile,
    OutlookPrediction,
    Quote,
    SearchResult,
)


def get_engine(request: Request) -> DataEngine:
    """Dependency: the app's DataEngine."""
    return request.app.state.engine


# ──────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────

health_router = APIRouter()


@health_router.get("/health")
async def health_check(engine: DataEngine = Depends(get_engine)):
    """Service health with cache status and configured providers."""
    t0 = time.perf_counter()
    cache_stats = await engine.cache.stats()
    cache_stats["latency_ms"] = round((time.perf_counter() - t0) * 1000, 1)

    return {
        "status": "ok" if cache_stats.get("available") else "degraded",
        "version": __version__,
        "cache": cache_stats,
        "providers": engine.configured_providers,
        "demo_data": engine.settings.demo_data_enabled,
    }


# ──────────────────────────────────────────────
# Market Data
# ──────────────────────────────────────────────

data_router = APIRouter()


@data_router.get("/quote", response_model=Quote)
async def get_quote(
    symbol: Optional[str] = Query(None, description="Ticker symbol, e.g. AAPL"),
    engine: DataEngine = Depends(get_engine),
):
    """Latest quote from the first provider that has one."""
    quote = await engine.get_quote(symbol)
    if quote is None:
        raise HTTPException(status_code=404, detail="Quote not found from any source")
    return quote


@data_router.get("/chart", response_model=list[Bar])
async def get_chart(
    symbol: Optional[str] = Query(None, description="Ticker symbol"),
    timeframe: Optional[str] = Query(None, description="1D, 5D, 1W, 1M, 6M, YTD, 1Y, 5Y"),
    engine: DataEngine = Depends(get_engine),
):
    """OHLCV bars for the chart window (default 1D), oldest first."""
    bars = await engine.get_chart(symbol, timeframe)
    if not bars:
        raise HTTPException(status_code=404, detail="Chart data not found from any source")
    return bars


@data_router.get("/company", response_model=CompanyProfile)
async def get_company(
    symbol: Optional[str] = Query(None, description="Ticker symbol"),
    engine: DataEngine = Depends(get_engine),
):
    """Company profile."""
    company = await engine.get_company(symbol)
    if company is None:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


@data_router.get("/search", response_model=list[SearchResult])
async def search_symbols(
    q: Optional[str] = Query(None, description="Symbol or company name fragment"),
    engine: DataEngine = Depends(get_engine),
):
    """Symbol search. No matches is an empty list, not an error."""
    return await engine.search(q)


@data_router.get("/analyst", response_model=AnalystData)
async def get_analyst(
    symbol: Optional[str] = Query(None, description="Ticker symbol"),
    engine: DataEngine = Depends(get_engine),
):
    """Analyst recommendations and price target; either may be null."""
    return await engine.get_analyst(symbol)


@data_router.get("/outlook", response_model=OutlookPrediction)
async def get_outlook(
    symbol: Optional[str] = Query(None, description="Ticker symbol"),
    engine_name: str = Query(DEFAULT_ENGINE, alias="engine", description="analyst, model, or blended"),
    engine: DataEngine = Depends(get_engine),
):
    """30-day outlook from the selected engine."""
    outlook = await engine.get_outlook(symbol, engine_name)
    if outlook is None:
        raise HTTPException(status_code=404, detail="Quote not found")
    return outlook

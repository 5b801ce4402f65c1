"""
MarketDash — FastAPI Application Entry Point

Builds the API server: settings, logging, cache, data engine, middleware,
error handlers, and routers.

Run with:
    uvicorn marketdash.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketdash import __version__
from marketdash.cache import RedisCache
from marketdash.config import Settings, get_settings
from marketdash.engines.data_engine import DataEngine
from marketdash.error_handlers import register_error_handlers
from marketdash.middleware import RequestLoggerMiddleware
from marketdash.observability import configure_logging
from marketdash.routes import data_router, health_router

log = structlog.get_logger("marketdash.startup")

API_V1 = "/v1/api"


def _validate_config(settings: Settings) -> None:
    """Warn on missing provider keys at startup."""
    checks = {
        "alpaca_api_key": "Alpaca (bars, bar-derived quotes unavailable)",
        "alpaca_secret_key": "Alpaca (bars, bar-derived quotes unavailable)",
        "alpha_vantage_api_key": "Alpha Vantage (quote, chart, search fallback unavailable)",
        "finnhub_api_key": "Finnhub (company profiles, analyst data unavailable)",
    }
    for attr, description in checks.items():
        if not getattr(settings, attr, ""):
            log.warning("config.missing_key", key=attr, impact=description)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    settings: Settings = app.state.settings
    log.info(
        "startup",
        env=settings.app_env,
        redis=settings.redis_url,
        demo_data=settings.demo_data_enabled,
    )
    _validate_config(settings)

    yield

    await app.state.engine.close()
    log.info("shutdown")


def create_app(settings: Optional[Settings] = None, engine: Optional[DataEngine] = None) -> FastAPI:
    """Application factory.

    Args:
        settings: Overrides the environment-loaded settings.
        engine: Pre-built DataEngine (tests inject fakes here).
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(
        title="MarketDash",
        description="Quotes, charts, company profiles, analyst data, and outlooks "
        "aggregated across market data providers.",
        version=__version__,
        debug=settings.app_debug,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Health", "description": "Service health and cache status"},
            {"name": "Data", "description": "Quotes, charts, search, company, analyst, outlook"},
        ],
    )
    app.state.settings = settings
    app.state.engine = engine or DataEngine(RedisCache(settings.redis_url), settings=settings)

    # ── Global Error Handlers ──
    register_error_handlers(app)

    # ── CORS (configurable from settings) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # ── Request Logging ──
    app.add_middleware(RequestLoggerMiddleware)

    # ── Routes ──
    app.include_router(health_router, tags=["Health"])
    app.include_router(data_router, prefix=API_V1, tags=["Data"])

    return app


app = create_app()

"""
MarketDash — Observability

Logging setup plus the structured hook that provider failures flow through.

Fallback chains never print. Every failed provider attempt becomes a
``ProviderFailure`` record handed to a ``FailureHook``; the default hook
logs it with structlog, tests pass a collector instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import structlog

from marketdash.exceptions import ProviderError, ProviderNotConfiguredError

logger = structlog.get_logger(__name__)


# ──────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────

def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog processors and the stdlib root level."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )


# ──────────────────────────────────────────────
# Provider Failure Hook
# ──────────────────────────────────────────────

KIND_NOT_CONFIGURED = "not_configured"
KIND_TIMEOUT = "timeout"
KIND_HTTP_ERROR = "http_error"
KIND_NETWORK = "network"
KIND_EMPTY = "empty"
KIND_UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class ProviderFailure:
    """One failed provider attempt inside a fallback chain."""
    provider: str
    capability: str
    symbol: str
    kind: str
    error: Optional[str] = None


FailureHook = Callable[[ProviderFailure], None]


def classify_error(exc: BaseException) -> str:
    """Map an exception onto a failure kind."""
    if isinstance(exc, ProviderNotConfiguredError):
        return KIND_NOT_CONFIGURED
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return KIND_TIMEOUT
    # ProviderError: an error body in a 200 response (rate-limit notes)
    if isinstance(exc, (httpx.HTTPStatusError, ProviderError)):
        return KIND_HTTP_ERROR
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return KIND_NETWORK
    return KIND_UNEXPECTED


def log_provider_failure(failure: ProviderFailure) -> None:
    """Default hook: one structured warning per failed attempt."""
    log = logger.info if failure.kind in (KIND_EMPTY, KIND_NOT_CONFIGURED) else logger.warning
    log(
        "fallback.provider_failed",
        provider=failure.provider,
        capability=failure.capability,
        symbol=failure.symbol,
        kind=failure.kind,
        error=failure.error,
    )


# ──────────────────────────────────────────────
# Timing Spans
# ──────────────────────────────────────────────

@contextmanager
def trace_span(name: str, slow_threshold_s: float = 5.0, **fields):
    """Time a block and log it; warn when it runs longer than the threshold.

    Usage:
        with trace_span("data_engine.quote", symbol="AAPL"):
            quote = await chain.run(symbol)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("trace_span_end", span_name=name, elapsed_ms=round(elapsed * 1000, 2), **fields)
        if elapsed > slow_threshold_s:
            logger.warning("trace_span_slow", span_name=name, elapsed_s=round(elapsed, 2), **fields)

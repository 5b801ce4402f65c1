"""
Shared test fixtures: in-memory async Redis, a controllable clock, stub
providers, and record factories.
"""

from __future__ import annotations

import fnmatch
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from marketdash.cache import RedisCache
from marketdash.data.base import MarketDataProvider
from marketdash.models import AnalystRecommendation, PriceTarget, Quote


# ──────────────────────────────────────────────
# Redis
# ──────────────────────────────────────────────

class FakeRedis:
    """Async stand-in for redis.asyncio.Redis covering the calls RedisCache makes."""

    def __init__(self, fail_ping: bool = False):
        self.store: dict[str, str] = {}
        self.expiry: dict[str, Optional[int]] = {}
        self.fail_ping = fail_ping
        self.fail_next: Optional[Exception] = None
        self.closed = False

    def _maybe_fail(self):
        if self.fail_next is not None:
            exc, self.fail_next = self.fail_next, None
            raise exc

    async def ping(self):
        if self.fail_ping:
            raise RedisConnectionError("Connection refused")
        return True

    async def get(self, key):
        self._maybe_fail()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._maybe_fail()
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, *keys):
        self._maybe_fail()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed

    async def keys(self, pattern):
        return [k for k in self.store if fnmatch.fnmatch(k, pattern)]

    async def info(self, section=None):
        return {"keyspace_hits": 3, "keyspace_misses": 1}

    async def dbsize(self):
        return len(self.store)

    async def aclose(self):
        self.closed = True


class FakeClock:
    """Callable wall clock (seconds) that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(fake_redis, clock):
    return RedisCache("redis://test:6379/0", clock=clock, client_factory=lambda url: fake_redis)


@pytest.fixture
def offline_cache():
    return RedisCache("redis://down:6379/0", client_factory=lambda url: FakeRedis(fail_ping=True))


# ──────────────────────────────────────────────
# Providers
# ──────────────────────────────────────────────

class StubProvider(MarketDataProvider):
    """Provider whose capabilities are AsyncMocks.

    Pass ``get_quote=<value>`` to return a value, or an Exception instance to
    raise it. Only the capabilities given are reported as supported.
    """

    def __init__(self, name: str, **capabilities: Any):
        super().__init__()
        self.name = name
        self._capabilities = set(capabilities)
        for capability, outcome in capabilities.items():
            if isinstance(outcome, BaseException):
                mock = AsyncMock(side_effect=outcome)
            else:
                mock = AsyncMock(return_value=outcome)
            setattr(self, capability, mock)

    def supports(self, capability: str) -> bool:
        return capability in self._capabilities


# ──────────────────────────────────────────────
# Record Factories
# ──────────────────────────────────────────────

def make_quote(**overrides) -> Quote:
    fields = dict(
        symbol="AAPL",
        price=227.52,
        change=3.45,
        change_percent=1.54,
        high=229.87,
        low=225.12,
        open=226.00,
        previous_close=224.07,
        volume=47234567,
        timestamp=1_700_000_000_000,
    )
    fields.update(overrides)
    return Quote(**fields)


def make_recommendations(strong_buy=12, buy=18, hold=8, sell=2, strong_sell=0, symbol="AAPL"):
    return AnalystRecommendation(
        symbol=symbol,
        strong_buy=strong_buy,
        buy=buy,
        hold=hold,
        sell=sell,
        strong_sell=strong_sell,
        period="2024-01",
    )


def make_price_target(mean=235.50, analysts=28, symbol="AAPL"):
    return PriceTarget(
        symbol=symbol,
        target_high=mean * 1.1,
        target_low=mean * 0.9,
        target_mean=mean,
        target_median=mean,
        number_of_analysts=analysts,
    )

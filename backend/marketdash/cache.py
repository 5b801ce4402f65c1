"""
MarketDash — Redis Caching Layer

Read-through cache with per-category TTLs. Values are stored as JSON
envelopes ``{"data", "timestamp", "ttl"}`` so freshness is checked on read
as well as by Redis expiry. Falls back to pass-through when Redis is
unavailable (no crashes, just cache misses).
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as aioredis
import structlog
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from marketdash.config import get_settings
from marketdash.models import Timeframe

log = structlog.get_logger(__name__)

T = TypeVar("T")


# ──────────────────────────────────────────────
# Default TTLs (seconds)
# ──────────────────────────────────────────────


TTL_QUOTE = 30            # 30 seconds — price data
TTL_CHART_INTRADAY = 60   # 1 minute — 1D chart
TTL_CHART_SHORT = 300     # 5 minutes — 5D chart
TTL_CHART_LONG = 3600     # 1 hour — everything longer
TTL_COMPANY = 3600        # 1 hour — company profile
TTL_SEARCH = 300          # 5 minutes — symbol search
TTL_OUTLOOK = 1800        # 30 minutes — outlook predictions
TTL_ANALYST = 3600        # 1 hour — recommendations + price target

RECONNECT_INTERVAL = 5.0  # seconds between connect attempts while Redis is down


def chart_ttl(timeframe: Timeframe | str) -> int:
    """TTL for a chart: shorter windows change faster."""
    tf = Timeframe(timeframe)
    if tf is Timeframe.D1:
        return TTL_CHART_INTRADAY
    if tf is Timeframe.D5:
        return TTL_CHART_SHORT
    return TTL_CHART_LONG


# ──────────────────────────────────────────────
# Cache Keys
# ──────────────────────────────────────────────


def quote_key(symbol: str) -> str:
    return f"quote:{symbol.upper()}"


def chart_key(symbol: str, timeframe: Timeframe | str) -> str:
    return f"chart:{symbol.upper()}:{Timeframe(timeframe).value}"


def company_key(symbol: str) -> str:
    return f"company:{symbol.upper()}"


def search_key(query: str) -> str:
    return f"search:{query.lower()}"


def analyst_key(symbol: str) -> str:
    return f"analyst:{symbol.upper()}"


def outlook_key(symbol: str, engine: str) -> str:
    return f"outlook:{symbol.upper()}:{engine}"


# ──────────────────────────────────────────────
# Serialization
# ──────────────────────────────────────────────


def to_jsonable(value: Any) -> Any:
    """Convert models (and lists of models) into JSON-ready structures."""
    if hasattr(value, "to_json_dict"):
        return value.to_json_dict()
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def is_empty_result(value: Any) -> bool:
    """Results that must not be cached: None, empty sequences, empty bundles."""
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict)) and not value:
        return True
    return bool(getattr(value, "is_empty", False))


def _default_client_factory(url: str) -> aioredis.Redis:
    return aioredis.from_url(
        url,
        decode_responses=True,
        socket_timeout=2,
        socket_connect_timeout=2,
    )


# ──────────────────────────────────────────────
# Redis Cache Client
# ──────────────────────────────────────────────


class RedisCache:
    """Async Redis wrapper with JSON envelopes and graceful degradation.

    The connection is opened lazily on first use and reused. A connection
    error drops the client; the next call reconnects.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        client_factory: Callable[[str], Any] = _default_client_factory,
    ):
        self._url = url or get_settings().redis_url
        self._clock = clock
        self._client_factory = client_factory
        self._client: Any = None
        self._available = False
        self._connecting: Optional[asyncio.Future] = None
        self._retry_at = 0.0

    @property
    def available(self) -> bool:
        return self._available

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _connect(self):
        """Current client, or None while Redis is unreachable.

        Concurrent callers share one in-flight attempt. After a failed attempt
        calls miss immediately until ``RECONNECT_INTERVAL`` has passed.
        """
        if self._client is not None:
            return self._client
        if self._connecting is None:
            if self._clock() < self._retry_at:
                return None
            self._connecting = asyncio.ensure_future(self._open())
        return await asyncio.shield(self._connecting)

    async def _open(self):
        client = None
        try:
            client = self._client_factory(self._url)
            await client.ping()
        except Exception as exc:
            log.warning("cache.unavailable", url=self._url, error=str(exc))
            self._available = False
            self._retry_at = self._clock() + RECONNECT_INTERVAL
            if client is not None:
                await self._close_quietly(client)
            return None
        else:
            self._client = client
            self._available = True
            log.info("cache.connected", url=self._url)
            return client
        finally:
            self._connecting = None

    async def _disconnect(self, exc: Exception) -> None:
        client, self._client = self._client, None
        self._available = False
        log.warning("cache.disconnected", error=str(exc))
        if client is not None:
            await self._close_quietly(client)

    @staticmethod
    async def _close_quietly(client) -> None:
        try:
            await client.aclose()
        except Exception as exc:
            log.debug("cache.close_failed", error=str(exc))

    async def get(self, key: str) -> Optional[Any]:
        """Get a fresh cached value. Returns None on miss, expiry, or error.

        Expired entries are deleted as a side effect.
        """
        client = await self._connect()
        if client is None:
            return None
        try:
            raw = await client.get(key)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            await self._disconnect(exc)
            return None
        except RedisError as exc:
            log.warning("cache.get_failed", key=key, error=str(exc))
            return None
        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            data, captured, ttl = entry["data"], int(entry["timestamp"]), int(entry["ttl"])
        except (ValueError, TypeError, KeyError) as exc:
            log.warning("cache.corrupt_entry", key=key, error=str(exc))
            await self.delete(key)
            return None

        if self._now_ms() >= captured + ttl:
            log.debug("cache.expired", key=key)
            await self.delete(key)
            return None
        return data

    async def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Cache a value with TTL in seconds. Never raises."""
        client = await self._connect()
        if client is None:
            return False
        envelope = {
            "data": to_jsonable(value),
            "timestamp": self._now_ms(),
            "ttl": ttl * 1000,
        }
        try:
            serialized = json.dumps(envelope, default=str)
            if ttl > 0:
                await client.set(key, serialized, ex=ttl)
            else:
                await client.set(key, serialized)
            return True
        except (RedisConnectionError, RedisTimeoutError) as exc:
            await self._disconnect(exc)
            return False
        except (RedisError, TypeError, ValueError) as exc:
            log.warning("cache.set_failed", key=key, error=str(exc))
            return False

    async def delete(self, key: str) -> bool:
        """Delete a cached key."""
        client = await self._connect()
        if client is None:
            return False
        try:
            await client.delete(key)
            return True
        except (RedisConnectionError, RedisTimeoutError) as exc:
            await self._disconnect(exc)
            return False
        except RedisError as exc:
            log.warning("cache.delete_failed", key=key, error=str(exc))
            return False

    async def clear_prefix(self, prefix: str) -> int:
        """Delete all keys matching a prefix. Returns count deleted."""
        client = await self._connect()
        if client is None:
            return 0
        try:
            keys = await client.keys(f"{prefix}:*")
            if keys:
                return await client.delete(*keys)
            return 0
        except RedisError as exc:
            log.warning("cache.clear_failed", prefix=prefix, error=str(exc))
            return 0

    async def stats(self) -> dict:
        """Get basic cache stats."""
        client = await self._connect()
        if client is None:
            return {"available": False}
        try:
            info = await client.info("stats")
            return {
                "available": True,
                "hits": info.get("keyspace_hits", 0),
                "misses": info.get("keyspace_misses", 0),
                "keys": await client.dbsize(),
            }
        except RedisError:
            return {"available": False}

    async def get_or_load(
        self,
        key: str,
        ttl: int,
        loader: Callable[[], Awaitable[T]],
        decode: Callable[[Any], T] = lambda raw: raw,
    ) -> T:
        """Read-through: return the cached value or load, store, and return.

        Empty results are returned but not cached.
        """
        hit = await self.get(key)
        if hit is not None:
            log.debug("cache.hit", key=key)
            return decode(hit)

        result = await loader()
        if not is_empty_result(result):
            await self.set(key, result, ttl=ttl)
            log.debug("cache.set", key=key, ttl=ttl)
        return result

    async def close(self) -> None:
        if self._client is not None:
            await self._close_quietly(self._client)
        self._client = None
        self._available = False

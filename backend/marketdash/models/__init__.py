"""
MarketDash — Pydantic Models

Canonical, provider-agnostic records. Data clients normalize into these,
the cache stores their JSON form, API routes serialize them.

Attributes are snake_case; JSON uses the dashboard's camelCase keys
(``changePercent``, ``previousClose`` ...). Both forms are accepted on input.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class Timeframe(str, Enum):
    """Supported chart windows."""
    D1 = "1D"
    D5 = "5D"
    W1 = "1W"
    M1 = "1M"
    M6 = "6M"
    YTD = "YTD"
    Y1 = "1Y"
    Y5 = "5Y"

    def window_start(self, now: datetime) -> datetime:
        """Start of this window when it ends at *now*."""
        if self is Timeframe.YTD:
            return datetime(now.year, 1, 1, tzinfo=now.tzinfo)
        return now - timedelta(days=_LOOKBACK_DAYS[self.value])


# Calendar days per window; 5D spans 7 days to cover a weekend
_LOOKBACK_DAYS = {
    "1D": 1,
    "5D": 7,
    "1W": 7,
    "1M": 30,
    "6M": 180,
    "1Y": 365,
    "5Y": 5 * 365,
}


class OutlookSummary(str, Enum):
    """Outlook classification."""
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    NEUTRAL = "Neutral"
    PENDING = "pending"  # model engine placeholder


MAX_SEARCH_RESULTS = 10


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class MarketModel(BaseModel):
    """Base for every record: immutable, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ──────────────────────────────────────────────
# Market Data Models
# ──────────────────────────────────────────────

class Quote(MarketModel):
    """Latest price snapshot for a symbol."""
    symbol: str
    price: float
    change: float
    change_percent: float
    high: float
    low: float
    open: float
    previous_close: float
    volume: int = 0
    market_cap: Optional[float] = None
    timestamp: int = Field(default_factory=now_ms)

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.strip().upper()

    @classmethod
    def from_bars(cls, symbol: str, bars: list["Bar"]) -> Optional["Quote"]:
        """Synthesize a quote from the two most recent bars.

        With a single bar the change is zero. Returns None for no bars.
        """
        if not bars:
            return None
        latest = bars[-1]
        previous = bars[-2] if len(bars) > 1 else latest
        change = latest.close - previous.close
        change_pct = (change / previous.close) * 100 if previous.close > 0 else 0.0
        return cls(
            symbol=symbol,
            price=latest.close,
            change=change,
            change_percent=change_pct,
            high=latest.high,
            low=latest.low,
            open=latest.open,
            previous_close=previous.close,
            volume=latest.volume,
            timestamp=latest.timestamp,
        )


class Bar(MarketModel):
    """Single OHLCV bar.

    ``timestamp`` is epoch milliseconds of the interval as the provider stamps
    it; Alpaca and Yahoo stamp the interval start.
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


def normalize_bars(bars: Iterable[Bar]) -> list[Bar]:
    """Sort bars ascending by timestamp and drop duplicate timestamps.

    The first bar seen for a timestamp wins.
    """
    seen: dict[int, Bar] = {}
    for bar in bars:
        seen.setdefault(bar.timestamp, bar)
    return [seen[ts] for ts in sorted(seen)]


class CompanyProfile(MarketModel):
    """Company metadata."""
    symbol: str
    name: str
    description: str = ""
    sector: str = ""
    industry: str = ""
    employees: Optional[int] = None
    market_cap: Optional[float] = None
    website: Optional[str] = None
    logo: Optional[str] = None

    @classmethod
    def placeholder(cls, symbol: str) -> "CompanyProfile":
        """Degraded profile for providers with no company data."""
        symbol = symbol.upper()
        return cls(
            symbol=symbol,
            name=f"{symbol} Inc.",
            description=f"Company information for {symbol}",
            sector="Technology",
            industry="Software",
        )


class SearchResult(MarketModel):
    """Symbol search hit."""
    symbol: str
    name: str
    type: str = "Equity"
    region: str = "US"
    market_open: str = "09:30"
    market_close: str = "16:00"
    timezone: str = "US/Eastern"
    currency: str = "USD"
    match_score: float = Field(default=0.8, ge=0.0, le=1.0)


# ──────────────────────────────────────────────
# Analyst Models
# ──────────────────────────────────────────────

class AnalystRecommendation(MarketModel):
    """Analyst rating counts for the latest period."""
    symbol: str
    strong_buy: int = Field(default=0, ge=0)
    buy: int = Field(default=0, ge=0)
    hold: int = Field(default=0, ge=0)
    sell: int = Field(default=0, ge=0)
    strong_sell: int = Field(default=0, ge=0)
    period: str = ""

    @property
    def total(self) -> int:
        return self.strong_buy + self.buy + self.hold + self.sell + self.strong_sell


class PriceTarget(MarketModel):
    """Analyst price target consensus."""
    symbol: str
    target_high: float
    target_low: float
    target_mean: float
    target_median: float
    number_of_analysts: int = Field(default=0, ge=0)
    currency: str = "USD"


class AnalystData(MarketModel):
    """Analyst endpoint bundle; either part may be missing."""
    recommendations: Optional[AnalystRecommendation] = None
    price_target: Optional[PriceTarget] = None

    @property
    def is_empty(self) -> bool:
        return self.recommendations is None and self.price_target is None


# ──────────────────────────────────────────────
# Outlook
# ──────────────────────────────────────────────

class OutlookPrediction(MarketModel):
    """Engine output. Recomputed on request, never patched."""
    symbol: str
    summary: OutlookSummary
    confidence: float
    rationale: list[str] = Field(min_length=1)
    timeframe: str = "30 days"
    engine: str
    version: str

"""
MarketDash — Sample Data Provider

Offline provider serving built-in records for a handful of large caps.
Joins every fallback chain when ``DEMO_DATA_ENABLED`` is set, so the
dashboard stays usable without API keys.

Generated bars are deterministic: the RNG is seeded per (symbol, timeframe)
and the series ends at the current interval boundary.
"""

from __future__ import annotations

import random
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from marketdash.data.base import MarketDataProvider
from marketdash.models import (
    MAX_SEARCH_RESULTS,
    AnalystRecommendation,
    Bar,
    CompanyProfile,
    PriceTarget,
    Quote,
    SearchResult,
    Timeframe,
    now_ms,
)


# ──────────────────────────────────────────────
# Sample Records
# ──────────────────────────────────────────────

# symbol → (price, change, change %, high, low, open, previous close, volume, market cap)
SAMPLE_QUOTES: dict[str, tuple] = {
    "AAPL": (227.52, 3.45, 1.54, 229.87, 225.12, 226.00, 224.07, 47234567, 3500000),
    "GOOGL": (182.34, -2.18, -1.18, 185.67, 181.45, 184.20, 184.52, 28956432, 2200000),
    "TSLA": (251.89, 12.67, 5.30, 254.32, 238.90, 242.10, 239.22, 89567123, 800000),
    "MSFT": (434.56, 5.67, 1.32, 436.78, 432.10, 433.45, 428.89, 23456789, 3200000),
    "NVDA": (875.43, -15.67, -1.76, 892.10, 871.25, 888.90, 891.10, 45678901, 2100000),
}

SAMPLE_COMPANIES: dict[str, dict] = {
    "AAPL": {
        "name": "Apple Inc.",
        "description": (
            "Apple Inc. designs, manufactures, and markets smartphones, personal computers, "
            "tablets, wearables, and accessories worldwide."
        ),
        "sector": "Technology",
        "industry": "Consumer Electronics",
        "employees": 164000,
        "website": "https://www.apple.com",
        "domain": "apple.com",
    },
    "GOOGL": {
        "name": "Alphabet Inc.",
        "description": (
            "Alphabet Inc. provides online advertising services in the United States, Europe, "
            "the Middle East, Africa, the Asia-Pacific, Canada, and Latin America."
        ),
        "sector": "Technology",
        "industry": "Internet Content & Information",
        "employees": 190000,
        "website": "https://abc.xyz",
        "domain": "google.com",
    },
    "TSLA": {
        "name": "Tesla, Inc.",
        "description": (
            "Tesla, Inc. designs, develops, manufactures, leases, and sells electric vehicles, "
            "and energy generation and storage systems."
        ),
        "sector": "Consumer Cyclical",
        "industry": "Auto Manufacturers",
        "employees": 140000,
        "website": "https://www.tesla.com",
        "domain": "tesla.com",
    },
    "MSFT": {
        "name": "Microsoft Corporation",
        "description": (
            "Microsoft Corporation develops, licenses, and supports software, services, "
            "devices, and solutions worldwide."
        ),
        "sector": "Technology",
        "industry": "Software",
        "employees": 221000,
        "website": "https://www.microsoft.com",
        "domain": "microsoft.com",
    },
    "NVDA": {
        "name": "NVIDIA Corporation",
        "description": "NVIDIA Corporation operates as a visual computing company worldwide.",
        "sector": "Technology",
        "industry": "Semiconductors",
        "employees": 29600,
        "website": "https://www.nvidia.com",
        "domain": "nvidia.com",
    },
}

# symbol → (strong buy, buy, hold, sell, strong sell)
SAMPLE_RECOMMENDATIONS: dict[str, tuple[int, int, int, int, int]] = {
    "AAPL": (12, 18, 8, 2, 0),
    "GOOGL": (8, 15, 10, 3, 1),
    "TSLA": (5, 12, 15, 8, 3),
}
SAMPLE_PERIOD = "2024-01"

# symbol → (high, low, mean, median, analysts)
SAMPLE_PRICE_TARGETS: dict[str, tuple[float, float, float, float, int]] = {
    "AAPL": (250.00, 200.00, 235.50, 238.00, 28),
    "GOOGL": (200.00, 160.00, 185.75, 188.00, 25),
    "TSLA": (300.00, 180.00, 240.50, 245.00, 22),
}

DEFAULT_BASE_PRICE = 100.0

_MINUTE_MS = 60 * 1000
_DAY_MS = 24 * 60 * _MINUTE_MS

# Points per window; 1D is 15-minute bars, everything else daily
_POINTS = {
    Timeframe.D1: 1,
    Timeframe.D5: 5,
    Timeframe.W1: 7,
    Timeframe.M1: 30,
    Timeframe.M6: 180,
    Timeframe.Y1: 365,
}
_FALLBACK_POINTS = 1825


def generate_bars(symbol: str, timeframe: Timeframe, end_ms: int) -> list[Bar]:
    """Synthetic bars within ±5% of the sample price, ending at *end_ms*."""
    timeframe = Timeframe(timeframe)
    symbol = symbol.upper()
    quote = SAMPLE_QUOTES.get(symbol)
    base_price = quote[0] if quote else DEFAULT_BASE_PRICE
    if timeframe is Timeframe.YTD:
        end_day = datetime.fromtimestamp(end_ms / 1000, tz=timezone.utc)
        points = max(end_day.timetuple().tm_yday, 1)
    else:
        points = _POINTS.get(timeframe, _FALLBACK_POINTS)
    step = 15 * _MINUTE_MS if timeframe is Timeframe.D1 else _DAY_MS
    end = end_ms - end_ms % step

    rng = random.Random(f"{symbol}:{timeframe.value}")
    bars = []
    for i in range(points - 1, -1, -1):
        price = base_price * (1 + (rng.random() - 0.5) * 0.1)
        open_ = price * (1 + (rng.random() - 0.5) * 0.02)
        high = max(price * (1 + rng.random() * 0.03), open_, price)
        low = min(price * (1 - rng.random() * 0.03), open_, price)
        bars.append(
            Bar(
                timestamp=end - i * step,
                open=round(open_, 2),
                high=round(high, 2),
                low=round(low, 2),
                close=round(price, 2),
                volume=rng.randint(1_000_000, 10_999_999),
            )
        )
    return bars


class SampleDataClient(MarketDataProvider):
    """Serves the built-in sample records. Never touches the network."""

    name = "sample"

    def __init__(self, clock: Callable[[], float] = time.time):
        super().__init__()
        self._clock = clock

    async def get_quote(self, symbol: str) -> Optional[Quote]:
        symbol = symbol.upper()
        row = SAMPLE_QUOTES.get(symbol)
        if row is None:
            return None
        price, change, change_pct, high, low, open_, prev_close, volume, market_cap = row
        return Quote(
            symbol=symbol,
            price=price,
            change=change,
            change_percent=change_pct,
            high=high,
            low=low,
            open=open_,
            previous_close=prev_close,
            volume=volume,
            market_cap=market_cap,
            timestamp=now_ms(),
        )

    async def get_historical_data(self, symbol: str, timeframe: Timeframe) -> list[Bar]:
        return generate_bars(symbol, timeframe, int(self._clock() * 1000))

    async def search_symbols(self, query: str) -> list[SearchResult]:
        term = query.strip().lower()
        if not term:
            return []
        results = [
            SearchResult(
                symbol=symbol,
                name=company["name"],
                match_score=1.0 if symbol.lower() == term else 0.8,
            )
            for symbol, company in SAMPLE_COMPANIES.items()
            if term in symbol.lower() or term in company["name"].lower()
        ]
        return results[:MAX_SEARCH_RESULTS]

    async def get_company_profile(self, symbol: str) -> Optional[CompanyProfile]:
        symbol = symbol.upper()
        company = SAMPLE_COMPANIES.get(symbol)
        if company is None:
            return None
        return CompanyProfile(
            symbol=symbol,
            name=company["name"],
            description=company["description"],
            sector=company["sector"],
            industry=company["industry"],
            employees=company["employees"],
            market_cap=SAMPLE_QUOTES[symbol][-1],
            website=company["website"],
            logo=f"https://logo.clearbit.com/{company['domain']}",
        )

    async def get_analyst_recommendations(self, symbol: str) -> Optional[AnalystRecommendation]:
        symbol = symbol.upper()
        counts = SAMPLE_RECOMMENDATIONS.get(symbol)
        if counts is None:
            return None
        strong_buy, buy, hold, sell, strong_sell = counts
        return AnalystRecommendation(
            symbol=symbol,
            strong_buy=strong_buy,
            buy=buy,
            hold=hold,
            sell=sell,
            strong_sell=strong_sell,
            period=SAMPLE_PERIOD,
        )

    async def get_price_target(self, symbol: str) -> Optional[PriceTarget]:
        symbol = symbol.upper()
        row = SAMPLE_PRICE_TARGETS.get(symbol)
        if row is None:
            return None
        high, low, mean, median, analysts = row
        return PriceTarget(
            symbol=symbol,
            target_high=high,
            target_low=low,
            target_mean=mean,
            target_median=median,
            number_of_analysts=analysts,
        )

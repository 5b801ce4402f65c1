"""
MarketDash — Outlook Engines

Turns an already-fetched quote plus analyst data into a 30-day outlook:
a Bullish / Bearish / Neutral call, a confidence in [0.1, 0.95], and the
rationale lines behind it.

Engines are pure and synchronous: no I/O, no hidden state. Identical inputs
always produce identical predictions, so results cache like any other
record.

Engines:
  analyst  — rule-based scoring over recommendations, price target,
             momentum, and intraday range
  model    — placeholder until an ML model is wired in
  blended  — analyst output with confidence discounted for the model share
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Optional

from marketdash.exceptions import UnknownEngineError
from marketdash.models import (
    AnalystRecommendation,
    OutlookPrediction,
    OutlookSummary,
    PriceTarget,
    Quote,
)

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95
BASE_CONFIDENCE = 0.5

OUTLOOK_TIMEFRAME = "30 days"


def _pct(ratio: float) -> int:
    """Ratio → whole percent, halves rounded up (0.125 → 13)."""
    return int(math.floor(ratio * 100 + 0.5))


def _clamp(value: float) -> float:
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value))


class OutlookEngine(ABC):
    """Common interface for outlook engines."""

    name: str = "OutlookEngine"
    version: str = "1.0.0"

    @abstractmethod
    def generate_outlook(
        self,
        symbol: str,
        quote: Quote,
        recommendations: Optional[AnalystRecommendation] = None,
        price_target: Optional[PriceTarget] = None,
    ) -> OutlookPrediction:
        ...

    def _prediction(
        self,
        symbol: str,
        summary: OutlookSummary,
        confidence: float,
        rationale: list[str],
    ) -> OutlookPrediction:
        return OutlookPrediction(
            symbol=symbol.upper(),
            summary=summary,
            confidence=confidence,
            rationale=rationale,
            timeframe=OUTLOOK_TIMEFRAME,
            engine=self.name,
            version=self.version,
        )


# ──────────────────────────────────────────────
# Analyst Engine
# ──────────────────────────────────────────────

class AnalystEngine(OutlookEngine):
    """Rule-based outlook from analyst consensus.

    Rules are applied in a fixed order, each one adjusting the running
    confidence and appending a rationale line:

      1. Recommendation mix (when any analyst covers the symbol):
         >60% buy → Bullish +0.20; else >40% sell → Bearish +0.10;
         else mixed.
      2. Coverage: ≥10 ratings +0.10; <5 ratings −0.10.
      3. Price target vs. price: >15% upside → Bullish if still Neutral,
         +0.15; >10% downside → Bearish (overrides step 1), +0.10;
         else limited movement. ≥8 analysts on the target +0.05.
      4. Daily move beyond ±5% → momentum line, +0.05.
      5. Intraday range above 5% of price → −0.05.

    The result is clamped to [0.1, 0.95]. With no rule firing, the
    rationale is a single "insufficient data" line.
    """

    name = "AnalystEngine"
    version = "1.0.0"

    def generate_outlook(
        self,
        symbol: str,
        quote: Quote,
        recommendations: Optional[AnalystRecommendation] = None,
        price_target: Optional[PriceTarget] = None,
    ) -> OutlookPrediction:
        rationale: list[str] = []
        confidence = BASE_CONFIDENCE
        summary = OutlookSummary.NEUTRAL

        # ── Recommendation mix + coverage ──
        total = recommendations.total if recommendations is not None else 0
        if total > 0:
            bullish_ratio = (recommendations.strong_buy + recommendations.buy) / total
            bearish_ratio = (recommendations.strong_sell + recommendations.sell) / total

            if bullish_ratio > 0.6:
                summary = OutlookSummary.BULLISH
                confidence += 0.2
                rationale.append(f"{_pct(bullish_ratio)}% of analysts recommend buying")
            elif bearish_ratio > 0.4:
                summary = OutlookSummary.BEARISH
                confidence += 0.1
                rationale.append(f"{_pct(bearish_ratio)}% of analysts recommend selling")
            else:
                rationale.append("Mixed analyst sentiment")

            if total >= 10:
                confidence += 0.1
                rationale.append(f"Strong analyst coverage with {total} recommendations")
            elif total < 5:
                confidence -= 0.1
                rationale.append(f"Limited analyst coverage with only {total} recommendations")

        # ── Price target ──
        if price_target is not None and quote.price > 0:
            upside = (price_target.target_mean - quote.price) / quote.price

            if upside > 0.15:
                if summary is OutlookSummary.NEUTRAL:
                    summary = OutlookSummary.BULLISH
                confidence += 0.15
                rationale.append(f"Price target suggests {_pct(upside)}% upside potential")
            elif upside < -0.1:
                summary = OutlookSummary.BEARISH
                confidence += 0.1
                rationale.append(f"Price target suggests {_pct(abs(upside))}% downside risk")
            else:
                rationale.append("Price target suggests limited movement")

            if price_target.number_of_analysts >= 8:
                confidence += 0.05

        # ── Momentum ──
        change_pct = quote.change_percent
        if abs(change_pct) > 5:
            if change_pct > 0:
                rationale.append(f"Strong positive momentum with {change_pct:.1f}% daily gain")
            else:
                rationale.append(f"Negative momentum with {change_pct:.1f}% daily decline")
            confidence += 0.05

        # ── Intraday volatility ──
        if quote.price > 0 and abs(quote.high - quote.low) / quote.price > 0.05:
            confidence -= 0.05
            rationale.append("High intraday volatility indicates uncertainty")

        if not rationale:
            rationale.append("Insufficient data for detailed analysis")

        return self._prediction(symbol, summary, _clamp(confidence), rationale)


# ──────────────────────────────────────────────
# Model Engine (placeholder)
# ──────────────────────────────────────────────

class ModelEngine(OutlookEngine):
    """Stub until a trained model is available. Always "pending"."""

    name = "ModelEngine"
    version = "1.0.0"

    def generate_outlook(
        self,
        symbol: str,
        quote: Quote,
        recommendations: Optional[AnalystRecommendation] = None,
        price_target: Optional[PriceTarget] = None,
    ) -> OutlookPrediction:
        return self._prediction(
            symbol,
            OutlookSummary.PENDING,
            BASE_CONFIDENCE,
            ["ML model integration in development"],
        )


# ──────────────────────────────────────────────
# Blended Engine
# ──────────────────────────────────────────────

BLEND_FACTOR = 0.8


class BlendedEngine(OutlookEngine):
    """Analyst outlook discounted for the (future) model share."""

    name = "BlendedEngine"
    version = "1.0.0"

    def __init__(self, analyst: Optional[AnalystEngine] = None):
        self._analyst = analyst or AnalystEngine()

    def generate_outlook(
        self,
        symbol: str,
        quote: Quote,
        recommendations: Optional[AnalystRecommendation] = None,
        price_target: Optional[PriceTarget] = None,
    ) -> OutlookPrediction:
        base = self._analyst.generate_outlook(symbol, quote, recommendations, price_target)
        return self._prediction(
            symbol,
            base.summary,
            base.confidence * BLEND_FACTOR,
            [*base.rationale, "Blended with model predictions (coming soon)"],
        )


# ──────────────────────────────────────────────
# Registry
# ──────────────────────────────────────────────

OUTLOOK_ENGINES: dict[str, OutlookEngine] = {
    "analyst": AnalystEngine(),
    "model": ModelEngine(),
    "blended": BlendedEngine(),
}

DEFAULT_ENGINE = "analyst"


def get_outlook_engine(name: str) -> OutlookEngine:
    """Look up an engine by its registry key.

    Raises:
        UnknownEngineError: for names outside OUTLOOK_ENGINES.
    """
    try:
        return OUTLOOK_ENGINES[name]
    except KeyError:
        raise UnknownEngineError(name) from None

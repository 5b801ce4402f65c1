"""
Data Engine Tests

Chain construction from provider names, read-through caching per
capability, the analyst fan-out, and outlook wiring. Providers are stubs;
Redis is the in-memory fake.
"""

from __future__ import annotations

import asyncio

import pytest

from marketdash.config import Settings
from marketdash.data.sample_data import SampleDataClient
from marketdash.engines.data_engine import DataEngine, build_providers
from marketdash.exceptions import InvalidRequestError, ProviderNotConfiguredError, UnknownEngineError
from marketdash.models import AnalystData, Bar, CompanyProfile, OutlookSummary, SearchResult, Timeframe

from conftest import StubProvider, make_price_target, make_quote, make_recommendations

_ALL = (
    "get_quote",
    "get_historical_data",
    "search_symbols",
    "get_company_profile",
    "get_analyst_recommendations",
    "get_price_target",
)


def _settings(**overrides) -> Settings:
    fields = dict(
        alpaca_api_key="",
        alpaca_secret_key="",
        alpha_vantage_api_key="",
        finnhub_api_key="",
        demo_data_enabled=False,
    )
    fields.update(overrides)
    return Settings(**fields)


def _engine(cache, records=None, **providers):
    return DataEngine(
        cache,
        providers=providers,
        settings=_settings(),
        on_failure=(records.append if records is not None else lambda f: None),
    )


def _bars():
    return [
        Bar(timestamp=2, open=1, high=2, low=1, close=2, volume=10),
        Bar(timestamp=3, open=2, high=3, low=2, close=3, volume=10),
    ]


# ──────────────────────────────────────────────
# Chain Construction
# ──────────────────────────────────────────────

class TestChains:
    def _full(self, name):
        return StubProvider(name, **{cap: None for cap in _ALL})

    def test_priority_order(self, cache):
        names = ("alpaca", "alpha_vantage", "yahoo", "finnhub", "sample")
        engine = _engine(cache, **{n: self._full(n) for n in names})

        assert engine.chains["get_quote"].provider_names == ["alpaca", "alpha_vantage", "yahoo", "finnhub", "sample"]
        assert engine.chains["get_historical_data"].provider_names == ["alpaca", "alpha_vantage", "yahoo", "sample"]
        assert engine.chains["search_symbols"].provider_names == ["alpaca", "yahoo", "alpha_vantage", "sample"]
        assert engine.chains["get_company_profile"].provider_names == ["finnhub", "yahoo", "sample", "alpaca"]
        assert engine.chains["get_analyst_recommendations"].provider_names == ["finnhub", "sample"]
        assert engine.chains["get_price_target"].provider_names == ["finnhub", "sample"]

    def test_unsupported_capabilities_left_out(self, cache):
        engine = _engine(
            cache,
            alpaca=StubProvider("alpaca", get_quote=None),
            finnhub=StubProvider("finnhub", get_price_target=None),
        )
        assert engine.chains["get_quote"].provider_names == ["alpaca"]
        assert engine.chains["get_historical_data"].provider_names == []
        assert engine.chains["get_price_target"].provider_names == ["finnhub"]

    def test_build_providers(self):
        assert set(build_providers(_settings())) == {"alpaca", "alpha_vantage", "yahoo", "finnhub"}

        with_demo = build_providers(_settings(demo_data_enabled=True))
        assert isinstance(with_demo["sample"], SampleDataClient)

    def test_configured_providers(self, cache):
        engine = DataEngine(cache, settings=_settings(finnhub_api_key="fh"))
        assert engine.configured_providers == ["yahoo", "finnhub"]


# ──────────────────────────────────────────────
# Quotes & Charts
# ──────────────────────────────────────────────

class TestQuote:
    def test_second_call_served_from_cache(self, cache):
        alpaca = StubProvider("alpaca", get_quote=make_quote())
        engine = _engine(cache, alpaca=alpaca)

        async def _run():
            return await engine.get_quote("aapl"), await engine.get_quote("AAPL")

        first, second = asyncio.run(_run())

        assert alpaca.get_quote.await_count == 1
        assert first == second
        alpaca.get_quote.assert_awaited_once_with("AAPL")

    def test_falls_through_to_later_provider(self, cache):
        records = []
        alpaca = StubProvider("alpaca", get_quote=ProviderNotConfiguredError("alpaca"))
        alpha = StubProvider("alpha_vantage", get_quote=None)
        yahoo = StubProvider("yahoo", get_quote=make_quote(price=99.0))
        finnhub = StubProvider("finnhub", get_quote=make_quote(price=1.0))
        engine = _engine(cache, records, alpaca=alpaca, alpha_vantage=alpha, yahoo=yahoo, finnhub=finnhub)

        quote = asyncio.run(engine.get_quote("AAPL"))

        assert quote.price == 99.0
        assert finnhub.get_quote.await_count == 0
        assert [(r.provider, r.kind) for r in records] == [("alpaca", "not_configured"), ("alpha_vantage", "empty")]

    def test_not_found_is_none_and_not_cached(self, cache, fake_redis):
        alpaca = StubProvider("alpaca", get_quote=None)
        engine = _engine(cache, alpaca=alpaca)

        async def _run():
            return await engine.get_quote("ZZZZ"), await engine.get_quote("ZZZZ")

        assert asyncio.run(_run()) == (None, None)
        assert alpaca.get_quote.await_count == 2
        assert fake_redis.store == {}

    def test_invalid_symbol(self, cache):
        engine = _engine(cache)
        with pytest.raises(InvalidRequestError, match="Symbol parameter is required"):
            asyncio.run(engine.get_quote(""))

    def test_works_without_redis(self, offline_cache):
        alpaca = StubProvider("alpaca", get_quote=make_quote())
        engine = _engine(offline_cache, alpaca=alpaca)
        assert asyncio.run(engine.get_quote("AAPL")) == make_quote()


class TestChart:
    def test_default_timeframe_and_cache_key(self, cache, fake_redis):
        alpaca = StubProvider("alpaca", get_historical_data=_bars())
        engine = _engine(cache, alpaca=alpaca)

        bars = asyncio.run(engine.get_chart("msft"))

        assert bars == _bars()
        alpaca.get_historical_data.assert_awaited_once_with("MSFT", Timeframe.D1)
        assert "chart:MSFT:1D" in fake_redis.store
        assert fake_redis.expiry["chart:MSFT:1D"] == 60

    def test_cached_bars_decoded(self, cache):
        alpaca = StubProvider("alpaca", get_historical_data=_bars())
        engine = _engine(cache, alpaca=alpaca)

        async def _run():
            await engine.get_chart("MSFT", "6m")
            return await engine.get_chart("MSFT", "6M")

        bars = asyncio.run(_run())
        assert alpaca.get_historical_data.await_count == 1
        assert all(isinstance(b, Bar) for b in bars)
        assert bars == _bars()

    def test_invalid_timeframe(self, cache):
        engine = _engine(cache, alpaca=StubProvider("alpaca", get_historical_data=_bars()))
        with pytest.raises(InvalidRequestError):
            asyncio.run(engine.get_chart("MSFT", "2W"))


# ──────────────────────────────────────────────
# Search & Company
# ──────────────────────────────────────────────

class TestSearch:
    def test_query_normalized_in_key(self, cache, fake_redis):
        hits = [SearchResult(symbol="AAPL", name="Apple Inc.", match_score=1.0)]
        alpaca = StubProvider("alpaca", search_symbols=hits)
        engine = _engine(cache, alpaca=alpaca)

        results = asyncio.run(engine.search("  Apple "))

        assert results == hits
        alpaca.search_symbols.assert_awaited_once_with("Apple")
        assert "search:apple" in fake_redis.store

    def test_no_matches_is_empty_list(self, cache):
        engine = _engine(cache, alpaca=StubProvider("alpaca", search_symbols=[]))
        assert asyncio.run(engine.search("zzzz")) == []


class TestCompany:
    def test_placeholder_is_last_resort(self, cache):
        finnhub = StubProvider("finnhub", get_company_profile=ProviderNotConfiguredError("finnhub"))
        yahoo = StubProvider("yahoo", get_company_profile=None)
        alpaca = StubProvider("alpaca", get_company_profile=CompanyProfile.placeholder("XYZ"))
        engine = _engine(cache, finnhub=finnhub, yahoo=yahoo, alpaca=alpaca)

        profile = asyncio.run(engine.get_company("xyz"))

        assert profile.name == "XYZ Inc."
        assert yahoo.get_company_profile.await_count == 1

    def test_cached_profile_decoded(self, cache):
        profile = CompanyProfile(symbol="AAPL", name="Apple Inc.", sector="Technology")
        finnhub = StubProvider("finnhub", get_company_profile=profile)
        engine = _engine(cache, finnhub=finnhub)

        async def _run():
            await engine.get_company("AAPL")
            return await engine.get_company("AAPL")

        assert asyncio.run(_run()) == profile
        assert finnhub.get_company_profile.await_count == 1


# ──────────────────────────────────────────────
# Analyst
# ──────────────────────────────────────────────

class TestAnalyst:
    def test_bundle(self, cache):
        finnhub = StubProvider(
            "finnhub",
            get_analyst_recommendations=make_recommendations(),
            get_price_target=make_price_target(),
        )
        engine = _engine(cache, finnhub=finnhub)

        async def _run():
            return await engine.get_analyst("AAPL"), await engine.get_analyst("AAPL")

        first, second = asyncio.run(_run())

        assert first.recommendations.total == 40
        assert first.price_target.target_mean == 235.50
        assert first == second
        assert finnhub.get_analyst_recommendations.await_count == 1
        assert finnhub.get_price_target.await_count == 1

    def test_partial_bundle(self, cache):
        finnhub = StubProvider(
            "finnhub",
            get_analyst_recommendations=make_recommendations(),
            get_price_target=None,
        )
        data = asyncio.run(_engine(cache, finnhub=finnhub).get_analyst("AAPL"))
        assert data.price_target is None
        assert data.recommendations is not None

    def test_empty_bundle_not_cached(self, cache, fake_redis):
        finnhub = StubProvider("finnhub", get_analyst_recommendations=None, get_price_target=None)
        data = asyncio.run(_engine(cache, finnhub=finnhub).get_analyst("ZZZZ"))
        assert data == AnalystData()
        assert fake_redis.store == {}

    def test_unconfigured_raises(self, cache):
        unconfigured = ProviderNotConfiguredError("finnhub")
        finnhub = StubProvider("finnhub", get_analyst_recommendations=unconfigured, get_price_target=unconfigured)
        with pytest.raises(ProviderNotConfiguredError):
            asyncio.run(_engine(cache, finnhub=finnhub).get_analyst("AAPL"))

    def test_sample_fallback_when_demo_enabled(self, cache):
        unconfigured = ProviderNotConfiguredError("finnhub")
        finnhub = StubProvider("finnhub", get_analyst_recommendations=unconfigured, get_price_target=unconfigured)
        engine = _engine(cache, finnhub=finnhub, sample=SampleDataClient())

        data = asyncio.run(engine.get_analyst("TSLA"))
        assert data.recommendations.total == 43
        assert data.price_target.number_of_analysts == 22


# ──────────────────────────────────────────────
# Outlook
# ──────────────────────────────────────────────

class TestOutlook:
    def _providers(self, quote=None):
        return dict(
            alpaca=StubProvider("alpaca", get_quote=quote if quote is not None else make_quote()),
            finnhub=StubProvider(
                "finnhub",
                get_analyst_recommendations=make_recommendations(),
                get_price_target=make_price_target(),
            ),
        )

    def test_analyst_outlook(self, cache, fake_redis):
        engine = _engine(cache, **self._providers())

        outlook = asyncio.run(engine.get_outlook("aapl"))

        assert outlook.summary == OutlookSummary.BULLISH
        assert outlook.engine == "AnalystEngine"
        assert "75% of analysts recommend buying" in outlook.rationale
        assert "outlook:AAPL:analyst" in fake_redis.store
        assert fake_redis.expiry["outlook:AAPL:analyst"] == 1800

    def test_outlook_cached_per_engine(self, cache):
        providers = self._providers()
        engine = _engine(cache, **providers)

        async def _run():
            a = await engine.get_outlook("AAPL", "analyst")
            b = await engine.get_outlook("AAPL", "analyst")
            c = await engine.get_outlook("AAPL", "blended")
            return a, b, c

        a, b, c = asyncio.run(_run())
        assert a == b
        assert c.engine == "BlendedEngine"
        assert c.confidence == pytest.approx(a.confidence * 0.8)
        # Quote and analyst data were cached by the first outlook
        assert providers["alpaca"].get_quote.await_count == 1

    def test_unknown_engine_fails_before_fetching(self, cache):
        providers = self._providers()
        engine = _engine(cache, **providers)

        with pytest.raises(UnknownEngineError):
            asyncio.run(engine.get_outlook("AAPL", "tea_leaves"))
        assert providers["alpaca"].get_quote.await_count == 0

    def test_missing_quote_is_none(self, cache):
        providers = self._providers()
        providers["alpaca"] = StubProvider("alpaca", get_quote=None)
        engine = _engine(cache, **providers)
        assert asyncio.run(engine.get_outlook("ZZZZ")) is None

    def test_unconfigured_analyst_degrades(self, cache):
        unconfigured = ProviderNotConfiguredError("finnhub")
        engine = _engine(
            cache,
            alpaca=StubProvider("alpaca", get_quote=make_quote(change_percent=6.0)),
            finnhub=StubProvider("finnhub", get_analyst_recommendations=unconfigured, get_price_target=unconfigured),
        )

        outlook = asyncio.run(engine.get_outlook("AAPL"))

        assert outlook.summary == OutlookSummary.NEUTRAL
        assert outlook.rationale == ["Strong positive momentum with 6.0% daily gain"]

    def test_model_engine(self, cache):
        engine = _engine(cache, **self._providers())
        outlook = asyncio.run(engine.get_outlook("AAPL", "model"))
        assert outlook.summary == OutlookSummary.PENDING

"""
Route Tests

HTTP surface: status codes, the error envelope, camelCase payloads, and
request-ID propagation. A real DataEngine runs over stub providers and the
in-memory Redis fake.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from marketdash.config import Settings
from marketdash.engines.data_engine import DataEngine
from marketdash.exceptions import ProviderNotConfiguredError
from marketdash.main import create_app
from marketdash.models import Bar, CompanyProfile, SearchResult

from conftest import StubProvider, make_price_target, make_quote, make_recommendations

API = "/v1/api"


def _settings() -> Settings:
    return Settings(
        alpaca_api_key="",
        alpaca_secret_key="",
        alpha_vantage_api_key="",
        finnhub_api_key="fh-test",
        demo_data_enabled=False,
    )


@pytest.fixture
def providers():
    return {
        "alpaca": StubProvider(
            "alpaca",
            get_quote=make_quote(),
            get_historical_data=[
                Bar(timestamp=1_700_000_000_000, open=1.0, high=2.0, low=0.5, close=1.5, volume=100),
            ],
            search_symbols=[SearchResult(symbol="AAPL", name="Apple Inc.", match_score=1.0)],
        ),
        "finnhub": StubProvider(
            "finnhub",
            get_company_profile=CompanyProfile(symbol="AAPL", name="Apple Inc.", sector="Technology"),
            get_analyst_recommendations=make_recommendations(),
            get_price_target=make_price_target(),
        ),
    }


@pytest.fixture
def client(cache, providers):
    settings = _settings()
    engine = DataEngine(cache, providers=providers, settings=settings)
    return TestClient(create_app(settings=settings, engine=engine))


# ──────────────────────────────────────────────
# Health
# ──────────────────────────────────────────────

class TestHealthRoute:
    def test_ok_with_cache(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["version"] == "1.0.0"
        assert data["cache"]["available"] is True
        assert "latency_ms" in data["cache"]
        assert data["providers"] == ["alpaca", "finnhub"]
        assert data["demo_data"] is False

    def test_degraded_without_cache(self, offline_cache, providers):
        settings = _settings()
        engine = DataEngine(offline_cache, providers=providers, settings=settings)
        resp = TestClient(create_app(settings=settings, engine=engine)).get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"


# ──────────────────────────────────────────────
# Market Data
# ──────────────────────────────────────────────

class TestQuoteRoute:
    def test_camel_case_payload(self, client):
        resp = client.get(f"{API}/quote", params={"symbol": "aapl"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["symbol"] == "AAPL"
        assert data["changePercent"] == 1.54
        assert data["previousClose"] == 224.07
        assert "change_percent" not in data

    def test_missing_symbol(self, client):
        resp = client.get(f"{API}/quote")
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Symbol parameter is required"
        assert body["status_code"] == 400
        assert body["request_id"]

    def test_not_found(self, client, providers):
        providers["alpaca"].get_quote.return_value = None
        resp = client.get(f"{API}/quote", params={"symbol": "ZZZZ"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "Quote not found from any source"


class TestChartRoute:
    def test_bars(self, client, providers):
        resp = client.get(f"{API}/chart", params={"symbol": "AAPL", "timeframe": "1y"})
        assert resp.status_code == 200
        assert resp.json()[0]["close"] == 1.5
        assert providers["alpaca"].get_historical_data.await_args.args[1].value == "1Y"

    def test_invalid_timeframe(self, client):
        resp = client.get(f"{API}/chart", params={"symbol": "AAPL", "timeframe": "3Q"})
        assert resp.status_code == 400
        assert "Invalid timeframe" in resp.json()["error"]

    def test_no_bars(self, client, providers):
        providers["alpaca"].get_historical_data.return_value = []
        resp = client.get(f"{API}/chart", params={"symbol": "ZZZZ"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "Chart data not found from any source"


class TestSearchRoute:
    def test_results(self, client):
        resp = client.get(f"{API}/search", params={"q": "apple"})
        assert resp.status_code == 200
        hit, = resp.json()
        assert (hit["symbol"], hit["name"], hit["matchScore"]) == ("AAPL", "Apple Inc.", 1.0)
        assert hit["marketOpen"] == "09:30"

    def test_no_matches_is_empty_list(self, client, providers):
        providers["alpaca"].search_symbols.return_value = []
        resp = client.get(f"{API}/search", params={"q": "zzzz"})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_missing_query(self, client):
        resp = client.get(f"{API}/search")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Query parameter is required"


class TestCompanyRoute:
    def test_profile(self, client):
        resp = client.get(f"{API}/company", params={"symbol": "AAPL"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Apple Inc."

    def test_not_found(self, client, providers):
        providers["finnhub"].get_company_profile.return_value = None
        resp = client.get(f"{API}/company", params={"symbol": "ZZZZ"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "Company not found"


class TestAnalystRoute:
    def test_bundle(self, client):
        resp = client.get(f"{API}/analyst", params={"symbol": "AAPL"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["recommendations"]["strongBuy"] == 12
        assert data["priceTarget"]["targetMean"] == 235.50

    def test_not_configured(self, client, providers):
        unconfigured = ProviderNotConfiguredError("finnhub")
        providers["finnhub"].get_analyst_recommendations.side_effect = unconfigured
        providers["finnhub"].get_price_target.side_effect = unconfigured

        resp = client.get(f"{API}/analyst", params={"symbol": "AAPL"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "finnhub API credentials not configured"


class TestOutlookRoute:
    def test_default_engine(self, client):
        resp = client.get(f"{API}/outlook", params={"symbol": "AAPL"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["summary"] == "Bullish"
        assert data["engine"] == "AnalystEngine"
        assert data["timeframe"] == "30 days"

    def test_engine_parameter(self, client):
        resp = client.get(f"{API}/outlook", params={"symbol": "AAPL", "engine": "model"})
        assert resp.status_code == 200
        assert resp.json()["summary"] == "pending"

    def test_unknown_engine(self, client):
        resp = client.get(f"{API}/outlook", params={"symbol": "AAPL", "engine": "ouija"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid engine parameter: 'ouija'"

    def test_no_quote(self, client, providers):
        providers["alpaca"].get_quote.return_value = None
        resp = client.get(f"{API}/outlook", params={"symbol": "ZZZZ"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "Quote not found"


# ──────────────────────────────────────────────
# Middleware & Error Handling
# ──────────────────────────────────────────────

class TestRequestId:
    def test_minted_when_absent(self, client):
        resp = client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 32

    def test_echoed_and_used_in_errors(self, client):
        resp = client.get(f"{API}/quote", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
        assert resp.json()["request_id"] == "req-123"


class TestUnhandledErrors:
    def test_generic_500(self):
        engine = MagicMock()
        engine.get_quote = AsyncMock(side_effect=RuntimeError("boom"))
        engine.close = AsyncMock()
        client = TestClient(create_app(settings=_settings(), engine=engine), raise_server_exceptions=False)

        resp = client.get(f"{API}/quote", params={"symbol": "AAPL"})
        assert resp.status_code == 500
        assert resp.json()["error"] == "Internal server error"
        assert "boom" not in resp.text

    def test_unknown_route(self, client):
        resp = client.get(f"{API}/nope")
        assert resp.status_code == 404
        assert resp.json()["status_code"] == 404

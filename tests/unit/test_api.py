"""
Unit Tests for the REST API

These tests drive the FastAPI app with TestClient against a private registry
of in-memory exchanges (the lifespan is not entered, so no config file is
loaded and no routine is started).

Run with:
    pytest tests/unit/test_api.py -v
"""

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

import app.main as main
from core.assets import AssetType
from core.currency.pair import new_pair
from storage.stats import PriceStats


@pytest.fixture
def client(monkeypatch, registry, make_exchange):
    manager = registry(
        make_exchange("a", "BTC-USD,ETH-USD", enabled="BTC-USD", price=100.0),
        make_exchange("b", "BTC_USD,LTC_USD", delimiter="_", price=110.0),
        make_exchange("c", "BTC-USD", exchange_enabled=False),
    )
    monkeypatch.setattr(main, "manager", manager)
    return TestClient(main.app)


# ============================================
# System Endpoints
# ============================================

class TestSystemEndpoints:
    """Test root / health / exchange listing"""

    def test_root_lists_exchanges(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["exchanges"] == ["a", "b", "c"]

    def test_health_enabled_only(self, client):
        body = client.get("/health").json()
        assert body == {"status": "healthy", "exchanges": {"a": True, "b": True}}

    def test_exchanges_listing(self, client):
        exchanges = client.get("/exchanges").json()["exchanges"]
        assert [(e["name"], e["enabled"]) for e in exchanges] == [("a", True), ("b", True), ("c", False)]
        assert exchanges[0]["asset_types"] == ["Spot"]

    def test_config_dump(self, client):
        configs = client.get("/config/all").json()
        assert configs[1]["pairs"]["Spot"]["available"] == "BTC_USD,LTC_USD"


# ============================================
# Market Data Endpoints
# ============================================

class TestMarketDataEndpoints:
    """Test per-exchange ticker / order book / pairs"""

    def test_ticker(self, client):
        response = client.get("/a/ticker", params={"pair": "BTC-USD"})
        assert response.status_code == 200
        body = response.json()
        assert body["exchange"] == "a"
        assert body["last"] == 100.0
        assert body["pair"]["first"] == "BTC"

    def test_unknown_exchange_is_404(self, client):
        assert client.get("/nope/ticker", params={"pair": "BTC-USD"}).status_code == 404
        assert client.get("/nope/pairs").status_code == 404

    def test_bad_pair_is_400(self, client):
        assert client.get("/a/ticker", params={"pair": "BT"}).status_code == 400

    def test_bad_pair_orderbook_is_400(self, client):
        response = client.get("/a/orderbook", params={"pair": "BT"})
        assert response.status_code == 400
        assert "Failed to fetch" not in response.json()["detail"]

    def test_unsupported_asset_type_is_400(self, client):
        response = client.get("/a/ticker", params={"pair": "BTC-USD", "asset_type": "Futures"})
        assert response.status_code == 400

    def test_exchange_failure_is_500(self, client, monkeypatch):
        async def boom(pair, asset_type=AssetType.SPOT):
            raise RuntimeError("exchange down")

        monkeypatch.setattr(main.manager.get_exchange("b"), "update_ticker", boom)
        assert client.get("/b/ticker", params={"pair": "BTC-USD"}).status_code == 500

    def test_orderbook(self, client):
        body = client.get("/a/orderbook", params={"pair": "BTC-USD"}).json()
        assert body["bids"][0] == {"price": 99.0, "amount": 2.0}

    def test_exchange_pairs(self, client):
        assert client.get("/b/pairs").json() == {"exchange": "b", "pairs": ["BTC-USD", "LTC-USD"]}
        assert client.get("/a/pairs", params={"enabled": False}).json()["pairs"] == ["BTC-USD", "ETH-USD"]


# ============================================
# Aggregated Endpoints
# ============================================

class TestAggregatedEndpoints:
    """Test cross-exchange endpoints"""

    def test_latest_tickers(self, client):
        data = client.get("/exchanges/enabled/latest/all").json()["data"]
        assert [d["exchange"] for d in data] == ["a", "b"]
        assert [t["last"] for t in data[1]["exchange_values"]] == [110.0, 110.0]

    def test_latest_orderbooks(self, client):
        data = client.get("/exchanges/orderbook/latest/all").json()["data"]
        assert len(data[0]["exchange_values"]) == 1

    def test_accounts_empty_when_unsupported(self, client):
        assert client.get("/exchanges/enabled/accounts/all").json() == {"data": [], "totals": {}}

    def test_portfolio(self, client):
        body = client.get("/portfolio/all").json()
        assert set(body) == {"addresses", "summary"}

    def test_available_pairs(self, client):
        assert client.get("/pairs/available").json()["pairs"] == ["BTC-USD", "ETH-USD", "LTC-USD"]

    def test_relatable_pairs(self, client):
        response = client.get("/pairs/relatable", params={"pair": "BTC-USD", "include_original": False})
        assert response.json()["pairs"] == ["XBT-USD", "XBT-USDT", "BTC-USDT", "USDT-BTC", "USDT-XBT", "USD-XBT"]

    def test_relatable_bad_pair(self, client):
        assert client.get("/pairs/relatable", params={"pair": "X"}).status_code == 400

    def test_pairs_by_exchange(self, client):
        body = client.get("/pairs/by-exchange", params={"pairs": "USD-BTC,LTC-USD"}).json()
        assert body == {"a": ["USD-BTC"], "b": ["USD-BTC", "LTC-USD"]}

    def test_price_lookup(self, client, monkeypatch):
        stats = PriceStats()
        stats.add("a", new_pair("BTC", "USD"), AssetType.SPOT, 100.0, 1.0)
        stats.add("b", new_pair("BTC", "USD"), AssetType.SPOT, 110.0, 1.0)
        monkeypatch.setattr("services.aggregation.price_stats", stats)

        assert client.get("/prices/highest", params={"pair": "BTC-USD"}).json()["exchange"] == "b"
        assert client.get("/prices/lowest", params={"pair": "BTC-USD"}).json()["exchange"] == "a"
        assert client.get("/prices/lowest", params={"pair": "ETH-USD"}).status_code == 404


# ============================================
# WebSocket Endpoint
# ============================================

class TestWebsocketEndpoint:
    """Test /ws topic selection"""

    def test_no_valid_topics_closes_with_policy_violation(self, client):
        with client.websocket_connect("/ws?topics=nope,,other") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 1008

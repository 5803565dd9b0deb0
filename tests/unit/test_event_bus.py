"""
Unit Tests for the Event Bus

These tests verify that:
- Subscribers receive events published on their topic only
- A full subscriber queue drops events instead of blocking publishers
- Unsubscribing drains and detaches the queue
- relay_websocket_event wraps payloads in the broadcast envelope and never raises

Run with:
    pytest tests/unit/test_event_bus.py -v
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.assets import AssetType
from core.currency.pair import new_pair
from core.schemas import Ticker
from services.event_bus import ORDERBOOK_UPDATE, TICKER_UPDATE, EventBus, relay_websocket_event


class TestEventBus:
    """Test topic-based pub/sub"""

    @pytest.mark.asyncio
    async def test_publish_reaches_topic_subscribers(self):
        bus = EventBus()
        tickers_a = await bus.subscribe(TICKER_UPDATE)
        tickers_b = await bus.subscribe(TICKER_UPDATE)
        books = await bus.subscribe(ORDERBOOK_UPDATE)

        await bus.publish(TICKER_UPDATE, {"n": 1})

        assert tickers_a.get_nowait() == {"n": 1}
        assert tickers_b.get_nowait() == {"n": 1}
        assert books.empty()
        assert bus.subscriber_count(TICKER_UPDATE) == 2

    @pytest.mark.asyncio
    async def test_publish_without_subscribers_is_noop(self):
        await EventBus().publish(TICKER_UPDATE, {"n": 1})

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        bus = EventBus(max_queue_size=1)
        queue = await bus.subscribe(TICKER_UPDATE)

        await bus.publish(TICKER_UPDATE, {"n": 1})
        await asyncio.wait_for(bus.publish(TICKER_UPDATE, {"n": 2}), timeout=1)

        assert queue.qsize() == 1
        assert queue.get_nowait() == {"n": 1}

    @pytest.mark.asyncio
    async def test_unsubscribe_detaches_and_drains(self):
        bus = EventBus()
        queue = await bus.subscribe(TICKER_UPDATE)
        await bus.publish(TICKER_UPDATE, {"n": 1})

        await bus.unsubscribe(TICKER_UPDATE, queue)
        await bus.publish(TICKER_UPDATE, {"n": 2})

        assert queue.empty()
        assert bus.subscriber_count(TICKER_UPDATE) == 0


class TestRelayWebsocketEvent:
    """Test the broadcast envelope"""

    @pytest.mark.asyncio
    async def test_model_payload_is_wrapped(self):
        bus = EventBus()
        queue = await bus.subscribe(TICKER_UPDATE)
        ticker = Ticker(exchange="binance", pair=new_pair("BTC", "USDT"), last=50000.0)

        assert await relay_websocket_event(TICKER_UPDATE, "binance", AssetType.SPOT, ticker, event_bus=bus)

        event = queue.get_nowait()
        assert event["event"] == TICKER_UPDATE
        assert event["exchange"] == "binance"
        assert event["asset_type"] == "Spot"
        assert event["data"]["last"] == 50000.0
        assert event["data"]["pair"]["first"] == "BTC"

    @pytest.mark.asyncio
    async def test_plain_payload_passed_through(self):
        bus = EventBus()
        queue = await bus.subscribe(ORDERBOOK_UPDATE)

        await relay_websocket_event(ORDERBOOK_UPDATE, "binance", "Spot", {"bids": []}, event_bus=bus)

        assert queue.get_nowait()["data"] == {"bids": []}

    @pytest.mark.asyncio
    async def test_failure_returns_false(self):
        broken = EventBus()
        broken.publish = AsyncMock(side_effect=RuntimeError("bus down"))

        assert await relay_websocket_event(TICKER_UPDATE, "binance", AssetType.SPOT, {}, event_bus=broken) is False

    @pytest.mark.asyncio
    async def test_invalid_asset_type_returns_false(self):
        assert await relay_websocket_event(TICKER_UPDATE, "binance", "Options", {}, event_bus=EventBus()) is False

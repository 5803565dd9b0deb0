"""
Simple Async Pub/Sub Event Bus

Lightweight publish/subscribe utility built on asyncio queues. The polling
routines publish ticker and order book updates; every /ws client subscribes
and consumes them independently.

Topics:
    - "ticker_update": Ticker refreshed by the ticker updater
    - "orderbook_update": Order book refreshed by the order book updater

Usage:
    from services.event_bus import bus, relay_websocket_event

    await relay_websocket_event("ticker_update", "binance", AssetType.SPOT, ticker)

    queue = await bus.subscribe("ticker_update")
    event = await queue.get()
"""

import asyncio
from collections import defaultdict
from typing import Any, DefaultDict, Dict, Optional, Set

from pydantic import BaseModel

from core.assets import AssetType
from core.logging import get_logger
from core.schemas import WebsocketEvent


TICKER_UPDATE = "ticker_update"
ORDERBOOK_UPDATE = "orderbook_update"
TOPICS = (TICKER_UPDATE, ORDERBOOK_UPDATE)

logger = get_logger(__name__)


class EventBus:
    """
    Async event bus with topic-based pub/sub.

    - Each subscriber gets its own asyncio.Queue and will not block publishers.
    - Unsubscribing is important to avoid queue leaks when clients disconnect.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._topics: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._max_queue_size = max_queue_size
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    async def subscribe(self, topic: str) -> asyncio.Queue:
        """
        Subscribe to a topic. Returns an asyncio.Queue for receiving events.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        async with self._lock:
            self._topics[topic].add(queue)
        self._logger.debug(f"Subscriber added to topic '{topic}'. total={len(self._topics[topic])}")
        return queue

    async def unsubscribe(self, topic: str, queue: asyncio.Queue) -> None:
        async with self._lock:
            if queue in self._topics.get(topic, set()):
                self._topics[topic].remove(queue)
                while not queue.empty():
                    queue.get_nowait()
        self._logger.debug(f"Subscriber removed from topic '{topic}'. total={len(self._topics[topic])}")

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, set()))

    async def publish(self, topic: str, event: Dict[str, Any]) -> None:
        """
        Publish an event to a topic. Drops events if subscriber queue is full.
        """
        subscribers = list(self._topics.get(topic, set()))
        if not subscribers:
            return

        for q in subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                self._logger.warning(f"Dropping event for topic '{topic}' due to full queue")


# Singleton event bus for the application
bus = EventBus()


async def relay_websocket_event(
    event: str,
    exchange: str,
    asset_type: AssetType,
    data: Any,
    event_bus: Optional[EventBus] = None
) -> bool:
    """
    Wrap a payload in a WebsocketEvent and publish it under the event name.

    Failures are logged and never raised, so a broken relay cannot stop a
    polling iteration.

    Returns:
        bool: True if the event was published
    """
    target = event_bus or bus
    try:
        payload = data.model_dump(mode="json") if isinstance(data, BaseModel) else data
        envelope = WebsocketEvent(
            event=event,
            exchange=exchange,
            asset_type=AssetType(asset_type).value,
            data=payload,
        )
        await target.publish(event, envelope.model_dump(mode="json"))
        return True
    except Exception as e:
        logger.error(f"Failed to relay {event} for {exchange}: {e}")
        return False

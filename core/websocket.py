"""
Exchange Websocket Capability

Base class for an exchange's streaming feed. Subclasses implement the
transport (_connect / _disconnect) and push normalized payloads into
`data_handler`; the websocket routine consumes that queue.

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED -> DISCONNECTED              (error or shutdown)
    DISCONNECTED -> RECONNECTING -> CONNECTED | DISCONNECTED

Every transition into CONNECTED or DISCONNECTED is also published on
`status_changes` so a supervisor can react to feed availability.

Payloads placed on `data_handler`:
    str                       informational message (WEBSOCKET_NOT_ENABLED)
    Exception                 feed error; "close 1006" means abnormal closure
    TradeData / TickerData / KlineData / WebsocketOrderbookUpdate
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from core.logging import get_logger


WEBSOCKET_NOT_ENABLED = "exchange_websocket_not_enabled"
ABNORMAL_CLOSURE_SIGNATURE = "close 1006"


class WebsocketState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class WebsocketAbnormalClosure(ConnectionError):
    """Feed dropped without a close frame (RFC 6455 code 1006)."""

    def __init__(self, exchange: str, detail: str = "abnormal closure"):
        super().__init__(f"{exchange} websocket: {ABNORMAL_CLOSURE_SIGNATURE} ({detail})")


class ExchangeWebsocket(ABC):
    """
    Streaming feed owned by one exchange.

    Attributes:
        exchange_name: Owning exchange
        state: Current WebsocketState
        data_handler: Inbound payload queue consumed by the websocket routine
        status_changes: CONNECTED / DISCONNECTED transitions
    """

    def __init__(self, exchange_name: str, max_queue_size: int = 1000) -> None:
        self.exchange_name = exchange_name
        self.state = WebsocketState.DISCONNECTED
        self.data_handler: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self.status_changes: asyncio.Queue = asyncio.Queue()
        self._connect_lock = asyncio.Lock()
        self.logger = get_logger(__name__)

    def get_name(self) -> str:
        return self.exchange_name

    def is_connected(self) -> bool:
        return self.state == WebsocketState.CONNECTED

    # ============================================
    # Lifecycle
    # ============================================

    async def connect(self) -> None:
        """
        Open the feed.

        Raises:
            Exception: Whatever the transport raised; state returns to DISCONNECTED
        """
        async with self._connect_lock:
            if self.state == WebsocketState.CONNECTED:
                return
            if self.state != WebsocketState.RECONNECTING:
                self._set_state(WebsocketState.CONNECTING)
            try:
                await self._connect()
            except Exception:
                self._set_state(WebsocketState.DISCONNECTED)
                raise
            self._set_state(WebsocketState.CONNECTED)

    async def shutdown(self) -> None:
        """
        Close the feed. Also releases transport resources after the feed
        dropped on its own, so _disconnect must tolerate repeated calls.
        """
        await self._disconnect()
        self._set_state(WebsocketState.DISCONNECTED)

    def mark_reconnecting(self) -> None:
        self._set_state(WebsocketState.RECONNECTING)

    def mark_dropped(self) -> None:
        """Transport lost the connection on its own (no shutdown call)."""
        if self.state != WebsocketState.DISCONNECTED:
            self._set_state(WebsocketState.DISCONNECTED)

    # ============================================
    # Payload Emission
    # ============================================

    def emit(self, payload: Any) -> None:
        """Queue a payload for the data handler; drops it if the queue is full."""
        try:
            self.data_handler.put_nowait(payload)
        except asyncio.QueueFull:
            self.logger.warning(f"{self.exchange_name} websocket data queue full, dropping {type(payload).__name__}")

    def _set_state(self, state: WebsocketState) -> None:
        previous = self.state
        self.state = state
        if state != previous and state in (WebsocketState.CONNECTED, WebsocketState.DISCONNECTED):
            self.status_changes.put_nowait(state)

    # ============================================
    # Transport (implemented per exchange)
    # ============================================

    @abstractmethod
    async def _connect(self) -> None:
        """Open the transport and start reading into data_handler."""
        ...

    @abstractmethod
    async def _disconnect(self) -> None:
        """Close the transport and stop reading."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(exchange='{self.exchange_name}', state='{self.state.value}')>"

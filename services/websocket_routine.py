"""
Websocket Routine

Supervises the streaming feeds of every websocket-capable exchange:
- Connects each enabled feed at startup
- Consumes the feed's data queue and dispatches payloads by type
- Reconnects feeds that drop with an abnormal closure ("close 1006")
- Logs feed availability changes (streaming vs. REST fallback)
- Shuts every feed and task down within a bounded time

Usage:
    routine = WebsocketRoutine(get_manager())
    await routine.start()
    ...
    await routine.shutdown()
"""

import asyncio
from typing import Any, Coroutine, Dict, Optional, Set

from core.config import settings
from core.errors import WebsocketShutdownError
from core.exchange_interface import ExchangeInterface
from core.exchange_manager import ExchangeManager, get_manager
from core.logging import get_logger, log_websocket_event
from core.schemas import KlineData, TickerData, TradeData, WebsocketOrderbookUpdate
from core.websocket import ABNORMAL_CLOSURE_SIGNATURE, WEBSOCKET_NOT_ENABLED, ExchangeWebsocket, WebsocketState


class WebsocketRoutine:
    """
    Websocket supervisor for all registered exchanges.

    Attributes:
        feeds: Exchange name -> (exchange, feed) for every started feed
        reconnects: Number of reconnect attempts spawned so far
    """

    def __init__(
        self,
        manager: Optional[ExchangeManager] = None,
        reconnect_interval: Optional[float] = None,
        shutdown_timeout: Optional[float] = None,
        verbose: Optional[bool] = None,
    ) -> None:
        self.manager = manager if manager is not None else get_manager()
        self.reconnect_interval = (
            settings.ws_reconnect_interval_seconds if reconnect_interval is None else reconnect_interval
        )
        self.shutdown_timeout = (
            settings.ws_shutdown_timeout_seconds if shutdown_timeout is None else shutdown_timeout
        )
        self.verbose = settings.verbose if verbose is None else verbose
        self.feeds: Dict[str, tuple] = {}
        self.reconnects = 0
        self._shutdown = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ============================================
    # Startup
    # ============================================

    async def start(self) -> None:
        """Connect every enabled feed. A feed that fails to connect is logged and skipped."""
        self._logger.debug("Connecting exchange websocket services...")
        await asyncio.gather(*(self._start_feed(exchange) for exchange in self.manager.snapshot()))

    async def _start_feed(self, exchange: ExchangeInterface) -> None:
        name = exchange.get_name()
        if not exchange.supports_websocket():
            if self.verbose:
                self._logger.debug(f"{name} does not support websockets, REST only.")
            return
        if not exchange.is_websocket_enabled():
            if self.verbose:
                self._logger.debug(f"{name} websocket support is disabled.")
            return

        ws = exchange.get_websocket()
        self.feeds[name] = (exchange, ws)
        self._spawn(self._data_handler(exchange, ws), name=f"{name}_ws_data_handler")
        try:
            await ws.connect()
        except Exception as e:
            log_websocket_event(name, "error", f"connection failed: {e}")

    # ============================================
    # Payload Dispatch
    # ============================================

    async def _next_or_shutdown(self, queue: asyncio.Queue) -> Optional[Any]:
        """Wait for the next queued item. Returns None once shutdown is signalled."""
        getter = asyncio.ensure_future(queue.get())
        stopper = asyncio.ensure_future(self._shutdown.wait())
        try:
            await asyncio.wait({getter, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not getter.done():
                getter.cancel()
        if getter.done() and not getter.cancelled():
            return getter.result()
        return None

    async def _data_handler(self, exchange: ExchangeInterface, ws: ExchangeWebsocket) -> None:
        self._spawn(self._stream_diversion(ws), name=f"{ws.get_name()}_ws_status")
        while not self._shutdown.is_set():
            data = await self._next_or_shutdown(ws.data_handler)
            if data is None:
                continue
            self.dispatch(exchange, ws, data)

    def dispatch(self, exchange: ExchangeInterface, ws: ExchangeWebsocket, data: Any) -> None:
        name = ws.get_name()
        if isinstance(data, str):
            if data == WEBSOCKET_NOT_ENABLED:
                if self.verbose:
                    self._logger.warning(f"{name} websocket is not enabled")
            else:
                self._logger.info(data)
        elif isinstance(data, BaseException):
            if ABNORMAL_CLOSURE_SIGNATURE in str(data):
                log_websocket_event(name, "abnormal closure", "reconnecting")
                self.reconnects += 1
                self._spawn(self._reconnect(ws), name=f"{name}_ws_reconnect")
            else:
                self._logger.error(f"{name} websocket error: {data}")
        elif isinstance(data, TradeData):
            pass
        elif isinstance(data, TickerData):
            exchange.ticker_cache.put(name, data.pair, data.asset_type, data.to_ticker())
        elif isinstance(data, KlineData):
            if self.verbose:
                self._logger.info(
                    f"{name} websocket {data.pair} {data.asset_type} kline updated "
                    f"open {data.open_price} close {data.close_price} volume {data.volume}"
                )
        elif isinstance(data, WebsocketOrderbookUpdate):
            if self.verbose:
                self._logger.debug(f"{name} websocket {data.pair} {data.asset_type} orderbook updated")
        else:
            if self.verbose:
                self._logger.warning(f"{name} websocket unknown type: {data!r}")

    async def _stream_diversion(self, ws: ExchangeWebsocket) -> None:
        """Log feed availability changes until shutdown."""
        while not self._shutdown.is_set():
            state = await self._next_or_shutdown(ws.status_changes)
            if state is None or not self.verbose:
                continue
            if state == WebsocketState.CONNECTED:
                self._logger.debug(f"{ws.get_name()} websocket is connected, streaming data")
            else:
                self._logger.debug(f"{ws.get_name()} websocket disconnected, switching to REST functionality")

    # ============================================
    # Reconnection
    # ============================================

    async def _reconnect(self, ws: ExchangeWebsocket) -> None:
        """Tear the feed down, then retry connect() every reconnect_interval until it succeeds."""
        name = ws.get_name()
        if self.verbose:
            self._logger.debug(f"{name} websocket reconnection process started...")
        try:
            await ws.shutdown()
        except Exception as e:
            self._logger.error(f"{name} websocket shutdown before reconnect failed: {e}")
            return

        while not self._shutdown.is_set():
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self.reconnect_interval)
                return
            except asyncio.TimeoutError:
                pass

            ws.mark_reconnecting()
            try:
                await ws.connect()
            except Exception as e:
                self._logger.debug(f"{name} websocket reconnect attempt failed: {e}")
                continue
            log_websocket_event(name, "reconnected")
            return

    # ============================================
    # Shutdown
    # ============================================

    async def shutdown(self) -> None:
        """
        Close every feed and wait for the supervisor tasks to finish.

        Raises:
            WebsocketShutdownError: If tasks are still running after shutdown_timeout
        """
        self._logger.debug("Websocket routines shutting down...")
        for name, (_, ws) in self.feeds.items():
            try:
                await ws.shutdown()
            except Exception as e:
                self._logger.error(f"{name} websocket shutdown error: {e}")

        self._shutdown.set()

        pending = set(self._tasks)
        if pending:
            _, pending = await asyncio.wait(pending, timeout=self.shutdown_timeout)
        if pending:
            for task in pending:
                task.cancel()
            raise WebsocketShutdownError(
                f"websocket routines failed to shut down within {self.shutdown_timeout}s "
                f"({len(pending)} task(s) still running)"
            )
        self._logger.debug("Websocket routines shutdown complete.")

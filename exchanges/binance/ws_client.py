"""
Binance WebSocket Feed

Streams Binance Spot market data over one combined-stream connection and
pushes normalized payloads into the ExchangeWebsocket data queue. It handles:
- Combined stream URL construction for every enabled pair
- Message parsing and normalization to our schemas
- Abnormal closure detection (reported as "close 1006" for the supervisor)
- Graceful shutdown

Supported Streams:
    - 24h Ticker: {symbol}@ticker     -> TickerData
    - Trades: {symbol}@trade          -> TradeData
    - Kline: {symbol}@kline_{interval} -> KlineData
    - Diff Depth: {symbol}@depth      -> WebsocketOrderbookUpdate

WebSocket Documentation:
    https://binance-docs.github.io/apidocs/spot/en/#websocket-market-streams

Usage:
    feed = BinanceWebsocket(pairs=[new_pair("BTC", "USDT")], streams=["ticker"])
    await feed.connect()
    payload = await feed.data_handler.get()
"""

import aiohttp
import asyncio
import json
from typing import Any, Dict, Iterable, List, Optional

from core.currency.pair import CurrencyPair
from core.schemas import KlineData, OrderbookItem, TickerData, TradeData, WebsocketOrderbookUpdate
from core.utils.time import to_utc_datetime
from core.websocket import WEBSOCKET_NOT_ENABLED, ExchangeWebsocket, WebsocketAbnormalClosure


class BinanceWebsocket(ExchangeWebsocket):
    """
    Binance Spot combined-stream feed.

    Attributes:
        BASE_URL: Binance combined stream endpoint
        streams: Stream suffixes subscribed for every pair (e.g. "ticker")
        symbols: Exchange symbol (lowercase) -> normalized pair

    Notes:
        - Symbols are lowercased in stream names (Binance requirement)
        - Reconnection is driven by the websocket routine, not this class
    """

    BASE_URL = "wss://stream.binance.com:9443/stream"

    def __init__(
        self,
        pairs: Iterable[CurrencyPair],
        streams: Optional[List[str]] = None,
        enabled: bool = True,
        exchange_name: str = "binance"
    ):
        super().__init__(exchange_name)
        self.enabled = enabled
        self.streams = streams or ["ticker"]
        self.symbols: Dict[str, CurrencyPair] = {p.display("", uppercase=False): p for p in pairs}

        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self._closing = False

    def stream_url(self) -> str:
        """
        Example:
            >>> feed.stream_url()
            'wss://stream.binance.com:9443/stream?streams=btcusdt@ticker/ethusdt@ticker'
        """
        names = [f"{symbol}@{stream}" for symbol in self.symbols for stream in self.streams]
        return f"{self.BASE_URL}?streams={'/'.join(names)}"

    # ============================================
    # Transport
    # ============================================

    async def _connect(self) -> None:
        if not self.enabled:
            self.emit(WEBSOCKET_NOT_ENABLED)
            raise ConnectionError(f"{self.exchange_name} websocket is not enabled")
        if not self.symbols:
            raise ConnectionError(f"{self.exchange_name} websocket has no pairs to subscribe")

        self._closing = False
        self.session = aiohttp.ClientSession()
        url = self.stream_url()
        self.logger.info(f"Connecting to {url}")
        try:
            self.ws = await self.session.ws_connect(
                url,
                heartbeat=30,
                timeout=aiohttp.ClientTimeout(total=10)
            )
        except Exception:
            await self.session.close()
            self.session = None
            raise

        self._reader = asyncio.create_task(self._read_loop())
        self.logger.info(f"✓ Connected to {self.exchange_name} stream ({len(self.symbols)} symbols)")

    async def _disconnect(self) -> None:
        self._closing = True
        if self.ws and not self.ws.closed:
            await self.ws.close()
        if self._reader and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        if self.session and not self.session.closed:
            await self.session.close()
        self._reader = None
        self.ws = None
        self.session = None

    async def _read_loop(self) -> None:
        """Read frames until the socket closes; report unexpected closure."""
        try:
            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(msg.data)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    self.logger.warning(f"WebSocket closed: {msg.data}")
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"WebSocket read error: {e}")

        if not self._closing:
            self.mark_dropped()
            self.emit(WebsocketAbnormalClosure(self.exchange_name))

    # ============================================
    # Message Normalization
    # ============================================

    def handle_message(self, raw: str) -> None:
        """Parse one combined-stream frame and emit the normalized payload."""
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as e:
            self.logger.error(f"Failed to parse JSON: {raw[:100]}... Error: {e}")
            return

        data = message.get("data", message)
        payload = self.normalize(data)
        if payload is not None:
            self.emit(payload)

    def normalize(self, data: Dict[str, Any]) -> Any:
        """
        Convert a Binance event into a feed payload.

        Returns:
            TickerData / TradeData / KlineData / WebsocketOrderbookUpdate, or
            None for events on unknown symbols. Unknown event types are
            returned as the raw dict so the supervisor can report them.
        """
        pair = self.symbols.get(str(data.get("s", "")).lower())
        if pair is None:
            self.logger.debug(f"Ignoring event for unsubscribed symbol: {data.get('s')}")
            return None

        event = data.get("e")
        common = {"exchange": self.exchange_name, "pair": pair}
        if data.get("E"):
            common["last_updated"] = to_utc_datetime(data["E"])

        if event == "24hrTicker":
            return TickerData(
                **common,
                close_price=float(data.get("c", 0)),
                open_price=float(data.get("o", 0)),
                high_price=float(data.get("h", 0)),
                low_price=float(data.get("l", 0)),
                quantity=float(data.get("v", 0)),
            )

        if event == "trade":
            return TradeData(
                **common,
                price=float(data.get("p", 0)),
                amount=float(data.get("q", 0)),
                # buyer is maker -> the aggressor sold
                side="SELL" if data.get("m") else "BUY",
            )

        if event == "kline":
            k = data.get("k", {})
            return KlineData(
                **common,
                interval=k.get("i", ""),
                open_price=float(k.get("o", 0)),
                close_price=float(k.get("c", 0)),
                high_price=float(k.get("h", 0)),
                low_price=float(k.get("l", 0)),
                volume=float(k.get("v", 0)),
            )

        if event == "depthUpdate":
            return WebsocketOrderbookUpdate(
                **common,
                bids=[OrderbookItem(price=float(p), amount=float(q)) for p, q in data.get("b", [])],
                asks=[OrderbookItem(price=float(p), amount=float(q)) for p, q in data.get("a", [])],
            )

        return data

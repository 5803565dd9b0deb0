"""
Market Data Polling Routines

Background services that periodically refresh tickers and order books for
every enabled pair on every enabled REST exchange.

Each iteration:
    1. Take a snapshot of the exchange registry
    2. Poll every exchange concurrently (one task per exchange), joined with
       asyncio.gather(return_exceptions=True): a slow or failing exchange
       delays the iteration but never aborts its siblings
    3. For each successful fetch: store in the cache, log a summary, record
       price stats (tickers) and relay the update to websocket subscribers
    4. Sleep settings.poll_interval_seconds

Usage:
    updater = TickerUpdater(get_manager())
    await updater.start()
    ...
    await updater.stop()
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from core.assets import AssetType
from core.config import settings
from core.currency.codes import is_fiat_currency
from core.currency.pair import CurrencyPair
from core.exchange_interface import ExchangeInterface
from core.exchange_manager import ExchangeManager, get_manager
from core.logging import get_logger
from core.schemas import Orderbook, Ticker
from services.aggregation import format_currency
from services.event_bus import ORDERBOOK_UPDATE, TICKER_UPDATE, EventBus, bus, relay_websocket_event
from storage.stats import PriceStats, price_stats


CURRENCY_SYMBOLS = {
    "USD": "$", "AUD": "$", "CAD": "$", "NZD": "$", "HKD": "$", "SGD": "$",
    "EUR": "€", "GBP": "£", "JPY": "¥", "CNY": "¥", "KRW": "₩", "RUB": "₽",
    "INR": "₹", "TRY": "₺", "BRL": "R$", "ZAR": "R", "CHF": "Fr",
}


def format_price(price: float, quote: str) -> str:
    """
    Render a price in its quote currency.

    Prices quoted in settings.fiat_display_currency get its symbol.

    Example:
        >>> format_price(50000.0, "USD")
        '$50000.00000000'
        >>> format_price(42000.5, "EUR")
        '€42000.50 EUR'
        >>> format_price(0.05, "BTC")
        '0.05000000'
    """
    quote = quote.upper()
    if quote == settings.fiat_display_currency.upper():
        return f"{CURRENCY_SYMBOLS.get(quote, '')}{price:.8f}"
    if is_fiat_currency(quote):
        return f"{CURRENCY_SYMBOLS.get(quote, '')}{price:.2f} {quote}"
    return f"{price:.8f}"


class MarketPoller(ABC):
    """
    Base polling loop shared by the ticker and order book updaters.

    Attributes:
        kind: "ticker" or "orderbook", used in logs and task names
        event: Event name relayed to websocket subscribers
    """

    kind: str = ""
    event: str = ""

    def __init__(
        self,
        manager: Optional[ExchangeManager] = None,
        interval: Optional[float] = None,
        event_bus: Optional[EventBus] = None,
        relay_enabled: Optional[bool] = None,
    ) -> None:
        self.manager = manager if manager is not None else get_manager()
        self.interval = settings.poll_interval_seconds if interval is None else interval
        self.event_bus = event_bus or bus
        self.relay_enabled = settings.websocket_server_enabled if relay_enabled is None else relay_enabled
        self._logger = get_logger(__name__)
        self._running = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.iterations = 0

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._logger.debug(f"Starting {self.kind} updater routine.")
        self._task = asyncio.create_task(self._run(), name=f"{self.kind}_updater")

    async def stop(self) -> None:
        """Cancel the loop. Used at process shutdown only."""
        if not self._running.is_set():
            return
        self._logger.info(f"Stopping {self.kind} updater routine...")
        self._running.clear()
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    def is_running(self) -> bool:
        return self._running.is_set()

    async def _run(self) -> None:
        while self._running.is_set():
            await self.run_once()
            await asyncio.sleep(self.interval)

    # ============================================
    # Iteration
    # ============================================

    async def run_once(self) -> List[Any]:
        """
        Poll every exchange once and wait for all of them.

        Returns:
            List of per-exchange outcomes (None or the exception raised)
        """
        exchanges = self.manager.snapshot()
        results = await asyncio.gather(
            *(self._poll_exchange_safely(exchange) for exchange in exchanges),
            return_exceptions=True,
        )
        for exchange, result in zip(exchanges, results):
            if isinstance(result, BaseException):
                self._logger.error(f"{exchange.get_name()} {self.kind} polling failed: {result}")

        self.iterations += 1
        self._logger.debug(f"All enabled currency {self.kind}s fetched.")
        return list(results)

    async def _poll_exchange_safely(self, exchange: Optional[ExchangeInterface]) -> None:
        if exchange is None or not exchange.is_enabled() or not exchange.supports_rest():
            return
        await self.poll_exchange(exchange)

    async def poll_exchange(self, exchange: ExchangeInterface) -> None:
        """Process every enabled pair of every asset type, in configuration order."""
        for asset_type in exchange.get_asset_types():
            for index, pair in enumerate(exchange.get_enabled_pairs(asset_type)):
                try:
                    result = await self.fetch(exchange, pair, asset_type, index)
                except Exception as e:
                    self._logger.error(f"Failed to get {pair} {exchange.get_name()} {self.kind}. Error: {e}")
                    continue
                await self.process(exchange, pair, asset_type, result)

    async def process(self, exchange: ExchangeInterface, pair: CurrencyPair, asset_type: AssetType, result: Any) -> None:
        self.store(exchange, pair, asset_type, result)
        self.print_summary(exchange.get_name(), pair, asset_type, result)
        if self.relay_enabled:
            await relay_websocket_event(self.event, exchange.get_name(), asset_type, result, self.event_bus)

    @abstractmethod
    async def fetch(self, exchange: ExchangeInterface, pair: CurrencyPair, asset_type: AssetType, index: int) -> Any:
        ...

    @abstractmethod
    def store(self, exchange: ExchangeInterface, pair: CurrencyPair, asset_type: AssetType, result: Any) -> None:
        ...

    @abstractmethod
    def print_summary(self, exchange_name: str, pair: CurrencyPair, asset_type: AssetType, result: Any) -> None:
        ...


class TickerUpdater(MarketPoller):
    """
    Ticker polling routine.

    For exchanges supporting REST ticker batching, only the first enabled pair
    of each asset type triggers a network call (update_ticker); the batch
    response fills the cache, and the remaining pairs are served from it via
    fetch_ticker.
    """

    kind = "ticker"
    event = TICKER_UPDATE

    def __init__(self, *args, stats: Optional[PriceStats] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.stats = stats or price_stats

    async def fetch(self, exchange: ExchangeInterface, pair: CurrencyPair, asset_type: AssetType, index: int) -> Ticker:
        if exchange.supports_rest_ticker_batch_updates() and index > 0:
            return await exchange.fetch_ticker(pair, asset_type)
        return await exchange.update_ticker(pair, asset_type)

    def store(self, exchange: ExchangeInterface, pair: CurrencyPair, asset_type: AssetType, result: Ticker) -> None:
        exchange.ticker_cache.put(exchange.get_name(), pair, asset_type, result)
        self.stats.add(exchange.get_name(), pair, asset_type, result.last, result.volume)

    def print_summary(self, exchange_name: str, pair: CurrencyPair, asset_type: AssetType, result: Ticker) -> None:
        quote = pair.second
        self._logger.info(
            f"{exchange_name} {format_currency(pair)} {asset_type}: TICKER: "
            f"Last {format_price(result.last, quote)} Ask {format_price(result.ask, quote)} "
            f"Bid {format_price(result.bid, quote)} High {format_price(result.high, quote)} "
            f"Low {format_price(result.low, quote)} Volume {result.volume:.8f}"
        )


class OrderbookUpdater(MarketPoller):
    """Order book polling routine. Every pair is fetched with update_orderbook."""

    kind = "orderbook"
    event = ORDERBOOK_UPDATE

    async def fetch(self, exchange: ExchangeInterface, pair: CurrencyPair, asset_type: AssetType, index: int) -> Orderbook:
        return await exchange.update_orderbook(pair, asset_type)

    def store(self, exchange: ExchangeInterface, pair: CurrencyPair, asset_type: AssetType, result: Orderbook) -> None:
        exchange.orderbook_cache.put(exchange.get_name(), pair, asset_type, result)

    def print_summary(self, exchange_name: str, pair: CurrencyPair, asset_type: AssetType, result: Orderbook) -> None:
        bids_amount, bids_value = result.calculate_total_bids()
        asks_amount, asks_value = result.calculate_total_asks()
        self._logger.info(
            f"{exchange_name} {format_currency(pair)} {asset_type}: ORDERBOOK: "
            f"Bids len: {len(result.bids)} Amount: {bids_amount:f} {pair.first}. "
            f"Total value: {format_price(bids_value, pair.second)} "
            f"Asks len: {len(result.asks)} Amount: {asks_amount:f} {pair.first}. "
            f"Total value: {format_price(asks_value, pair.second)}"
        )

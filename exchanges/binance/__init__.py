"""
Binance Exchange Wrapper

Implements the ExchangeInterface for Binance Spot using the public REST API
and the combined websocket stream. Authenticated operations (account info,
orders, withdrawals) are not implemented and raise NotImplementedError via
the base class.

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Endpoints Used:
    REST:
        - GET /api/v3/ticker/24hr - 24h ticker (all symbols in one call)
        - GET /api/v3/depth - Order book depth
        - GET /api/v3/exchangeInfo - Tradable symbols
        - GET /api/v3/ping - Health check

    WebSocket:
        - wss://stream.binance.com:9443/stream - Combined market streams

Configuration (exchanges.json):
    {
      "name": "binance",
      "asset_types": "Spot",
      "delimiter": "",
      "index": "USDT",
      "rest_ticker_batching": true,
      "supports_websocket": true,
      "pairs": {"Spot": {"available": "BTCUSDT,ETHUSDT", "enabled": "BTCUSDT"}}
    }
"""

from typing import Dict, List, Optional

from core.assets import AssetType
from core.config import ExchangeConfig, settings
from core.currency.pair import CurrencyPair
from core.errors import AssetTypeNotSupportedError
from core.exchange_interface import ExchangeInterface
from core.schemas import Orderbook, Ticker
from storage.cache import OrderbookCache, TickerCache
from .api_client import BinanceAPIClient, parse_ticker
from .ws_client import BinanceWebsocket


class BinanceExchange(ExchangeInterface):
    """
    Binance Spot Exchange Wrapper

    With REST ticker batching enabled, one update_ticker call refreshes the
    cached ticker of every enabled pair from a single /ticker/24hr request.

    Example:
        >>> exchange = BinanceExchange(config)
        >>> await exchange.initialize()
        >>> ticker = await exchange.update_ticker(new_pair("BTC", "USDT"), AssetType.SPOT)
        >>> print(f"Last: {ticker.last}")
        >>> await exchange.shutdown()
    """

    capabilities = {
        "rest": True,
        "websocket": True,
        "ticker_batching": True,
        "trading": False,
    }

    def __init__(
        self,
        config: ExchangeConfig,
        tickers: Optional[TickerCache] = None,
        orderbooks: Optional[OrderbookCache] = None,
    ):
        super().__init__(config, tickers, orderbooks)
        self.client: Optional[BinanceAPIClient] = None

        if config.supports_websocket and AssetType.SPOT in config.asset_types:
            self.websocket = BinanceWebsocket(
                pairs=self.get_enabled_pairs(AssetType.SPOT),
                enabled=config.websocket_enabled,
                exchange_name=self.name,
            )

        self.logger.debug(f"BinanceExchange created ({len(self._enabled_pairs.get(AssetType.SPOT, []))} enabled spot pairs)")

    @staticmethod
    def symbol(pair: CurrencyPair) -> str:
        """Binance symbols are the concatenated codes: BTC-USDT -> BTCUSDT."""
        return pair.display("")

    # ============================================
    # Lifecycle
    # ============================================

    async def initialize(self) -> None:
        if self.client is not None:
            return
        self.client = BinanceAPIClient(timeout=settings.request_timeout)
        await self.client.__aenter__()
        self.logger.info("✓ Binance exchange wrapper initialized")

    async def shutdown(self) -> None:
        await super().shutdown()
        if self.client:
            await self.client.__aexit__(None, None, None)
            self.client = None
        self.logger.info("✓ Binance exchange wrapper shut down")

    async def health_check(self) -> bool:
        try:
            return await (await self._get_client()).ping()
        except Exception as e:
            self.logger.error(f"Binance health check failed: {e}")
            return False

    async def _get_client(self) -> BinanceAPIClient:
        if self.client is None:
            await self.initialize()
        return self.client

    # ============================================
    # REST Market Data
    # ============================================

    async def update_ticker(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Ticker:
        """
        Fetch fresh ticker data and store it in the cache.

        In batch mode every enabled pair of the asset type is refreshed from a
        single request and the requested pair is returned.

        Raises:
            AssetTypeNotSupportedError: For anything but Spot
            ValueError: If Binance returned no ticker for the pair
        """
        asset_type = self._check_spot(asset_type)
        client = await self._get_client()

        if self.supports_rest_ticker_batch_updates():
            rows = await client.get_ticker_24hr()
            wanted: Dict[str, CurrencyPair] = {self.symbol(p): p for p in self.get_enabled_pairs(asset_type)}
            wanted.setdefault(self.symbol(pair), pair)
            for row in rows:
                enabled_pair = wanted.get(row.get("symbol", ""))
                if enabled_pair is not None:
                    self.ticker_cache.put(self.name, enabled_pair, asset_type, parse_ticker(row, enabled_pair, asset_type))
        else:
            rows = await client.get_ticker_24hr(self.symbol(pair))
            for row in rows:
                if row.get("symbol") == self.symbol(pair):
                    self.ticker_cache.put(self.name, pair, asset_type, parse_ticker(row, pair, asset_type))

        ticker = self.ticker_cache.get(self.name, pair, asset_type)
        if ticker is None:
            raise ValueError(f"Binance returned no ticker for {self.symbol(pair)}")
        return ticker

    async def update_orderbook(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Orderbook:
        asset_type = self._check_spot(asset_type)
        client = await self._get_client()
        orderbook = await client.get_orderbook(self.symbol(pair), pair, asset_type=asset_type)
        self.orderbook_cache.put(self.name, pair, asset_type, orderbook)
        return orderbook

    async def fetch_tradable_pairs(self, asset_type: AssetType = AssetType.SPOT) -> List[str]:
        self._check_spot(asset_type)
        client = await self._get_client()
        return await client.get_tradable_symbols()

    def _check_spot(self, asset_type: AssetType) -> AssetType:
        asset_type = self._check_asset(asset_type)
        if asset_type != AssetType.SPOT:
            raise AssetTypeNotSupportedError(self.name, asset_type.value)
        return asset_type

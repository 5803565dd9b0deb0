"""
Exchange Interface — Capability Contract for All Exchanges

Every exchange wrapper inherits from ExchangeInterface. The polling routines,
aggregation helpers and REST layer work only with this contract, never with
an exchange's own fields.

Each instance is built from an ExchangeConfig and owns:
    - name, enabled flag and asset types
    - available / enabled pair stores per asset type
    - transport flags (REST, websocket, REST ticker batching)
    - handles on the shared ticker / order book caches

Example:
    class BinanceExchange(ExchangeInterface):
        async def update_ticker(self, pair, asset_type):
            ...  # call the REST API, put into self.ticker_cache

        async def update_orderbook(self, pair, asset_type):
            ...

        async def fetch_tradable_pairs(self, asset_type):
            ...

    exchange = manager.get_exchange("binance")
    ticker = await exchange.fetch_ticker(new_pair("BTC", "USDT"), AssetType.SPOT)

Capabilities System:
    `capabilities` lists which optional features a wrapper implements, so
    callers can degrade gracefully:

        capabilities = {
            "rest": True,
            "websocket": True,
            "ticker_batching": True,
            "trading": False,   # authenticated endpoints not implemented
        }
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from core.assets import AssetType
from core.config import ExchangeConfig
from core.currency.pair import CurrencyPair, PairSet, format_pairs
from core.errors import AssetTypeNotSupportedError
from core.logging import get_logger
from core.schemas import (
    AccountInfo,
    CancelAllOrdersResponse,
    OrderCancellation,
    OrderDetail,
    OrderSide,
    OrderType,
    Orderbook,
    SubmitOrderResponse,
    Ticker,
    WithdrawRequest,
)
from core.websocket import ExchangeWebsocket
from storage.cache import OrderbookCache, TickerCache, orderbook_cache, ticker_cache


class ExchangeInterface(ABC):
    """
    Abstract Base Class for Exchange Wrappers

    Abstract Methods (MUST be implemented by all exchanges):
        - update_ticker: Fetch a fresh ticker and store it in the cache
        - update_orderbook: Fetch a fresh order book and store it in the cache
        - fetch_tradable_pairs: List the pairs the exchange currently trades

    Provided Methods:
        - fetch_ticker / fetch_orderbook: Cached value, else update_*
        - Pair stores: get_enabled_pairs, get_available_pairs, set_pairs,
          supports_pair, update_tradable_pairs
        - Transport flags and lifecycle hooks

    Authenticated Methods (raise NotImplementedError unless overridden):
        get_account_info, submit_order, cancel_order, cancel_all_orders,
        get_order_info, get_deposit_address, withdraw_cryptocurrency_funds
    """

    capabilities: Dict[str, bool] = {
        "rest": False,
        "websocket": False,
        "ticker_batching": False,
        "trading": False,
    }
    """Dictionary indicating which features this exchange supports"""

    def __init__(
        self,
        config: ExchangeConfig,
        tickers: Optional[TickerCache] = None,
        orderbooks: Optional[OrderbookCache] = None,
    ) -> None:
        self.config = config
        self.name = config.name
        self.enabled = config.enabled
        self.ticker_cache = tickers if tickers is not None else ticker_cache
        self.orderbook_cache = orderbooks if orderbooks is not None else orderbook_cache
        self.websocket: Optional[ExchangeWebsocket] = None
        self.logger = get_logger(f"exchanges.{self.name}")

        self._available_pairs: Dict[AssetType, List[CurrencyPair]] = {}
        self._enabled_pairs: Dict[AssetType, List[CurrencyPair]] = {}
        for asset_type in config.asset_types:
            pair_cfg = config.get_pair_config(asset_type)
            self._available_pairs[asset_type] = format_pairs(pair_cfg.available_list, config.delimiter, config.index)
            self._enabled_pairs[asset_type] = format_pairs(pair_cfg.enabled_list, config.delimiter, config.index)

    # ============================================
    # Identity / State
    # ============================================

    def get_name(self) -> str:
        return self.name

    def is_enabled(self) -> bool:
        return self.enabled

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        self.config.enabled = enabled

    def get_asset_types(self) -> List[AssetType]:
        return list(self.config.asset_types)

    # ============================================
    # Market Data (REST)
    # ============================================

    async def fetch_ticker(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Ticker:
        """
        Return the cached ticker for the pair, or fetch a fresh one.

        Raises:
            Exception: Whatever update_ticker raises on a cache miss
        """
        cached = self.ticker_cache.get(self.name, pair, asset_type)
        if cached is not None:
            return cached
        return await self.update_ticker(pair, asset_type)

    async def fetch_orderbook(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Orderbook:
        """Return the cached order book for the pair, or fetch a fresh one."""
        cached = self.orderbook_cache.get(self.name, pair, asset_type)
        if cached is not None:
            return cached
        return await self.update_orderbook(pair, asset_type)

    @abstractmethod
    async def update_ticker(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Ticker:
        """
        Fetch a fresh ticker from the exchange and store it in the cache.

        Wrappers that support REST ticker batching refresh every enabled
        pair of the asset type in one call and return the requested one.

        Raises:
            Exception: For network errors, API errors, or unknown pairs
        """
        ...

    @abstractmethod
    async def update_orderbook(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Orderbook:
        """Fetch a fresh order book from the exchange and store it in the cache."""
        ...

    @abstractmethod
    async def fetch_tradable_pairs(self, asset_type: AssetType = AssetType.SPOT) -> List[str]:
        """
        List the exchange-native pair strings currently tradable.

        Returns:
            List[str]: e.g. ["BTCUSDT", "ETHUSDT"] for an index-anchored exchange
        """
        ...

    async def update_tradable_pairs(self, force_update: bool = False) -> bool:
        """
        Refresh the available pairs of every asset type from the exchange.

        Args:
            force_update: Replace the stored list even if it already has entries

        Returns:
            bool: True if any available pair list changed
        """
        changed = False
        for asset_type in self.get_asset_types():
            if self._available_pairs.get(asset_type) and not force_update:
                continue
            raw = await self.fetch_tradable_pairs(asset_type)
            pairs = format_pairs(raw, self.config.delimiter, self.config.index)
            if pairs != self._available_pairs.get(asset_type, []):
                self.set_pairs(pairs, asset_type, enabled=False)
                changed = True
        return changed

    # ============================================
    # Pair Stores
    # ============================================

    def _check_asset(self, asset_type: AssetType) -> AssetType:
        asset_type = AssetType(asset_type)
        if asset_type not in self.config.asset_types:
            raise AssetTypeNotSupportedError(self.name, asset_type.value)
        return asset_type

    def get_enabled_pairs(self, asset_type: AssetType = AssetType.SPOT) -> List[CurrencyPair]:
        """
        Enabled pairs for the asset type, in configuration order.

        Raises:
            AssetTypeNotSupportedError: If the exchange does not trade the asset type
        """
        return list(self._enabled_pairs.get(self._check_asset(asset_type), []))

    def get_available_pairs(self, asset_type: AssetType = AssetType.SPOT) -> List[CurrencyPair]:
        """
        Available pairs for the asset type.

        Raises:
            AssetTypeNotSupportedError: If the exchange does not trade the asset type
        """
        return list(self._available_pairs.get(self._check_asset(asset_type), []))

    def set_pairs(self, pairs: List[CurrencyPair], asset_type: AssetType, enabled: bool) -> None:
        """
        Replace the enabled or available pair list for an asset type.

        Duplicates (strict order) are dropped. The exchange config is kept in
        sync so a later config dump reflects the new pairs.
        """
        asset_type = self._check_asset(asset_type)
        unique = PairSet(pairs, either_order=False).to_list()
        rendered = ",".join(p.display(self.config.delimiter) for p in unique)
        pair_cfg = self.config.get_pair_config(asset_type)
        if enabled:
            self._enabled_pairs[asset_type] = unique
            pair_cfg.enabled = rendered
        else:
            self._available_pairs[asset_type] = unique
            pair_cfg.available = rendered

    def supports_pair(
        self,
        pair: CurrencyPair,
        asset_type: AssetType = AssetType.SPOT,
        enabled_only: bool = False
    ) -> bool:
        """
        Whether the exchange lists the pair (either order) for the asset type.

        Returns False instead of raising for unsupported asset types.
        """
        try:
            pairs = self.get_enabled_pairs(asset_type) if enabled_only else self.get_available_pairs(asset_type)
        except AssetTypeNotSupportedError:
            return False
        return any(p.is_equal_either_order(pair) for p in pairs)

    # ============================================
    # Transport Flags
    # ============================================

    def supports_rest(self) -> bool:
        return self.config.supports_rest

    def supports_rest_ticker_batch_updates(self) -> bool:
        return self.config.rest_ticker_batching

    def supports_websocket(self) -> bool:
        return self.config.supports_websocket and self.websocket is not None

    def is_websocket_enabled(self) -> bool:
        return self.supports_websocket() and self.config.websocket_enabled

    def get_websocket(self) -> ExchangeWebsocket:
        """
        Raises:
            NotImplementedError: If the exchange has no websocket feed
        """
        if self.websocket is None:
            raise NotImplementedError(f"{self.name} does not support websocket")
        return self.websocket

    def supports(self, feature: str) -> bool:
        """
        Check if this exchange supports a specific feature.

        Example:
            >>> if exchange.supports("websocket"):
            ...     await exchange.get_websocket().connect()
        """
        return self.capabilities.get(feature, False)

    # ============================================
    # Authenticated Operations
    # ============================================

    async def get_account_info(self) -> AccountInfo:
        raise NotImplementedError(f"{self.name}: get_account_info not supported")

    async def submit_order(
        self,
        pair: CurrencyPair,
        side: OrderSide,
        order_type: OrderType,
        amount: float,
        price: float,
        client_id: str = ""
    ) -> SubmitOrderResponse:
        raise NotImplementedError(f"{self.name}: submit_order not supported")

    async def cancel_order(self, order: OrderCancellation) -> None:
        raise NotImplementedError(f"{self.name}: cancel_order not supported")

    async def cancel_all_orders(self, order: OrderCancellation) -> CancelAllOrdersResponse:
        raise NotImplementedError(f"{self.name}: cancel_all_orders not supported")

    async def get_order_info(self, order_id: str) -> OrderDetail:
        raise NotImplementedError(f"{self.name}: get_order_info not supported")

    async def get_deposit_address(self, cryptocurrency: str, account_id: str = "") -> str:
        raise NotImplementedError(f"{self.name}: get_deposit_address not supported")

    async def withdraw_cryptocurrency_funds(self, request: WithdrawRequest) -> str:
        raise NotImplementedError(f"{self.name}: withdraw_cryptocurrency_funds not supported")

    # ============================================
    # Optional Lifecycle Methods
    # ============================================

    async def initialize(self) -> None:
        """
        Set up sessions or connections. Called by ExchangeManager.initialize_all().

        Should be idempotent; the default does nothing.
        """
        pass

    async def shutdown(self) -> None:
        """
        Close sessions and feeds. Should not raise; the default closes the
        websocket if one is attached.
        """
        if self.websocket is not None:
            try:
                await self.websocket.shutdown()
            except Exception as e:
                self.logger.error(f"{self.name}: websocket shutdown failed: {e}")

    async def health_check(self) -> bool:
        """
        Check if the exchange API is reachable. Return False on errors; the
        default returns True.
        """
        return True

    def __repr__(self) -> str:
        """String representation of the exchange."""
        return f"<{self.__class__.__name__}(name='{self.name}', enabled={self.enabled})>"

"""
Exchange Manager — Synchronized Registry for Exchange Wrappers

The ExchangeManager is the single source of truth for loaded exchanges. The
polling routines, websocket routine, aggregation helpers and REST layer all
look exchanges up here.

Concurrency contract:
    - Mutations (register, unregister, enable/disable) take a lock
    - Readers iterate over snapshot() (a list copy), never the live dict,
      so an exchange enabled or removed mid-iteration cannot break a loop

Example Usage:
    manager = get_manager()
    manager.load_from_configs(load_exchange_configs(settings.exchanges_config_file))
    await manager.initialize_all()

    for exchange in manager.snapshot():
        if exchange.is_enabled():
            ...

    binance = manager.get_exchange("binance")  # raises ExchangeNotFoundError
"""

import threading
from typing import Dict, List, Optional

from core.config import ExchangeConfig, check_pair_consistency
from core.currency.pair import format_pairs
from core.errors import ExchangeNotFoundError
from core.exchange_interface import ExchangeInterface
from core.logging import logger


class ExchangeManager:
    """
    Central Registry of Exchange Wrappers

    Attributes:
        exchanges: Mapping of exchange name to wrapper. Prefer snapshot() for
                   iteration; the dict is only mutated under the lock.

    Example:
        >>> manager = ExchangeManager()
        >>> manager.register(BinanceExchange(config))
        >>> manager.list_exchanges()
        ['binance']
        >>> manager.disable_exchange("binance")
        >>> manager.count_enabled()
        0
    """

    def __init__(self):
        self.exchanges: Dict[str, ExchangeInterface] = {}
        self._lock = threading.RLock()

    # ============================================
    # Registration
    # ============================================

    def register(self, exchange: ExchangeInterface) -> None:
        """
        Add an exchange to the registry.

        Raises:
            ValueError: If an exchange with the same name is already loaded
        """
        name = exchange.get_name().lower()
        with self._lock:
            if name in self.exchanges:
                raise ValueError(f"Exchange '{name}' is already loaded")
            self.exchanges[name] = exchange
        logger.debug(f"Registered exchange: {name}")

    def unregister(self, name: str) -> ExchangeInterface:
        """
        Remove an exchange from the registry and return it.

        Raises:
            ExchangeNotFoundError: If the exchange is not loaded
        """
        name = name.lower()
        with self._lock:
            if name not in self.exchanges:
                raise ExchangeNotFoundError(name, ", ".join(self.exchanges))
            exchange = self.exchanges.pop(name)
        logger.info(f"Unloaded exchange: {name}")
        return exchange

    def load_from_configs(self, configs: List[ExchangeConfig]) -> List[str]:
        """
        Build and register a wrapper for every config with a known implementation.

        Pair configuration is reconciled first (enabled pairs must be available),
        and every currency seen in the pairs is registered as a known
        cryptocurrency unless it is fiat. A config that cannot be loaded is
        logged and skipped; the others still load.

        Returns:
            List[str]: Names of the exchanges loaded
        """
        # Import here to avoid circular imports (exchange modules import core)
        from exchanges import create_exchange

        loaded = []
        for config in configs:
            try:
                if check_pair_consistency(config):
                    logger.info(f"{config.name}: pair configuration updated for consistency")
                exchange = create_exchange(config)
                self._register_pair_currencies(exchange)
                self.register(exchange)
            except ValueError as e:
                logger.error(f"Skipping exchange config '{config.name}': {e}")
                continue
            loaded.append(exchange.get_name())

        logger.info(
            f"ExchangeManager loaded {len(loaded)} exchange(s): {', '.join(loaded) or 'none'} "
            f"({self.count_enabled()} enabled)"
        )
        return loaded

    @staticmethod
    def _register_pair_currencies(exchange: ExchangeInterface) -> None:
        from core.currency.codes import register_cryptocurrencies

        codes = []
        for asset_type in exchange.get_asset_types():
            for pair in exchange.get_available_pairs(asset_type):
                codes.extend((pair.first, pair.second))
        added = register_cryptocurrencies(codes)
        if added:
            logger.debug(f"{exchange.get_name()}: registered cryptocurrencies {', '.join(added)}")

    @staticmethod
    def _reconcile_enabled_pairs(exchange: ExchangeInterface) -> None:
        """Re-apply check_pair_consistency after the available lists changed."""
        config = exchange.config
        if not check_pair_consistency(config):
            return
        for asset_type in exchange.get_asset_types():
            enabled = format_pairs(config.get_pair_config(asset_type).enabled_list, config.delimiter, config.index)
            exchange.set_pairs(enabled, asset_type, enabled=True)
        logger.info(f"{exchange.get_name()}: enabled pairs reconciled after pair update")

    # ============================================
    # Exchange Retrieval Methods
    # ============================================

    def get_exchange(self, name: str) -> ExchangeInterface:
        """
        Get an exchange wrapper by name.

        Args:
            name: Exchange name (case-insensitive)

        Raises:
            ExchangeNotFoundError: If the exchange is not loaded

        Example:
            >>> exchange = manager.get_exchange("binance")
            >>> ticker = await exchange.fetch_ticker(new_pair("BTC", "USDT"))
        """
        name = name.lower()
        with self._lock:
            exchange = self.exchanges.get(name)
            if exchange is None:
                available = ", ".join(self.exchanges.keys())
                logger.error(f"Exchange '{name}' not found. Available: {available}")
                raise ExchangeNotFoundError(name, available)
        return exchange

    def has_exchange(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self.exchanges

    def list_exchanges(self) -> List[str]:
        with self._lock:
            return list(self.exchanges.keys())

    def snapshot(self) -> List[ExchangeInterface]:
        """
        Point-in-time list of every loaded exchange, enabled or not.

        Iterating the returned list is safe while other tasks mutate the registry.
        """
        with self._lock:
            return list(self.exchanges.values())

    # ============================================
    # Enable / Disable
    # ============================================

    def enable_exchange(self, name: str) -> None:
        with self._lock:
            self.get_exchange(name).set_enabled(True)
        logger.info(f"Exchange enabled: {name.lower()}")

    def disable_exchange(self, name: str) -> None:
        with self._lock:
            self.get_exchange(name).set_enabled(False)
        logger.info(f"Exchange disabled: {name.lower()}")

    def get_enabled_exchanges(self) -> List[str]:
        return [e.get_name() for e in self.snapshot() if e.is_enabled()]

    def get_disabled_exchanges(self) -> List[str]:
        return [e.get_name() for e in self.snapshot() if not e.is_enabled()]

    def count_enabled(self) -> int:
        return len(self.get_enabled_exchanges())

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize_all(self) -> None:
        """
        Initialize all enabled exchanges.

        A failing exchange is logged and left in place; the others continue.
        """
        logger.info("Initializing all exchanges...")

        for exchange in self.snapshot():
            if not exchange.is_enabled():
                continue
            name = exchange.get_name()
            try:
                logger.debug(f"Initializing {name}...")
                await exchange.initialize()
                logger.info(f"✓ {name.capitalize()} initialized successfully")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {name}: {e}")

            if exchange.config.auto_pair_updates:
                await self._update_tradable_pairs(exchange)

        logger.info("All exchanges initialized")

    async def _update_tradable_pairs(self, exchange: ExchangeInterface) -> None:
        name = exchange.get_name()
        try:
            if not await exchange.update_tradable_pairs(force_update=True):
                logger.debug(f"{name}: tradable pairs unchanged")
                return
            self._reconcile_enabled_pairs(exchange)
            self._register_pair_currencies(exchange)
            logger.info(f"{name}: tradable pairs updated")
        except Exception as e:
            logger.error(f"{name}: failed to update tradable pairs: {e}")

    async def shutdown_all(self) -> None:
        """Shutdown every loaded exchange; errors are logged, never raised."""
        logger.info("Shutting down all exchanges...")

        for exchange in self.snapshot():
            name = exchange.get_name()
            try:
                await exchange.shutdown()
                logger.info(f"✓ {name.capitalize()} shut down successfully")
            except Exception as e:
                logger.error(f"✗ Error shutting down {name}: {e}")

        logger.info("All exchanges shut down")

    # ============================================
    # Health Check Methods
    # ============================================

    async def health_check_all(self) -> Dict[str, bool]:
        """
        Check health status of all enabled exchanges.

        Returns:
            Dict[str, bool]: Exchange name -> reachable
        """
        health_status = {}
        for exchange in self.snapshot():
            if not exchange.is_enabled():
                continue
            name = exchange.get_name()
            try:
                health_status[name] = await exchange.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                health_status[name] = False

        return health_status

    # ============================================
    # Capability Queries
    # ============================================

    def get_exchanges_with_feature(self, feature: str) -> List[str]:
        """
        Names of loaded exchanges that support a feature.

        Example:
            >>> manager.get_exchanges_with_feature("websocket")
            ['binance']
        """
        supporting = [e.get_name() for e in self.snapshot() if e.supports(feature)]
        logger.debug(f"Feature '{feature}' supported by: {', '.join(supporting) or 'none'}")
        return supporting

    def get_exchange_capabilities(self, name: str) -> Dict[str, bool]:
        """
        Raises:
            ExchangeNotFoundError: If the exchange is not loaded
        """
        return dict(self.get_exchange(name).capabilities)

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self) -> str:
        return f"<ExchangeManager(exchanges={self.list_exchanges()})>"

    def __len__(self) -> int:
        with self._lock:
            return len(self.exchanges)


# ============================================
# Global Manager Instance
# ============================================

_manager: Optional[ExchangeManager] = None


def get_manager() -> ExchangeManager:
    """
    Get the global ExchangeManager instance (singleton pattern).

    Example:
        >>> from core.exchange_manager import get_manager
        >>> binance = get_manager().get_exchange("binance")
    """
    global _manager
    if _manager is None:
        _manager = ExchangeManager()
        logger.debug("Created global ExchangeManager instance")
    return _manager

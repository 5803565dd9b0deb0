"""
Shared fixtures: an in-memory exchange wrapper and a private registry.

FakeExchange serves fixed-price tickers / order books instead of the network,
records every update call, and can be told to fail.
"""

from typing import List, Optional

import pytest

from core.assets import AssetType
from core.config import ExchangeConfig, PairConfig
from core.currency.pair import CurrencyPair
from core.exchange_interface import ExchangeInterface
from core.exchange_manager import ExchangeManager
from core.schemas import Orderbook, OrderbookItem, Ticker
from storage.cache import OrderbookCache, TickerCache


class FakeExchange(ExchangeInterface):
    capabilities = {"rest": True, "websocket": False, "ticker_batching": False, "trading": False}

    def __init__(self, config: ExchangeConfig, fail_with: Optional[Exception] = None, price: float = 100.0):
        super().__init__(config, tickers=TickerCache(), orderbooks=OrderbookCache())
        self.fail_with = fail_with
        self.price = price
        self.ticker_calls: List[CurrencyPair] = []
        self.orderbook_calls: List[CurrencyPair] = []

    async def update_ticker(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Ticker:
        asset_type = self._check_asset(asset_type)
        self.ticker_calls.append(pair)
        if self.fail_with is not None:
            raise self.fail_with

        pairs = self.get_enabled_pairs(asset_type) if self.supports_rest_ticker_batch_updates() else [pair]
        for p in pairs:
            self.ticker_cache.put(
                self.name, p, asset_type,
                Ticker(exchange=self.name, pair=p, asset_type=asset_type, last=self.price, volume=1.0)
            )
        return self.ticker_cache.get(self.name, pair, asset_type)

    async def update_orderbook(self, pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Orderbook:
        asset_type = self._check_asset(asset_type)
        self.orderbook_calls.append(pair)
        if self.fail_with is not None:
            raise self.fail_with
        book = Orderbook(
            exchange=self.name, pair=pair, asset_type=asset_type,
            bids=[OrderbookItem(price=self.price - 1, amount=2.0)],
            asks=[OrderbookItem(price=self.price + 1, amount=1.5)],
        )
        self.orderbook_cache.put(self.name, pair, asset_type, book)
        return book

    async def fetch_tradable_pairs(self, asset_type: AssetType = AssetType.SPOT) -> List[str]:
        return self.config.get_pair_config(asset_type).available_list


def make_config(
    name: str,
    available: str,
    enabled: Optional[str] = None,
    exchange_enabled: bool = True,
    delimiter: str = "-",
    **kwargs
) -> ExchangeConfig:
    return ExchangeConfig(
        name=name,
        enabled=exchange_enabled,
        delimiter=delimiter,
        pairs={AssetType.SPOT: PairConfig(available=available, enabled=enabled if enabled is not None else available)},
        **kwargs
    )


@pytest.fixture
def make_exchange():
    """Factory: make_exchange("a", "BTC-USD", exchange_enabled=False, fail_with=...)"""
    def _make(name: str, available: str, fail_with: Optional[Exception] = None, price: float = 100.0, **kwargs) -> FakeExchange:
        return FakeExchange(make_config(name, available, **kwargs), fail_with=fail_with, price=price)
    return _make


@pytest.fixture
def manager() -> ExchangeManager:
    """Private registry so tests never touch the process-wide one."""
    return ExchangeManager()


@pytest.fixture
def registry(manager):
    """Register exchanges into the private registry: registry(exchange_a, exchange_b)."""
    def _register(*exchanges: FakeExchange) -> ExchangeManager:
        for exchange in exchanges:
            manager.register(exchange)
        return manager
    return _register


"""
Ticker / Orderbook Caches

In-memory stores keyed by (exchange, pair, asset type). The polling routines
write after every successful fetch; exchange wrappers read them to serve
fetch_ticker / fetch_orderbook without a network call.

Pairs are keyed by their strict-order currency codes, so BTC-USD stored under
a "-" delimiter is found again when looked up as BTC_USD.
"""

import threading
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

from core.assets import AssetType
from core.currency.pair import CurrencyPair
from core.schemas import Orderbook, Ticker


T = TypeVar("T")

CacheKey = Tuple[str, str, str, str]


class MarketCache(Generic[T]):
    """Thread-safe keyed store with no eviction (entries are overwritten)."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._data: Dict[CacheKey, T] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(exchange: str, pair: CurrencyPair, asset_type: AssetType) -> CacheKey:
        return (exchange.lower(), pair.first, pair.second, AssetType(asset_type).value)

    def get(self, exchange: str, pair: CurrencyPair, asset_type: AssetType) -> Optional[T]:
        with self._lock:
            return self._data.get(self._key(exchange, pair, asset_type))

    def put(self, exchange: str, pair: CurrencyPair, asset_type: AssetType, value: T) -> None:
        with self._lock:
            self._data[self._key(exchange, pair, asset_type)] = value

    def remove(self, exchange: str, pair: CurrencyPair, asset_type: AssetType) -> None:
        with self._lock:
            self._data.pop(self._key(exchange, pair, asset_type), None)

    def get_by_exchange(self, exchange: str) -> List[T]:
        """All cached values for one exchange, in insertion order."""
        exchange = exchange.lower()
        with self._lock:
            return [v for k, v in self._data.items() if k[0] == exchange]

    def exchanges(self) -> List[str]:
        with self._lock:
            return list(dict.fromkeys(k[0] for k in self._data))

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class TickerCache(MarketCache[Ticker]):
    def __init__(self) -> None:
        super().__init__("ticker")


class OrderbookCache(MarketCache[Orderbook]):
    def __init__(self) -> None:
        super().__init__("orderbook")


# Process-wide caches shared by exchange wrappers and routines
ticker_cache = TickerCache()
orderbook_cache = OrderbookCache()

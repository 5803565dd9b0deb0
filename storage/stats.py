"""
Price Statistics

Latest price and volume per (exchange, pair, asset type), fed by the ticker
updater. Used to find the exchange quoting the highest or lowest price.
"""

import threading
from typing import Dict, List, Tuple

from pydantic import BaseModel

from core.assets import AssetType
from core.currency.pair import CurrencyPair


class PriceStat(BaseModel):
    exchange: str
    pair: CurrencyPair
    asset_type: AssetType
    price: float
    volume: float


class PriceStats:
    """Thread-safe latest-price table."""

    def __init__(self) -> None:
        self._items: Dict[Tuple[str, str, str, str], PriceStat] = {}
        self._lock = threading.Lock()

    def add(self, exchange: str, pair: CurrencyPair, asset_type: AssetType, price: float, volume: float) -> None:
        """Record the latest price; zero prices are ignored."""
        if price <= 0:
            return
        key = (exchange.lower(), pair.first, pair.second, AssetType(asset_type).value)
        stat = PriceStat(exchange=exchange.lower(), pair=pair, asset_type=asset_type, price=price, volume=volume)
        with self._lock:
            self._items[key] = stat

    def sort_exchanges_by_price(
        self,
        pair: CurrencyPair,
        asset_type: AssetType,
        reverse: bool = False
    ) -> List[PriceStat]:
        """
        Stats for the pair across exchanges, sorted by price.

        Args:
            reverse: True for highest price first
        """
        asset_value = AssetType(asset_type).value
        with self._lock:
            matches = [
                s for k, s in self._items.items()
                if k[1] == pair.first and k[2] == pair.second and k[3] == asset_value
            ]
        return sorted(matches, key=lambda s: s.price, reverse=reverse)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


price_stats = PriceStats()

"""
Exchange Wrappers Package

Each exchange has its own subpackage with:
- api_client.py: REST API logic
- ws_client.py: WebSocket streaming logic
- __init__.py: Exchange class implementing ExchangeInterface

New exchanges are added by implementing the interface and registering the
class in EXCHANGE_CLASSES; the manager builds instances from exchanges.json.
"""

from typing import Dict, Type

from core.config import ExchangeConfig
from core.exchange_interface import ExchangeInterface
from exchanges.binance import BinanceExchange


EXCHANGE_CLASSES: Dict[str, Type[ExchangeInterface]] = {
    "binance": BinanceExchange,
}


def create_exchange(config: ExchangeConfig) -> ExchangeInterface:
    """
    Build the wrapper for an exchange config.

    Raises:
        ValueError: If no wrapper is implemented for the exchange name
    """
    exchange_class = EXCHANGE_CLASSES.get(config.name)
    if exchange_class is None:
        raise ValueError(
            f"No wrapper implemented for exchange '{config.name}'. "
            f"Available: {', '.join(EXCHANGE_CLASSES)}"
        )
    return exchange_class(config)

"""
Currency Code Classification

Fiat / cryptocurrency lookups used by the relatability engine and the
aggregation filters. Fiat codes are fixed; the cryptocurrency list starts
from settings and is extended once at startup from exchange pair configs
(register_cryptocurrencies). It is not mutated after the routines start.
"""

from typing import Iterable, List, Tuple

from core.config import settings
from core.currency.pair import CurrencyPair


FIAT_CURRENCIES: Tuple[str, ...] = (
    "USD", "AUD", "EUR", "CNY", "CAD", "GBP", "JPY", "KRW",
    "HKD", "SGD", "CHF", "NZD", "RUB", "BRL", "ZAR", "TRY",
    "INR", "MXN", "SEK", "NOK", "DKK", "PLN",
)

_cryptocurrencies: List[str] = list(settings.cryptocurrencies_list)


def get_fiat_currencies() -> List[str]:
    return list(FIAT_CURRENCIES)


def get_cryptocurrencies() -> List[str]:
    return list(_cryptocurrencies)


def register_cryptocurrencies(codes: Iterable[str]) -> List[str]:
    """
    Add codes that are not fiat and not already known to the crypto list.

    Returns:
        List[str]: The codes that were added
    """
    added = []
    for code in codes:
        code = code.strip().upper()
        if not code or is_fiat_currency(code) or code in _cryptocurrencies:
            continue
        _cryptocurrencies.append(code)
        added.append(code)
    return added


def is_fiat_currency(code: str) -> bool:
    return code.upper() in FIAT_CURRENCIES


def is_cryptocurrency(code: str) -> bool:
    return code.upper() in _cryptocurrencies


def is_crypto_pair(pair: CurrencyPair) -> bool:
    """Both sides are cryptocurrencies (e.g. ETH-BTC)."""
    return is_cryptocurrency(pair.first) and is_cryptocurrency(pair.second)


def is_fiat_pair(pair: CurrencyPair) -> bool:
    return is_fiat_currency(pair.first) and is_fiat_currency(pair.second)


def is_crypto_fiat_pair(pair: CurrencyPair) -> bool:
    """One side crypto, the other fiat, in either order (e.g. BTC-USD, USD-BTC)."""
    return (
        (is_cryptocurrency(pair.first) and is_fiat_currency(pair.second))
        or (is_fiat_currency(pair.first) and is_cryptocurrency(pair.second))
    )

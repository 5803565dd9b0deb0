"""
Currency Package

- pair: CurrencyPair value type, PairSet, exchange format parsing
- translation: static symbol equivalence table (BTC <-> XBT, ...)
- codes: fiat / cryptocurrency classification
- relatable: relatable pair discovery across translations and fiat quotes
"""

from core.currency.pair import (
    CurrencyPair,
    PairSet,
    contains_pair,
    contains_pair_either_order,
    format_pairs,
    new_pair,
    remove_pairs_by_filter,
)
from core.currency.translation import get_translation, has_translation
from core.currency.relatable import (
    get_relatable_cryptocurrencies,
    get_relatable_currencies,
    get_relatable_fiat_currencies,
    is_relatable_pairs,
)

__all__ = [
    "CurrencyPair",
    "PairSet",
    "contains_pair",
    "contains_pair_either_order",
    "format_pairs",
    "new_pair",
    "remove_pairs_by_filter",
    "get_translation",
    "has_translation",
    "get_relatable_cryptocurrencies",
    "get_relatable_currencies",
    "get_relatable_fiat_currencies",
    "is_relatable_pairs",
]

"""
Currency Symbol Translation

Static table of symbols that different exchanges use for the same asset
(Kraken lists Bitcoin as XBT, Dogecoin as XDG, ...). The table is built once
at import and exposed read-only, so concurrent readers need no locking.
"""

from types import MappingProxyType
from typing import Mapping, Optional


_TRANSLATIONS = {
    "BTC": "XBT",
    "ETH": "XETH",
    "DOGE": "XDG",
    "USD": "USDT",
    "XBT": "BTC",
    "XETH": "ETH",
    "XDG": "DOGE",
    "USDT": "USD",
}

TRANSLATIONS: Mapping[str, str] = MappingProxyType(_TRANSLATIONS)


def get_translation(symbol: str) -> Optional[str]:
    """
    Return the equivalent symbol, or None if the symbol has no translation.

    None is a normal negative result: the original symbol stands.

    Example:
        >>> get_translation("xbt")
        'BTC'
        >>> get_translation("LTC") is None
        True
    """
    return TRANSLATIONS.get(symbol.upper())


def has_translation(symbol: str) -> bool:
    return symbol.upper() in TRANSLATIONS

"""
Pair Relatability

Finds pairs that describe the same market under different symbol
conventions, e.g. BTC-USD -> XBT-USD -> XBT-USDT -> BTC-USDT, so prices can be
compared across exchanges that quote the same asset differently.

Relatable sets are built with strict-order dedup (BTC-USD and USD-BTC are both
kept, since reversed-quote conventions are themselves relatable), while the
final relatability test in is_relatable_pairs() matches in either order.
"""

from typing import Optional

from core.config import settings
from core.currency.codes import get_cryptocurrencies, get_fiat_currencies, is_crypto_fiat_pair
from core.currency.pair import CurrencyPair, PairSet
from core.currency.translation import get_translation


def _add_translated_pairs(result: PairSet, pair: CurrencyPair, include_original: bool) -> None:
    if include_original:
        result.add(pair)

    first = get_translation(pair.first)
    second = get_translation(pair.second)

    if first is not None:
        result.add(CurrencyPair(first=first, second=pair.second, delimiter=pair.delimiter))
        if second is not None:
            result.add(CurrencyPair(first=first, second=second, delimiter=pair.delimiter))

    if second is not None:
        result.add(CurrencyPair(first=pair.first, second=second, delimiter=pair.delimiter))


def get_relatable_currencies(
    pair: CurrencyPair,
    include_original: bool = True,
    include_stablecoin: bool = True,
    stablecoin: Optional[str] = None
) -> PairSet:
    """
    Build the set of pairs relatable to `pair` via symbol translation.

    Both the pair and its swapped form are expanded: the original (optional),
    first translated, both translated, second translated.

    Args:
        pair: Pair to expand
        include_original: Seed the result with the pair (and its swap)
        include_stablecoin: If False, drop every pair containing the stablecoin
        stablecoin: Stablecoin symbol (defaults to settings.stablecoin_symbol)

    Returns:
        PairSet: Strict-order deduplicated relatable pairs

    Example:
        >>> get_relatable_currencies(new_pair("BTC", "USD"), False, True).display()
        ['XBT-USD', 'XBT-USDT', 'BTC-USDT', 'USDT-BTC', 'USDT-XBT', 'USD-XBT']
    """
    result = PairSet(either_order=False)
    _add_translated_pairs(result, pair, include_original)
    _add_translated_pairs(result, pair.swap(), include_original)

    if not include_original and result.contains(pair):
        # A pair of two mutually translated symbols (BTC-XBT) maps back onto itself
        result = PairSet((p for p in result if not p.is_equal(pair)), either_order=False)

    if not include_stablecoin:
        result = result.without_currency(stablecoin or settings.stablecoin_symbol)

    return result


def get_relatable_fiat_currencies(pair: CurrencyPair) -> PairSet:
    """
    Pair the first currency with every known fiat currency.

    Example:
        BTC-USD -> BTC-USD, BTC-AUD, BTC-EUR, ...
    """
    return PairSet(
        (CurrencyPair(first=pair.first, second=fiat, delimiter=pair.delimiter)
         for fiat in get_fiat_currencies()),
        either_order=False,
    )


def get_relatable_cryptocurrencies(pair: CurrencyPair) -> PairSet:
    """
    Pair the first currency with every known cryptocurrency.

    Example:
        ETH-BTC -> ETH-BTC, ETH-LTC, ETH-USDT, ...
    """
    return PairSet(
        (CurrencyPair(first=pair.first, second=crypto, delimiter=pair.delimiter)
         for crypto in get_cryptocurrencies()),
        either_order=False,
    )


def is_relatable_pairs(p1: CurrencyPair, p2: CurrencyPair, include_stablecoin: bool = True) -> bool:
    """
    Return True if p2 can be reached from p1 by translation or fiat substitution.

    Equal pairs (in either order) are always relatable. Crypto/fiat pairs are
    additionally expanded with every fiat quote of each relatable pair.
    """
    if p1.is_equal_either_order(p2):
        return True

    relatable = get_relatable_currencies(p1, True, include_stablecoin)

    if is_crypto_fiat_pair(p1):
        for candidate in relatable.to_list():
            relatable.extend(get_relatable_fiat_currencies(candidate))

    return any(p.is_equal_either_order(p2) for p in relatable)

"""
Currency Pairs

Canonical representation of a two-currency trading instrument, normalized
from each exchange's native pair format.

Equality comes in two explicitly named flavours because callers need both:
    - is_equal(): strict order (BTC-USD != USD-BTC)
    - is_equal_either_order(): BTC-USD matches USD-BTC

`==` and `hash()` follow the strict mode on the currency codes; the
delimiter is display-only and never part of identity.

Example:
    >>> p = CurrencyPair.from_string("btc_usd", delimiter="_")
    >>> p.display("-")
    'BTC-USD'
    >>> p.is_equal_either_order(new_pair("USD", "BTC"))
    True
"""

from typing import Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


DEFAULT_DELIMITER = "-"
KNOWN_DELIMITERS = ("-", "_", "/", ":")


class CurrencyPair(BaseModel):
    """
    Immutable ordered currency pair.

    Attributes:
        first: Base currency code (uppercase)
        second: Quote currency code (uppercase)
        delimiter: Display delimiter used by the source format
    """

    model_config = ConfigDict(frozen=True)

    first: str
    second: str
    delimiter: str = DEFAULT_DELIMITER

    @field_validator("first", "second")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        """Currency codes are stored uppercase without surrounding whitespace"""
        v = v.strip().upper()
        if not v:
            raise ValueError("currency code must not be empty")
        return v

    # ============================================
    # Parsing
    # ============================================

    @classmethod
    def from_string(cls, value: str, delimiter: Optional[str] = None) -> "CurrencyPair":
        """
        Parse an exchange-native pair string.

        Args:
            value: Pair string, e.g. "BTC-USD", "btc_usd", "BTCUSD"
            delimiter: Delimiter to split on. If None, the known delimiters
                       are tried in turn; a delimiter-less 6+ char string is
                       split after the third character.

        Raises:
            ValueError: If the string cannot be split into two currencies
        """
        value = value.strip()
        candidates = (delimiter,) if delimiter else KNOWN_DELIMITERS
        for delim in candidates:
            if delim and delim in value:
                first, _, second = value.partition(delim)
                return cls(first=first, second=second, delimiter=delim)

        if len(value) < 6:
            raise ValueError(f"Cannot parse currency pair from '{value}'")
        return cls(first=value[:3], second=value[3:], delimiter="")

    @classmethod
    def from_index(cls, value: str, index: str) -> "CurrencyPair":
        """
        Parse a delimiter-less pair anchored on a known currency.

        Example:
            >>> CurrencyPair.from_index("ETHUSDT", "USDT")
            CurrencyPair(first='ETH', second='USDT', delimiter='')
            >>> CurrencyPair.from_index("USDTTRY", "USDT")
            CurrencyPair(first='USDT', second='TRY', delimiter='')
        """
        upper_value = value.strip().upper()
        upper_index = index.strip().upper()
        pos = upper_value.find(upper_index)
        if pos < 0 or upper_value == upper_index:
            raise ValueError(f"Index '{index}' not found in pair '{value}'")
        if pos == 0:
            return cls(first=upper_index, second=upper_value[len(upper_index):], delimiter="")
        return cls(first=upper_value[:pos], second=upper_index, delimiter="")

    # ============================================
    # Comparison
    # ============================================

    def is_equal(self, other: "CurrencyPair") -> bool:
        """Strict order match: first == first and second == second."""
        return self.first == other.first and self.second == other.second

    def is_equal_either_order(self, other: "CurrencyPair") -> bool:
        """Match in either order: BTC-USD matches USD-BTC."""
        return self.is_equal(other) or (
            self.first == other.second and self.second == other.first
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, CurrencyPair):
            return NotImplemented
        return self.is_equal(other)

    def __hash__(self) -> int:
        return hash((self.first, self.second))

    # ============================================
    # Helpers
    # ============================================

    def swap(self) -> "CurrencyPair":
        """Return the pair with first and second exchanged."""
        return CurrencyPair(first=self.second, second=self.first, delimiter=self.delimiter)

    def contains_currency(self, code: str) -> bool:
        code = code.upper()
        return self.first == code or self.second == code

    def display(self, delimiter: Optional[str] = None, uppercase: bool = True) -> str:
        """
        Render the pair with the given delimiter (defaults to the pair's own).

        Example:
            >>> new_pair("BTC", "USD").display("", uppercase=False)
            'btcusd'
        """
        delim = self.delimiter if delimiter is None else delimiter
        rendered = f"{self.first}{delim}{self.second}"
        return rendered if uppercase else rendered.lower()

    def __str__(self) -> str:
        return self.display()


def new_pair(first: str, second: str, delimiter: str = DEFAULT_DELIMITER) -> CurrencyPair:
    """Shorthand constructor: new_pair("BTC", "USD")."""
    return CurrencyPair(first=first, second=second, delimiter=delimiter)


def format_pairs(values: Iterable[str], delimiter: str = "", index: str = "") -> List[CurrencyPair]:
    """
    Parse a list of exchange-native pair strings using the exchange's format.

    Args:
        values: Pair strings from config or an exchange API
        delimiter: Delimiter the exchange uses ("" if none)
        index: Anchor currency for delimiter-less formats (e.g. "USDT"). Values
               not containing it are split after the third character.

    Returns:
        List[CurrencyPair]: Parsed pairs (blank entries skipped)
    """
    pairs = []
    for value in values:
        value = value.strip()
        if not value:
            continue
        if delimiter:
            pairs.append(CurrencyPair.from_string(value, delimiter))
        elif index and index.upper() in value.upper() and value.upper() != index.upper():
            pairs.append(CurrencyPair.from_index(value, index))
        else:
            pairs.append(CurrencyPair.from_string(value))
    return pairs


# ============================================
# PairSet
# ============================================

class PairSet:
    """
    Deduplicated, insertion-ordered sequence of currency pairs.

    The equality mode is fixed at construction and applies to every add and
    membership test:
        - either_order=False: BTC-USD and USD-BTC are distinct entries
        - either_order=True: USD-BTC is a duplicate of BTC-USD

    Membership is keyed on a canonical tuple, so adds are O(1).
    """

    def __init__(self, pairs: Iterable[CurrencyPair] = (), either_order: bool = False):
        self.either_order = either_order
        self._pairs: List[CurrencyPair] = []
        self._keys = set()
        self.extend(pairs)

    def _key(self, pair: CurrencyPair) -> Tuple[str, str]:
        if self.either_order:
            return tuple(sorted((pair.first, pair.second)))
        return (pair.first, pair.second)

    def add(self, pair: CurrencyPair) -> bool:
        """Append pair unless a duplicate exists. Returns True if appended."""
        key = self._key(pair)
        if key in self._keys:
            return False
        self._keys.add(key)
        self._pairs.append(pair)
        return True

    def extend(self, pairs: Iterable[CurrencyPair]) -> None:
        for pair in pairs:
            self.add(pair)

    def contains(self, pair: CurrencyPair) -> bool:
        return self._key(pair) in self._keys

    def without_currency(self, code: str) -> "PairSet":
        """Return a new set without any pair containing the currency code."""
        return PairSet(
            (p for p in self._pairs if not p.contains_currency(code)),
            either_order=self.either_order,
        )

    def to_list(self) -> List[CurrencyPair]:
        return list(self._pairs)

    def display(self, delimiter: Optional[str] = None) -> List[str]:
        return [p.display(delimiter) for p in self._pairs]

    def __contains__(self, pair: object) -> bool:
        return isinstance(pair, CurrencyPair) and self.contains(pair)

    def __iter__(self) -> Iterator[CurrencyPair]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __getitem__(self, index: int) -> CurrencyPair:
        return self._pairs[index]

    def __eq__(self, other) -> bool:
        if isinstance(other, PairSet):
            return self._pairs == other._pairs
        if isinstance(other, list):
            return self._pairs == other
        return NotImplemented

    def __repr__(self) -> str:
        mode = "either_order" if self.either_order else "strict"
        return f"PairSet({self.display()}, {mode})"


def contains_pair(pairs: Iterable[CurrencyPair], pair: CurrencyPair) -> bool:
    """Strict-order membership test over any iterable of pairs."""
    return any(p.is_equal(pair) for p in pairs)


def contains_pair_either_order(pairs: Iterable[CurrencyPair], pair: CurrencyPair) -> bool:
    """Either-order membership test over any iterable of pairs."""
    return any(p.is_equal_either_order(pair) for p in pairs)


def remove_pairs_by_filter(pairs: Iterable[CurrencyPair], code: str) -> List[CurrencyPair]:
    """Drop every pair that contains the currency code."""
    return [p for p in pairs if not p.contains_currency(code)]

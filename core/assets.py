"""
Asset Types

Market segment classifiers an exchange may support per pair.
"""

from enum import Enum
from typing import Iterable, List, Optional


class AssetType(str, Enum):
    """Market segment an exchange pair belongs to."""

    SPOT = "Spot"
    MARGIN = "Margin"
    INDEX = "Index"
    BINARY = "Binary"
    PERPETUAL_SWAP = "PerpetualSwap"
    FUTURES = "Futures"

    def __str__(self) -> str:
        return self.value


def is_valid_asset_type(value: str) -> bool:
    """Return True if value names a known asset type (case-sensitive)."""
    return value in AssetType._value2member_map_


def parse_asset_types(value: str) -> Optional[List[AssetType]]:
    """
    Parse a comma-separated asset type string.

    Returns None if any entry is not a valid asset type.

    Example:
        >>> parse_asset_types("Spot,Futures")
        [<AssetType.SPOT: 'Spot'>, <AssetType.FUTURES: 'Futures'>]
        >>> parse_asset_types("Spot,Options") is None
        True
    """
    result = []
    for item in value.split(","):
        item = item.strip()
        if not is_valid_asset_type(item):
            return None
        result.append(AssetType(item))
    return result


def join_asset_types(assets: Iterable[AssetType], separator: str = ",") -> str:
    return separator.join(a.value for a in assets)

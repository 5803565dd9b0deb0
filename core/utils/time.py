"""
Time Utilities

Exchanges report event times as Unix seconds or milliseconds; the schemas
carry timezone-aware UTC datetimes. These helpers convert between the two.
"""

from datetime import datetime, timezone
from typing import Union


def to_utc_datetime(timestamp: Union[int, float, str]) -> datetime:
    """
    Convert a Unix timestamp (seconds or milliseconds) to a UTC datetime.

    Values above 1e12 are treated as milliseconds.

    Raises:
        ValueError: If the timestamp is negative or not a number

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
        >>> to_utc_datetime("1704110400")
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)
    """
    try:
        value = float(timestamp)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp!r}") from e

    if value < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if value > 1e12:
        value = value / 1000.0

    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


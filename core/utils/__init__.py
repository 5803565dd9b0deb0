"""
Core Utilities Package

Modules:
    - time: Timestamp conversion and normalization utilities
"""

from core.utils.time import to_utc_datetime, utc_now

__all__ = ["to_utc_datetime", "utc_now"]

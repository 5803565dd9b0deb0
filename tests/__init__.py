"""
Test Suite

Structure:
- tests/unit/: Tests for individual components (currency pairs, registry,
  routines, Binance client/feed, REST layer). Network calls are mocked.

Uses pytest with pytest-asyncio for testing async functionality.
"""

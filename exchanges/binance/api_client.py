"""
Binance REST API Client

Async HTTP client for the Binance Spot public REST API. It handles:
- HTTP requests with retry logic
- Rate limit handling (429, 418, 503 errors)
- Error handling and logging
- Normalization of tickers and order books to our schemas

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Rate Limits:
    - Weight-based system (each endpoint has a weight)
    - /api/v3/ticker/24hr without a symbol costs 80 weight, so batch
      refreshes are preferred over per-symbol calls
    - This client implements automatic retry with linear backoff

Usage:
    async with BinanceAPIClient() as client:
        rows = await client.get_ticker_24hr()
        book = await client.get_orderbook("BTCUSDT", new_pair("BTC", "USDT"))
"""

import aiohttp
import asyncio
from typing import Any, Dict, List, Optional

from core.assets import AssetType
from core.currency.pair import CurrencyPair
from core.logging import get_logger
from core.schemas import Orderbook, OrderbookItem, Ticker
from core.utils.time import to_utc_datetime


class BinanceAPIClient:
    """
    Async HTTP client for Binance Spot REST API

    Attributes:
        BASE_URL: Binance Spot API base URL
        timeout: Per-request timeout in seconds
        session: aiohttp ClientSession for HTTP requests

    Example:
        >>> async with BinanceAPIClient() as client:
        ...     symbols = await client.get_tradable_symbols()
        ...     print(f"{len(symbols)} symbols trading")

    Notes:
        - Uses context manager for automatic session cleanup
        - No API key needed for the public endpoints used here
    """

    BASE_URL = "https://api.binance.com"
    MAX_ATTEMPTS = 3

    def __init__(self, base_url: Optional[str] = None, timeout: int = 10):
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug("BinanceAPIClient session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.logger.debug("BinanceAPIClient session closed")

    # ============================================
    # HTTP Request Handler with Retry Logic
    # ============================================

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Make GET request to Binance API with retry logic.

        Args:
            path: API endpoint path (e.g., "/api/v3/depth")
            params: Optional query parameters

        Returns:
            JSON response from API

        Raises:
            RuntimeError: If the session is missing or the request fails
                          after all retries

        Rate Limit Handling:
            429 / 418 / 503 are retried after 1.5s * (attempt + 1). Other
            HTTP errors are not retried.
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"

        for attempt in range(self.MAX_ATTEMPTS):
            try:
                async with self.session.get(
                    url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status == 200:
                        data = await resp.json()
                        self.logger.debug(f"GET {path} - Success (attempt {attempt + 1})")
                        return data

                    elif resp.status in (429, 418, 503):
                        delay = 1.5 * (attempt + 1)
                        self.logger.warning(
                            f"Rate limited (HTTP {resp.status}) on {path}. "
                            f"Retrying in {delay:.1f}s... (attempt {attempt + 1}/{self.MAX_ATTEMPTS})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    else:
                        text = await resp.text()
                        self.logger.error(f"HTTP {resp.status} on {path}: {text}")
                        break

            except asyncio.TimeoutError:
                self.logger.error(f"Timeout on {path} (attempt {attempt + 1}/{self.MAX_ATTEMPTS})")
                await asyncio.sleep(1.0 * (attempt + 1))

            except aiohttp.ClientError as e:
                self.logger.error(f"Request failed on {path}: {e} (attempt {attempt + 1}/{self.MAX_ATTEMPTS})")
                await asyncio.sleep(1.0 * (attempt + 1))

        raise RuntimeError(f"Failed to fetch {url} after {self.MAX_ATTEMPTS} attempts")

    # ============================================
    # API Methods
    # ============================================

    async def ping(self) -> bool:
        """GET /api/v3/ping; returns an empty object when the API is up."""
        await self._get("/api/v3/ping")
        return True

    async def get_ticker_24hr(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Fetch 24h rolling ticker statistics.

        Args:
            symbol: Exchange symbol (e.g., "BTCUSDT"); None fetches every symbol

        Returns:
            List of raw ticker rows (a single-symbol response is wrapped)

        Binance Endpoint:
            GET /api/v3/ticker/24hr

        Response Format:
            {
              "symbol": "BTCUSDT",
              "lastPrice": "50000.00",
              "bidPrice": "49999.50",
              "askPrice": "50000.50",
              "highPrice": "51000.00",
              "lowPrice": "49000.00",
              "volume": "1234.5",
              "closeTime": 1704110400000
            }
        """
        params = {"symbol": symbol.upper()} if symbol else None
        data = await self._get("/api/v3/ticker/24hr", params)
        rows = data if isinstance(data, list) else [data]
        self.logger.debug(f"Fetched {len(rows)} 24h ticker row(s)")
        return rows

    async def get_orderbook(
        self,
        symbol: str,
        pair: CurrencyPair,
        limit: int = 100,
        asset_type: AssetType = AssetType.SPOT
    ) -> Orderbook:
        """
        Fetch order book depth for a symbol.

        Binance Endpoint:
            GET /api/v3/depth

        Response Format:
            {
              "lastUpdateId": 1027024,
              "bids": [["4.00000000", "431.00000000"]],
              "asks": [["4.00000200", "12.00000000"]]
            }
        """
        params = {"symbol": symbol.upper(), "limit": min(limit, 5000)}
        data = await self._get("/api/v3/depth", params)

        return Orderbook(
            exchange="binance",
            pair=pair,
            asset_type=asset_type,
            bids=[OrderbookItem(price=float(p), amount=float(q)) for p, q in data.get("bids", [])],
            asks=[OrderbookItem(price=float(p), amount=float(q)) for p, q in data.get("asks", [])],
        )

    async def get_exchange_info(self) -> Dict[str, Any]:
        """GET /api/v3/exchangeInfo: symbol list with trading status."""
        return await self._get("/api/v3/exchangeInfo")

    async def get_tradable_symbols(self) -> List[str]:
        """
        Symbols whose status is TRADING.

        Example:
            >>> await client.get_tradable_symbols()
            ['ETHBTC', 'LTCBTC', 'BTCUSDT', ...]
        """
        info = await self.get_exchange_info()
        symbols = [s["symbol"] for s in info.get("symbols", []) if s.get("status") == "TRADING"]
        self.logger.info(f"Fetched {len(symbols)} tradable Binance symbols")
        return symbols


def parse_ticker(row: Dict[str, Any], pair: CurrencyPair, asset_type: AssetType = AssetType.SPOT) -> Ticker:
    """Normalize one /api/v3/ticker/24hr row into a Ticker."""
    ticker = Ticker(
        exchange="binance",
        pair=pair,
        asset_type=asset_type,
        last=float(row.get("lastPrice", 0)),
        high=float(row.get("highPrice", 0)),
        low=float(row.get("lowPrice", 0)),
        bid=float(row.get("bidPrice", 0)),
        ask=float(row.get("askPrice", 0)),
        volume=float(row.get("volume", 0)),
    )
    if row.get("closeTime"):
        ticker.last_updated = to_utc_datetime(row["closeTime"])
    return ticker

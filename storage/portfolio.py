"""
Portfolio Ledger

Tracked addresses and their balances. Exchange-held balances are stored as
addresses whose `address` is the exchange name and whose description is
PORTFOLIO_ADDRESS_EXCHANGE; the account sync routine keeps them in line
with the latest exchange account info.
"""

import threading
from typing import Dict, List, Optional

from pydantic import BaseModel, field_validator


PORTFOLIO_ADDRESS_EXCHANGE = "Exchange"
PORTFOLIO_ADDRESS_PERSONAL = "Personal"


class PortfolioAddress(BaseModel):
    address: str
    coin_type: str
    balance: float = 0.0
    description: str = PORTFOLIO_ADDRESS_PERSONAL

    @field_validator("coin_type")
    @classmethod
    def validate_coin_type(cls, v: str) -> str:
        return v.upper()


class Portfolio:
    """
    Thread-safe address ledger.

    `addresses` is the append target; every mutation goes through a method so
    readers see a consistent list.
    """

    def __init__(self, addresses: Optional[List[PortfolioAddress]] = None) -> None:
        self._lock = threading.RLock()
        self._addresses: List[PortfolioAddress] = list(addresses or [])

    @property
    def addresses(self) -> List[PortfolioAddress]:
        """Snapshot of every tracked address."""
        with self._lock:
            return list(self._addresses)

    def _find(self, address: str, coin_type: str, description: Optional[str] = None) -> int:
        coin_type = coin_type.upper()
        for i, item in enumerate(self._addresses):
            if item.address == address and item.coin_type == coin_type:
                if description is None or item.description == description:
                    return i
        return -1

    def address_exists(self, address: str) -> bool:
        with self._lock:
            return any(item.address == address for item in self._addresses)

    def exchange_address_exists(self, exchange: str, coin_type: str) -> bool:
        with self._lock:
            return self._find(exchange, coin_type, PORTFOLIO_ADDRESS_EXCHANGE) >= 0

    def get_address_balance(self, address: str, coin_type: str, description: str) -> Optional[float]:
        """Balance of the matching address, or None if it is not tracked."""
        with self._lock:
            i = self._find(address, coin_type, description)
            return self._addresses[i].balance if i >= 0 else None

    def add_address(self, address: str, coin_type: str, balance: float, description: str) -> bool:
        """Track a new address. Returns False if it already exists."""
        with self._lock:
            if self._find(address, coin_type, description) >= 0:
                return False
            self._addresses.append(
                PortfolioAddress(address=address, coin_type=coin_type, balance=balance, description=description)
            )
            return True

    def add_exchange_address(self, exchange: str, coin_type: str, balance: float) -> bool:
        return self.add_address(exchange, coin_type, balance, PORTFOLIO_ADDRESS_EXCHANGE)

    def update_exchange_address_balance(self, exchange: str, coin_type: str, balance: float) -> bool:
        with self._lock:
            i = self._find(exchange, coin_type, PORTFOLIO_ADDRESS_EXCHANGE)
            if i < 0:
                return False
            self._addresses[i] = self._addresses[i].model_copy(update={"balance": balance})
            return True

    def remove_exchange_address(self, exchange: str, coin_type: str) -> bool:
        with self._lock:
            i = self._find(exchange, coin_type, PORTFOLIO_ADDRESS_EXCHANGE)
            if i < 0:
                return False
            del self._addresses[i]
            return True

    def get_portfolio_summary(self) -> Dict[str, float]:
        """Total balance per coin type across every address."""
        totals: Dict[str, float] = {}
        with self._lock:
            for item in self._addresses:
                totals[item.coin_type] = totals.get(item.coin_type, 0.0) + item.balance
        return totals


_portfolio: Optional[Portfolio] = None


def get_portfolio() -> Portfolio:
    """Process-wide portfolio ledger (created on first use)."""
    global _portfolio
    if _portfolio is None:
        _portfolio = Portfolio()
    return _portfolio

"""
Normalized Data Schemas

Pydantic models for every value that crosses the exchange boundary. Whatever
the source exchange's wire format, wrappers normalize into these models so
the polling routines, caches and REST layer work with one shape.

Models:
    - Ticker: last/bid/ask/high/low/volume snapshot for a pair
    - Orderbook: bid/ask depth for a pair
    - AccountInfo / Account / AccountCurrencyInfo: exchange balances
    - TradeData / TickerData / KlineData / WebsocketOrderbookUpdate:
      websocket feed payloads
    - Order models: SubmitOrderResponse, OrderCancellation, OrderDetail,
      WithdrawRequest
    - WebsocketEvent: broadcast envelope for downstream subscribers
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from core.assets import AssetType
from core.currency.pair import CurrencyPair
from core.utils.time import utc_now


# ============================================
# Base Market Data Model
# ============================================

class BaseMarketModel(BaseModel):
    """
    Common fields for pair-scoped market data.

    Attributes:
        exchange: Source exchange (lowercase)
        pair: Normalized currency pair
        asset_type: Market segment
        last_updated: When the data was produced (UTC)
    """

    exchange: str = Field(
        ...,
        description="Source exchange identifier (lowercase)",
        examples=["binance", "kraken"]
    )

    pair: CurrencyPair = Field(..., description="Normalized currency pair")

    asset_type: AssetType = Field(default=AssetType.SPOT, description="Market segment")

    last_updated: datetime = Field(default_factory=utc_now, description="Data timestamp in UTC")

    @field_validator("exchange")
    @classmethod
    def validate_exchange(cls, v: str) -> str:
        """Ensure exchange is lowercase"""
        return v.lower()


# ============================================
# Ticker Schema
# ============================================

class Ticker(BaseMarketModel):
    """
    Ticker snapshot for a pair.

    Example:
        >>> Ticker(exchange="binance", pair=new_pair("BTC", "USDT"),
        ...        last=50000.0, bid=49999.5, ask=50000.5)
    """

    last: float = Field(default=0.0, ge=0, description="Last traded price")
    high: float = Field(default=0.0, ge=0, description="24h high")
    low: float = Field(default=0.0, ge=0, description="24h low")
    bid: float = Field(default=0.0, ge=0, description="Best bid")
    ask: float = Field(default=0.0, ge=0, description="Best ask")
    volume: float = Field(default=0.0, ge=0, description="24h volume in base currency")


# ============================================
# Orderbook Schema
# ============================================

class OrderbookItem(BaseModel):
    """Single price level."""

    price: float = Field(..., ge=0)
    amount: float = Field(..., ge=0)


class Orderbook(BaseMarketModel):
    """
    Order book depth for a pair.

    Bids are expected highest-first, asks lowest-first, as exchanges return them.
    """

    bids: List[OrderbookItem] = Field(default_factory=list)
    asks: List[OrderbookItem] = Field(default_factory=list)

    def calculate_total_bids(self) -> Tuple[float, float]:
        """Return (total amount, total value) across all bid levels."""
        amount = sum(b.amount for b in self.bids)
        value = sum(b.amount * b.price for b in self.bids)
        return amount, value

    def calculate_total_asks(self) -> Tuple[float, float]:
        """Return (total amount, total value) across all ask levels."""
        amount = sum(a.amount for a in self.asks)
        value = sum(a.amount * a.price for a in self.asks)
        return amount, value


# ============================================
# Account Schemas
# ============================================

class AccountCurrencyInfo(BaseModel):
    """Balance of one currency: total and amount on hold."""

    currency_name: str
    total_value: float = 0.0
    hold: float = 0.0

    @field_validator("currency_name")
    @classmethod
    def validate_currency_name(cls, v: str) -> str:
        return v.upper()


class Account(BaseModel):
    """One sub-account on an exchange."""

    id: str = ""
    currencies: List[AccountCurrencyInfo] = Field(default_factory=list)


class AccountInfo(BaseModel):
    """All holdings of one exchange."""

    exchange: str
    accounts: List[Account] = Field(default_factory=list)


# ============================================
# Websocket Feed Payloads
# ============================================

class TradeData(BaseMarketModel):
    price: float = 0.0
    amount: float = 0.0
    side: str = ""


class TickerData(BaseMarketModel):
    """Streamed ticker; converted to Ticker before caching."""

    close_price: float = 0.0
    high_price: float = 0.0
    low_price: float = 0.0
    open_price: float = 0.0
    quantity: float = 0.0

    def to_ticker(self) -> Ticker:
        return Ticker(
            exchange=self.exchange,
            pair=self.pair,
            asset_type=self.asset_type,
            last_updated=self.last_updated,
            last=self.close_price,
            high=self.high_price,
            low=self.low_price,
            volume=self.quantity,
        )


class KlineData(BaseMarketModel):
    interval: str = ""
    open_price: float = 0.0
    close_price: float = 0.0
    high_price: float = 0.0
    low_price: float = 0.0
    volume: float = 0.0


class WebsocketOrderbookUpdate(BaseMarketModel):
    bids: List[OrderbookItem] = Field(default_factory=list)
    asks: List[OrderbookItem] = Field(default_factory=list)


# ============================================
# Order Schemas
# ============================================

class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    LIMIT = "LIMIT"
    MARKET = "MARKET"


class SubmitOrderResponse(BaseModel):
    order_id: str = ""
    is_order_placed: bool = False


class OrderCancellation(BaseModel):
    order_id: str = ""
    account_id: str = ""
    pair: Optional[CurrencyPair] = None
    asset_type: AssetType = AssetType.SPOT
    side: Optional[OrderSide] = None


class CancelAllOrdersResponse(BaseModel):
    """Map of order id to failure reason for orders that could not be cancelled."""

    order_status: dict = Field(default_factory=dict)


class OrderDetail(BaseModel):
    exchange: str
    order_id: str
    pair: Optional[CurrencyPair] = None
    side: Optional[OrderSide] = None
    order_type: Optional[OrderType] = None
    price: float = 0.0
    amount: float = 0.0
    executed_amount: float = 0.0
    status: str = ""


class WithdrawRequest(BaseModel):
    currency: str
    address: str
    amount: float = Field(..., gt=0)
    description: str = ""


# ============================================
# Broadcast Envelope
# ============================================

class WebsocketEvent(BaseModel):
    """
    Tagged event relayed to downstream websocket subscribers.

    Example:
        {"event": "ticker_update", "exchange": "binance",
         "asset_type": "Spot", "data": {...}}
    """

    event: str
    exchange: str
    asset_type: str
    data: Any = None

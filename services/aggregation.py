"""
Cross-Exchange Aggregation

Query helpers that combine data across every loaded exchange. The REST layer
calls these; they never call the network themselves except through the
exchange wrappers.

Propagation policy:
    - Functions iterating many exchanges never fail fast: a broken exchange
      is logged and skipped, degrading the result rather than aborting it
    - Functions targeting one exchange by name fail fast with
      ExchangeNotFoundError

Usage:
    from services.aggregation import get_all_available_pairs, map_currencies_by_exchange

    pairs = get_all_available_pairs(manager, enabled_only=True)
    by_exchange = map_currencies_by_exchange(manager, pairs.to_list(), True)
"""

import math
from typing import Dict, Iterable, List, Optional

from core.assets import AssetType
from core.config import settings
from core.currency.codes import is_crypto_fiat_pair, is_crypto_pair, is_cryptocurrency
from core.currency.pair import CurrencyPair, PairSet
from core.errors import ExchangeNotFoundError
from core.exchange_manager import ExchangeManager
from core.logging import get_logger
from core.schemas import (
    AccountCurrencyInfo,
    AccountInfo,
    CancelAllOrdersResponse,
    OrderCancellation,
    OrderDetail,
    Orderbook,
    Ticker,
    WithdrawRequest,
)
from storage.portfolio import PORTFOLIO_ADDRESS_EXCHANGE, Portfolio, get_portfolio
from storage.stats import PriceStats, price_stats


logger = get_logger(__name__)


# ============================================
# Pair Discovery
# ============================================

def get_all_available_pairs(
    manager: ExchangeManager,
    enabled_only: bool = True,
    asset_type: AssetType = AssetType.SPOT
) -> PairSet:
    """
    Union of every exchange's available pairs.

    Pairs are deduplicated in either order, so BTC-USD listed by one exchange
    and USD-BTC (or BTC_USD) listed by another appear once, in the form first
    seen.

    Args:
        enabled_only: Skip disabled exchanges
        asset_type: Asset type to collect
    """
    result = PairSet(either_order=True)
    for exchange in manager.snapshot():
        if enabled_only and not exchange.is_enabled():
            continue
        try:
            pairs = exchange.get_available_pairs(asset_type)
        except Exception as e:
            logger.debug(f"{exchange.get_name()}: no {asset_type} pairs ({e})")
            continue
        result.extend(pairs)
    return result


def get_specific_available_pairs(
    manager: ExchangeManager,
    enabled_only: bool = True,
    fiat_pairs: bool = True,
    include_stablecoin: bool = False,
    crypto_pairs: bool = False,
    asset_type: AssetType = AssetType.SPOT
) -> PairSet:
    """
    Available pairs filtered by kind.

    Args:
        fiat_pairs: Include crypto/fiat pairs that do not contain the stablecoin
        include_stablecoin: With fiat_pairs, also include crypto pairs quoted
                            in the stablecoin (e.g. BTC-USDT)
        crypto_pairs: Include crypto/crypto pairs
    """
    stablecoin = settings.stablecoin_symbol
    result = PairSet(either_order=True)

    for pair in get_all_available_pairs(manager, enabled_only, asset_type):
        if fiat_pairs:
            has_stablecoin = pair.contains_currency(stablecoin)
            if (is_crypto_fiat_pair(pair) and not has_stablecoin) or (
                include_stablecoin and has_stablecoin and is_crypto_pair(pair)
            ):
                result.add(pair)
        if crypto_pairs and is_crypto_pair(pair):
            result.add(pair)

    return result


def map_currencies_by_exchange(
    manager: ExchangeManager,
    pairs: Iterable[CurrencyPair],
    enabled_only: bool = True,
    asset_type: AssetType = AssetType.SPOT
) -> Dict[str, PairSet]:
    """
    Which of the given pairs each exchange supports.

    Returns:
        Dict[str, PairSet]: Exchange name -> supported pairs (either-order
        dedup). Exchanges supporting none of the pairs are absent.

    Example:
        >>> map_currencies_by_exchange(manager, [new_pair("BTC", "USD")])
        {'kraken': PairSet(['BTC-USD'], either_order)}
    """
    result: Dict[str, PairSet] = {}
    for pair in pairs:
        for exchange in manager.snapshot():
            if enabled_only and not exchange.is_enabled():
                continue
            if not exchange.supports_pair(pair, asset_type):
                continue
            result.setdefault(exchange.get_name(), PairSet(either_order=True)).add(pair)
    return result


def get_exchange_names_by_currency(
    manager: ExchangeManager,
    pair: CurrencyPair,
    enabled: bool = True,
    asset_type: AssetType = AssetType.SPOT
) -> List[str]:
    """Names of exchanges whose enabled state matches `enabled` and that list the pair."""
    return [
        exchange.get_name()
        for exchange in manager.snapshot()
        if exchange.is_enabled() == enabled and exchange.supports_pair(pair, asset_type)
    ]


def get_cryptocurrencies_by_exchange(
    manager: ExchangeManager,
    exchange_name: str,
    enabled_only: bool = True,
    enabled_pairs: bool = True,
    asset_type: AssetType = AssetType.SPOT
) -> List[str]:
    """
    Distinct cryptocurrency codes appearing in an exchange's pairs.

    Returns an empty list for an unknown exchange, or a disabled one when
    enabled_only is set.

    Raises:
        AssetTypeNotSupportedError: If the exchange does not trade the asset type
    """
    if not manager.has_exchange(exchange_name):
        return []
    exchange = manager.get_exchange(exchange_name)
    if enabled_only and not exchange.is_enabled():
        return []

    pairs = exchange.get_enabled_pairs(asset_type) if enabled_pairs else exchange.get_available_pairs(asset_type)
    codes: List[str] = []
    for pair in pairs:
        for code in (pair.first, pair.second):
            if is_cryptocurrency(code) and code not in codes:
                codes.append(code)
    return codes


def format_currency(pair: CurrencyPair) -> str:
    """Render a pair with the configured display delimiter."""
    return pair.display(settings.pair_display_delimiter)


# ============================================
# Accounts / Portfolio
# ============================================

def _collate_currencies(accounts: Iterable[AccountInfo]) -> Dict[str, AccountCurrencyInfo]:
    totals: Dict[str, List[float]] = {}
    holds: Dict[str, List[float]] = {}
    for account_info in accounts:
        for account in account_info.accounts:
            for info in account.currencies:
                totals.setdefault(info.currency_name, []).append(info.total_value)
                holds.setdefault(info.currency_name, []).append(info.hold)

    return {
        name: AccountCurrencyInfo(
            currency_name=name,
            total_value=math.fsum(totals[name]),
            hold=math.fsum(holds[name]),
        )
        for name in totals
    }


def collate_account_info_by_coin(account_infos: Iterable[AccountInfo]) -> Dict[str, AccountCurrencyInfo]:
    """
    Sum balances per currency across every exchange and sub-account.

    Sums use math.fsum, so the result does not depend on input order.

    Example:
        >>> collate_account_info_by_coin(infos)["BTC"].total_value
        1.5
    """
    return _collate_currencies(account_infos)


def get_account_currency_info_by_exchange_name(accounts: Iterable[AccountInfo], exchange_name: str) -> AccountInfo:
    """
    Raises:
        ExchangeNotFoundError: If no account info belongs to the exchange
    """
    for account_info in accounts:
        if account_info.exchange.lower() == exchange_name.lower():
            return account_info
    raise ExchangeNotFoundError(exchange_name)


def seed_exchange_account_info(data: List[AccountInfo], portfolio: Optional[Portfolio] = None) -> None:
    """
    Reconcile exchange-held portfolio addresses with fresh account info.

    Per exchange and currency (balances summed across sub-accounts):
        - not tracked, balance > 0   -> add an exchange address
        - not tracked, balance <= 0  -> skip
        - tracked, balance <= 0      -> remove the address
        - tracked, balance changed   -> update the balance
        - tracked, balance unchanged -> nothing
    """
    if not data:
        return

    portfolio = portfolio or get_portfolio()

    for account_info in data:
        exchange_name = account_info.exchange
        for currency_name, info in _collate_currencies([account_info]).items():
            total = info.total_value

            if not portfolio.exchange_address_exists(exchange_name, currency_name):
                if total <= 0:
                    continue
                logger.debug(f"Portfolio: adding exchange address {exchange_name} {currency_name} {total}")
                portfolio.add_exchange_address(exchange_name, currency_name, total)
                continue

            if total <= 0:
                logger.debug(f"Portfolio: removing {exchange_name} {currency_name} entry")
                portfolio.remove_exchange_address(exchange_name, currency_name)
                continue

            balance = portfolio.get_address_balance(exchange_name, currency_name, PORTFOLIO_ADDRESS_EXCHANGE)
            if balance is not None and balance != total:
                logger.debug(f"Portfolio: updating {exchange_name} {currency_name} balance to {total}")
                portfolio.update_exchange_address_balance(exchange_name, currency_name, total)


# ============================================
# Single-Exchange Pass-Throughs
# ============================================

async def get_specific_ticker(
    manager: ExchangeManager,
    pair: CurrencyPair,
    exchange_name: str,
    asset_type: AssetType = AssetType.SPOT
) -> Ticker:
    """
    Raises:
        ExchangeNotFoundError: If the exchange is not loaded
    """
    return await manager.get_exchange(exchange_name).fetch_ticker(pair, asset_type)


async def get_specific_orderbook(
    manager: ExchangeManager,
    pair: CurrencyPair,
    exchange_name: str,
    asset_type: AssetType = AssetType.SPOT
) -> Orderbook:
    return await manager.get_exchange(exchange_name).fetch_orderbook(pair, asset_type)


async def get_order_by_exchange(manager: ExchangeManager, exchange_name: str, order_id: str) -> OrderDetail:
    return await manager.get_exchange(exchange_name).get_order_info(order_id)


async def cancel_order_by_exchange(manager: ExchangeManager, exchange_name: str, order: OrderCancellation) -> None:
    await manager.get_exchange(exchange_name).cancel_order(order)


async def cancel_all_orders_by_exchange(
    manager: ExchangeManager,
    exchange_name: str,
    order: Optional[OrderCancellation] = None
) -> CancelAllOrdersResponse:
    return await manager.get_exchange(exchange_name).cancel_all_orders(order or OrderCancellation())


async def withdraw_cryptocurrency_funds_by_exchange(
    manager: ExchangeManager,
    exchange_name: str,
    request: WithdrawRequest
) -> str:
    """Returns the exchange's withdrawal reference."""
    return await manager.get_exchange(exchange_name).withdraw_cryptocurrency_funds(request)


async def get_exchange_cryptocurrency_deposit_address(
    manager: ExchangeManager,
    exchange_name: str,
    cryptocurrency: str
) -> str:
    return await manager.get_exchange(exchange_name).get_deposit_address(cryptocurrency.upper())


async def get_exchange_cryptocurrency_deposit_addresses(manager: ExchangeManager) -> Dict[str, Dict[str, str]]:
    """
    Deposit address of every cryptocurrency in each enabled exchange's enabled
    spot pairs. Exchanges without authenticated support are skipped.
    """
    result: Dict[str, Dict[str, str]] = {}
    for exchange in manager.snapshot():
        if not exchange.is_enabled():
            continue
        name = exchange.get_name()
        try:
            codes = get_cryptocurrencies_by_exchange(manager, name, True, True, AssetType.SPOT)
        except Exception as e:
            logger.error(f"{name}: failed to list cryptocurrencies for deposit addresses: {e}")
            continue

        addresses: Dict[str, str] = {}
        for code in codes:
            try:
                addresses[code] = await exchange.get_deposit_address(code)
            except NotImplementedError:
                logger.debug(f"{name}: deposit addresses not supported, skipping")
                break
            except Exception as e:
                logger.error(f"{name}: failed to get {code} deposit address: {e}")
        if addresses:
            result[name] = addresses
    return result


# ============================================
# Price Statistics
# ============================================

def get_exchange_highest_price_by_pair(
    pair: CurrencyPair,
    asset_type: AssetType = AssetType.SPOT,
    stats: Optional[PriceStats] = None
) -> str:
    """
    Exchange quoting the highest last price for the pair.

    Raises:
        ValueError: If no price stats exist for the pair and asset type
    """
    result = (stats or price_stats).sort_exchanges_by_price(pair, asset_type, reverse=True)
    if not result:
        raise ValueError("no stats for supplied currency pair and asset type")
    return result[0].exchange


def get_exchange_lowest_price_by_pair(
    pair: CurrencyPair,
    asset_type: AssetType = AssetType.SPOT,
    stats: Optional[PriceStats] = None
) -> str:
    """Exchange quoting the lowest last price for the pair (ValueError if none)."""
    result = (stats or price_stats).sort_exchanges_by_price(pair, asset_type, reverse=False)
    if not result:
        raise ValueError("no stats for supplied currency pair and asset type")
    return result[0].exchange


# ============================================
# Snapshot Builders (REST)
# ============================================

async def get_all_active_tickers(manager: ExchangeManager) -> Dict[str, List[Ticker]]:
    """
    Latest ticker of every enabled pair on every enabled exchange.

    Exchanges or pairs whose ticker cannot be fetched are logged and skipped.
    """
    result: Dict[str, List[Ticker]] = {}
    for exchange in manager.snapshot():
        if not exchange.is_enabled():
            continue
        name = exchange.get_name()
        tickers: List[Ticker] = []
        for asset_type in exchange.get_asset_types():
            for pair in exchange.get_enabled_pairs(asset_type):
                try:
                    tickers.append(await exchange.fetch_ticker(pair, asset_type))
                except Exception as e:
                    logger.error(f"{name}: failed to get {pair} {asset_type} ticker: {e}")
        result[name] = tickers
    return result


async def get_all_active_orderbooks(manager: ExchangeManager) -> Dict[str, List[Orderbook]]:
    """Latest order book of every enabled pair on every enabled exchange."""
    result: Dict[str, List[Orderbook]] = {}
    for exchange in manager.snapshot():
        if not exchange.is_enabled():
            continue
        name = exchange.get_name()
        orderbooks: List[Orderbook] = []
        for asset_type in exchange.get_asset_types():
            for pair in exchange.get_enabled_pairs(asset_type):
                try:
                    orderbooks.append(await exchange.fetch_orderbook(pair, asset_type))
                except Exception as e:
                    logger.error(f"{name}: failed to get {pair} {asset_type} orderbook: {e}")
        result[name] = orderbooks
    return result


async def get_all_enabled_exchange_account_info(manager: ExchangeManager) -> List[AccountInfo]:
    """
    Account info of every enabled exchange that supports authenticated calls.
    """
    result: List[AccountInfo] = []
    for exchange in manager.snapshot():
        if not exchange.is_enabled():
            continue
        try:
            result.append(await exchange.get_account_info())
        except NotImplementedError:
            logger.debug(f"{exchange.get_name()}: account info not supported, skipping")
        except Exception as e:
            logger.error(f"{exchange.get_name()}: failed to get account info: {e}")
    return result

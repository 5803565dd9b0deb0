"""
Unit Tests for Cross-Exchange Aggregation

These tests verify that:
- Available pairs are collected once per market across exchanges
- Disabled exchanges are skipped when enabled_only is set
- Pair -> exchange mapping and per-exchange currency listings
- Account totals are independent of input order
- Portfolio seeding adds, updates and removes exchange addresses
- Highest / lowest price lookup from price stats
- Snapshot builders skip failures instead of aborting

Run with:
    pytest tests/unit/test_aggregation.py -v
"""

import itertools
import math

import pytest

from core.assets import AssetType
from core.currency.pair import new_pair
from core.errors import ExchangeNotFoundError
from core.schemas import Account, AccountCurrencyInfo, AccountInfo
from services import aggregation
from storage.portfolio import PORTFOLIO_ADDRESS_EXCHANGE, Portfolio
from storage.stats import PriceStats


def account(exchange: str, *balances) -> AccountInfo:
    """account("a", ("BTC", 1.0), ("ETH", 2.0))"""
    return AccountInfo(
        exchange=exchange,
        accounts=[Account(currencies=[
            AccountCurrencyInfo(currency_name=name, total_value=value) for name, value in balances
        ])],
    )


# ============================================
# Pair Discovery
# ============================================

class TestAvailablePairs:
    """Test pair discovery across the registry"""

    def test_enabled_only_scenario(self, registry, make_exchange):
        """A enabled and B disabled both list BTC-USD: only A contributes"""
        manager = registry(
            make_exchange("a", "BTC-USD"),
            make_exchange("b", "BTC-USD", exchange_enabled=False),
        )

        pairs = aggregation.get_all_available_pairs(manager, enabled_only=True, asset_type=AssetType.SPOT)
        assert pairs.display("-") == ["BTC-USD"]

        mapping = aggregation.map_currencies_by_exchange(manager, [new_pair("BTC", "USD")], True, AssetType.SPOT)
        assert list(mapping) == ["a"]
        assert mapping["a"].display("-") == ["BTC-USD"]

    def test_no_duplicates_across_formats(self, registry, make_exchange):
        manager = registry(
            make_exchange("a", "BTC-USD,ETH-BTC"),
            make_exchange("b", "BTC_USD,USD_BTC,LTC_USD", delimiter="_"),
            make_exchange("c", "BTCUSD,BTCEUR", delimiter="", index="BTC"),
        )

        pairs = aggregation.get_all_available_pairs(manager, enabled_only=False)
        keys = [tuple(sorted((p.first, p.second))) for p in pairs]
        assert len(keys) == len(set(keys))
        assert pairs.display("-") == ["BTC-USD", "ETH-BTC", "LTC-USD", "BTC-EUR"]

    def test_includes_disabled_when_requested(self, registry, make_exchange):
        manager = registry(
            make_exchange("a", "BTC-USD"),
            make_exchange("b", "ETH-USD", exchange_enabled=False),
        )
        pairs = aggregation.get_all_available_pairs(manager, enabled_only=False)
        assert pairs.display("-") == ["BTC-USD", "ETH-USD"]

    def test_specific_pairs_filters(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD,BTC-USDT,ETH-BTC,EUR-USD"))

        fiat = aggregation.get_specific_available_pairs(manager, fiat_pairs=True)
        assert fiat.display("-") == ["BTC-USD"]

        with_stable = aggregation.get_specific_available_pairs(manager, fiat_pairs=True, include_stablecoin=True)
        assert with_stable.display("-") == ["BTC-USD", "BTC-USDT"]

        crypto = aggregation.get_specific_available_pairs(manager, fiat_pairs=False, crypto_pairs=True)
        assert crypto.display("-") == ["BTC-USDT", "ETH-BTC"]

    def test_unsupported_asset_type_contributes_nothing(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"))
        assert len(aggregation.get_all_available_pairs(manager, asset_type=AssetType.FUTURES)) == 0


class TestExchangeMapping:
    """Test pair -> exchange lookups"""

    def test_map_matches_either_order(self, registry, make_exchange):
        manager = registry(
            make_exchange("a", "USD-BTC"),
            make_exchange("b", "ETH-USD"),
        )
        mapping = aggregation.map_currencies_by_exchange(
            manager, [new_pair("BTC", "USD"), new_pair("ETH", "USD")]
        )
        assert mapping["a"].display("-") == ["BTC-USD"]
        assert mapping["b"].display("-") == ["ETH-USD"]

    def test_exchange_names_by_currency(self, registry, make_exchange):
        manager = registry(
            make_exchange("a", "BTC-USD"),
            make_exchange("b", "BTC-USD", exchange_enabled=False),
            make_exchange("c", "ETH-USD"),
        )
        pair = new_pair("BTC", "USD")
        assert aggregation.get_exchange_names_by_currency(manager, pair, enabled=True) == ["a"]
        assert aggregation.get_exchange_names_by_currency(manager, pair, enabled=False) == ["b"]

    def test_cryptocurrencies_by_exchange(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD,ETH-BTC,LTC-EUR", enabled="BTC-USD,ETH-BTC"))

        assert aggregation.get_cryptocurrencies_by_exchange(manager, "a") == ["BTC", "ETH"]
        assert aggregation.get_cryptocurrencies_by_exchange(manager, "a", enabled_pairs=False) == ["BTC", "ETH", "LTC"]
        assert aggregation.get_cryptocurrencies_by_exchange(manager, "unknown") == []

    def test_format_currency_uses_display_delimiter(self):
        assert aggregation.format_currency(new_pair("BTC", "USD", "_")) == "BTC-USD"


# ============================================
# Accounts / Portfolio
# ============================================

class TestAccountCollation:
    """Test per-coin account totals"""

    def test_sums_across_exchanges(self):
        totals = aggregation.collate_account_info_by_coin([
            account("a", ("BTC", 1.0), ("ETH", 2.0)),
            account("b", ("btc", 0.5)),
        ])
        assert totals["BTC"].total_value == 1.5
        assert totals["ETH"].total_value == 2.0

    def test_order_independent(self):
        infos = [
            account("a", ("BTC", 0.1), ("ETH", 1e16)),
            account("b", ("BTC", 0.2), ("ETH", 1.0)),
            account("c", ("BTC", 0.3), ("ETH", -1e16)),
        ]
        reference = aggregation.collate_account_info_by_coin(infos)
        for permutation in itertools.permutations(infos):
            totals = aggregation.collate_account_info_by_coin(permutation)
            for coin, info in reference.items():
                assert math.isclose(totals[coin].total_value, info.total_value, abs_tol=1e-12)
        assert reference["ETH"].total_value == 1.0

    def test_lookup_by_exchange_name(self):
        infos = [account("a", ("BTC", 1.0)), account("b", ("ETH", 1.0))]
        assert aggregation.get_account_currency_info_by_exchange_name(infos, "B").exchange == "b"
        with pytest.raises(ExchangeNotFoundError):
            aggregation.get_account_currency_info_by_exchange_name(infos, "c")


class TestSeedExchangeAccountInfo:
    """Test reconciling exchange balances into the portfolio"""

    def test_zero_balance_removes_tracked_entry(self):
        portfolio = Portfolio()
        portfolio.add_exchange_address("a", "BTC", 1.0)

        aggregation.seed_exchange_account_info([account("a", ("BTC", 0.0))], portfolio)

        assert not portfolio.exchange_address_exists("a", "BTC")

    def test_adds_updates_and_skips(self):
        portfolio = Portfolio()
        portfolio.add_exchange_address("a", "ETH", 1.0)

        aggregation.seed_exchange_account_info(
            [account("a", ("BTC", 2.0), ("ETH", 3.0), ("LTC", 0.0))], portfolio
        )

        assert portfolio.get_address_balance("a", "BTC", PORTFOLIO_ADDRESS_EXCHANGE) == 2.0
        assert portfolio.get_address_balance("a", "ETH", PORTFOLIO_ADDRESS_EXCHANGE) == 3.0
        assert not portfolio.exchange_address_exists("a", "LTC")

    def test_personal_addresses_untouched(self):
        portfolio = Portfolio()
        portfolio.add_address("a", "BTC", 5.0, "Personal")

        aggregation.seed_exchange_account_info([account("a", ("BTC", 0.0))], portfolio)

        assert portfolio.get_address_balance("a", "BTC", "Personal") == 5.0

    def test_empty_input_is_noop(self):
        portfolio = Portfolio()
        aggregation.seed_exchange_account_info([], portfolio)
        assert portfolio.addresses == []


# ============================================
# Price Stats
# ============================================

class TestPriceLookup:
    """Test highest / lowest price exchange lookup"""

    def test_highest_and_lowest(self):
        stats = PriceStats()
        pair = new_pair("BTC", "USD")
        stats.add("a", pair, AssetType.SPOT, 100.0, 1.0)
        stats.add("b", pair, AssetType.SPOT, 105.0, 1.0)
        stats.add("c", pair, AssetType.SPOT, 95.0, 1.0)

        assert aggregation.get_exchange_highest_price_by_pair(pair, AssetType.SPOT, stats) == "b"
        assert aggregation.get_exchange_lowest_price_by_pair(pair, AssetType.SPOT, stats) == "c"

    def test_no_stats_raises(self):
        with pytest.raises(ValueError):
            aggregation.get_exchange_highest_price_by_pair(new_pair("BTC", "USD"), AssetType.SPOT, PriceStats())


# ============================================
# Snapshots / Pass-Throughs
# ============================================

class TestSnapshots:
    """Test REST snapshot builders"""

    @pytest.mark.asyncio
    async def test_active_tickers_skip_failures(self, registry, make_exchange):
        manager = registry(
            make_exchange("a", "BTC-USD,ETH-USD"),
            make_exchange("b", "BTC-USD", fail_with=RuntimeError("boom")),
            make_exchange("c", "BTC-USD", exchange_enabled=False),
        )

        result = await aggregation.get_all_active_tickers(manager)

        assert set(result) == {"a", "b"}
        assert [t.pair.display("-") for t in result["a"]] == ["BTC-USD", "ETH-USD"]
        assert result["b"] == []

    @pytest.mark.asyncio
    async def test_active_orderbooks(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"))
        result = await aggregation.get_all_active_orderbooks(manager)
        assert len(result["a"]) == 1
        assert result["a"][0].bids[0].price == 99.0

    @pytest.mark.asyncio
    async def test_account_info_skips_unsupported(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"))
        assert await aggregation.get_all_enabled_exchange_account_info(manager) == []

    @pytest.mark.asyncio
    async def test_specific_ticker_unknown_exchange(self, manager):
        with pytest.raises(ExchangeNotFoundError):
            await aggregation.get_specific_ticker(manager, new_pair("BTC", "USD"), "nope")

    @pytest.mark.asyncio
    async def test_specific_ticker_uses_cache(self, registry, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        manager = registry(exchange)
        pair = new_pair("BTC", "USD")

        await aggregation.get_specific_ticker(manager, pair, "a")
        await aggregation.get_specific_ticker(manager, pair, "a")

        assert exchange.ticker_calls == [pair]

    @pytest.mark.asyncio
    async def test_order_passthrough_not_implemented(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"))
        with pytest.raises(NotImplementedError):
            await aggregation.get_order_by_exchange(manager, "a", "123")

    @pytest.mark.asyncio
    async def test_deposit_addresses_skip_unsupported(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"))
        assert await aggregation.get_exchange_cryptocurrency_deposit_addresses(manager) == {}

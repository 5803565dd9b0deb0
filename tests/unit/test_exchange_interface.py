"""
Unit Tests for Exchange Interface and Exchange Manager

These tests verify that:
- ExchangeInterface cannot be instantiated without the abstract methods
- Pair stores parse, dedup and sync back to the exchange config
- Authenticated operations raise NotImplementedError by default
- ExchangeManager registers, looks up, enables and disables exchanges
- Lifecycle helpers only touch enabled exchanges and never raise

Run with:
    pytest tests/unit/test_exchange_interface.py -v
"""

from unittest.mock import AsyncMock

import pytest

from core.assets import AssetType
from core.config import ExchangeConfig, PairConfig
from core.currency.codes import is_crypto_pair, is_cryptocurrency
from core.currency.pair import new_pair
from core.errors import AssetTypeNotSupportedError, ExchangeNotFoundError
from core.exchange_interface import ExchangeInterface
from core.schemas import OrderCancellation, OrderSide, OrderType, WithdrawRequest
from exchanges import EXCHANGE_CLASSES, create_exchange
from exchanges.binance import BinanceExchange


# ============================================
# Exchange Interface
# ============================================

class TestExchangeInterfaceAbstraction:
    """Test that the interface enforces its contract"""

    def test_cannot_instantiate_interface(self):
        with pytest.raises(TypeError):
            ExchangeInterface(ExchangeConfig(name="a"))

    def test_missing_method_cannot_instantiate(self):
        class Incomplete(ExchangeInterface):
            async def update_ticker(self, pair, asset_type=AssetType.SPOT):
                pass

        with pytest.raises(TypeError):
            Incomplete(ExchangeConfig(name="a"))

    def test_fake_exchange_identity(self, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        assert exchange.get_name() == "a"
        assert exchange.is_enabled()
        assert exchange.get_asset_types() == [AssetType.SPOT]
        assert exchange.supports("rest")
        assert not exchange.supports("trading")
        assert "name='a'" in repr(exchange)


class TestPairStores:
    """Test enabled / available pair handling"""

    def test_pairs_in_configuration_order(self, make_exchange):
        exchange = make_exchange("a", "ETH-USD,BTC-USD,LTC-USD", enabled="LTC-USD,BTC-USD")
        assert [p.display() for p in exchange.get_enabled_pairs()] == ["LTC-USD", "BTC-USD"]
        assert len(exchange.get_available_pairs()) == 3

    def test_unsupported_asset_type_raises(self, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        with pytest.raises(AssetTypeNotSupportedError):
            exchange.get_enabled_pairs(AssetType.FUTURES)

    def test_set_pairs_dedups_and_syncs_config(self, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        exchange.set_pairs(
            [new_pair("BTC", "USD"), new_pair("ETH", "USD"), new_pair("BTC", "USD")],
            AssetType.SPOT,
            enabled=True,
        )

        assert [p.display() for p in exchange.get_enabled_pairs()] == ["BTC-USD", "ETH-USD"]
        assert exchange.config.pairs[AssetType.SPOT].enabled == "BTC-USD,ETH-USD"

    def test_set_available_pairs_keeps_delimiter(self, make_exchange):
        exchange = make_exchange("b", "BTC_USD", delimiter="_")
        exchange.set_pairs([new_pair("LTC", "BTC")], AssetType.SPOT, enabled=False)
        assert exchange.config.pairs[AssetType.SPOT].available == "LTC_BTC"

    def test_supports_pair_either_order(self, make_exchange):
        exchange = make_exchange("a", "BTC-USD,ETH-USD", enabled="BTC-USD")
        assert exchange.supports_pair(new_pair("USD", "BTC"))
        assert exchange.supports_pair(new_pair("ETH", "USD"))
        assert not exchange.supports_pair(new_pair("ETH", "USD"), enabled_only=True)
        assert not exchange.supports_pair(new_pair("BTC", "USD"), AssetType.MARGIN)

    @pytest.mark.asyncio
    async def test_update_tradable_pairs_skips_populated_lists(self, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        assert await exchange.update_tradable_pairs() is False

    @pytest.mark.asyncio
    async def test_fetch_ticker_uses_cache(self, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        pair = new_pair("BTC", "USD")

        first = await exchange.fetch_ticker(pair)
        second = await exchange.fetch_ticker(pair)

        assert first.last == second.last == 100.0
        assert exchange.ticker_calls == [pair]


class TestTransportFlags:
    """Test REST / websocket capability flags"""

    def test_no_websocket_attached(self, make_exchange):
        exchange = make_exchange("a", "BTC-USD", supports_websocket=True, websocket_enabled=True)
        assert not exchange.supports_websocket()
        assert not exchange.is_websocket_enabled()
        with pytest.raises(NotImplementedError):
            exchange.get_websocket()

    def test_batching_flag(self, make_exchange):
        assert make_exchange("a", "BTC-USD", rest_ticker_batching=True).supports_rest_ticker_batch_updates()
        assert not make_exchange("b", "BTC-USD").supports_rest_ticker_batch_updates()


class TestAuthenticatedOperations:
    """Test default NotImplementedError behaviour"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda e: e.get_account_info(),
        lambda e: e.submit_order(new_pair("BTC", "USD"), OrderSide.BUY, OrderType.LIMIT, 1.0, 100.0),
        lambda e: e.cancel_order(OrderCancellation(order_id="1")),
        lambda e: e.cancel_all_orders(OrderCancellation()),
        lambda e: e.get_order_info("1"),
        lambda e: e.get_deposit_address("BTC"),
        lambda e: e.withdraw_cryptocurrency_funds(WithdrawRequest(currency="BTC", address="x", amount=1.0)),
    ], ids=["account", "submit", "cancel", "cancel-all", "order-info", "deposit", "withdraw"])
    async def test_not_implemented(self, make_exchange, call):
        with pytest.raises(NotImplementedError):
            await call(make_exchange("a", "BTC-USD"))


# ============================================
# Exchange Manager
# ============================================

class TestRegistration:
    """Test registry add / remove / lookup"""

    def test_register_and_lookup(self, registry, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        manager = registry(exchange)

        assert manager.get_exchange("A") is exchange
        assert manager.has_exchange("a")
        assert manager.list_exchanges() == ["a"]
        assert len(manager) == 1

    def test_duplicate_register_rejected(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"))
        with pytest.raises(ValueError, match="already loaded"):
            manager.register(make_exchange("a", "ETH-USD"))

    def test_unknown_exchange_raises(self, manager):
        with pytest.raises(ExchangeNotFoundError):
            manager.get_exchange("nope")
        with pytest.raises(ExchangeNotFoundError):
            manager.unregister("nope")

    def test_unregister_returns_exchange(self, registry, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        manager = registry(exchange)

        assert manager.unregister("a") is exchange
        assert len(manager) == 0

    def test_snapshot_is_a_copy(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"), make_exchange("b", "BTC-USD"))
        snapshot = manager.snapshot()

        manager.unregister("a")

        assert [e.get_name() for e in snapshot] == ["a", "b"]
        assert manager.list_exchanges() == ["b"]


class TestEnableDisable:
    """Test enable / disable bookkeeping"""

    def test_enable_disable_and_count(self, registry, make_exchange):
        manager = registry(
            make_exchange("a", "BTC-USD"),
            make_exchange("b", "BTC-USD", exchange_enabled=False),
        )
        assert manager.get_enabled_exchanges() == ["a"]
        assert manager.get_disabled_exchanges() == ["b"]

        manager.enable_exchange("b")
        manager.disable_exchange("a")

        assert manager.get_enabled_exchanges() == ["b"]
        assert manager.count_enabled() == 1
        assert manager.get_exchange("a").config.enabled is False

    def test_enable_unknown_raises(self, manager):
        with pytest.raises(ExchangeNotFoundError):
            manager.enable_exchange("nope")

    def test_capability_queries(self, registry, make_exchange):
        manager = registry(make_exchange("a", "BTC-USD"))
        assert manager.get_exchanges_with_feature("rest") == ["a"]
        assert manager.get_exchanges_with_feature("websocket") == []
        assert manager.get_exchange_capabilities("a")["rest"] is True


class TestLoadFromConfigs:
    """Test building wrappers from exchange configs"""

    def test_unknown_names_skipped(self, manager):
        configs = [
            ExchangeConfig(
                name="binance", delimiter="", index="USDT",
                pairs={AssetType.SPOT: PairConfig(available="BTCUSDT,QQQCOINUSDT", enabled="BTCUSDT")},
            ),
            ExchangeConfig(name="nowhere"),
        ]

        loaded = manager.load_from_configs(configs)

        assert loaded == ["binance"]
        assert isinstance(manager.get_exchange("binance"), BinanceExchange)
        assert is_crypto_pair(new_pair("QQQCOIN", "BTC"))

    def test_inconsistent_pairs_reconciled(self, manager):
        config = ExchangeConfig(
            name="binance", delimiter="", index="USDT",
            pairs={AssetType.SPOT: PairConfig(available="BTCUSDT", enabled="ETHUSDT")},
        )
        manager.load_from_configs([config])

        enabled = manager.get_exchange("binance").get_enabled_pairs()
        assert [p.display("-") for p in enabled] == ["BTC-USDT"]

    def test_bad_config_does_not_block_others(self, manager):
        bad = ExchangeConfig(name="broken", pairs={AssetType.SPOT: PairConfig(available="BT-", enabled="BT-")})
        good = ExchangeConfig(
            name="binance", delimiter="", index="USDT",
            pairs={AssetType.SPOT: PairConfig(available="BTCUSDT", enabled="BTCUSDT")},
        )

        assert manager.load_from_configs([bad, good]) == ["binance"]
        assert manager.list_exchanges() == ["binance"]

    def test_create_exchange_unknown_name(self):
        assert "binance" in EXCHANGE_CLASSES
        with pytest.raises(ValueError, match="No wrapper"):
            create_exchange(ExchangeConfig(name="nowhere"))


class TestLifecycle:
    """Test initialize / health / shutdown across the registry"""

    @pytest.mark.asyncio
    async def test_health_check_enabled_only(self, registry, make_exchange):
        manager = registry(
            make_exchange("a", "BTC-USD"),
            make_exchange("b", "BTC-USD", exchange_enabled=False),
        )
        assert await manager.health_check_all() == {"a": True}

    @pytest.mark.asyncio
    async def test_failures_do_not_propagate(self, registry, make_exchange):
        broken = make_exchange("a", "BTC-USD")
        calls = []

        async def fail():
            calls.append("called")
            raise RuntimeError("boom")

        broken.initialize = fail
        broken.health_check = fail
        broken.shutdown = fail
        manager = registry(broken, make_exchange("b", "BTC-USD"))

        await manager.initialize_all()
        assert await manager.health_check_all() == {"a": False, "b": True}
        await manager.shutdown_all()

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_initialize_skips_disabled(self, registry, make_exchange):
        disabled = make_exchange("a", "BTC-USD", exchange_enabled=False)
        called = []

        async def record():
            called.append(True)

        disabled.initialize = record
        await registry(disabled).initialize_all()

        assert called == []


class TestAutoPairUpdates:
    """Test refreshing available pairs during initialize_all"""

    @pytest.mark.asyncio
    async def test_refresh_reconciles_enabled_pairs(self, registry, make_exchange):
        exchange = make_exchange("a", "BTC-USD,ETH-USD", enabled="ETH-USD", auto_pair_updates=True)
        exchange.fetch_tradable_pairs = AsyncMock(return_value=["BTC-USD", "ZZZCOIN-USD"])

        await registry(exchange).initialize_all()

        assert [p.display() for p in exchange.get_available_pairs()] == ["BTC-USD", "ZZZCOIN-USD"]
        assert [p.display() for p in exchange.get_enabled_pairs()] == ["BTC-USD"]
        assert exchange.config.pairs[AssetType.SPOT].enabled == "BTC-USD"
        assert is_cryptocurrency("ZZZCOIN")

    @pytest.mark.asyncio
    async def test_refresh_failure_is_logged_not_raised(self, registry, make_exchange):
        exchange = make_exchange("a", "BTC-USD", auto_pair_updates=True)
        exchange.fetch_tradable_pairs = AsyncMock(side_effect=RuntimeError("exchange down"))

        await registry(exchange).initialize_all()

        assert [p.display() for p in exchange.get_available_pairs()] == ["BTC-USD"]

    @pytest.mark.asyncio
    async def test_refresh_off_by_default(self, registry, make_exchange):
        exchange = make_exchange("a", "BTC-USD")
        exchange.fetch_tradable_pairs = AsyncMock(return_value=["ETH-USD"])

        await registry(exchange).initialize_all()

        exchange.fetch_tradable_pairs.assert_not_called()

"""
FastAPI Application - Multi-Exchange Trading Engine

Runs the exchange registry, the ticker / order book polling routines and
the websocket supervisor, and exposes their state over REST and WebSocket.

Supported Exchanges:
    - Binance Spot

Features:
    - Latest tickers and order books for every enabled pair
    - Pair discovery across exchanges (available, relatable, by exchange)
    - Highest / lowest price lookup from collected price stats
    - Portfolio ledger and exchange account info
    - Live ticker / order book updates relayed over /ws

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional
from contextlib import asynccontextmanager
import asyncio

from core.assets import AssetType
from core.config import load_exchange_configs, settings, validate_configuration
from core.currency.pair import CurrencyPair
from core.currency.relatable import get_relatable_currencies
from core.errors import AssetTypeNotSupportedError, ExchangeNotFoundError, WebsocketShutdownError
from core.exchange_interface import ExchangeInterface
from core.exchange_manager import get_manager
from core.logging import logger
from core.schemas import Orderbook, Ticker
from services import aggregation
from services.event_bus import TOPICS, bus
from services.market_poller import OrderbookUpdater, TickerUpdater
from services.websocket_routine import WebsocketRoutine
from storage.portfolio import get_portfolio


manager = get_manager()  # Global exchange registry
ticker_updater = TickerUpdater(manager)
orderbook_updater = OrderbookUpdater(manager)
websocket_routine = WebsocketRoutine(manager)


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info("=== Trading Engine Starting ===")
    try:
        validate_configuration()
        if not manager.list_exchanges():
            manager.load_from_configs(load_exchange_configs(settings.exchanges_config_file))
        await manager.initialize_all()
        logger.info(f"Enabled exchanges: {manager.count_enabled()}/{len(manager)}")

        # Start routines
        try:
            if settings.enable_ticker_routine:
                await ticker_updater.start()
            if settings.enable_orderbook_routine:
                await orderbook_updater.start()
            if settings.enable_websocket_routine:
                await websocket_routine.start()
        except Exception as svc_err:
            logger.error(f"Routines failed to start: {svc_err}")
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("=== Shutting Down ===")
    try:
        await ticker_updater.stop()
        await orderbook_updater.stop()
        if settings.enable_websocket_routine:
            try:
                await websocket_routine.shutdown()
            except WebsocketShutdownError as ws_err:
                logger.error(f"Websocket routines shutdown: {ws_err}")
        await manager.shutdown_all()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Multi-Exchange Trading Engine API",
    description=(
        "Market data and account state aggregated across cryptocurrency exchanges.\n\n"
        "## REST Endpoints\n"
        "- `GET /exchanges` - Registered exchanges and their capabilities\n"
        "- `GET /exchanges/enabled/latest/all` - Latest tickers of every enabled pair\n"
        "- `GET /exchanges/orderbook/latest/all` - Latest order books of every enabled pair\n"
        "- `GET /exchanges/enabled/accounts/all` - Collated account info\n"
        "- `GET /portfolio/all` - Portfolio addresses and summary\n"
        "- `GET /{exchange}/ticker?pair=BTC-USDT` - Ticker for one pair\n"
        "- `GET /{exchange}/orderbook?pair=BTC-USDT` - Order book for one pair\n"
        "- `GET /pairs/available` - Pairs available across exchanges\n"
        "- `GET /pairs/relatable?pair=BTC-USD` - Pairs relatable by symbol translation\n"
        "- `GET /pairs/by-exchange?pairs=BTC-USDT,ETH-USDT` - Which exchanges list which pairs\n"
        "- `GET /prices/highest?pair=BTC-USDT` / `GET /prices/lowest?pair=BTC-USDT`\n"
        "- `GET /health` - Health check\n\n"
        "## WebSocket\n"
        "- `ws://{host}/ws` - ticker_update / orderbook_update events\n"
        "  - Query: `topics` selects the events the client receives (comma-separated)\n"
        "\n"
        "All WebSocket messages are JSON objects: {event, exchange, asset_type, data}."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


# ============================================
# Request Helpers
# ============================================

def _get_exchange(name: str) -> ExchangeInterface:
    try:
        return manager.get_exchange(name)
    except ExchangeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _parse_pair(value: str) -> CurrencyPair:
    try:
        return CurrencyPair.from_string(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _dump(items) -> List[dict]:
    return [item.model_dump(mode="json") for item in items]


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information and registered exchanges."""
    return {
        "name": "Multi-Exchange Trading Engine API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "exchanges": manager.list_exchanges()
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Health check - tests connectivity to all enabled exchanges."""
    health = await manager.health_check_all()
    return {
        "status": "healthy" if all(health.values()) else "degraded",
        "exchanges": health
    }


@app.get("/exchanges", tags=["System"])
async def list_exchanges():
    """List registered exchanges, their state and capabilities."""
    return {
        "exchanges": [
            {
                "name": exchange.get_name(),
                "enabled": exchange.is_enabled(),
                "asset_types": [a.value for a in exchange.get_asset_types()],
                "capabilities": manager.get_exchange_capabilities(exchange.get_name())
            }
            for exchange in manager.snapshot()
        ]
    }


@app.get("/config/all", tags=["System"])
async def get_config():
    """Exchange configurations currently in effect (pairs reflect runtime changes)."""
    return [exchange.config.model_dump(mode="json") for exchange in manager.snapshot()]


# ============================================
# Aggregated Endpoints
# NOTE: must be defined BEFORE generic '/{exchange}/...' routes
#       to avoid being captured by the dynamic path.
# ============================================

@app.get("/exchanges/enabled/latest/all", tags=["Aggregated"])
async def get_all_latest_tickers():
    """Latest ticker of every enabled pair, grouped by exchange."""
    tickers = await aggregation.get_all_active_tickers(manager)
    return {
        "data": [
            {"exchange": name, "exchange_values": _dump(values)}
            for name, values in tickers.items()
        ]
    }


@app.get("/exchanges/orderbook/latest/all", tags=["Aggregated"])
async def get_all_latest_orderbooks():
    """Latest order book of every enabled pair, grouped by exchange."""
    orderbooks = await aggregation.get_all_active_orderbooks(manager)
    return {
        "data": [
            {"exchange": name, "exchange_values": _dump(values)}
            for name, values in orderbooks.items()
        ]
    }


@app.get("/exchanges/enabled/accounts/all", tags=["Aggregated"])
async def get_all_account_info():
    """Account info of every enabled exchange plus per-coin totals."""
    accounts = await aggregation.get_all_enabled_exchange_account_info(manager)
    return {
        "data": _dump(accounts),
        "totals": {
            coin: info.model_dump(mode="json")
            for coin, info in aggregation.collate_account_info_by_coin(accounts).items()
        }
    }


@app.get("/portfolio/all", tags=["Aggregated"])
async def get_portfolio_all():
    """Tracked addresses and the balance summary per coin."""
    portfolio = get_portfolio()
    return {
        "addresses": _dump(portfolio.addresses),
        "summary": portfolio.get_portfolio_summary()
    }


@app.get("/pairs/available", tags=["Pairs"])
async def get_available_pairs(
    asset_type: AssetType = Query(default=AssetType.SPOT),
    enabled_only: bool = Query(default=True, description="Skip disabled exchanges"),
    fiat_pairs: Optional[bool] = Query(default=None, description="Only crypto/fiat pairs"),
    include_stablecoin: bool = Query(default=False),
    crypto_pairs: bool = Query(default=False, description="Only crypto/crypto pairs")
):
    """
    Pairs available across exchanges (deduplicated in either order).

    Examples:
        GET /pairs/available
        GET /pairs/available?fiat_pairs=true&include_stablecoin=true
    """
    if fiat_pairs is None and not crypto_pairs:
        pairs = aggregation.get_all_available_pairs(manager, enabled_only, asset_type)
    else:
        pairs = aggregation.get_specific_available_pairs(
            manager, enabled_only, bool(fiat_pairs), include_stablecoin, crypto_pairs, asset_type
        )
    return {"pairs": [aggregation.format_currency(p) for p in pairs]}


@app.get("/pairs/relatable", tags=["Pairs"])
async def get_relatable_pairs(
    pair: str = Query(..., description="Pair, e.g. BTC-USD"),
    include_original: bool = Query(default=True),
    include_stablecoin: bool = Query(default=True)
):
    """
    Pairs relatable to the given one by symbol translation (BTC <-> XBT, USD <-> USDT).

    Example:
        GET /pairs/relatable?pair=BTC-USD&include_original=false
    """
    relatable = get_relatable_currencies(_parse_pair(pair), include_original, include_stablecoin)
    return {"pairs": [aggregation.format_currency(p) for p in relatable]}


@app.get("/pairs/by-exchange", tags=["Pairs"])
async def get_pairs_by_exchange(
    pairs: str = Query(..., description="Comma-separated pairs, e.g. BTC-USDT,ETH-USDT"),
    asset_type: AssetType = Query(default=AssetType.SPOT),
    enabled_only: bool = Query(default=True)
):
    """Which of the given pairs each exchange supports."""
    requested = [_parse_pair(p) for p in pairs.split(",") if p.strip()]
    mapping = aggregation.map_currencies_by_exchange(manager, requested, enabled_only, asset_type)
    return {
        name: [aggregation.format_currency(p) for p in supported]
        for name, supported in mapping.items()
    }


@app.get("/prices/highest", tags=["Pairs"])
async def get_highest_price(
    pair: str = Query(..., description="Pair, e.g. BTC-USDT"),
    asset_type: AssetType = Query(default=AssetType.SPOT)
):
    """Exchange quoting the highest last price for the pair."""
    try:
        exchange = aggregation.get_exchange_highest_price_by_pair(_parse_pair(pair), asset_type)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"pair": pair, "exchange": exchange}


@app.get("/prices/lowest", tags=["Pairs"])
async def get_lowest_price(
    pair: str = Query(..., description="Pair, e.g. BTC-USDT"),
    asset_type: AssetType = Query(default=AssetType.SPOT)
):
    """Exchange quoting the lowest last price for the pair."""
    try:
        exchange = aggregation.get_exchange_lowest_price_by_pair(_parse_pair(pair), asset_type)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"pair": pair, "exchange": exchange}


# ============================================
# Market Data Endpoints
# ============================================

@app.get("/{exchange}/ticker", response_model=Ticker, tags=["Market Data"])
async def get_ticker(
    exchange: str,
    pair: str = Query(..., description="Pair, e.g. BTC-USDT"),
    asset_type: AssetType = Query(default=AssetType.SPOT)
):
    """
    Latest ticker for one pair (cached, refreshed on a miss).

    Examples:
        GET /binance/ticker?pair=BTC-USDT
    """
    _get_exchange(exchange)
    pair_obj = _parse_pair(pair)
    try:
        return await aggregation.get_specific_ticker(manager, pair_obj, exchange, asset_type)
    except AssetTypeNotSupportedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotImplementedError as e:
        raise HTTPException(status_code=501, detail=str(e))
    except Exception as e:
        logger.error(f"Ticker error {exchange}/{pair}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch ticker: {str(e)}")


@app.get("/{exchange}/orderbook", response_model=Orderbook, tags=["Market Data"])
async def get_orderbook(
    exchange: str,
    pair: str = Query(..., description="Pair, e.g. BTC-USDT"),
    asset_type: AssetType = Query(default=AssetType.SPOT)
):
    """
    Latest order book for one pair (cached, refreshed on a miss).

    Examples:
        GET /binance/orderbook?pair=ETH-USDT
    """
    _get_exchange(exchange)
    pair_obj = _parse_pair(pair)
    try:
        return await aggregation.get_specific_orderbook(manager, pair_obj, exchange, asset_type)
    except AssetTypeNotSupportedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotImplementedError as e:
        raise HTTPException(status_code=501, detail=str(e))
    except Exception as e:
        logger.error(f"Orderbook error {exchange}/{pair}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch orderbook: {str(e)}")


@app.get("/{exchange}/pairs", tags=["Market Data"])
async def get_exchange_pairs(
    exchange: str,
    asset_type: AssetType = Query(default=AssetType.SPOT),
    enabled: bool = Query(default=True, description="Enabled pairs (false: available pairs)")
):
    """Enabled or available pairs of one exchange."""
    ex = _get_exchange(exchange)
    try:
        pairs = ex.get_enabled_pairs(asset_type) if enabled else ex.get_available_pairs(asset_type)
    except AssetTypeNotSupportedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"exchange": ex.get_name(), "pairs": [aggregation.format_currency(p) for p in pairs]}


# ============================================
# WebSocket Endpoint
# ============================================

@app.websocket("/ws")
async def websocket_events(
    websocket: WebSocket,
    topics: str = Query(default=",".join(TOPICS), description="Comma-separated event names")
):
    """
    Relay ticker / order book updates from the polling routines.

    Example:
        ws://localhost:8000/ws?topics=ticker_update
    """
    selected = [t.strip() for t in topics.split(",") if t.strip() in TOPICS]
    await websocket.accept()
    if not selected:
        logger.warning(f"WS rejected: /ws (no valid topics in '{topics}')")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    logger.info(f"WS connected: /ws ({', '.join(selected)})")

    queues = {topic: await bus.subscribe(topic) for topic in selected}
    merged: asyncio.Queue = asyncio.Queue()

    async def forward(queue: asyncio.Queue):
        while True:
            await merged.put(await queue.get())

    forwarders = [asyncio.create_task(forward(q)) for q in queues.values()]
    try:
        while True:
            try:
                event = await merged.get()
                await websocket.send_json(event)
            except Exception as e:
                logger.error(f"[WS /ws] send error: {e}")
                break
    except WebSocketDisconnect:
        logger.info("WS disconnected: /ws")
    finally:
        for task in forwarders:
            task.cancel()
        await asyncio.gather(*forwarders, return_exceptions=True)
        for topic, queue in queues.items():
            await bus.unsubscribe(topic, queue)
        logger.info("WS ended: /ws")


# ============================================
# Error Handlers
# ============================================

@app.exception_handler(ExchangeNotFoundError)
async def exchange_not_found_handler(request, exc):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AssetTypeNotSupportedError)
async def asset_type_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotImplementedError)
async def not_implemented_handler(request, exc):
    return JSONResponse(status_code=501, content={"detail": str(exc) or "Not implemented"})


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Handle 404 errors."""
    detail = getattr(exc, "detail", None) or "Not found"
    return JSONResponse(status_code=404, content={"detail": detail, "path": str(request.url)})


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Handle 500 errors."""
    logger.error(f"Internal error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

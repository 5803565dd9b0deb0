"""
Configuration Management Module

Loads, validates and exposes the engine configuration.

Two sources:
    - Settings: process-wide knobs from environment variables / .env file
      (pydantic-settings), e.g. polling interval, stablecoin symbol, log level
    - ExchangeConfig: per-exchange pair and transport configuration, read
      from the JSON file named by EXCHANGES_CONFIG_FILE

Usage:
    from core.config import settings, load_exchange_configs

    print(settings.poll_interval_seconds)
    configs = load_exchange_configs(settings.exchanges_config_file)
"""

import json
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.assets import AssetType, parse_asset_types


class Settings(BaseSettings):
    """
    Application Settings

    Values are loaded from environment variables or the .env file
    (case-insensitive, unknown keys ignored).
    """

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )

    verbose: bool = Field(
        default=False,
        description="Verbose routine logging (websocket kline/orderbook events, reconnects)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    exchanges_config_file: str = Field(
        default="exchanges.json",
        description="Path to the JSON list of exchange configurations"
    )

    # ============================================
    # Routines
    # ============================================

    enable_ticker_routine: bool = Field(default=True, description="Run the ticker updater loop")
    enable_orderbook_routine: bool = Field(default=True, description="Run the order book updater loop")
    enable_websocket_routine: bool = Field(default=False, description="Supervise exchange websocket feeds")

    websocket_server_enabled: bool = Field(
        default=True,
        description="Relay ticker/orderbook updates to websocket subscribers"
    )

    poll_interval_seconds: float = Field(
        default=10.0,
        description="Sleep between polling iterations (seconds)"
    )

    ws_reconnect_interval_seconds: float = Field(
        default=3.0,
        description="Interval between websocket reconnect attempts (seconds)"
    )

    ws_shutdown_timeout_seconds: float = Field(
        default=5.0,
        description="How long shutdown waits for websocket routines (seconds)"
    )

    request_timeout: int = Field(
        default=10,
        description="HTTP request timeout in seconds"
    )

    # ============================================
    # Currency Configuration
    # ============================================

    stablecoin_symbol: str = Field(
        default="USDT",
        description="Stablecoin excluded from relatable pairs unless requested"
    )

    fiat_display_currency: str = Field(
        default="USD",
        description="Fiat currency used when printing ticker summaries"
    )

    pair_display_delimiter: str = Field(
        default="-",
        description="Delimiter used when displaying currency pairs"
    )

    cryptocurrencies: str = Field(
        default="BTC,LTC,ETH,DOGE,DASH,XRP,XMR,USDT,BCH,ADA,SOL",
        description="Comma-separated list of known cryptocurrencies (extended from exchange pairs at startup)"
    )

    # ============================================
    # CORS Configuration
    # ============================================

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    @property
    def cryptocurrencies_list(self) -> List[str]:
        """
        Known cryptocurrency codes.

        Example:
            >>> settings.cryptocurrencies_list[:3]
            ['BTC', 'LTC', 'ETH']
        """
        return [c.strip().upper() for c in self.cryptocurrencies.split(",") if c.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()


# ============================================
# Exchange Configuration
# ============================================

class PairConfig(BaseModel):
    """Available and enabled pairs for one asset type, as comma-separated strings."""

    available: str = ""
    enabled: str = ""

    @property
    def available_list(self) -> List[str]:
        return [p.strip() for p in self.available.split(",") if p.strip()]

    @property
    def enabled_list(self) -> List[str]:
        return [p.strip() for p in self.enabled.split(",") if p.strip()]


class ExchangeConfig(BaseModel):
    """
    Per-exchange configuration.

    Attributes:
        name: Exchange identifier (lowercase)
        enabled: Whether the exchange participates in polling/aggregation
        asset_types: Asset types the exchange trades
        pairs: Pair configuration per asset type
        delimiter: Delimiter used in the stored pair strings ("" for BTCUSDT style)
        index: Quote anchor for delimiter-less pairs (e.g., "USDT")
        supports_rest / supports_websocket: Transport capabilities
        websocket_enabled: Whether the websocket feed should be supervised
        rest_ticker_batching: Exchange can refresh every ticker with one call
        auto_pair_updates: Refresh available pairs from the exchange on startup
    """

    name: str
    enabled: bool = True
    asset_types: List[AssetType] = Field(default_factory=lambda: [AssetType.SPOT])
    pairs: Dict[AssetType, PairConfig] = Field(default_factory=dict)
    delimiter: str = "-"
    index: str = ""
    supports_rest: bool = True
    supports_websocket: bool = False
    websocket_enabled: bool = False
    rest_ticker_batching: bool = False
    auto_pair_updates: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Exchange names are lowercase"""
        return v.strip().lower()

    @field_validator("asset_types", mode="before")
    @classmethod
    def validate_asset_types(cls, v):
        """Accept "Spot,Futures" as well as a list"""
        if isinstance(v, str):
            parsed = parse_asset_types(v)
            if parsed is None:
                raise ValueError(f"Invalid asset types: '{v}'")
            return parsed
        return v

    def get_pair_config(self, asset_type: AssetType) -> PairConfig:
        if asset_type not in self.pairs:
            self.pairs[asset_type] = PairConfig()
        return self.pairs[asset_type]


def load_exchange_configs(path: str) -> List[ExchangeConfig]:
    """
    Load exchange configurations from a JSON file.

    Args:
        path: Path to a JSON list of exchange config objects

    Returns:
        List[ExchangeConfig]: Parsed configs (empty if the file does not exist)

    Raises:
        ValueError: If the file exists but is not a valid config list
    """
    from core.logging import logger

    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Exchange config file '{path}' not found, no exchanges loaded")
        return []

    try:
        raw = json.loads(config_path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Exchange config file '{path}' is not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise ValueError(f"Exchange config file '{path}' must contain a list")

    try:
        configs = [ExchangeConfig.model_validate(item) for item in raw]
    except ValidationError as e:
        raise ValueError(f"Invalid exchange config in '{path}': {e}") from e

    names = [c.name for c in configs]
    duplicates = {n for n in names if names.count(n) > 1}
    if duplicates:
        raise ValueError(f"Duplicate exchange names in '{path}': {', '.join(sorted(duplicates))}")

    logger.info(f"Loaded {len(configs)} exchange config(s) from {path}")
    return configs


def check_pair_consistency(config: ExchangeConfig) -> bool:
    """
    Reconcile enabled pairs against available pairs for every asset type.

    Enabled pairs that are not available are dropped. If none remain, the
    first available pair is enabled.

    Args:
        config: Exchange configuration, updated in place

    Returns:
        bool: True if the configuration was changed
    """
    # Import here to avoid circular imports (core.currency reads settings)
    from core.currency.pair import PairSet, format_pairs
    from core.logging import logger

    changed = False
    for asset_type in config.asset_types:
        pair_cfg = config.get_pair_config(asset_type)
        available = format_pairs(pair_cfg.available_list, config.delimiter, config.index)
        enabled = format_pairs(pair_cfg.enabled_list, config.delimiter, config.index)

        if not available:
            continue

        available_set = PairSet(available, either_order=False)
        consistent = [p for p in enabled if available_set.contains(p)]
        removed = [p for p in enabled if not available_set.contains(p)]
        asset_changed = False

        if removed:
            logger.warning(
                f"{config.name} {asset_type}: removing enabled pairs not in available list: "
                f"{', '.join(p.display(config.delimiter) for p in removed)}"
            )
            asset_changed = True

        if not consistent:
            consistent = [available[0]]
            logger.warning(
                f"{config.name} {asset_type}: no enabled pairs, enabling "
                f"{available[0].display(config.delimiter)}"
            )
            asset_changed = True

        if asset_changed:
            pair_cfg.enabled = ",".join(p.display(config.delimiter) for p in consistent)
            changed = True

    return changed


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate critical settings on application startup.

    Raises:
        ValueError: If a setting is out of range
    """
    from core.logging import logger

    if not (1 <= settings.app_port <= 65535):
        raise ValueError(f"Invalid port number: {settings.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    if settings.poll_interval_seconds <= 0:
        raise ValueError("POLL_INTERVAL_SECONDS must be positive")

    if settings.ws_reconnect_interval_seconds <= 0 or settings.ws_shutdown_timeout_seconds <= 0:
        raise ValueError("Websocket reconnect interval and shutdown timeout must be positive")

    if not settings.stablecoin_symbol.strip():
        raise ValueError("STABLECOIN_SYMBOL must not be empty")

    logger.info("Configuration validated successfully")
    logger.info(f"Exchange config: {settings.exchanges_config_file}")
    logger.info(f"Poll interval: {settings.poll_interval_seconds}s")
    logger.info(f"Server: {settings.app_host}:{settings.app_port}")
    logger.info(f"Log level: {settings.log_level.upper()}")

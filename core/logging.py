"""
Unified Logging Configuration

All modules log through the "tradeengine" logger hierarchy configured here
instead of printing. The level comes from the LOG_LEVEL setting.

Usage:
    from core.logging import logger, get_logger

    logger.info("Engine started")

    log = get_logger(__name__)      # -> "tradeengine.services.market_poller"
    log.debug("Polling iteration finished")

Log Levels:
    DEBUG    - Per-pair fetch details, websocket event dispatch
    INFO     - Ticker / order book summaries, lifecycle events
    WARNING  - Degraded exchanges, unknown websocket payloads
    ERROR    - Failed fetches, broadcast failures, reconnect failures
"""

import logging
import sys
from typing import Optional


ROOT_LOGGER_NAME = "tradeengine"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include logger name in log messages

    Returns:
        logging.Logger: Configured root application logger

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Ticker updater started")
        2024-01-01 12:00:00 [INFO] tradeengine: Ticker updater started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s:")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    return root


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level
except ImportError:
    # settings not importable yet (partial import during bootstrap)
    log_level = "INFO"

logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger of the application logger.

    Args:
        name: Component name (typically __name__)

    Returns:
        logging.Logger: e.g. "tradeengine.services.aggregation"
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(resolved)
    logging.getLogger().setLevel(resolved)


def log_websocket_event(exchange: str, event: str, details: Optional[str] = None) -> None:
    """
    Log a websocket lifecycle event with consistent formatting.

    Args:
        exchange: Exchange name
        event: Event type (e.g., "connected", "disconnected", "error")
        details: Additional details (optional)

    Example:
        >>> log_websocket_event("binance", "error", "close 1006 (abnormal closure)")
        [ERROR] tradeengine: Websocket: binance error | close 1006 (abnormal closure)
    """
    details_str = f" | {details}" if details else ""
    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"Websocket: {exchange} {event}{details_str}")


logger.debug("Logging system initialized")

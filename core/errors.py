"""
Engine Error Types

Typed errors surfaced to the REST layer. Lookup failures subclass ValueError
so callers that already catch ValueError (the registry contract) keep working.
"""


class ExchangeNotFoundError(ValueError):
    """Raised when a single-target operation names an unknown exchange."""

    def __init__(self, name: str, available: str = ""):
        self.name = name
        message = f"Exchange '{name}' not found"
        if available:
            message += f". Available exchanges: {available}"
        super().__init__(message)


class AssetTypeNotSupportedError(ValueError):
    """Raised when an exchange is asked for an asset type it does not trade."""

    def __init__(self, exchange: str, asset_type: str):
        self.exchange = exchange
        self.asset_type = asset_type
        super().__init__(f"{exchange} does not support asset type {asset_type}")


class WebsocketShutdownError(RuntimeError):
    """Raised when websocket routines fail to stop within the shutdown timeout."""

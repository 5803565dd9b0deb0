"""
Core Package

Contains the exchange-agnostic core logic including:
- ExchangeInterface: Abstract base class every exchange wrapper implements
- ExchangeManager: Thread-safe registry of loaded exchanges
- ExchangeWebsocket: Base class for an exchange's streaming feed
- currency: Pairs, symbol translation and relatable-pair expansion
- Schemas: Pydantic models for normalized data (Ticker, Orderbook, AccountInfo, ...)
- config / logging / errors: Settings, logger setup and typed exceptions

Higher layers (routines, aggregation, REST) only talk to exchanges through
this package.
"""

"""
FastAPI Application Package

This package contains the main FastAPI application and routing logic.
It serves as the entry point for the trading engine API, providing REST and
WebSocket endpoints over the exchange registry, caches and portfolio.
"""

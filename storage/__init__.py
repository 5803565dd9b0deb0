"""
Storage Package

In-memory state shared by the exchange wrappers and background routines:
- cache: Latest ticker / order book per (exchange, pair, asset type)
- stats: Latest price per exchange, for highest / lowest price lookups
- portfolio: Tracked addresses and exchange-held balances

Nothing here is persisted; state is rebuilt by the routines after a restart.
"""

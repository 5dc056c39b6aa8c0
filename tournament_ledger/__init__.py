"""
Tournament wallet ledger and settlement engine.

Per-user coin wallets scoped to a recurring tournament period, wager
placement and settlement, ranked standings and prize-pool distribution.
"""

__version__ = "1.0.0"

"""
Portfolio Tracker - An in-memory stock portfolio ledger with performance analytics.

Exports:
    Instrument: A tradable instrument with identity and price history
    TransactionRecord: Immutable record of an executed buy or sell
    TradeResult: Outcome of a trade request
    TradeStatus: Enumeration of trade outcomes
    Ledger: Cash, holdings, instrument registry and transaction log
    MarketSimulator: Random-walk market that owns instrument prices
    LedgerConfig, MarketConfig: Configuration dataclasses
"""

from .config import LedgerConfig, MarketConfig
from .models import Instrument, TradeResult, TradeStatus, TransactionRecord
from .ledger import Ledger
from .market import MarketSimulator

__all__ = [
    "Instrument",
    "TransactionRecord",
    "TradeResult",
    "TradeStatus",
    "Ledger",
    "MarketSimulator",
    "LedgerConfig",
    "MarketConfig",
]

"""Configuration constants for the portfolio tracker."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class LedgerConfig:
    """Configuration for the portfolio ledger."""

    DEFAULT_INITIAL_CASH: Decimal = Decimal("10000.00")
    DEFAULT_RANKING_COUNT: int = 5
    DEFAULT_RECENT_COUNT: int = 10
    REQUIRE_REGISTERED_SYMBOLS: bool = False


@dataclass(frozen=True)
class MarketConfig:
    """Configuration for the simulated market."""

    PRICE_CHANGE_LIMIT: float = 0.05
    MIN_PRICE: Decimal = Decimal("1.00")
    HISTORY_DAYS: int = 30

"""Data models for the portfolio tracker."""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Literal, Optional

import numpy as np

Side = Literal["BUY", "SELL"]

logger = logging.getLogger(__name__)

_sequence = itertools.count()


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a price-like value to Decimal.

    Floats go through ``str`` so that 175.50 becomes Decimal("175.50") rather
    than its binary expansion.

    Raises:
        ValueError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Expected a numeric amount, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Expected a numeric amount, got {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Expected a finite amount, got {value!r}")
    return result


class Instrument:
    """A tradable instrument with a fixed identity and a growing price history.

    The market simulator is the only component that calls ``update_price``;
    the ledger and the console driver share the same object for reads.
    """

    def __init__(
        self,
        symbol: str,
        name: str,
        price: Decimal | int | float | str,
        sector: str = "Technology",
    ) -> None:
        if not symbol:
            raise ValueError("Instrument symbol must not be empty")
        initial = to_decimal(price)
        if initial <= 0:
            raise ValueError(f"Price for {symbol} must be positive, got {initial}")

        self._symbol = symbol
        self._name = name
        self._sector = sector
        self._price_history: list[Decimal] = [initial]

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def name(self) -> str:
        return self._name

    @property
    def sector(self) -> str:
        return self._sector

    @property
    def current_price(self) -> Decimal:
        return self._price_history[-1]

    @property
    def price_history(self) -> tuple[Decimal, ...]:
        return tuple(self._price_history)

    def update_price(self, new_price: Decimal | int | float | str) -> bool:
        """Record a new price. Returns False and keeps the history on invalid input."""
        try:
            price = to_decimal(new_price)
        except ValueError:
            price = None
        if price is None or price <= 0:
            logger.warning(
                "Rejected price update for %s: %r is not a positive amount",
                self._symbol,
                new_price,
            )
            return False
        self._price_history.append(price)
        return True

    def performance(self) -> float:
        """Percent change of the current price against the first recorded one."""
        if len(self._price_history) < 2:
            return 0.0
        initial = self._price_history[0]
        return float((self.current_price - initial) / initial * 100)

    def average_price(self) -> Decimal:
        if not self._price_history:
            return Decimal("0")
        total = sum(self._price_history, start=Decimal("0"))
        return total / len(self._price_history)

    def volatility(self) -> float:
        """Population standard deviation of the price history."""
        if len(self._price_history) < 2:
            return 0.0
        return float(np.std(np.asarray(self._price_history, dtype=float)))

    def __lt__(self, other: "Instrument") -> bool:
        return self.performance() < other.performance()

    def __repr__(self) -> str:
        return (
            f"Instrument(symbol={self._symbol!r}, name={self._name!r}, "
            f"sector={self._sector!r}, current_price={self.current_price})"
        )


@dataclass(frozen=True)
class TransactionRecord:
    """An executed trade. ``total`` is fixed when the record is created."""

    symbol: str
    side: Side
    quantity: int
    price_per_unit: Decimal
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sequence: int = field(default_factory=_sequence.__next__)
    total: Decimal = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "total", Decimal(self.quantity) * self.price_per_unit
        )

    @property
    def sort_key(self) -> int:
        # Creation order, independent of the wall clock.
        return self.sequence

    def __lt__(self, other: "TransactionRecord") -> bool:
        return self.sort_key < other.sort_key

    def __gt__(self, other: "TransactionRecord") -> bool:
        return self.sort_key > other.sort_key

    def __str__(self) -> str:
        return (
            f"{self.side} {self.quantity} {self.symbol} "
            f"@ ${self.price_per_unit:,.2f} (total ${self.total:,.2f})"
        )


class TradeStatus(Enum):
    """Outcome of a buy or sell request."""

    OK = "ok"
    INSUFFICIENT_FUNDS = "insufficient-funds"
    INSUFFICIENT_SHARES = "insufficient-shares"
    INVALID_INPUT = "invalid-input"
    UNKNOWN_SYMBOL = "unknown-symbol"


@dataclass(frozen=True)
class TradeResult:
    """Result of a trade request. Truthy only when the trade was executed."""

    status: TradeStatus
    message: str
    transaction: Optional[TransactionRecord] = None

    @property
    def ok(self) -> bool:
        return self.status is TradeStatus.OK

    def __bool__(self) -> bool:
        return self.ok

    def __str__(self) -> str:
        return self.message

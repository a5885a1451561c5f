import logging
from decimal import Decimal, DecimalException
from types import MappingProxyType
from typing import Mapping, Optional

from .config import LedgerConfig
from .models import (
    Instrument,
    Side,
    TradeResult,
    TradeStatus,
    TransactionRecord,
    to_decimal,
)
from .ranking import bottom_n, sector_weights, sort_by_performance, top_n

logger = logging.getLogger(__name__)


class Ledger:
    """In-memory portfolio: cash, holdings, instrument registry and trade log.

    Not thread-safe. Callers sharing a ledger across threads must serialize
    trades and any reads that need a consistent view.
    """

    def __init__(
        self,
        name: str,
        initial_cash: Optional[Decimal | int | float | str] = None,
        *,
        config: Optional[LedgerConfig] = None,
    ) -> None:
        self.config = config or LedgerConfig()
        cash = (
            self.config.DEFAULT_INITIAL_CASH
            if initial_cash is None
            else to_decimal(initial_cash)
        )
        if cash < 0:
            raise ValueError(f"Initial cash must not be negative, got {cash}")

        self.name = name
        self._initial_cash = cash
        self._cash_balance = cash
        self._instruments: dict[str, Instrument] = {}
        self._holdings: dict[str, int] = {}
        self._transactions: list[TransactionRecord] = []
        self._sector_allocation: dict[str, float] = {}

    @property
    def initial_cash(self) -> Decimal:
        return self._initial_cash

    @property
    def cash_balance(self) -> Decimal:
        return self._cash_balance

    @property
    def instruments(self) -> Mapping[str, Instrument]:
        return MappingProxyType(self._instruments)

    @property
    def holdings(self) -> dict[str, int]:
        return dict(self._holdings)

    @property
    def transactions(self) -> tuple[TransactionRecord, ...]:
        return tuple(self._transactions)

    @property
    def sector_allocation(self) -> dict[str, float]:
        """Last computed sector allocation. Call ``recompute_sector_allocation`` to refresh."""
        return dict(self._sector_allocation)

    # Trading

    def buy(
        self, symbol: str, quantity: int, price: Decimal | int | float | str
    ) -> TradeResult:
        """Buy ``quantity`` units of ``symbol`` at ``price`` each.

        Returns:
            TradeResult with status OK and the new transaction, or a failure
            status (INVALID_INPUT, UNKNOWN_SYMBOL, INSUFFICIENT_FUNDS) with the
            ledger left untouched.
        """
        rejected, unit_price, cost = self._validate_trade(symbol, quantity, price)
        if rejected is not None:
            return rejected

        if cost > self._cash_balance:
            return self._reject(
                TradeStatus.INSUFFICIENT_FUNDS,
                f"Insufficient funds: need ${cost:,.2f}, "
                f"but only have ${self._cash_balance:,.2f}",
            )

        self._cash_balance -= cost
        self._holdings[symbol] = self._holdings.get(symbol, 0) + quantity
        return self._record(symbol, "BUY", quantity, unit_price)

    def sell(
        self, symbol: str, quantity: int, price: Decimal | int | float | str
    ) -> TradeResult:
        """Sell ``quantity`` units of ``symbol`` at ``price`` each.

        A holding sold down to zero is removed from the holdings table.
        """
        rejected, unit_price, proceeds = self._validate_trade(symbol, quantity, price)
        if rejected is not None:
            return rejected

        owned = self._holdings.get(symbol, 0)
        if owned < quantity:
            return self._reject(
                TradeStatus.INSUFFICIENT_SHARES,
                f"Cannot sell {quantity} shares of {symbol}. Only own {owned} shares.",
            )

        try:
            new_balance = self._cash_balance + proceeds
        except DecimalException:
            return self._reject(
                TradeStatus.INVALID_INPUT,
                f"Sale proceeds of {proceeds} are out of range for the cash balance",
            )

        self._cash_balance = new_balance
        remaining = owned - quantity
        if remaining == 0:
            del self._holdings[symbol]
        else:
            self._holdings[symbol] = remaining
        return self._record(symbol, "SELL", quantity, unit_price)

    def _validate_trade(
        self, symbol: str, quantity: int, price: Decimal | int | float | str
    ) -> tuple[Optional[TradeResult], Decimal, Decimal]:
        """Check a trade request. Returns (rejection or None, unit price, quantity * price)."""
        zero = Decimal("0")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            return self._reject(
                TradeStatus.INVALID_INPUT,
                f"Quantity must be a positive whole number, got {quantity!r}",
            ), zero, zero

        try:
            unit_price = to_decimal(price)
        except ValueError as e:
            return self._reject(TradeStatus.INVALID_INPUT, str(e)), zero, zero
        if unit_price <= 0:
            return self._reject(
                TradeStatus.INVALID_INPUT,
                f"Price must be positive, got {unit_price}",
            ), zero, zero

        try:
            amount = Decimal(quantity) * unit_price
        except DecimalException:
            return self._reject(
                TradeStatus.INVALID_INPUT,
                f"Trade value of {quantity} x {unit_price} is out of range",
            ), zero, zero

        if self.config.REQUIRE_REGISTERED_SYMBOLS and symbol not in self._instruments:
            return self._reject(
                TradeStatus.UNKNOWN_SYMBOL, f"Unknown symbol: {symbol}"
            ), zero, zero

        return None, unit_price, amount

    def _reject(self, status: TradeStatus, message: str) -> TradeResult:
        logger.warning("Trade rejected (%s): %s", status.value, message)
        return TradeResult(status=status, message=message)

    def _record(
        self, symbol: str, side: Side, quantity: int, unit_price: Decimal
    ) -> TradeResult:
        transaction = TransactionRecord(
            symbol=symbol, side=side, quantity=quantity, price_per_unit=unit_price
        )
        self._transactions.append(transaction)

        verb = "bought" if side == "BUY" else "sold"
        message = (
            f"Successfully {verb} {quantity} shares of {symbol} "
            f"at ${unit_price:,.2f} each"
        )
        logger.info(message)
        return TradeResult(
            status=TradeStatus.OK, message=message, transaction=transaction
        )

    # Registry

    def register_instrument(self, instrument: Instrument) -> None:
        self._instruments[instrument.symbol] = instrument
        self.recompute_sector_allocation()

    def find_instrument(self, symbol: str) -> Optional[Instrument]:
        return self._instruments.get(symbol)

    def stock_count(self) -> int:
        return len(self._instruments)

    def quantity(self, symbol: str) -> int:
        return self._holdings.get(symbol, 0)

    def positions(self) -> list[tuple[Instrument, int]]:
        """Held instruments with their quantities, in registration order.

        Holdings whose symbol was never registered are left out.
        """
        return [
            (instrument, self._holdings[symbol])
            for symbol, instrument in self._instruments.items()
            if self._holdings.get(symbol, 0) > 0
        ]

    def _held_instruments(self) -> list[Instrument]:
        return [instrument for instrument, _ in self.positions()]

    # Valuation

    def holdings_value(self) -> Decimal:
        return sum(
            (Decimal(qty) * instrument.current_price for instrument, qty in self.positions()),
            start=Decimal("0"),
        )

    def total_value(self) -> Decimal:
        return self._cash_balance + self.holdings_value()

    def total_gain_loss(self) -> Decimal:
        """Holdings value minus net invested capital (buys less sell proceeds)."""
        net_invested = Decimal("0")
        for transaction in self._transactions:
            if transaction.side == "BUY":
                net_invested += transaction.total
            else:
                net_invested -= transaction.total
        return self.holdings_value() - net_invested

    def performance_percentage(self) -> float:
        """Percent change of total value against the starting cash."""
        if self._initial_cash == 0:
            return 0.0
        return float(
            (self.total_value() - self._initial_cash) / self._initial_cash * 100
        )

    # Analytics

    def top_performers(self, n: Optional[int] = None) -> list[Instrument]:
        if n is None:
            n = self.config.DEFAULT_RANKING_COUNT
        return top_n(self._held_instruments(), n)

    def worst_performers(self, n: Optional[int] = None) -> list[Instrument]:
        if n is None:
            n = self.config.DEFAULT_RANKING_COUNT
        return bottom_n(self._held_instruments(), n)

    def sorted_by_performance(self) -> list[Instrument]:
        return sort_by_performance(self._held_instruments())

    def stocks_by_sector(self, sector: str) -> list[Instrument]:
        return [
            instrument
            for instrument in self._held_instruments()
            if instrument.sector == sector
        ]

    def recent_transactions(self, n: Optional[int] = None) -> list[TransactionRecord]:
        """Return up to ``n`` transactions, newest first."""
        if n is None:
            n = self.config.DEFAULT_RECENT_COUNT
        if n <= 0:
            return []
        ordered = sorted(self._transactions, key=lambda t: t.sort_key, reverse=True)
        return ordered[:n]

    def recompute_sector_allocation(self) -> dict[str, float]:
        self._sector_allocation = sector_weights(self.positions())
        return dict(self._sector_allocation)

    def __repr__(self) -> str:
        return (
            f"Ledger(name={self.name!r}, cash_balance={self._cash_balance}, "
            f"holdings={self._holdings}, "
            f"transactions={len(self._transactions)})"
        )

"""Simulated market that owns instrument prices."""

import logging
import random
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Iterable, Optional

from .config import MarketConfig
from .models import Instrument

if TYPE_CHECKING:
    from .ledger import Ledger

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Each entry: (symbol, company name, starting price, sector)
DEFAULT_UNIVERSE: list[tuple[str, str, Decimal, str]] = [
    ("AAPL", "Apple Inc.", Decimal("175.50"), "Technology"),
    ("GOOGL", "Alphabet Inc.", Decimal("142.30"), "Technology"),
    ("MSFT", "Microsoft Corp.", Decimal("378.85"), "Technology"),
    ("TSLA", "Tesla Inc.", Decimal("248.50"), "Automotive"),
    ("AMZN", "Amazon.com Inc.", Decimal("155.20"), "E-commerce"),
    ("NVDA", "NVIDIA Corp.", Decimal("875.30"), "Technology"),
    ("META", "Meta Platforms", Decimal("485.50"), "Technology"),
    ("NFLX", "Netflix Inc.", Decimal("445.75"), "Entertainment"),
    ("JPM", "JPMorgan Chase", Decimal("185.40"), "Finance"),
    ("JNJ", "Johnson & Johnson", Decimal("162.80"), "Healthcare"),
]


def default_instruments() -> list[Instrument]:
    return [
        Instrument(symbol, name, price, sector)
        for symbol, name, price, sector in DEFAULT_UNIVERSE
    ]


class MarketSimulator:
    """Random-walk price simulator and the single writer of instrument prices."""

    def __init__(
        self,
        instruments: Optional[Iterable[Instrument]] = None,
        *,
        config: Optional[MarketConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or MarketConfig()
        self._rng = rng or random.Random()
        source = default_instruments() if instruments is None else instruments
        self._instruments: dict[str, Instrument] = {i.symbol: i for i in source}

    def instruments(self) -> list[Instrument]:
        return list(self._instruments.values())

    def find(self, symbol: str) -> Optional[Instrument]:
        return self._instruments.get(symbol)

    def _next_price(self, current: Decimal) -> Decimal:
        limit = self.config.PRICE_CHANGE_LIMIT
        change = Decimal(str(self._rng.uniform(-limit, limit)))
        moved = (current * (1 + change)).quantize(CENT, rounding=ROUND_HALF_UP)
        return max(moved, self.config.MIN_PRICE)

    def step(self) -> dict[str, Decimal]:
        """Move every instrument once. Returns the new prices by symbol."""
        moves: dict[str, Decimal] = {}
        for symbol, instrument in self._instruments.items():
            new_price = self._next_price(instrument.current_price)
            instrument.update_price(new_price)
            moves[symbol] = new_price
            logger.debug("%s moved to %s", symbol, new_price)
        return moves

    def simulate_history(self, days: Optional[int] = None) -> None:
        """Seed price history with ``days`` rounds of moves."""
        if days is None:
            days = self.config.HISTORY_DAYS
        for _ in range(days):
            self.step()

    def register_all(self, ledger: "Ledger") -> None:
        for instrument in self._instruments.values():
            ledger.register_instrument(instrument)

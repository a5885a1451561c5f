"""Performance ranking and sector aggregation over held instruments.

Ties in performance keep the order in which instruments are passed in. The
ledger passes them in registration order, so results are deterministic for a
given run but carry no symbol-based tie-break.
"""

import heapq
from collections.abc import Iterable
from decimal import Decimal

from .models import Instrument


def _performance(instrument: Instrument) -> float:
    return instrument.performance()


def top_n(instruments: Iterable[Instrument], n: int) -> list[Instrument]:
    """Return up to ``n`` instruments with the highest performance, best first."""
    if n <= 0:
        return []
    return heapq.nlargest(n, instruments, key=_performance)


def bottom_n(instruments: Iterable[Instrument], n: int) -> list[Instrument]:
    """Return up to ``n`` instruments with the lowest performance, worst first."""
    if n <= 0:
        return []
    return heapq.nsmallest(n, instruments, key=_performance)


def sort_by_performance(instruments: Iterable[Instrument]) -> list[Instrument]:
    return sorted(instruments, key=_performance, reverse=True)


def sector_weights(positions: Iterable[tuple[Instrument, int]]) -> dict[str, float]:
    """Aggregate position values into sector percentages of the total.

    Args:
        positions: (instrument, quantity) pairs. Non-positive quantities are ignored.

    Returns:
        Sector name to percentage (0-100), keys in sorted order. Empty when the
        positions are worth nothing.
    """
    values: dict[str, Decimal] = {}
    for instrument, quantity in positions:
        if quantity <= 0:
            continue
        value = Decimal(quantity) * instrument.current_price
        values[instrument.sector] = values.get(instrument.sector, Decimal("0")) + value

    total = sum(values.values(), start=Decimal("0"))
    if total <= 0:
        return {}

    return {
        sector: float(values[sector] / total * 100)
        for sector in sorted(values)
    }

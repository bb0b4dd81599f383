"""
inventory/visibility.py -- Derived lot visibility.

A lot is listed iff it has no items at all, or at least one item that is
not cancelled. Visibility is never stored.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

from inventory.models import Item, Lot


@dataclass
class LotTally:
    total: int = 0
    active: int = 0


def tally_items(lot_ids: Iterable[int], items: Iterable[Item]) -> dict[int, LotTally]:
    """Count total and non-cancelled items per lot, for the given lots only."""
    tallies = {lot_id: LotTally() for lot_id in lot_ids}
    for item in items:
        tally = tallies.get(item.lot_id)
        if tally is None:
            continue
        tally.total += 1
        if not item.cancelled:
            tally.active += 1
    return tallies


def visible_lots(lots: Sequence[Lot], items: Iterable[Item]) -> list[Lot]:
    """Filter lots down to the visible ones, preserving the input order."""
    tallies = tally_items((lot.id for lot in lots), items)
    return [lot for lot in lots if tallies[lot.id].total == 0 or tallies[lot.id].active > 0]

"""
inventory/checklist.py -- Checklist progress per lot.

"Done" means checked or rejected; only unchecked is pending. Rows written
before checklist_status existed have it NULL and fall back to the boolean
checked flag. Cancelled items are not part of any checklist.

Lots are bucketed:
    completed   has items, none pending
    incomplete  has items, none done
    partial     has items, some done and some pending
    empty       no active items
Each bucket is ordered by the lot name's trailing number, highest first,
falling back to name order when either name has no number.
"""

import re
from dataclasses import asdict, dataclass
from functools import cmp_to_key
from typing import Iterable, Optional

from core.errors import ValidationError
from inventory.models import CHECKED, REJECTED, UNCHECKED, Item, Lot

_TRAILING_NUMBER = re.compile(r"(\d+)$")


@dataclass
class LotProgress:
    lot_id: int
    lot_name: str
    total_items: int = 0
    checked_items: int = 0
    pending_items: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def is_done(item: Item) -> bool:
    status = (item.checklist_status or "").lower()
    if status in (CHECKED, REJECTED):
        return True
    if status == UNCHECKED:
        return False
    return bool(item.checked)


def _trailing_number(name: str) -> int:
    match = _TRAILING_NUMBER.search(name)
    return int(match.group(1)) if match else 0


def _compare_lots(a: LotProgress, b: LotProgress) -> int:
    num_a = _trailing_number(a.lot_name)
    num_b = _trailing_number(b.lot_name)
    if num_a and num_b:
        return num_b - num_a
    key_a, key_b = a.lot_name.casefold(), b.lot_name.casefold()
    return (key_a > key_b) - (key_a < key_b)


def summarize(lots: Iterable[Lot], items: Iterable[Item]) -> dict[str, list[LotProgress]]:
    """Aggregate progress for every lot (lots with no items included)."""
    progress: dict[int, LotProgress] = {}
    for lot in lots:
        progress[lot.id] = LotProgress(lot_id=lot.id, lot_name=lot.name)

    for item in items:
        if item.cancelled or item.lot_id is None:
            continue
        entry = progress.get(item.lot_id)
        if entry is None:
            entry = LotProgress(lot_id=item.lot_id, lot_name=item.lot_name or f"Lot {item.lot_id}")
            progress[item.lot_id] = entry
        entry.total_items += 1
        if is_done(item):
            entry.checked_items += 1

    buckets: dict[str, list[LotProgress]] = {"partial": [], "incomplete": [], "completed": [], "empty": []}
    for entry in progress.values():
        entry.pending_items = max(0, entry.total_items - entry.checked_items)
        buckets[_bucket_for(entry)].append(entry)

    for bucket in buckets.values():
        bucket.sort(key=cmp_to_key(_compare_lots))
    return buckets


def _bucket_for(entry: LotProgress) -> str:
    if entry.total_items == 0:
        return "empty"
    if entry.pending_items == 0:
        return "completed"
    if entry.checked_items == 0:
        return "incomplete"
    return "partial"


def validate_status(status: Optional[str], allowed: tuple[str, ...]) -> str:
    """Return status if allowed, else raise ValidationError."""
    if not status or status not in allowed:
        raise ValidationError("Invalid checklist_status", detail=f"expected one of: {', '.join(allowed)}")
    return status

"""
inventory/models.py -- Domain dataclasses for lots and items.

These are pure data containers with zero logic. Derived state (lot
visibility, checklist progress, redaction) lives in the sibling modules
that compute it; persistence lives in inventory/store.py.
"""

from dataclasses import dataclass
from typing import Optional

UNCHECKED = "unchecked"
CHECKED = "checked"
REJECTED = "rejected"

CHECKLIST_STATUSES: tuple[str, ...] = (UNCHECKED, CHECKED, REJECTED)
# Bulk writes cannot mark a whole lot rejected.
BULK_CHECKLIST_STATUSES: tuple[str, ...] = (UNCHECKED, CHECKED)


@dataclass
class Lot:
    """A named batch of items.

    Visibility in listings is derived from the lot's items (see
    inventory/visibility.py), never stored.

    id is None before the record is written to the database.
    """

    name: str
    id: Optional[int] = None
    description: Optional[str] = None
    locked: bool = False
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Item:
    """One contributed item inside a lot.

    owner_username and price are Optional so that redaction can null them
    for callers who do not own the row. checked mirrors
    checklist_status == "checked" and is written alongside it.

    checklist_status may be None on rows that predate the checklist; readers
    fall back to the checked flag.
    """

    lot_id: int
    id: Optional[int] = None
    owner_username: Optional[str] = None
    picture_url: Optional[str] = None
    price: Optional[float] = None
    cancelled: bool = False
    checklist_status: Optional[str] = UNCHECKED
    checked: bool = False
    created_at: str = ""  # ISO 8601, set by store on insert
    lot_name: Optional[str] = None  # joined from lots on read
    lot_created_at: Optional[str] = None  # joined from lots on read

"""
inventory/redaction.py -- Ownership-aware field masking for item rows.

The data store has no row-level security, so every read path that returns
items to a non-staff caller runs them through redact(). Rows are never
dropped or reordered; only owner_username and price are nulled on rows the
caller does not own.
"""

from dataclasses import replace
from typing import Iterable

from auth.models import Identity
from auth.policy import is_staff
from inventory.models import Item


def _owns(row: Item, username: str) -> bool:
    return bool(username) and (row.owner_username or "").strip() == username


def redact(rows: Iterable[Item], requester: Identity) -> list[Item]:
    """Return rows with other owners' price and owner_username set to None.

    Staff roles get the rows unchanged. Ownership is a case-sensitive match
    on trimmed usernames; a guest or an empty username owns nothing.
    """
    rows = list(rows)
    if is_staff(requester):
        return rows
    username = "" if requester.is_guest else (requester.username or "").strip()
    return [row if _owns(row, username) else replace(row, owner_username=None, price=None) for row in rows]

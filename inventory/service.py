"""
inventory/service.py -- Read and write paths that route through the core rules.

Every "all rows" read pages through fetch_all() (the store truncates single
selects), every item read returned to a caller goes through redact(), and
lot listings go through visible_lots(). Route handlers call these functions
and only shape the HTTP response.
"""

import logging
import math
import re
from functools import partial
from typing import Optional

from auth.models import VIEWER, Identity
from auth.policy import is_staff
from auth.store import UserStore
from core.errors import Forbidden, NotFound, ValidationError
from inventory.checklist import LotProgress, summarize, validate_status
from inventory.models import BULK_CHECKLIST_STATUSES, CHECKLIST_STATUSES, Item, Lot
from core.pagination import fetch_all, fetch_all_sorted
from inventory.redaction import redact
from inventory.store import InventoryStore
from inventory.visibility import visible_lots

logger = logging.getLogger("lotdesk.inventory")

_HTTP_URL = re.compile(r"^https?://", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------


def list_visible_lots(store: InventoryStore, page_size: int) -> list[Lot]:
    """All visible lots, newest first."""
    lots = fetch_all_sorted(store.page_lots, page_size, key=lambda lot: (lot.created_at or "", lot.id), reverse=True)
    if not lots:
        return []
    lot_ids = [lot.id for lot in lots]
    items = fetch_all(partial(store.page_items, lot_ids=lot_ids), page_size)
    return visible_lots(lots, items)


def create_lot(store: InventoryStore, name: str, description: Optional[str] = None) -> int:
    name = (name or "").strip()
    if not name:
        raise ValidationError("lot_name is required")
    return store.create_lot(Lot(name=name, description=description or None))


def update_lot(store: InventoryStore, lot_id: int, changes: dict) -> Lot:
    updates = dict(changes)
    if "name" in updates:
        updates["name"] = (updates["name"] or "").strip()
        if not updates["name"]:
            raise ValidationError("lot_name is required")
    if "description" in updates:
        updates["description"] = updates["description"] or None
    if not updates:
        raise ValidationError("No fields to update")
    lot = store.update_lot(lot_id, **updates)
    if lot is None:
        raise NotFound("Lot not found")
    return lot


def delete_lot(store: InventoryStore, lot_id: int) -> None:
    if not store.delete_lot(lot_id):
        raise NotFound("Lot not found")


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def lot_items(store: InventoryStore, lot_id: int, requester: Identity, page_size: int) -> list[Item]:
    """Every item of a lot in display order, redacted for the requester."""
    rows = fetch_all_sorted(partial(store.page_items, lot_id=lot_id), page_size)
    return redact(rows, requester)


def profile_items(store: InventoryStore, username: str, requester: Identity, page_size: int) -> list[Item]:
    """Active items owned by username, newest lot first then newest item.

    Viewers may only read their own profile.
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username query param is required")
    if not is_staff(requester) and (requester.is_guest or requester.username != username):
        raise Forbidden("Forbidden")
    rows = fetch_all_sorted(
        partial(store.page_items, owner=username, active_only=True),
        page_size,
        key=lambda item: (item.lot_created_at or "", item.created_at or ""),
        reverse=True,
    )
    return redact(rows, requester)


def _ensure_owner(users: UserStore, username: str) -> None:
    if users.get_by_username(username) is None:
        users.create_identity(Identity(username=username, role=VIEWER, display_number=None))
        logger.info("Created viewer identity %r for item owner", username)


def _check_price(price: float, *, allow_zero: bool) -> float:
    if not math.isfinite(price) or price < 0 or (price == 0 and not allow_zero):
        raise ValidationError("Invalid price")
    return price


def create_item(
    store: InventoryStore,
    users: UserStore,
    *,
    lot_id: int,
    username: str,
    picture_url: str,
    price: float,
    create_if_missing: bool = False,
) -> int:
    username = (username or "").strip()
    picture_url = (picture_url or "").strip()
    if not username:
        raise ValidationError("username is required")
    if not _HTTP_URL.match(picture_url):
        raise ValidationError("Invalid picture_url")
    _check_price(price, allow_zero=False)
    if store.get_lot(lot_id) is None:
        raise NotFound("Lot not found")

    if create_if_missing:
        _ensure_owner(users, username)
    return store.create_item(Item(lot_id=lot_id, owner_username=username, picture_url=picture_url, price=price))


def get_item(store: InventoryStore, item_id: int) -> Item:
    item = store.get_item(item_id)
    if item is None:
        raise NotFound("Item not found")
    return item


def update_item(
    store: InventoryStore,
    users: UserStore,
    item_id: int,
    changes: dict,
    *,
    create_if_missing: bool = False,
) -> None:
    """Patch owner_username, cancelled and/or price."""
    updates = {k: v for k, v in changes.items() if k in ("owner_username", "cancelled", "price") and v is not None}
    if not updates:
        raise ValidationError("Missing patch fields")
    if "owner_username" in updates:
        updates["owner_username"] = updates["owner_username"].strip()
        if not updates["owner_username"]:
            raise ValidationError("username cannot be empty")
    if "price" in updates:
        _check_price(updates["price"], allow_zero=True)

    if store.get_item(item_id) is None:
        raise NotFound("Item not found")
    if create_if_missing and "owner_username" in updates:
        _ensure_owner(users, updates["owner_username"])
    store.update_item(item_id, **updates)


def delete_item(store: InventoryStore, item_id: int) -> None:
    if not store.delete_item(item_id):
        raise NotFound("Item not found")


# ---------------------------------------------------------------------------
# Checklist
# ---------------------------------------------------------------------------


def checklist_items(store: InventoryStore, lot_id: int, page_size: int) -> list[Item]:
    """Active items of a lot in legacy gallery order (created_at, then id)."""
    return fetch_all_sorted(partial(store.page_items, lot_id=lot_id, active_only=True), page_size)


def set_checklist_status(store: InventoryStore, item_id: int, status: str) -> None:
    validate_status(status, CHECKLIST_STATUSES)
    if not store.set_checklist_status(item_id, status):
        raise NotFound("Item not found")


def bulk_set_checklist_status(store: InventoryStore, lot_id: int, status: str) -> int:
    validate_status(status, BULK_CHECKLIST_STATUSES)
    return store.bulk_set_checklist_status(lot_id, status)


def checklist_summary(store: InventoryStore, page_size: int) -> dict[str, list[LotProgress]]:
    lots = fetch_all(store.page_lots, page_size)
    items = fetch_all(store.page_items, page_size)
    return summarize(lots, items)


def stats(store: InventoryStore, users: UserStore) -> dict[str, int]:
    return {"users": users.count_identities(), "lots": store.count_lots(), "items": store.count_items()}

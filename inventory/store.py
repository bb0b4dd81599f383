"""
inventory/store.py -- SQLAlchemy-backed persistence for lots and items.

Uses SQLAlchemy Core (not ORM) so the dataclasses in inventory/models.py stay
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. InventoryStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL.

Row cap: like the managed store this service was built against, every
select returns at most max_rows rows, silently. Any caller that needs all
matching rows must page through page_lots()/page_items() with
core/pagination.fetch_all(). Never rely on a single select being
complete.

Checklist invariant: items.checked == (items.checklist_status == "checked").
Every write path that touches checklist_status writes checked in the same
statement.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = InventoryStore()                     # SQLite default
    lot_id = store.create_lot(Lot(name="Lot 12"))
    store.create_item(Item(lot_id=lot_id, owner_username="bob", price=100))
    page = store.page_items(None, 1000, lot_id=lot_id)
    store.close()
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from inventory.models import CHECKED, UNCHECKED, Item, Lot

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'lotdesk_inventory.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_lots = Table(
    "lots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("lot_name", String(255), nullable=False),
    Column("description", Text),
    Column("locked", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    Column("created_at", String(32), nullable=False),
)

_items = Table(
    "items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("lot_id", Integer, nullable=False, index=True),
    Column("username", String(255), index=True),
    Column("picture_url", Text),
    Column("price", Float),
    Column("cancelled", Integer, server_default="0"),  # NULL is treated as not cancelled
    Column("checked", Integer, server_default="0"),
    Column("checklist_status", String(20), server_default=UNCHECKED),
    Column("created_at", String(32), nullable=False),
)

_LOT_FIELDS = {"name": "lot_name", "description": "description", "locked": "locked", "created_at": "created_at"}
_ITEM_FIELDS = {"owner_username": "username", "cancelled": "cancelled", "price": "price", "picture_url": "picture_url"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def _active_clause():
    return or_(_items.c.cancelled.is_(None), _items.c.cancelled == 0)


def _checklist_values(status: str) -> dict:
    return {"checklist_status": status, "checked": 1 if status == CHECKED else 0}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class InventoryStore:
    """Repository for Lot and Item entities.

    max_rows is the per-select cap. Requests for more are truncated without
    error.
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, max_rows: int = 1000) -> None:
        if max_rows < 1:
            raise ValueError("max_rows must be >= 1")
        self.max_rows = max_rows
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def _cap(self, limit: int) -> int:
        return max(0, min(limit, self.max_rows))

    # ------------------------------------------------------------------
    # Lots
    # ------------------------------------------------------------------

    def create_lot(self, lot: Lot) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _lots.insert().values(
                    lot_name=lot.name,
                    description=lot.description,
                    locked=1 if lot.locked else 0,
                    created_at=lot.created_at or _now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_lot(self, lot_id: int) -> Optional[Lot]:
        with self.engine.connect() as conn:
            row = conn.execute(_lots.select().where(_lots.c.id == lot_id)).fetchone()
        return _row_to_lot(row) if row is not None else None

    def page_lots(self, after_id: Optional[int], limit: int) -> list[Lot]:
        """One page of lots with id > after_id, ascending by id."""
        stmt = _lots.select().order_by(_lots.c.id).limit(self._cap(limit))
        if after_id is not None:
            stmt = stmt.where(_lots.c.id > after_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_lot(r) for r in rows]

    def update_lot(self, lot_id: int, **fields) -> Optional[Lot]:
        """Update name/description/locked/created_at. Returns the updated Lot or None."""
        values = {_LOT_FIELDS[k]: v for k, v in fields.items() if k in _LOT_FIELDS}
        if "locked" in values:
            values["locked"] = 1 if values["locked"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_lots.update().where(_lots.c.id == lot_id).values(**values))
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_lot(lot_id)

    def delete_lot(self, lot_id: int) -> bool:
        """Delete a lot and its items in one transaction. Returns False if not found."""
        with self.engine.begin() as conn:
            conn.execute(_items.delete().where(_items.c.lot_id == lot_id))
            result = conn.execute(_lots.delete().where(_lots.c.id == lot_id))
        return result.rowcount > 0

    def count_lots(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_lots)).scalar() or 0

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def create_item(self, item: Item) -> int:
        status = item.checklist_status or UNCHECKED
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.insert().values(
                    lot_id=item.lot_id,
                    username=item.owner_username,
                    picture_url=item.picture_url,
                    price=item.price,
                    cancelled=1 if item.cancelled else 0,
                    created_at=item.created_at or _now_iso(),
                    **_checklist_values(status),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_item(self, item_id: int) -> Optional[Item]:
        stmt = self._item_select().where(_items.c.id == item_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_item(row) if row is not None else None

    def page_items(
        self,
        after_id: Optional[int],
        limit: int,
        *,
        lot_id: Optional[int] = None,
        lot_ids: Optional[Iterable[int]] = None,
        owner: Optional[str] = None,
        active_only: bool = False,
    ) -> list[Item]:
        """One page of items with id > after_id matching the filters, ascending by id."""
        stmt = self._item_select().order_by(_items.c.id).limit(self._cap(limit))
        if after_id is not None:
            stmt = stmt.where(_items.c.id > after_id)
        if lot_id is not None:
            stmt = stmt.where(_items.c.lot_id == lot_id)
        if lot_ids is not None:
            stmt = stmt.where(_items.c.lot_id.in_(list(lot_ids)))
        if owner is not None:
            stmt = stmt.where(_items.c.username == owner)
        if active_only:
            stmt = stmt.where(_active_clause())
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_item(r) for r in rows]

    def update_item(self, item_id: int, **fields) -> bool:
        """Update owner_username/cancelled/price/picture_url. Returns False if not found."""
        values = {_ITEM_FIELDS[k]: v for k, v in fields.items() if k in _ITEM_FIELDS}
        if "cancelled" in values:
            values["cancelled"] = 1 if values["cancelled"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_items.update().where(_items.c.id == item_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_item(self, item_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_items.delete().where(_items.c.id == item_id))
            conn.commit()
        return result.rowcount > 0

    def set_checklist_status(self, item_id: int, status: str) -> bool:
        """Set one item's checklist status and its checked flag together."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.update().where(_items.c.id == item_id).values(**_checklist_values(status))
            )
            conn.commit()
        return result.rowcount > 0

    def bulk_set_checklist_status(self, lot_id: int, status: str) -> int:
        """Set checklist status on every active item of a lot. Returns rows updated."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _items.update()
                .where(_items.c.lot_id == lot_id)
                .where(_active_clause())
                .values(**_checklist_values(status))
            )
            conn.commit()
        return result.rowcount

    def count_items(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_items)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _item_select():
        return select(
            _items,
            _lots.c.lot_name.label("lot_name"),
            _lots.c.created_at.label("lot_created_at"),
        ).select_from(_items.outerjoin(_lots, _items.c.lot_id == _lots.c.id))


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_lot(row) -> Lot:
    return Lot(
        id=row.id,
        name=row.lot_name,
        description=row.description,
        locked=bool(row.locked),
        created_at=row.created_at,
    )


def _row_to_item(row) -> Item:
    return Item(
        id=row.id,
        lot_id=row.lot_id,
        owner_username=row.username,
        picture_url=row.picture_url,
        price=row.price,
        cancelled=bool(row.cancelled),
        checklist_status=row.checklist_status,
        checked=bool(row.checked),
        created_at=row.created_at,
        lot_name=row.lot_name,
        lot_created_at=row.lot_created_at,
    )

"""
core/pagination.py -- Keyset ("cursor") pagination over capped stores.

The backing stores silently truncate any single select (InventoryStore and
UserStore max_rows), so every read that needs all matching rows goes
through fetch_all():

    last_id = None
    loop:
        page = fetch_page(last_id, page_size)    # id > last_id, ascending
        yield every row of page with id > last_id
        len(page) < page_size      -> stop
        last row's id unparseable  -> stop
        otherwise                  -> last_id = last row's id

A short page is the only normal termination. A final page of exactly
page_size rows costs one extra (empty or short) call, so N matching rows take
ceil(N / page_size) or ceil(N / page_size) + 1 calls.

fetch_all() is a lazy, one-shot generator. Re-iterating needs a
new call. fetch_all_sorted() materializes the rows and applies the legacy
display order (created_at, then id).

Filters are closed over by fetch_page, e.g.
    functools.partial(store.page_items, lot_id=7, active_only=True)
"""

import logging
import math
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar

from core.errors import ValidationError

logger = logging.getLogger("lotdesk.pagination")

T = TypeVar("T")

PageFetcher = Callable[[Optional[int], int], Sequence[T]]


def parse_cursor(value: Any) -> Optional[int]:
    """Return value as an integer row id, or None if it cannot serve as a cursor."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _row_id(row: Any) -> Any:
    if isinstance(row, dict):
        return row.get("id")
    return getattr(row, "id", None)


def _after(row_id: Any, last_id: int) -> bool:
    cursor = parse_cursor(row_id)
    return cursor is None or cursor > last_id


def fetch_all(
    fetch_page: PageFetcher,
    page_size: int,
    *,
    id_of: Callable[[Any], Any] = _row_id,
) -> Iterator[T]:
    """Yield every row fetch_page can produce, one bounded page at a time."""
    if page_size < 1:
        raise ValidationError("page_size must be >= 1")

    last_id: Optional[int] = None
    while True:
        page = fetch_page(last_id, page_size)
        if last_id is not None:
            fresh = [row for row in page if _after(id_of(row), last_id)]
            if len(fresh) < len(page):
                logger.warning("Pagination dropped %d row(s) at or before cursor %s", len(page) - len(fresh), last_id)
        else:
            fresh = list(page)
        yield from fresh
        if len(page) < page_size:
            return
        cursor = parse_cursor(id_of(page[-1]))
        if cursor is None:
            logger.warning("Pagination stopped: row id %r is not a valid cursor", id_of(page[-1]))
            return
        if last_id is not None and cursor <= last_id:
            logger.warning("Pagination stopped: cursor did not advance past %s", last_id)
            return
        last_id = cursor


def legacy_order_key(row: Any) -> tuple:
    """(created_at, id): the display order the old gallery views used."""
    created_at = row.get("created_at") if isinstance(row, dict) else getattr(row, "created_at", None)
    row_id = parse_cursor(_row_id(row))
    return (created_at or "", row_id if row_id is not None else 0)


def fetch_all_sorted(
    fetch_page: PageFetcher,
    page_size: int,
    *,
    key: Callable[[Any], Any] = legacy_order_key,
    reverse: bool = False,
) -> list:
    """fetch_all(), materialized and stably re-sorted."""
    return sorted(fetch_all(fetch_page, page_size), key=key, reverse=reverse)

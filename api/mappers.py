"""
api/mappers.py -- Domain dataclass -> API response model mapping.

Route handlers call these so that the legacy wire names (lot_name,
username) live in one place and never leak into inventory/.
"""

from api.models import ChecklistItemRow, ItemRow, LotProgressRow, LotRow, ProfileItemRow
from inventory.checklist import LotProgress
from inventory.models import Item, Lot


def lot_row(lot: Lot) -> LotRow:
    return LotRow(
        id=lot.id,
        lot_name=lot.name,
        description=lot.description,
        locked=lot.locked,
        created_at=lot.created_at,
    )


def item_row(item: Item) -> ItemRow:
    return ItemRow(
        id=item.id,
        lot_id=item.lot_id,
        username=item.owner_username,
        picture_url=item.picture_url,
        price=item.price,
        cancelled=item.cancelled,
        checked=item.checked,
        checklist_status=item.checklist_status,
        created_at=item.created_at,
    )


def profile_item_row(item: Item) -> ProfileItemRow:
    return ProfileItemRow(
        **item_row(item).model_dump(),
        lot_name=item.lot_name,
        lot_created_at=item.lot_created_at,
    )


def checklist_item_row(item: Item) -> ChecklistItemRow:
    return ChecklistItemRow(
        id=item.id,
        picture_url=item.picture_url,
        checked=item.checked,
        checklist_status=item.checklist_status,
        created_at=item.created_at,
    )


def progress_row(progress: LotProgress) -> LotProgressRow:
    return LotProgressRow(**progress.to_dict())

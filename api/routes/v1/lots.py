"""
api/routes/v1/lots.py -- Lot routes.

Routes:
  GET    /lots              -- visible lots, newest first (lots.list)
  POST   /lots              -- create lot (lots.create)
  PATCH  /lots/{lot_id}     -- update name/description/locked/created_at (lots.update)
  DELETE /lots/{lot_id}     -- delete lot and its items (lots.delete)
  GET    /lot-items         -- every item of a lot, redacted for viewers (lot_items.list)

Visibility: a lot whose items are all cancelled is hidden; a lot with no
items is shown. Both reads page through the store, so large lots are never
silently truncated.
"""

from fastapi import APIRouter, Depends, Query, Request

from api.mappers import item_row, lot_row
from api.models import CreatedResponse, ItemsResponse, LotCreate, LotPatch, LotResponse, LotsResponse, OkResponse
from auth.dependencies import require
from auth.models import Identity
from inventory import service
from inventory.store import InventoryStore

router = APIRouter()


@router.get("/lots", response_model=LotsResponse)
def list_lots(request: Request, identity: Identity = Depends(require("lots.list"))) -> LotsResponse:
    store: InventoryStore = request.app.state.inventory
    lots = service.list_visible_lots(store, request.app.state.settings.page_size)
    return LotsResponse(lots=[lot_row(lot) for lot in lots])


@router.post("/lots", response_model=CreatedResponse, status_code=201)
def create_lot(
    request: Request,
    body: LotCreate,
    identity: Identity = Depends(require("lots.create")),
) -> CreatedResponse:
    store: InventoryStore = request.app.state.inventory
    return CreatedResponse(id=service.create_lot(store, body.lot_name, body.description))


@router.patch("/lots/{lot_id}", response_model=LotResponse)
def update_lot(
    request: Request,
    lot_id: int,
    body: LotPatch,
    identity: Identity = Depends(require("lots.update")),
) -> LotResponse:
    """Apply only the fields present in the body. locked=null is ignored."""
    changes = body.model_dump(exclude_unset=True)
    if "lot_name" in changes:
        changes["name"] = changes.pop("lot_name")
    if changes.get("locked", False) is None:
        del changes["locked"]
    store: InventoryStore = request.app.state.inventory
    return LotResponse(lot=lot_row(service.update_lot(store, lot_id, changes)))


@router.delete("/lots/{lot_id}", response_model=OkResponse)
def delete_lot(
    request: Request,
    lot_id: int,
    identity: Identity = Depends(require("lots.delete")),
) -> OkResponse:
    store: InventoryStore = request.app.state.inventory
    service.delete_lot(store, lot_id)
    return OkResponse()


@router.get("/lot-items", response_model=ItemsResponse)
def list_lot_items(
    request: Request,
    lot_id: int = Query(...),
    identity: Identity = Depends(require("lot_items.list")),
) -> ItemsResponse:
    store: InventoryStore = request.app.state.inventory
    items = service.lot_items(store, lot_id, identity, request.app.state.settings.page_size)
    return ItemsResponse(items=[item_row(item) for item in items])

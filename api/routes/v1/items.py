"""
api/routes/v1/items.py -- Item routes.

Routes:
  POST   /items              -- create item (items.create)
  GET    /items/{item_id}    -- item detail (items.read)
  PATCH  /items/{item_id}    -- update owner/cancelled/price (items.update)
  DELETE /items/{item_id}    -- delete item (items.delete)
  GET    /profile/items      -- a user's active items (profile.items; self or staff)
"""

from fastapi import APIRouter, Depends, Query, Request

from api.mappers import item_row, profile_item_row
from api.models import CreatedResponse, ItemCreate, ItemPatch, ItemResponse, OkResponse, ProfileItemsResponse
from auth.dependencies import require
from auth.models import Identity
from inventory import service
from inventory.store import InventoryStore

router = APIRouter()


@router.post("/items", response_model=CreatedResponse, status_code=201)
def create_item(
    request: Request,
    body: ItemCreate,
    identity: Identity = Depends(require("items.create")),
) -> CreatedResponse:
    """Add an item to a lot. price must be > 0 and picture_url http(s)."""
    store: InventoryStore = request.app.state.inventory
    item_id = service.create_item(
        store,
        request.app.state.user_store,
        lot_id=body.lot_id,
        username=body.username,
        picture_url=body.picture_url,
        price=body.price,
        create_if_missing=body.create_if_missing,
    )
    return CreatedResponse(id=item_id)


@router.get("/items/{item_id}", response_model=ItemResponse)
def get_item(
    request: Request,
    item_id: int,
    identity: Identity = Depends(require("items.read")),
) -> ItemResponse:
    store: InventoryStore = request.app.state.inventory
    return ItemResponse(item=item_row(service.get_item(store, item_id)))


@router.patch("/items/{item_id}", response_model=OkResponse)
def update_item(
    request: Request,
    item_id: int,
    body: ItemPatch,
    identity: Identity = Depends(require("items.update")),
) -> OkResponse:
    """Patch owner, cancelled and/or price (>= 0). At least one is required."""
    store: InventoryStore = request.app.state.inventory
    service.update_item(
        store,
        request.app.state.user_store,
        item_id,
        {"owner_username": body.username, "cancelled": body.cancelled, "price": body.price},
        create_if_missing=body.create_if_missing,
    )
    return OkResponse()


@router.delete("/items/{item_id}", response_model=OkResponse)
def delete_item(
    request: Request,
    item_id: int,
    identity: Identity = Depends(require("items.delete")),
) -> OkResponse:
    store: InventoryStore = request.app.state.inventory
    service.delete_item(store, item_id)
    return OkResponse()


@router.get("/profile/items", response_model=ProfileItemsResponse)
def profile_items(
    request: Request,
    username: str = Query(""),
    identity: Identity = Depends(require("profile.items")),
) -> ProfileItemsResponse:
    """Viewers may read only their own items; staff may read anyone's."""
    store: InventoryStore = request.app.state.inventory
    items = service.profile_items(store, username, identity, request.app.state.settings.page_size)
    return ProfileItemsResponse(items=[profile_item_row(item) for item in items])

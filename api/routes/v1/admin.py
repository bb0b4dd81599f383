"""
api/routes/v1/admin.py -- Staff routes: checklist, users, migration, stats.

Routes (bulk registered before {item_id} to avoid path capture):
  GET    /admin/checklist-items              -- active items of a lot (checklist.read)
  PATCH  /admin/checklist-items/bulk         -- set status on a lot's active items (checklist.update)
  PATCH  /admin/checklist-items/{item_id}    -- set one item's status (checklist.update)
  GET    /admin/checklist-summary            -- per-lot progress buckets (checklist.summary)
  GET    /admin/users                        -- list identities (users.list)
  POST   /admin/users                        -- create identity (users.create)
  PATCH  /admin/users/{user_id}              -- update identity (users.update)
  DELETE /admin/users/{user_id}              -- delete identity (users.delete)
  POST   /admin/auth-migrate                 -- credential migration (auth.migrate, admin only)
  GET    /admin/stats                        -- row counts (stats.read)
"""

from fastapi import APIRouter, Depends, Query, Request

from api.mappers import checklist_item_row, progress_row
from api.models import (
    BulkChecklistResponse,
    ChecklistBulkPatch,
    ChecklistItemsResponse,
    ChecklistStatusPatch,
    ChecklistSummaryResponse,
    CreatedResponse,
    MigrationResponse,
    MigrationResult,
    OkResponse,
    StatsCounts,
    StatsResponse,
    UserCreate,
    UserPatch,
    UserRow,
    UsersResponse,
)
from auth import accounts
from auth.dependencies import require
from auth.migration import migrate_credentials
from auth.models import Identity
from auth.store import UserStore
from core.errors import NotConfigured
from inventory import service
from inventory.store import InventoryStore

router = APIRouter(prefix="/admin")


# ---------------------------------------------------------------------------
# Checklist
# ---------------------------------------------------------------------------


@router.get("/checklist-items", response_model=ChecklistItemsResponse)
def checklist_items(
    request: Request,
    lot_id: int = Query(...),
    identity: Identity = Depends(require("checklist.read")),
) -> ChecklistItemsResponse:
    store: InventoryStore = request.app.state.inventory
    items = service.checklist_items(store, lot_id, request.app.state.settings.page_size)
    return ChecklistItemsResponse(items=[checklist_item_row(item) for item in items])


@router.patch("/checklist-items/bulk", response_model=BulkChecklistResponse)
def bulk_checklist_status(
    request: Request,
    body: ChecklistBulkPatch,
    identity: Identity = Depends(require("checklist.update")),
) -> BulkChecklistResponse:
    """Only non-cancelled items are touched."""
    store: InventoryStore = request.app.state.inventory
    updated = service.bulk_set_checklist_status(store, body.lot_id, body.checklist_status.value)
    return BulkChecklistResponse(updated=updated)


@router.patch("/checklist-items/{item_id}", response_model=OkResponse)
def set_checklist_status(
    request: Request,
    item_id: int,
    body: ChecklistStatusPatch,
    identity: Identity = Depends(require("checklist.update")),
) -> OkResponse:
    store: InventoryStore = request.app.state.inventory
    service.set_checklist_status(store, item_id, body.checklist_status.value)
    return OkResponse()


@router.get("/checklist-summary", response_model=ChecklistSummaryResponse)
def checklist_summary(
    request: Request,
    identity: Identity = Depends(require("checklist.summary")),
) -> ChecklistSummaryResponse:
    store: InventoryStore = request.app.state.inventory
    buckets = service.checklist_summary(store, request.app.state.settings.page_size)
    return ChecklistSummaryResponse(**{name: [progress_row(p) for p in rows] for name, rows in buckets.items()})


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UsersResponse)
def list_users(request: Request, identity: Identity = Depends(require("users.list"))) -> UsersResponse:
    users: UserStore = request.app.state.user_store
    rows = accounts.list_accounts(users, request.app.state.settings.page_size)
    return UsersResponse(users=[UserRow(**row) for row in rows])


@router.post("/users", response_model=CreatedResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    identity: Identity = Depends(require("users.create")),
) -> CreatedResponse:
    """409 if the username exists. A password also provisions a provider account when one is configured."""
    user_id = accounts.create_account(
        request.app.state.user_store,
        body.username,
        body.access_level.value,
        number=body.number,
        password=body.password,
        provider=request.app.state.identity_provider,
        email_domain=request.app.state.settings.identity_email_domain,
    )
    return CreatedResponse(id=user_id)


@router.patch("/users/{user_id}", response_model=OkResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    identity: Identity = Depends(require("users.update")),
) -> OkResponse:
    changes = body.model_dump(exclude_unset=True)
    if "number" in changes:
        changes["display_number"] = changes.pop("number")
    if "access_level" in changes:
        level = changes.pop("access_level")
        changes["role"] = level.value if level is not None else None
    accounts.update_account(
        request.app.state.user_store,
        user_id,
        changes,
        provider=request.app.state.identity_provider,
        email_domain=request.app.state.settings.identity_email_domain,
    )
    return OkResponse()


@router.delete("/users/{user_id}", response_model=OkResponse)
def delete_user(
    request: Request,
    user_id: int,
    identity: Identity = Depends(require("users.delete")),
) -> OkResponse:
    accounts.delete_account(request.app.state.user_store, user_id)
    return OkResponse()


# ---------------------------------------------------------------------------
# Credential migration and stats
# ---------------------------------------------------------------------------


@router.post("/auth-migrate", response_model=MigrationResponse)
def auth_migrate(request: Request, identity: Identity = Depends(require("auth.migrate"))) -> MigrationResponse:
    """Migrate every legacy-plaintext identity to the identity provider.

    Runs to completion; per-row failures are reported in failed_users, not
    raised. 501 when no provider is configured, before any row is read.
    """
    provider = request.app.state.identity_provider
    if provider is None:
        raise NotConfigured("Identity provider is not configured. Set IDENTITY_PROVIDER_URL and IDENTITY_PROVIDER_SERVICE_KEY.")
    report = migrate_credentials(
        request.app.state.user_store,
        provider,
        request.app.state.settings.identity_email_domain,
        request.app.state.settings.page_size,
    )
    return MigrationResponse(result=MigrationResult(**report.to_dict()))


@router.get("/stats", response_model=StatsResponse)
def stats(request: Request, identity: Identity = Depends(require("stats.read"))) -> StatsResponse:
    counts = service.stats(request.app.state.inventory, request.app.state.user_store)
    return StatsResponse(counts=StatsCounts(**counts))

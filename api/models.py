"""
API request and response models for lotdesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
inventory/models.py, which own the internal domain representation. Route
handlers map between the two.

Every response carries ok: true on success; failures use ErrorResponse
(ok: false) from the exception handlers in api/main.py.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    manager = "manager"
    viewer = "viewer"


class ChecklistStatusEnum(str, Enum):
    unchecked = "unchecked"
    checked = "checked"
    rejected = "rejected"


class BulkChecklistStatusEnum(str, Enum):
    """Bulk writes cannot reject a whole lot."""

    unchecked = "unchecked"
    checked = "checked"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    number is the public login identifier (phone number). Presence of number
    and password is checked by the Authenticator so every login failure
    shares one error path.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    number: str = Field(default="", max_length=64)
    password: str = Field(default="", max_length=256)
    remember_me: bool = Field(default=False, validation_alias=AliasChoices("remember_me", "rememberMe"))


class LotCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    lot_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None


class LotPatch(BaseModel):
    """Partial update. Only fields present in the body are applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    lot_name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    locked: Optional[bool] = None
    created_at: Optional[str] = None


class ItemCreate(BaseModel):
    """Request body for POST /api/v1/items.

    create_if_missing creates the owner as a viewer identity when no
    identity with that username exists yet.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    lot_id: int
    username: str
    picture_url: str
    price: float
    create_if_missing: bool = Field(
        default=False, validation_alias=AliasChoices("create_if_missing", "createIfMissing")
    )


class ItemPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = None
    cancelled: Optional[bool] = None
    price: Optional[float] = None
    create_if_missing: bool = Field(
        default=False, validation_alias=AliasChoices("create_if_missing", "createIfMissing")
    )


class ChecklistStatusPatch(BaseModel):
    checklist_status: ChecklistStatusEnum


class ChecklistBulkPatch(BaseModel):
    lot_id: int
    checklist_status: BulkChecklistStatusEnum


class UserCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    access_level: RoleEnum
    number: Optional[str] = Field(default=None, max_length=64)
    password: str = Field(default="", max_length=256)


class UserPatch(BaseModel):
    """Partial update. An empty password string clears the local credential."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(default=None, max_length=255)
    number: Optional[str] = Field(default=None, max_length=64)
    password: Optional[str] = Field(default=None, max_length=256)
    access_level: Optional[RoleEnum] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    ok: bool = False
    error: ErrorDetail


class OkResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True


class CreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    id: int


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    service: str = "lotdesk"
    ts: str


class SessionUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    username: str
    access_level: str


class LoginResponse(BaseModel):
    """Response for POST /auth/login and /auth/guest.

    access_token is also set as an httpOnly cookie; API clients send it back
    as Authorization: Bearer.
    """

    model_config = ConfigDict(frozen=True)

    ok: bool = True
    access_token: str
    expires_at: str
    user: SessionUser


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    user: SessionUser


class LotRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    lot_name: str
    description: Optional[str] = None
    locked: bool = False
    created_at: str


class LotsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    lots: list[LotRow]


class LotResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    lot: LotRow


class ItemRow(BaseModel):
    """One item. username and price are null when redacted for the caller."""

    model_config = ConfigDict(frozen=True)

    id: int
    lot_id: int
    username: Optional[str] = None
    picture_url: Optional[str] = None
    price: Optional[float] = None
    cancelled: bool = False
    checked: bool = False
    checklist_status: Optional[str] = None
    created_at: str


class ProfileItemRow(ItemRow):
    lot_name: Optional[str] = None
    lot_created_at: Optional[str] = None


class ItemsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    items: list[ItemRow]


class ProfileItemsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    items: list[ProfileItemRow]


class ItemResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    item: ItemRow


class ChecklistItemRow(BaseModel):
    """Checklist view of an item. cancelled is omitted: cancelled items are never listed."""

    model_config = ConfigDict(frozen=True)

    id: int
    picture_url: Optional[str] = None
    checked: bool = False
    checklist_status: Optional[str] = None
    created_at: str


class ChecklistItemsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    items: list[ChecklistItemRow]


class BulkChecklistResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    updated: int


class LotProgressRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    lot_id: int
    lot_name: str
    total_items: int
    checked_items: int
    pending_items: int


class ChecklistSummaryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    partial: list[LotProgressRow]
    incomplete: list[LotProgressRow]
    completed: list[LotProgressRow]
    empty: list[LotProgressRow]


class UserRow(BaseModel):
    """Identity as listed to staff. password is "__set__" or null, never the record."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    number: Optional[str] = None
    access_level: str
    password: Optional[str] = None
    created_at: Optional[str] = None


class UsersResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    users: list[UserRow]


class FailedUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    reason: str


class MigrationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    scanned: int
    migrated: int
    skipped_already_mapped: int
    skipped_no_password: int
    skipped_hashed_password: int
    failed: int
    failed_users: list[FailedUser]


class MigrationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    result: MigrationResult


class StatsCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: int
    lots: int
    items: int


class StatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    counts: StatsCounts

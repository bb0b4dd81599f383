"""
auth/policy.py -- Permission Policy: explicit per-operation role allow-lists.

There is no role hierarchy here. Each operation names the exact
set of roles allowed to run it, and authorize() checks set membership only.
Different operations draw the line at different places (viewers may list
lots but not read the checklist; only admins may run the credential
migration), so the table is the single authoritative source.

authorize() fails closed:
  - no identity                         -> Unauthenticated
  - role missing / not in allow-list    -> Forbidden
  - operation name not in the table     -> Forbidden

Layer rule: no imports from api/ or inventory/.
"""

from __future__ import annotations

from typing import Iterable, Optional

from auth.models import ADMIN, MANAGER, VIEWER, Identity
from core.errors import Forbidden, Unauthenticated

_STAFF = frozenset({ADMIN, MANAGER})
_EVERYONE = frozenset({ADMIN, MANAGER, VIEWER})

OPERATION_ROLES: dict[str, frozenset[str]] = {
    "auth.me": _EVERYONE,
    "lots.list": _EVERYONE,
    "lots.create": _STAFF,
    "lots.update": _STAFF,
    "lots.delete": _STAFF,
    "lot_items.list": _EVERYONE,
    "items.create": _STAFF,
    "items.read": _STAFF,
    "items.update": _STAFF,
    "items.delete": _STAFF,
    "profile.items": _EVERYONE,
    "checklist.read": _STAFF,
    "checklist.update": _STAFF,
    "checklist.summary": _STAFF,
    "users.list": _STAFF,
    "users.create": _STAFF,
    "users.update": _STAFF,
    "users.delete": _STAFF,
    "stats.read": _STAFF,
    "auth.migrate": frozenset({ADMIN}),
}


def authorize(identity: Optional[Identity], allowed_roles: Iterable[str]) -> Identity:
    """Return identity if its role is in allowed_roles, else raise."""
    if identity is None:
        raise Unauthenticated("Authentication required.", code="missing_token")
    allowed = frozenset(allowed_roles)
    role = (identity.role or "").strip().lower()
    if not role or role not in allowed:
        raise Forbidden("Forbidden")
    return identity


def authorize_operation(identity: Optional[Identity], operation: str) -> Identity:
    """authorize() against the allow-list registered for operation."""
    allowed = OPERATION_ROLES.get(operation)
    if allowed is None:
        raise Forbidden(f"Unknown operation {operation!r}", code="unknown_operation")
    return authorize(identity, allowed)


def is_staff(identity: Identity) -> bool:
    """True for roles that bypass redaction and ownership checks."""
    return (identity.role or "").lower() in _STAFF

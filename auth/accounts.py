"""
auth/accounts.py -- Identity administration: list, create, update, delete.

Passwords are always stored as scrypt records. When an identity provider is
configured, setting a password also provisions (or updates) the provider
account so provider sign-in keeps working for that identity.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from auth.identity_provider import IdentityProvider
from auth.migration import provider_email
from auth.models import ROLES, Identity
from auth.store import UserStore
from auth.vault import hash_password
from core.errors import Conflict, NotFound, ValidationError
from core.pagination import fetch_all_sorted

logger = logging.getLogger("lotdesk.auth")

PASSWORD_MASK = "__set__"

_UPDATABLE = ("username", "display_number", "password", "role")


def _clean_role(role: str) -> str:
    value = (role or "").strip().lower()
    if value not in ROLES:
        raise ValidationError(f"access_level must be one of: {', '.join(ROLES)}")
    return value


def _email_suffix() -> str:
    # Millisecond timestamp: the row id is not known before insert.
    return str(int(time.time() * 1000))


def account_view(identity: Identity) -> dict:
    """Public shape of an identity. The stored credential is never exposed."""
    return {
        "id": identity.id,
        "username": identity.username,
        "number": identity.display_number,
        "access_level": identity.role,
        "password": PASSWORD_MASK if identity.password else None,
        "created_at": identity.created_at,
    }


def list_accounts(users: UserStore, page_size: Optional[int] = None) -> list[dict]:
    """All identities, admin > manager > viewer, then username."""
    rank = {role: i for i, role in enumerate(ROLES)}
    identities = fetch_all_sorted(
        users.page_identities,
        page_size or users.max_rows,
        key=lambda i: (rank.get(i.role, len(rank)), i.username or ""),
    )
    return [account_view(i) for i in identities]


def create_account(
    users: UserStore,
    username: str,
    role: str,
    number: Optional[str] = None,
    password: str = "",
    *,
    provider: Optional[IdentityProvider] = None,
    email_domain: str = "lotdesk.local",
) -> int:
    username = (username or "").strip()
    if not username or not (role or "").strip():
        raise ValidationError("username and access_level are required")
    role = _clean_role(role)
    number = (number or "").strip() or None

    if users.username_taken(username):
        raise Conflict("Username already exists")

    identity = Identity(username=username, role=role, display_number=number)
    if password:
        if provider is not None:
            email = provider_email(identity, email_domain, suffix=_email_suffix())
            identity.auth_user_id = provider.create_identity(email, password)
            identity.auth_email = email
        identity.password = hash_password(password)

    identity_id = users.create_identity(identity)
    logger.info("Created identity %s (%s)", identity_id, role)
    return identity_id


def update_account(
    users: UserStore,
    identity_id: int,
    changes: dict,
    *,
    provider: Optional[IdentityProvider] = None,
    email_domain: str = "lotdesk.local",
) -> None:
    """Apply a partial update. Keys: username, display_number, password, role.

    An empty password string clears the local credential.
    """
    existing = users.get_by_id(identity_id)
    if existing is None:
        raise NotFound("User not found")

    updates: dict = {}
    for key in _UPDATABLE:
        if key not in changes or (changes[key] is None and key != "display_number"):
            continue
        value = changes[key]
        if key == "username":
            value = value.strip()
            if not value:
                raise ValidationError("username cannot be empty")
        elif key == "display_number":
            value = (value or "").strip() or None
        elif key == "role":
            value = _clean_role(value)
        updates[key] = value

    if not updates:
        raise ValidationError("No updates provided")

    if "username" in updates and users.username_taken(updates["username"], exclude_id=identity_id):
        raise Conflict("Username already exists")

    if "password" in updates:
        plaintext = updates["password"]
        updates["password"] = hash_password(plaintext) if plaintext else ""
        if plaintext and provider is not None:
            if (existing.auth_user_id or "").strip():
                provider.update_password(existing.auth_user_id.strip(), plaintext)
            else:
                target = Identity(
                    username=updates.get("username", existing.username),
                    role=existing.role,
                    display_number=updates.get("display_number", existing.display_number),
                )
                email = provider_email(target, email_domain, suffix=_email_suffix())
                updates["auth_user_id"] = provider.create_identity(email, plaintext)
                updates["auth_email"] = email

    users.update_identity(identity_id, **updates)


def delete_account(users: UserStore, identity_id: int) -> None:
    if not users.delete_identity(identity_id):
        raise NotFound("User not found")
    logger.info("Deleted identity %s", identity_id)

"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in inventory/models.py -- dataclasses own domain shape; stores, the vault and
the authenticator do the work.

Layer rule: no imports from api/ or inventory/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

ADMIN = "admin"
MANAGER = "manager"
VIEWER = "viewer"

# Recognized roles, most privileged first. This order is used for display
# sorting only -- authorization never compares roles ordinally (see policy.py).
ROLES: tuple[str, ...] = (ADMIN, MANAGER, VIEWER)

HASHED_SCHEME = "scrypt"
LEGACY_SCHEME = "legacy-plaintext"

GUEST_ID = "guest"


@dataclass
class Identity:
    """An authenticated principal.

    display_number is the public login identifier (a phone number).

    password holds the stored credential text: either a self-describing
    "scrypt$salt$key" record or, for identities not yet upgraded, the legacy
    plaintext. Empty/None means no local credential is set.

    auth_user_id / auth_email are the external identity provider reference,
    filled in by the credential migration.
    """

    username: str
    role: str  # "admin" | "manager" | "viewer"
    id: Optional[int] = None
    display_number: Optional[str] = None
    password: Optional[str] = None
    auth_user_id: Optional[str] = None
    auth_email: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_guest(self) -> bool:
        return self.id is None and self.username == GUEST_ID

    @property
    def has_provider_credential(self) -> bool:
        return bool((self.auth_email or "").strip())


@dataclass
class CredentialRecord:
    """Parsed form of a stored credential.

    scheme == "scrypt":            salt and key are set.
    scheme == "legacy-plaintext":  value is set.
    """

    scheme: str
    salt: bytes = b""
    key: bytes = b""
    value: str = ""


@dataclass
class Session:
    """A server-issued, revocable login session.

    Only the HMAC of the token is persisted; token is populated solely on the
    Session object returned from Authenticator.login(), which is the one and
    only moment the raw value exists server-side.

    identity_id is None for guest sessions.
    """

    token_hash: str
    identity_id: Optional[int]
    issued_at: str  # ISO 8601 UTC
    expires_at: str  # ISO 8601 UTC
    revoked: bool = False
    token: str = ""
    role: str = ""
    username: str = ""
    display_name: str = ""


@dataclass
class LoginState:
    """Failed-login bookkeeping for one public identifier."""

    number: str
    fail_count: int = 0
    post_first_ban: bool = False
    locked_until: Optional[str] = None


# Pseudo-identity for read-only demo access. Never stored, never has a credential.
GUEST = Identity(username=GUEST_ID, role=VIEWER, display_number=None)

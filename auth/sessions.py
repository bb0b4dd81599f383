"""
auth/sessions.py -- Session tokens, session storage contract, cookie helpers.

Security design decisions:
  Tokens: secrets.token_urlsafe(32) gives 256 bits of entropy -- unguessable.
       The raw token is returned to the client once and never persisted.

  Storage key: HMAC-SHA256(SECRET_KEY, token). Deterministic, so lookup is
       O(1); keyed, so a leaked sessions table cannot be replayed without
       also knowing SECRET_KEY.

  Storage: the Authenticator receives a SessionStore as a constructor
       dependency instead of reaching for a module-level singleton. UserStore
       implements it against the database; InMemorySessionStore implements it
       with a dict and a lock for tests and single-process demos.

Layer rule: no imports from api/ or inventory/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
from dataclasses import replace
from typing import Optional, Protocol

from auth.models import Session
from core.config import get_settings


class SessionStore(Protocol):
    def create_session(self, session: Session) -> None: ...

    def get_session(self, token_hash: str) -> Optional[Session]: ...

    def revoke_session(self, token_hash: str) -> None: ...


class InMemorySessionStore:
    """Process-local SessionStore.

    The lock makes revoke_session() and get_session() linearizable: once
    revoke_session() returns, no later get_session() can observe the session
    as live. Returned Session objects are copies, so callers cannot flip the
    stored revoked flag by mutation.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def create_session(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.token_hash] = replace(session, token="")

    def get_session(self, token_hash: str) -> Optional[Session]:
        with self._lock:
            stored = self._sessions.get(token_hash)
            return replace(stored) if stored is not None else None

    def revoke_session(self, token_hash: str) -> None:
        with self._lock:
            stored = self._sessions.get(token_hash)
            if stored is not None:
                stored.revoked = True

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# ---------------------------------------------------------------------------
# Token generation and hashing
# ---------------------------------------------------------------------------


def generate_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, token) as a hex string."""
    return hmac.new(
        get_settings().secret_key.encode(),
        token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the session expiry so both end together.
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        path="/",
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    settings = get_settings()
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )


def token_from_request(request) -> str:
    """Return the session token from the cookie or Bearer header, or "".

    Cookie first (browser), then Authorization: Bearer (API clients).
    """
    token = request.cookies.get(get_settings().session_cookie_name) or ""
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        return auth_header[7:].strip()
    return ""

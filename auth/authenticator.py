"""
auth/authenticator.py -- Session Authenticator: login, authenticate, revoke.

Every inbound request resolves its token through Authenticator.authenticate()
before any handler touches data. Login is the only path that runs the Password
Vault (or the identity provider, for migrated identities).

Login sequence:
  1. Shape check (identifier and password present)       -> ValidationError
  2. Lockout check for the identifier                     -> LoginLocked
  3. Exactly one identity by number candidates            -> IdentityNotFound
  4. Provider sign-in (migrated identity, provider configured)
     or local vault verify (no local credential           -> CredentialMissing)
  5. Failure: count it, report attempts left              -> InvalidCredentials / LoginLocked
  6. Success: lazily upgrade a legacy plaintext record, reset the counter,
     issue a session bound to the identity.

Authenticate failures are all Unauthenticated, with a code that tells them
apart (missing_token, unknown_session, session_revoked, session_expired,
identity_missing, session_lookup_failed). A store error while resolving the
session or its identity fails closed as session_lookup_failed. A session
resolved before a concurrent revoke is not recalled; the next authenticate()
after the revoke commits fails.

Layer rule: no imports from api/ or inventory/.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from auth.identity_provider import IdentityProvider
from auth.models import GUEST, Identity, Session
from auth.sessions import SessionStore, generate_token, hash_token
from auth.store import UserStore
from auth.throttle import LoginThrottle, parse_iso
from auth.vault import hash_password, is_hashed, verify_password
from core.config import Settings
from core.errors import (
    CredentialMissing,
    Forbidden,
    IdentityNotFound,
    InvalidCredentials,
    Unauthenticated,
    ValidationError,
)

logger = logging.getLogger("lotdesk.auth")


def number_candidates(raw: str, country_code: str = "91") -> list[str]:
    """Return the identifier variants to try, in priority order, without duplicates.

    Stored numbers come in mixed formats ("98765", "9198765", "+9198765"), so
    the input is tried as typed, as bare digits, and with the country code
    added or stripped.
    """
    trimmed = raw.strip()
    digits = re.sub(r"\D", "", trimmed)
    out: list[str] = []

    def add(value: str) -> None:
        if value and value not in out:
            out.append(value)

    add(trimmed)
    add(digits)
    if country_code and digits.startswith(country_code) and len(digits) > len(country_code):
        add(digits[len(country_code) :])
        add(f"+{digits}")
    elif digits:
        add(f"{country_code}{digits}")
        add(f"+{country_code}{digits}")
    return out


class Authenticator:
    """Resolves credentials and tokens to identities.

    Dependencies are injected: the identity repository, the session store,
    an optional identity provider, and a clock. Tests substitute
    InMemorySessionStore and a fixed clock.
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        settings: Settings,
        provider: Optional[IdentityProvider] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.settings = settings
        self.provider = provider
        self.clock = clock
        self.throttle = LoginThrottle(users, settings, clock=clock)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, identifier: str, plaintext: str, remember_me: bool = False) -> Session:
        number = (identifier or "").strip()
        if not number or not plaintext:
            raise ValidationError("Number and password are required.")

        state = self.throttle.check(number)

        identity = self.users.find_by_numbers(number_candidates(number, self.settings.login_country_code))
        if identity is None:
            raise IdentityNotFound("Number not found. Please contact admin.")

        verified_locally = False
        if identity.has_provider_credential and self.provider is not None:
            ok = self.provider.sign_in(identity.auth_email.strip(), plaintext)
        else:
            if not identity.password:
                raise CredentialMissing("Password not set for this account. Please contact admin.")
            ok = verify_password(plaintext, identity.password)
            verified_locally = ok

        if not ok:
            remaining = self.throttle.record_failure(state, identity.id)
            raise InvalidCredentials(f"Incorrect password. {remaining} attempt(s) left.")

        if verified_locally and not is_hashed(identity.password):
            self.users.update_identity(identity.id, password=hash_password(plaintext))
            logger.info("Upgraded legacy credential for identity %s", identity.id)

        self.throttle.record_success(state)
        return self._issue(identity, remember_me)

    def issue_guest_session(self) -> Session:
        """Issue a read-only viewer session with no backing identity or credential."""
        if not self.settings.guest_access_enabled:
            raise Forbidden("Guest access is disabled.", code="guest_disabled")
        return self._issue(GUEST, remember_me=False)

    def _issue(self, identity: Identity, remember_me: bool) -> Session:
        token = generate_token()
        now = self.clock()
        ttl = self.settings.remember_me_ttl_seconds if remember_me else self.settings.session_ttl_seconds
        session = Session(
            token_hash=hash_token(token),
            identity_id=identity.id,
            issued_at=now.isoformat(),
            expires_at=(now + timedelta(seconds=ttl)).isoformat(),
            token=token,
            role=identity.role,
            username=identity.username,
            display_name=identity.display_number or identity.username,
        )
        self.sessions.create_session(session)
        return session

    # ------------------------------------------------------------------
    # Authenticate / revoke
    # ------------------------------------------------------------------

    def authenticate(self, token: str) -> Identity:
        """Resolve a token to its identity. Read-only."""
        if not token:
            raise Unauthenticated("Authentication required.", code="missing_token")
        try:
            session = self.sessions.get_session(hash_token(token))
        except SQLAlchemyError as exc:
            logger.warning("Session lookup failed: %s", exc)
            raise Unauthenticated("Unauthorized", code="session_lookup_failed") from exc
        if session is None:
            raise Unauthenticated("Unauthorized", code="unknown_session")
        if session.revoked:
            raise Unauthenticated("Session revoked", code="session_revoked")
        expires_at = parse_iso(session.expires_at)
        if expires_at is None or expires_at <= self.clock():
            raise Unauthenticated("Session expired", code="session_expired")

        if session.identity_id is None:
            if not self.settings.guest_access_enabled:
                raise Unauthenticated("Guest access is disabled.", code="guest_disabled")
            return replace(GUEST)

        try:
            identity = self.users.get_by_id(session.identity_id)
        except SQLAlchemyError as exc:
            logger.warning("Identity lookup failed for session: %s", exc)
            raise Unauthenticated("Unauthorized", code="session_lookup_failed") from exc
        if identity is None:
            raise Unauthenticated("Unauthorized", code="identity_missing")
        return identity

    def revoke(self, token: str) -> None:
        """Idempotent: unknown, empty or already-revoked tokens are not an error."""
        if not token:
            return
        self.sessions.revoke_session(hash_token(token))

    def session_max_age(self, session: Session) -> int:
        """Seconds until the session expires, for the cookie's max-age."""
        expires_at = parse_iso(session.expires_at)
        if expires_at is None:
            return 0
        return max(0, int((expires_at - self.clock()).total_seconds()))

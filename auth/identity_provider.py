"""
auth/identity_provider.py -- HTTP client for the external identity provider.

The provider speaks a GoTrue-style admin API:
  POST /auth/v1/admin/users                   -- create identity (service key)
  PUT  /auth/v1/admin/users/{id}              -- change password (service key)
  POST /auth/v1/token?grant_type=password     -- password sign-in check

Used by the credential migration (create_identity), the users admin routes
(create_identity / update_password) and the Authenticator for identities that
were already migrated (sign_in).

Error policy: every transport failure or non-2xx admin response raises
UpstreamError with the provider's message. Nothing is retried here.
sign_in() returns False for a rejected password (400/401) -- that is a normal
outcome, not an upstream failure.

Layer rule: no imports from api/ or inventory/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

from core.config import Settings
from core.errors import UpstreamError

logger = logging.getLogger("lotdesk.auth.provider")


class IdentityProvider(Protocol):
    def create_identity(self, email: str, plaintext: str) -> str: ...

    def update_password(self, provider_id: str, plaintext: str) -> None: ...

    def sign_in(self, email: str, plaintext: str) -> bool: ...


def _provider_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class IdentityProviderClient:
    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._service_key = service_key
        self._session = session or requests.Session()
        # Known endpoint, no reason to follow long redirect chains.
        self._session.max_redirects = 3

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
        }

    def create_identity(self, email: str, plaintext: str) -> str:
        """Create a confirmed identity and return the provider's id for it."""
        try:
            resp = self._session.post(
                f"{self.base_url}/auth/v1/admin/users",
                json={"email": email, "password": plaintext, "email_confirm": True},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Identity provider unreachable: {e}") from e
        if not resp.ok:
            raise UpstreamError(f"Identity provider create failed: {_provider_message(resp)}")
        body = resp.json()
        provider_id = body.get("id") or (body.get("user") or {}).get("id")
        if not provider_id:
            raise UpstreamError("Identity provider create returned no id")
        return str(provider_id)

    def update_password(self, provider_id: str, plaintext: str) -> None:
        try:
            resp = self._session.put(
                f"{self.base_url}/auth/v1/admin/users/{provider_id}",
                json={"password": plaintext},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Identity provider unreachable: {e}") from e
        if not resp.ok:
            raise UpstreamError(f"Identity provider update failed: {_provider_message(resp)}")

    def sign_in(self, email: str, plaintext: str) -> bool:
        try:
            resp = self._session.post(
                f"{self.base_url}/auth/v1/token",
                params={"grant_type": "password"},
                json={"email": email, "password": plaintext},
                headers={"apikey": self._service_key, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Identity provider unreachable: {e}") from e
        if resp.status_code in (400, 401, 403):
            return False
        if not resp.ok:
            raise UpstreamError(f"Identity provider sign-in failed: {_provider_message(resp)}")
        return True


def build_identity_provider(settings: Settings) -> Optional[IdentityProviderClient]:
    """Return a configured client, or None when IDENTITY_PROVIDER_* is unset."""
    if not settings.identity_provider_enabled:
        return None
    logger.info("Identity provider configured at %s", settings.identity_provider_url)
    return IdentityProviderClient(
        settings.identity_provider_url,
        settings.identity_provider_service_key,
        timeout=settings.identity_provider_timeout,
    )

"""
core/errors.py -- Error taxonomy shared by every layer.

Each failure kind carries its own HTTP status and machine-readable code so the
exception handlers in api/main.py can render a uniform envelope without a
lookup table:

    {"ok": false, "error": {"code": ..., "message": ..., "detail": ...}}

Propagation policy:
  Unauthenticated / Forbidden are raised before any data access.
  ValidationError is raised before any store call.
  UpstreamError is surfaced as-is; nothing in this project retries.

Layer rule: core/ is the kernel -- no imports from api/, auth/, or inventory/.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    """Base class for expected, client-visible failures."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, code: Optional[str] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail

    def to_dict(self) -> dict:
        body: dict = {"code": self.code, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return body


class Unauthenticated(AppError):
    """No token, unknown token, revoked or expired session."""

    status_code = 401
    code = "unauthenticated"


class Forbidden(AppError):
    """Valid identity whose role is not in the operation's allow-list."""

    status_code = 403
    code = "forbidden"


class ValidationError(AppError):
    status_code = 422
    code = "validation_error"


class NotFound(AppError):
    status_code = 404
    code = "not_found"


class Conflict(AppError):
    status_code = 409
    code = "conflict"


class UpstreamError(AppError):
    """A backing service (data store, identity provider) call failed."""

    status_code = 502
    code = "upstream_error"


class NotConfigured(AppError):
    status_code = 501
    code = "not_configured"


# ---------------------------------------------------------------------------
# Login failures -- distinguishable by kind, all raised by Authenticator.login
# ---------------------------------------------------------------------------


class AuthError(AppError):
    status_code = 401
    code = "auth_error"


class IdentityNotFound(AuthError):
    status_code = 404
    code = "identity_not_found"


class CredentialMissing(AuthError):
    status_code = 400
    code = "credential_missing"


class InvalidCredentials(AuthError):
    status_code = 401
    code = "bad_credentials"


class LoginLocked(AuthError):
    """Too many failed attempts for one identifier. blocked_until is ISO 8601 UTC."""

    status_code = 429
    code = "login_locked"

    def __init__(self, message: str, *, blocked_until: str) -> None:
        super().__init__(message, detail=blocked_until)
        self.blocked_until = blocked_until

"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Two auth transports are checked in priority order:
  1. Session cookie (SESSION_COOKIE_NAME) -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients.

Both converge on Authenticator.authenticate(), which returns an Identity or
raises Unauthenticated. require(operation) then checks the operation's
allow-list in auth/policy.py and raises Forbidden. Both run before the route
body, so no data access happens for a rejected request.

Layer rule: no imports from inventory/.
  auth/dependencies.py may import from fastapi (for Depends/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Request

from auth.authenticator import Authenticator
from auth.models import Identity
from auth.policy import authorize_operation
from auth.sessions import token_from_request


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises Unauthenticated (401).

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    authenticator: Authenticator = request.app.state.authenticator
    return authenticator.authenticate(token_from_request(request))


def require(operation: str) -> Callable[[Request], Identity]:
    """Dependency factory: authenticate, then authorize against operation's allow-list.

    Use as a FastAPI dependency:
        @router.post("/lots")
        def route(identity: Identity = Depends(require("lots.create"))): ...
    """

    def dependency(request: Request) -> Identity:
        identity = get_current_identity(request)
        return authorize_operation(identity, operation)

    dependency.__name__ = f"require_{operation.replace('.', '_')}"
    return dependency

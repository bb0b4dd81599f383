"""
api/routes/v1/auth.py -- Session endpoints.

Routes:
  POST /api/v1/auth/login    -- number + password login; sets session cookie
  POST /api/v1/auth/guest    -- read-only viewer session, no credential
  POST /api/v1/auth/logout   -- revokes the current session; clears cookie
  GET  /api/v1/auth/me       -- current identity (requires auth)

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute),
  on top of the per-number lockout in auth/throttle.py.
  Cache-Control: no-store on every response that carries a token.
  Logout revokes server-side; clearing the cookie alone would leave the
  token valid for Bearer clients.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import LoginRequest, LoginResponse, MeResponse, OkResponse, SessionUser
from auth.authenticator import Authenticator
from auth.dependencies import require
from auth.models import Identity, Session
from auth.sessions import clear_session_cookie, set_session_cookie, token_from_request

# Auth policy:
# - POST /api/v1/auth/login:   public
# - POST /api/v1/auth/guest:   public (403 when GUEST_ACCESS_ENABLED=false)
# - POST /api/v1/auth/logout:  public -- revoking an unknown token is a no-op
# - GET  /api/v1/auth/me:      auth.me
router = APIRouter()


def _session_user(session: Session) -> SessionUser:
    return SessionUser(
        id=str(session.identity_id) if session.identity_id is not None else None,
        name=session.display_name,
        username=session.username,
        access_level=session.role,
    )


def _session_response(authenticator: Authenticator, session: Session) -> JSONResponse:
    resp = JSONResponse(
        content=LoginResponse(
            access_token=session.token,
            expires_at=session.expires_at,
            user=_session_user(session),
        ).model_dump()
    )
    set_session_cookie(resp, session.token, authenticator.session_max_age(session))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate by number and password.

    Failure kinds are reported distinctly (404 unknown number, 400 no
    password set, 401 wrong password with attempts left, 429 locked) because
    the operators are known staff who need to know which one to fix.
    """
    authenticator: Authenticator = request.app.state.authenticator
    session = authenticator.login(body.number, body.password, remember_me=body.remember_me)
    return _session_response(authenticator, session)


@router.post("/auth/guest", response_model=LoginResponse)
def guest(request: Request) -> JSONResponse:
    """Issue a viewer session for read-only demo access."""
    authenticator: Authenticator = request.app.state.authenticator
    return _session_response(authenticator, authenticator.issue_guest_session())


@router.post("/auth/logout", response_model=OkResponse)
def logout(request: Request) -> JSONResponse:
    """Revoke the current session and clear the cookie."""
    authenticator: Authenticator = request.app.state.authenticator
    authenticator.revoke(token_from_request(request))
    resp = JSONResponse(content=OkResponse().model_dump())
    clear_session_cookie(resp)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(identity: Identity = Depends(require("auth.me"))) -> MeResponse:
    """Return identity information for the current session."""
    return MeResponse(
        user=SessionUser(
            id=str(identity.id) if identity.id is not None else None,
            name=identity.display_number or identity.username,
            username=identity.username,
            access_level=identity.role,
        )
    )

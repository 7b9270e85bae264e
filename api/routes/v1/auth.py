"""
api/routes/v1/auth.py -- Session login/logout and account endpoints.

Routes:
  POST /api/v1/auth/register           -- create an account with the "user" role
  POST /api/v1/auth/login              -- password login; sets the session cookie
  POST /api/v1/auth/logout             -- invalidates the current session (requires auth)
  POST /api/v1/auth/logout-all         -- invalidates every session of the user (requires auth)
  GET  /api/v1/auth/me                 -- current user and roles (public; null when anonymous)
  GET  /api/v1/auth/users/by-email     -- look up a user with roles (admin only)

Security:
  [H2] POST /login and POST /register are rate-limited per IP (see Settings).
  [C1] authenticate_user() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  Open redirect: LoginRequest.redirect_to only accepts relative, non-API paths.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    EMAIL_PATTERN,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
    UserInfo,
    UserWithRolesResponse,
)
from auth.cookies import build_session_cookie, delete_session_cookie
from auth.dependencies import get_request_context, require_admin, require_user
from auth.errors import EmailTakenError
from auth.models import RequestContext, User
from auth.roles import RoleResolver
from auth.session import SessionManager
from auth.store import UserStore
from auth.tokens import authenticate_user, hash_password
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:        public
# - POST /api/v1/auth/login:           public
# - GET  /api/v1/auth/me:              public (get_request_context)
# - POST /api/v1/auth/logout:          requires auth (require_user)
# - POST /api/v1/auth/logout-all:      requires auth (require_user)
# - GET  /api/v1/auth/users/by-email:  requires admin (require_admin)
router = APIRouter()

_settings = get_settings()

DEFAULT_ROLE = "user"


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_settings.register_rate_limit)  # enforced by SlowAPIMiddleware via the route name
@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an account and grant it the default "user" role.

    Registration does not log the user in; the client follows up with
    POST /auth/login.
    """
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(
            User(email=body.email, name=body.name, hashed_password=hash_password(body.password)),
            roles=[DEFAULT_ROLE],
        )
    except EmailTakenError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "email_taken", "message": "An account with that email already exists."},
        ) from exc
    return RegisterResponse(id=user_id)


@limiter.limit(_settings.login_rate_limit)  # [H2]
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify credentials, open a session and set the session cookie.

    Wrong email and wrong password produce the same "bad_credentials" error so
    the response does not reveal which accounts exist.
    """
    user_store: UserStore = request.app.state.user_store
    sessions: SessionManager = request.app.state.session_manager

    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    session = sessions.create_session(user.id)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(redirect_to=body.redirect_to or "/").model_dump(),
    )
    resp.headers.append(
        "set-cookie",
        build_session_cookie(session.id, session.expires_at, get_settings().secure_cookies),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(ctx: RequestContext = Depends(get_request_context)) -> MeResponse:
    """Return the caller's identity and roles, or an empty body when anonymous."""
    if ctx.user is None:
        return MeResponse()
    return MeResponse(
        user=_user_info(ctx.user),
        roles=sorted(ctx.roles),
        session_expires_at=ctx.session.expires_at.isoformat() if ctx.session else None,
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, ctx: RequestContext = Depends(require_user)) -> JSONResponse:
    """Invalidate the current session and tell the browser to drop the cookie."""
    sessions: SessionManager = request.app.state.session_manager
    sessions.invalidate_session(ctx.session.id)
    return _logged_out(LogoutResponse(sessions_revoked=1))


@router.post("/auth/logout-all", response_model=LogoutResponse)
def logout_all(request: Request, ctx: RequestContext = Depends(require_user)) -> JSONResponse:
    """Sign out everywhere: invalidate every session the user holds."""
    sessions: SessionManager = request.app.state.session_manager
    removed = sessions.invalidate_all_sessions(ctx.user.id)
    return _logged_out(LogoutResponse(sessions_revoked=removed))


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/users/by-email", response_model=UserWithRolesResponse)
def get_user_by_email(
    request: Request,
    email: str = Query(pattern=EMAIL_PATTERN, max_length=255),
    ctx: RequestContext = Depends(require_admin),
) -> UserWithRolesResponse:
    """Look up any user by email, including their roles. Admin only."""
    user_store: UserStore = request.app.state.user_store
    role_resolver: RoleResolver = request.app.state.role_resolver
    user = user_store.get_by_email(email)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found."},
        )
    return UserWithRolesResponse(
        **_user_info(user).model_dump(),
        roles=sorted(role_resolver.roles_for(user.id)),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user_info(user: User) -> UserInfo:
    return UserInfo(id=user.id, email=user.email, name=user.name, created_at=user.created_at or "")


def _logged_out(body: LogoutResponse) -> JSONResponse:
    resp = JSONResponse(content=body.model_dump())
    resp.headers.append("set-cookie", delete_session_cookie(get_settings().secure_cookies))
    return resp

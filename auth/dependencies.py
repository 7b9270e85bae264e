"""
auth/dependencies.py -- FastAPI Depends() adapters for the authorization pipeline.

get_request_context() resolves the session cookie into a RequestContext once
per request (cached on request.state) using the ContextResolver wired onto
app.state in the API lifespan. It never raises: failures become the anonymous
context.

guard(procedure) turns any Procedure from auth/guards.py into a dependency.
The ready-made ones mirror the guard compositions:

  get_request_context -- public: context only, no checks
  require_user        -- protected: 401 when anonymous
  require_roles(...)  -- role protected: 401 when anonymous, 403 without a role
  require_admin       -- role protected with "admin"

Rejections are raised as UnauthorizedError / ForbiddenError; api/main.py maps
them to 401 / 403 responses.

Layer rule: the only module in auth/ allowed to import fastapi.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.context import ContextResolver
from auth.guards import Procedure, admin_procedure, protected_procedure, role_protected_procedure
from auth.models import RequestContext, User


def get_request_context(request: Request) -> RequestContext:
    """Resolve (and cache) the authentication context for this request."""
    cached = getattr(request.state, "auth_context", None)
    if cached is not None:
        return cached
    resolver: ContextResolver = request.app.state.context_resolver
    ctx = resolver.resolve(request.headers.get("cookie"))
    request.state.auth_context = ctx
    return ctx


def guard(procedure: Procedure) -> Callable[..., RequestContext]:
    """Build a dependency that runs procedure's guards against the request context.

    Use as a FastAPI dependency:
        @router.get("/drafts")
        def drafts(ctx: RequestContext = Depends(guard(protected_procedure))): ...
    """

    def dependency(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        return procedure.check(ctx)

    return dependency


require_user = guard(protected_procedure)
require_admin = guard(admin_procedure)


def require_roles(*roles: str) -> Callable[..., RequestContext]:
    """Require at least one of roles (logical OR)."""
    return guard(role_protected_procedure(roles))


def get_current_user(ctx: RequestContext = Depends(require_user)) -> User:
    """Return the authenticated User. 401 when the request is anonymous."""
    return ctx.user

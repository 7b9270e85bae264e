"""
auth/guards.py -- The authorization pipeline: ordered guards in front of a handler.

Pattern: Chain of Responsibility. A Procedure is an immutable, ordered tuple of
guard callables. Each guard inspects the RequestContext and either returns
(pass) or raises a tagged rejection (UnauthorizedError / ForbiddenError). The
handler only runs once every guard has passed.

Compositions:
  public_procedure                  -- no guards
  protected_procedure               -- require_authenticated
  role_protected_procedure(roles)   -- require_authenticated + require_any_role(roles)
  admin_procedure                   -- role_protected_procedure("admin")

Transport-agnostic: auth/dependencies.py adapts procedures to FastAPI, but the
same procedures run equally well from a CLI or a test.

Layer rule: no imports from api/ or fastapi.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable
from typing import Any

from auth.errors import ForbiddenError, UnauthorizedError
from auth.models import RequestContext

Guard = Callable[[RequestContext], None]


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def require_authenticated(ctx: RequestContext) -> None:
    """Reject the request with UnauthorizedError if there is no user in context."""
    if ctx.user is None:
        raise UnauthorizedError()


def require_any_role(required: str | Iterable[str]) -> Guard:
    """Build a guard that passes when the context holds at least one required role.

    A bare string is a single role name, not a sequence of characters.
    """
    needed = frozenset([required]) if isinstance(required, str) else frozenset(required)
    if not needed:
        raise ValueError("require_any_role() needs at least one role name")

    def guard(ctx: RequestContext) -> None:
        if ctx.roles.isdisjoint(needed):
            raise ForbiddenError()

    guard.required_roles = needed  # type: ignore[attr-defined]
    return guard


# ---------------------------------------------------------------------------
# Procedure
# ---------------------------------------------------------------------------


class Procedure:
    """An ordered list of guards that wraps handler invocation.

    Usage:
        @protected_procedure
        def list_drafts(ctx, limit=10): ...

        list_drafts(ctx, limit=5)     # raises UnauthorizedError when anonymous

        admin_procedure.run(ctx, handler, *args)
    """

    def __init__(self, guards: Iterable[Guard] = ()) -> None:
        self.guards: tuple[Guard, ...] = tuple(guards)

    def use(self, guard: Guard) -> Procedure:
        """Return a new procedure with guard appended. The original is unchanged."""
        return Procedure(self.guards + (guard,))

    def check(self, ctx: RequestContext) -> RequestContext:
        """Run every guard in order; the first rejection propagates."""
        for guard in self.guards:
            guard(ctx)
        return ctx

    def run(self, ctx: RequestContext, handler: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        self.check(ctx)
        return handler(ctx, *args, **kwargs)

    def __call__(self, handler: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(handler)
        def wrapper(ctx: RequestContext, *args: Any, **kwargs: Any) -> Any:
            return self.run(ctx, handler, *args, **kwargs)

        wrapper.procedure = self  # type: ignore[attr-defined]
        return wrapper

    def __repr__(self) -> str:
        names = ", ".join(getattr(g, "__name__", repr(g)) for g in self.guards)
        return f"Procedure([{names}])"


public_procedure = Procedure()
protected_procedure = public_procedure.use(require_authenticated)


def role_protected_procedure(required: str | Iterable[str]) -> Procedure:
    return protected_procedure.use(require_any_role(required))


admin_procedure = role_protected_procedure("admin")

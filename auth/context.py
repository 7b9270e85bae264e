"""
auth/context.py -- Per-request context resolution.

Turns a raw Cookie header into a RequestContext:
  cookie -> token -> SessionManager.validate_session -> user -> RoleResolver

Any exception along the way (store unavailable, bad row, ...) degrades the
request to the anonymous context instead of failing it. Availability wins over
strictness here, so the failure is handed to an explicit diagnostics hook --
by default logger.exception -- to keep infrastructure faults visible even
though the request itself looks like ordinary unauthenticated traffic.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from auth.cookies import read_session_token
from auth.models import ANONYMOUS, RequestContext
from auth.roles import RoleResolver
from auth.session import SessionManager
from auth.store import UserStore

logger = logging.getLogger("sessiongate.auth.context")


def log_context_error(exc: Exception) -> None:
    """Default diagnostics hook: record the swallowed failure with its traceback."""
    logger.exception("Context resolution failed -- continuing as anonymous", exc_info=exc)


class ContextResolver:
    """Builds the RequestContext the guard pipeline runs against."""

    def __init__(
        self,
        sessions: SessionManager,
        users: UserStore,
        roles: RoleResolver,
        on_error: Callable[[Exception], None] = log_context_error,
    ) -> None:
        self.sessions = sessions
        self.users = users
        self.roles = roles
        self.on_error = on_error

    def resolve(self, cookie_header: str | None) -> RequestContext:
        """Return the context for a request carrying cookie_header. Never raises."""
        try:
            return self._resolve(cookie_header)
        except Exception as exc:
            self.on_error(exc)
            return ANONYMOUS

    def _resolve(self, cookie_header: str | None) -> RequestContext:
        token = read_session_token(cookie_header)
        if token is None:
            return ANONYMOUS

        session = self.sessions.validate_session(token)
        if session is None:
            return ANONYMOUS

        user = self.users.get_by_id(session.user_id)
        if user is None:
            # Orphaned row -- the cascade normally prevents this.
            logger.warning("Session references missing user %s", session.user_id)
            return ANONYMOUS

        return RequestContext(session=session, user=user, roles=self.roles.roles_for(user.id))

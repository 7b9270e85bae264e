"""
auth/session.py -- Session lifecycle: creation, validation, invalidation.

Dual expiry policy:
  expires_at       absolute deadline, fixed at creation (default 30 days).
  idle_expires_at  sliding deadline, pushed to now + idle TTL (default 7 days)
                   on every successful validation.

A session is valid while now < expires_at and now < idle_expires_at. The first
validation that finds either deadline passed deletes the row, so expired
sessions do not linger for whoever presents the token next.

Concurrency: there is no in-process cache -- every validation reads the store.
Two validations of the same token may race on the idle refresh; both move the
deadline forward and the absolute deadline bounds it, so last-write-wins is
fine. A refresh racing a logout can resurrect the row for at most one idle
window.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import Session
from auth.store import SessionStore
from auth.tokens import DEFAULT_TOKEN_BYTES, generate_session_token
from core.config import Settings

logger = logging.getLogger("sessiongate.auth.session")

ABSOLUTE_TTL = timedelta(days=30)
IDLE_TTL = timedelta(days=7)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Owns session creation, validation (with expiry and idle refresh) and invalidation.

    The store is injected so tests can hand in an in-memory SessionStore and a
    fake clock instead of patching module globals.

    Usage:
        manager = SessionManager(SessionStore(engine))
        session = manager.create_session(user.id)
        session = manager.validate_session(token)  # None when not valid
    """

    def __init__(
        self,
        store: SessionStore,
        absolute_ttl: timedelta = ABSOLUTE_TTL,
        idle_ttl: timedelta = IDLE_TTL,
        clamp_idle: bool = True,
        token_bytes: int = DEFAULT_TOKEN_BYTES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.absolute_ttl = absolute_ttl
        self.idle_ttl = idle_ttl
        self.clamp_idle = clamp_idle
        self.token_bytes = token_bytes
        self._clock = clock

    @classmethod
    def from_settings(cls, store: SessionStore, settings: Settings) -> SessionManager:
        return cls(
            store,
            absolute_ttl=timedelta(seconds=settings.session_ttl_seconds),
            idle_ttl=timedelta(seconds=settings.idle_timeout_seconds),
            clamp_idle=settings.clamp_idle_to_absolute,
            token_bytes=settings.session_token_bytes,
        )

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(self, user_id: str) -> Session:
        """Persist and return a new session for user_id.

        A user may hold any number of sessions at once (one per device);
        nothing here revokes older ones.
        """
        now = self.now()
        session = Session(
            id=generate_session_token(self.token_bytes),
            user_id=user_id,
            expires_at=now + self.absolute_ttl,
            idle_expires_at=now + self.idle_ttl,
        )
        self.store.insert(session)
        logger.info("Session created for user %s", user_id)
        return session

    def validate_session(self, token: str) -> Session | None:
        """Return the refreshed session for token, or None if it is not valid.

        NotFound and Expired both come back as None. Expired additionally
        deletes the stored row.
        """
        if not token:
            return None

        session = self.store.get(token)
        if session is None:
            logger.debug("Session lookup miss")
            return None

        # The lookup is already by exact key; this only guards against a
        # store that matches loosely (collation, trimming).
        if not hmac.compare_digest(session.id.encode("utf-8"), token.encode("utf-8")):
            logger.warning("Session store returned a row whose id does not match the presented token")
            return None

        now = self.now()
        if now >= session.expires_at:
            logger.debug("Session for user %s passed its absolute deadline", session.user_id)
            self.invalidate_session(token)
            return None
        if now >= session.idle_expires_at:
            logger.debug("Session for user %s passed its idle deadline", session.user_id)
            self.invalidate_session(token)
            return None

        new_idle = now + self.idle_ttl
        if self.clamp_idle:
            new_idle = min(new_idle, session.expires_at)
        self.store.update_idle_expiry(token, new_idle)
        session.idle_expires_at = new_idle
        return session

    def invalidate_session(self, token: str) -> None:
        """Delete the session. Unknown tokens are ignored."""
        self.store.delete(token)

    def invalidate_all_sessions(self, user_id: str) -> int:
        """Delete every session owned by user_id ("sign out everywhere")."""
        removed = self.store.delete_by_user(user_id)
        logger.info("Invalidated %d session(s) for user %s", removed, user_id)
        return removed

    def purge_expired(self) -> int:
        """Delete every session whose absolute or idle deadline has passed."""
        return self.store.delete_expired(self.now())

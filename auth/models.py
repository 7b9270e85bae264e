"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
manager do the work; these classes only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """An identity owned by the account subsystem.

    The authorization core only reads users. hashed_password is carried so the
    credential verifier can check a login; it never leaves the server.

    id is None before the record is written to the database.
    """

    email: str
    name: str
    hashed_password: str
    id: str | None = None  # UUID string, assigned by the store
    created_at: str | None = None  # ISO 8601


@dataclass
class Role:
    """Static reference data: a named role such as "admin" or "user"."""

    name: str
    description: str = ""


@dataclass
class Session:
    """A server-side login session.

    id is the opaque token handed to the client -- it is both the bearer
    credential and the primary key. expires_at never moves; idle_expires_at
    slides forward on every successful validation.
    """

    id: str
    user_id: str
    expires_at: datetime  # absolute deadline (UTC, tz-aware)
    idle_expires_at: datetime  # sliding deadline (UTC, tz-aware)


@dataclass(frozen=True)
class RequestContext:
    """Per-request authentication state consumed by the guard pipeline.

    The anonymous context (no session, no user, empty roles) is used both for
    requests without a valid session and for requests whose context could not
    be resolved because a collaborator failed.
    """

    session: Session | None = None
    user: User | None = None
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


ANONYMOUS = RequestContext()

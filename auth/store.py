"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
SessionStore and UserStore are the repositories; _row_to_session / _row_to_user
are the mappers. The session manager, role resolver and routes never touch SQL
directly.

Both repositories share one Engine (create_auth_engine) because the sessions
and user_roles tables reference users with ON DELETE CASCADE -- the cascade
only fires when all tables live in the same database.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Sessions are always fetched by exact primary key, never scanned.

Timestamps are stored as ISO 8601 UTC strings with fixed microsecond precision
so that lexicographic comparison in delete_expired() matches chronological order.

DB path: sessiongate.db at the project root unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import EmailTakenError
from auth.models import Session, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),  # UUID string
    Column("name", String(255), nullable=False, index=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(255), primary_key=True),  # the session token itself
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False),
    Column("idle_expires_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("name", String(64), primary_key=True),
    Column("description", Text),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("role_name", String(64), ForeignKey("roles.name", ondelete="CASCADE"), primary_key=True),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON is what makes the
    ON DELETE CASCADE on sessions.user_id actually run.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_auth_engine(db_url: str | None = None) -> Engine:
    """Create an Engine for the auth tables and make sure the schema exists."""
    db_url = db_url or get_settings().database_url
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    """Serialize as fixed-precision UTC. Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


_CONFLICT_INSERTS = {"sqlite": sqlite_insert, "postgresql": pg_insert}


def _insert_ignoring_conflict(conn: Connection, table: Table, **values) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING. Returns True if a row was written.

    Two writers racing to create the same row both succeed; only one of them
    gets True. Dialects without ON CONFLICT fall back to a SAVEPOINT so the
    outer transaction survives the duplicate.
    """
    dialect_insert = _CONFLICT_INSERTS.get(conn.dialect.name)
    if dialect_insert is not None:
        result = conn.execute(dialect_insert(table).values(**values).on_conflict_do_nothing())
        return result.rowcount > 0
    try:
        with conn.begin_nested():
            conn.execute(table.insert().values(**values))
    except IntegrityError:
        return False
    return True


# ---------------------------------------------------------------------------
# Session repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Keyed storage for session records.

    Usage:
        engine = create_auth_engine("sqlite:///:memory:")
        sessions = SessionStore(engine)
        sessions.insert(Session(id=token, user_id=uid, expires_at=..., idle_expires_at=...))
        record = sessions.get(token)
    """

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine: Engine = engine if engine is not None else create_auth_engine()

    def get(self, session_id: str) -> Session | None:
        """Look up a session by exact token. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def insert(self, session: Session) -> None:
        """Persist a new session. Raises IntegrityError on a token collision or unknown user."""
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    user_id=session.user_id,
                    expires_at=_to_iso(session.expires_at),
                    idle_expires_at=_to_iso(session.idle_expires_at),
                )
            )
            conn.commit()

    def update_idle_expiry(self, session_id: str, idle_expires_at: datetime) -> bool:
        """Move the sliding deadline. Returns False if the session no longer exists."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update().where(_sessions.c.id == session_id).values(idle_expires_at=_to_iso(idle_expires_at))
            )
            conn.commit()
        return result.rowcount > 0

    def delete(self, session_id: str) -> bool:
        """Delete one session. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def delete_by_user(self, user_id: str) -> int:
        """Delete every session owned by user_id. Returns the number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def delete_expired(self, now: datetime) -> int:
        """Delete sessions whose absolute or idle deadline has passed.

        validate_session() already removes stale rows when they are presented;
        this sweeps the ones nobody comes back for.
        """
        cutoff = _to_iso(now)
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where(
                    or_(_sessions.c.expires_at <= cutoff, _sessions.c.idle_expires_at <= cutoff)
                )
            )
            conn.commit()
        return result.rowcount

    def count_for_user(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_sessions).where(_sessions.c.user_id == user_id)
            ).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# User / role repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, roles and the user_roles join.

    The authorization core only needs get_by_id() and get_role_names(); the
    write methods exist for registration and the admin CLI.
    """

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine: Engine = engine if engine is not None else create_auth_engine()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User, roles: Iterable[str] = ()) -> str:
        """Insert a new user, grant it roles, and return its assigned UUID.

        The user row and its role grants are written in one transaction, so a
        failed grant never leaves a role-less account behind.

        Raises EmailTakenError if the email is already registered. The UNIQUE
        constraint is the source of truth, so two concurrent registrations for
        the same address cannot both succeed.
        """
        user_id = str(uuid.uuid4())
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        name=user.name,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        created_at=_now_iso(),
                    )
                )
                for role_name in roles:
                    _insert_ignoring_conflict(conn, _roles, name=role_name, description="")
                    _insert_ignoring_conflict(conn, _user_roles, user_id=user_id, role_name=role_name)
        except IntegrityError as exc:
            raise EmailTakenError(f"Email already registered: {user.email}") from exc
        return user_id

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user. Sessions and role assignments cascade."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def ensure_role(self, name: str, description: str = "") -> None:
        """Create the role row if it does not exist yet. Idempotent and race-safe."""
        with self.engine.begin() as conn:
            _insert_ignoring_conflict(conn, _roles, name=name, description=description)

    def assign_role(self, user_id: str, role_name: str) -> bool:
        """Grant role_name to user_id, creating the role on demand.

        Returns False if the user already held the role. Concurrent grants of
        the same role never raise; exactly one of them returns True.
        """
        with self.engine.begin() as conn:
            _insert_ignoring_conflict(conn, _roles, name=role_name, description="")
            return _insert_ignoring_conflict(conn, _user_roles, user_id=user_id, role_name=role_name)

    def get_role_names(self, user_id: str) -> list[str]:
        """Return the names of all roles assigned to user_id (join query)."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_roles.c.name)
                .select_from(_user_roles.join(_roles, _user_roles.c.role_name == _roles.c.name))
                .where(_user_roles.c.user_id == user_id)
            ).fetchall()
        return [r.name for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        expires_at=_from_iso(row.expires_at),
        idle_expires_at=_from_iso(row.idle_expires_at),
    )


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        created_at=row.created_at,
    )

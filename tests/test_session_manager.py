"""Unit tests for auth/session.py -- SessionManager lifecycle and the dual expiry policy.

Covers:
- create_session() returns a persisted record with both deadlines in the future
- validate_session() rejects and deletes sessions past the absolute or idle deadline
- validate_session() slides idle_expires_at forward (clamped to expires_at by default)
- the 29-days-of-daily-activity scenario and the day-31 hard stop
- invalidate_session() / invalidate_all_sessions() / purge_expired()
- the constant-time id check against a store that matches loosely
"""

from datetime import timedelta

import pytest

from auth.models import Session
from auth.session import ABSOLUTE_TTL, IDLE_TTL, SessionManager
from auth.tokens import encoded_token_length


@pytest.fixture
def owner(make_user):
    return make_user("user")


class TestCreateSession:
    def test_returns_full_record(self, manager, owner, clock) -> None:
        session = manager.create_session(owner.id)
        assert session.user_id == owner.id
        assert session.expires_at == clock() + ABSOLUTE_TTL
        assert session.idle_expires_at == clock() + IDLE_TTL
        assert len(session.id) == encoded_token_length(32)

    def test_record_is_persisted(self, manager, session_store, owner) -> None:
        session = manager.create_session(owner.id)
        stored = session_store.get(session.id)
        assert stored == session

    def test_multiple_sessions_per_user_allowed(self, manager, session_store, owner) -> None:
        first = manager.create_session(owner.id)
        second = manager.create_session(owner.id)
        assert first.id != second.id
        assert session_store.count_for_user(owner.id) == 2
        assert manager.validate_session(first.id) is not None
        assert manager.validate_session(second.id) is not None


class TestValidateSession:
    def test_fresh_session_is_valid(self, manager, owner, clock) -> None:
        created = manager.create_session(owner.id)
        validated = manager.validate_session(created.id)
        assert validated is not None
        assert validated.user_id == owner.id
        assert validated.expires_at > clock()
        assert validated.idle_expires_at > clock()

    def test_unknown_token_is_invalid(self, manager) -> None:
        assert manager.validate_session("no-such-token") is None

    def test_empty_token_is_invalid(self, manager) -> None:
        assert manager.validate_session("") is None

    def test_absolute_expiry_rejects_and_deletes(self, manager, session_store, owner, clock) -> None:
        created = manager.create_session(owner.id)
        # Keep the idle deadline alive so only the absolute deadline can fail.
        session_store.update_idle_expiry(created.id, clock() + timedelta(days=60))
        clock.advance(days=30)
        assert manager.validate_session(created.id) is None
        assert session_store.get(created.id) is None

    def test_idle_expiry_rejects_and_deletes(self, manager, session_store, owner, clock) -> None:
        created = manager.create_session(owner.id)
        clock.advance(days=7)
        assert clock() < created.expires_at
        assert manager.validate_session(created.id) is None
        assert session_store.get(created.id) is None

    def test_just_before_idle_deadline_is_valid(self, manager, owner, clock) -> None:
        created = manager.create_session(owner.id)
        clock.advance(days=7, seconds=-1)
        assert manager.validate_session(created.id) is not None

    def test_refresh_slides_idle_deadline(self, manager, session_store, owner, clock) -> None:
        created = manager.create_session(owner.id)
        clock.advance(days=3)
        refreshed = manager.validate_session(created.id)
        assert refreshed.idle_expires_at == clock() + IDLE_TTL
        assert session_store.get(created.id).idle_expires_at == refreshed.idle_expires_at
        assert refreshed.expires_at == created.expires_at

    def test_repeated_validation_never_moves_idle_backwards(self, manager, owner, clock) -> None:
        created = manager.create_session(owner.id)
        previous = created.idle_expires_at
        for _ in range(40):
            clock.advance(hours=17)
            session = manager.validate_session(created.id)
            if session is None:
                break
            assert session.idle_expires_at >= previous
            previous = session.idle_expires_at

    def test_daily_activity_survives_to_day_29_but_not_day_31(self, manager, owner, clock) -> None:
        created = manager.create_session(owner.id)
        for day in range(1, 30):
            clock.advance(days=1)
            assert manager.validate_session(created.id) is not None, f"session died on day {day}"
        clock.advance(days=2)  # day 31
        assert manager.validate_session(created.id) is None

    def test_idle_refresh_is_clamped_to_absolute_deadline(self, manager, owner, clock) -> None:
        created = manager.create_session(owner.id)
        for _ in range(27):
            clock.advance(days=1)
            manager.validate_session(created.id)
        session = manager.validate_session(created.id)
        assert session.idle_expires_at == created.expires_at

    def test_idle_refresh_unclamped_when_disabled(self, session_store, owner, clock) -> None:
        manager = SessionManager(session_store, clamp_idle=False, clock=clock)
        created = manager.create_session(owner.id)
        for _ in range(27):
            clock.advance(days=1)
            manager.validate_session(created.id)
        session = manager.validate_session(created.id)
        assert session.idle_expires_at == clock() + IDLE_TTL
        assert session.idle_expires_at > created.expires_at

    def test_custom_ttls(self, session_store, owner, clock) -> None:
        manager = SessionManager(
            session_store,
            absolute_ttl=timedelta(hours=2),
            idle_ttl=timedelta(minutes=15),
            clock=clock,
        )
        created = manager.create_session(owner.id)
        clock.advance(minutes=14)
        assert manager.validate_session(created.id) is not None
        clock.advance(minutes=16)
        assert manager.validate_session(created.id) is None


class _LooseStore:
    """Store double that finds rows case-insensitively, like a lenient collation would."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.deleted: list[str] = []
        self.updated: list[str] = []

    def get(self, session_id: str):
        if session_id.lower() == self.session.id.lower():
            return self.session
        return None

    def update_idle_expiry(self, session_id, idle_expires_at) -> bool:
        self.updated.append(session_id)
        return True

    def delete(self, session_id: str) -> bool:
        self.deleted.append(session_id)
        return True


def test_mismatched_id_from_store_is_rejected(clock) -> None:
    stored = Session(
        id="AbCdEf",
        user_id="u-1",
        expires_at=clock() + ABSOLUTE_TTL,
        idle_expires_at=clock() + IDLE_TTL,
    )
    store = _LooseStore(stored)
    manager = SessionManager(store, clock=clock)
    assert manager.validate_session("abcdef") is None
    assert store.updated == []
    assert manager.validate_session("AbCdEf") is not None
    assert store.updated == ["AbCdEf"]


class TestInvalidation:
    def test_invalidate_removes_session(self, manager, session_store, owner) -> None:
        created = manager.create_session(owner.id)
        manager.invalidate_session(created.id)
        assert session_store.get(created.id) is None
        assert manager.validate_session(created.id) is None

    def test_invalidate_unknown_token_is_noop(self, manager) -> None:
        manager.invalidate_session("never-issued")
        manager.invalidate_session("never-issued")

    def test_invalidate_all_sessions(self, manager, session_store, make_user) -> None:
        alice = make_user()
        bob = make_user()
        a1 = manager.create_session(alice.id)
        a2 = manager.create_session(alice.id)
        b1 = manager.create_session(bob.id)

        assert manager.invalidate_all_sessions(alice.id) == 2
        assert manager.validate_session(a1.id) is None
        assert manager.validate_session(a2.id) is None
        assert manager.validate_session(b1.id) is not None

    def test_invalidate_all_for_user_without_sessions(self, manager, owner) -> None:
        assert manager.invalidate_all_sessions(owner.id) == 0

    def test_purge_expired(self, manager, session_store, owner, clock) -> None:
        stale = manager.create_session(owner.id)
        clock.advance(days=6)
        fresh = manager.create_session(owner.id)
        clock.advance(days=2)  # stale is past its idle deadline, fresh is not

        assert manager.purge_expired() == 1
        assert session_store.get(stale.id) is None
        assert session_store.get(fresh.id) is not None

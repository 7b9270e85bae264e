"""Tests for main.py -- the account and session administration CLI.

Each test points the CLI at its own SQLite file under tmp_path via
--database-url, then inspects the database with the same stores the app uses.
"""

import pytest

from auth.session import SessionManager
from auth.store import SessionStore, UserStore, create_auth_engine
from auth.tokens import verify_password
from main import main


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def stores(db_url):
    engine = create_auth_engine(db_url)
    yield UserStore(engine), SessionManager(SessionStore(engine))
    engine.dispose()


class TestCreateUser:
    def test_with_password_and_roles(self, db_url, stores) -> None:
        code = main([
            "--database-url", db_url,
            "create-user", "--email", "ops@example.com", "--name", "Ops",
            "--password", "s3cretpass", "--role", "admin", "--role", "editor",
        ])
        assert code == 0
        users, _ = stores
        user = users.get_by_email("ops@example.com")
        assert verify_password("s3cretpass", user.hashed_password)
        assert sorted(users.get_role_names(user.id)) == ["admin", "editor"]

    def test_generated_password_printed_once(self, db_url, stores, capsys) -> None:
        assert main(["--database-url", db_url, "create-user", "--email", "gen@example.com", "--name", "Gen"]) == 0
        out = capsys.readouterr().out
        assert "Generated password (shown once):" in out
        password = out.split("Generated password (shown once):")[1].strip()
        users, _ = stores
        user = users.get_by_email("gen@example.com")
        assert verify_password(password, user.hashed_password)
        assert users.get_role_names(user.id) == ["user"]

    def test_duplicate_email(self, db_url, capsys) -> None:
        args = ["--database-url", db_url, "create-user", "--email", "dup@example.com", "--name", "Dup", "--password", "pw12345678"]
        assert main(args) == 0
        assert main(args) == 1
        assert "already exists" in capsys.readouterr().out


class TestGrantRole:
    def test_grant_and_regrant(self, db_url, stores, capsys) -> None:
        main(["--database-url", db_url, "create-user", "--email", "w@example.com", "--name", "W", "--password", "pw12345678"])
        assert main(["--database-url", db_url, "grant-role", "--email", "w@example.com", "--role", "editor"]) == 0
        assert main(["--database-url", db_url, "grant-role", "--email", "w@example.com", "--role", "editor"]) == 0
        assert "already has 'editor'" in capsys.readouterr().out
        users, _ = stores
        assert sorted(users.get_role_names(users.get_by_email("w@example.com").id)) == ["editor", "user"]

    def test_unknown_email(self, db_url) -> None:
        assert main(["--database-url", db_url, "grant-role", "--email", "nobody@example.com", "--role", "admin"]) == 1


class TestSessions:
    def test_revoke_sessions(self, db_url, stores, capsys) -> None:
        main(["--database-url", db_url, "create-user", "--email", "r@example.com", "--name", "R", "--password", "pw12345678"])
        users, manager = stores
        user = users.get_by_email("r@example.com")
        first = manager.create_session(user.id)
        manager.create_session(user.id)

        assert main(["--database-url", db_url, "revoke-sessions", "--email", "r@example.com"]) == 0
        assert "Revoked 2 session(s)" in capsys.readouterr().out
        assert manager.validate_session(first.id) is None

    def test_revoke_unknown_email(self, db_url) -> None:
        assert main(["--database-url", db_url, "revoke-sessions", "--email", "nobody@example.com"]) == 1

    def test_purge_expired_with_nothing_to_purge(self, db_url, capsys) -> None:
        assert main(["--database-url", db_url, "purge-expired"]) == 0
        assert "Purged 0 expired session(s)." in capsys.readouterr().out


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 2
    assert "create-user" in capsys.readouterr().out

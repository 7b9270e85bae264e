#!/usr/bin/env python3
"""
SessionGate -- account and session administration from the command line.

Usage:
  python main.py create-user --email admin@example.com --name "Admin User" --role admin
  python main.py create-user --email writer@example.com --name Writer --password s3cretpass
  python main.py grant-role --email writer@example.com --role editor
  python main.py revoke-sessions --email writer@example.com
  python main.py purge-expired

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the auth database (default: sqlite file at the project root).
"""

import argparse
import secrets
from typing import Optional

from auth.errors import EmailTakenError
from auth.models import User
from auth.session import SessionManager
from auth.store import SessionStore, UserStore, create_auth_engine
from auth.tokens import hash_password
from core.config import get_settings


def create_user(
    users: UserStore,
    email: str,
    name: str,
    password: Optional[str] = None,
    roles: Optional[list[str]] = None,
) -> int:
    """Create an account. Without --password a random one is generated and printed once."""
    generated = password is None
    if generated:
        password = secrets.token_hex(16)
    roles = roles or ["user"]
    try:
        user_id = users.create_user(User(email=email, name=name, hashed_password=hash_password(password)), roles=roles)
    except EmailTakenError:
        print(f"  [!] An account for '{email}' already exists.")
        return 1
    print(f"  Created {email} ({user_id}) with role(s): {', '.join(roles)}")
    if generated:
        print(f"  Generated password (shown once): {password}")
    return 0


def grant_role(users: UserStore, email: str, role: str) -> int:
    user = users.get_by_email(email)
    if user is None:
        print(f"  [!] No account for '{email}'.")
        return 1
    if users.assign_role(user.id, role):
        print(f"  Granted '{role}' to {email}.")
    else:
        print(f"  {email} already has '{role}'.")
    return 0


def revoke_sessions(users: UserStore, sessions: SessionManager, email: str) -> int:
    """Sign a user out everywhere."""
    user = users.get_by_email(email)
    if user is None:
        print(f"  [!] No account for '{email}'.")
        return 1
    removed = sessions.invalidate_all_sessions(user.id)
    print(f"  Revoked {removed} session(s) for {email}.")
    return 0


def purge_expired(sessions: SessionManager) -> int:
    removed = sessions.purge_expired()
    print(f"  Purged {removed} expired session(s).")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sessiongate",
        description="Manage SessionGate accounts, roles and sessions.",
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL from the environment)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_create = sub.add_parser("create-user", help="Create an account")
    p_create.add_argument("--email", required=True)
    p_create.add_argument("--name", required=True)
    p_create.add_argument("--password", default=None, help="Omit to generate a random password")
    p_create.add_argument(
        "--role",
        action="append",
        dest="roles",
        metavar="ROLE",
        help="Role to grant (repeatable, default: user)",
    )

    p_grant = sub.add_parser("grant-role", help="Grant a role to an existing account")
    p_grant.add_argument("--email", required=True)
    p_grant.add_argument("--role", required=True)

    p_revoke = sub.add_parser("revoke-sessions", help="Sign an account out everywhere")
    p_revoke.add_argument("--email", required=True)

    sub.add_parser("purge-expired", help="Delete expired sessions")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    settings = get_settings()
    engine = create_auth_engine(args.database_url or settings.database_url)
    users = UserStore(engine)
    sessions = SessionManager.from_settings(SessionStore(engine), settings)
    try:
        if args.command == "create-user":
            return create_user(users, args.email, args.name, args.password, args.roles)
        if args.command == "grant-role":
            return grant_role(users, args.email, args.role)
        if args.command == "revoke-sessions":
            return revoke_sessions(users, sessions, args.email)
        return purge_expired(sessions)
    finally:
        engine.dispose()


if __name__ == "__main__":
    raise SystemExit(main())

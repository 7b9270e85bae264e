"""
auth/tokens.py -- Session token generation and password verification.

Security design decisions:
  Session tokens: secrets.token_urlsafe(n) draws n bytes from the OS CSPRNG
       and encodes them as URL-safe base64 with the "=" padding stripped.
       32 bytes -> 43 characters, 256 bits of entropy. Never use the random
       module here -- its Mersenne Twister state is predictable.

  Passwords: bcrypt directly (no passlib wrapper). Bcrypt is the right choice
       for low-entropy secrets because its cost factor makes brute force
       expensive. The _DUMMY_HASH constant enables timing equalization in
       authenticate_user() so response time does not reveal whether an email
       is registered [C1].

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

import bcrypt

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("sessiongate.auth")

DEFAULT_TOKEN_BYTES = 32


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def generate_session_token(byte_length: int = DEFAULT_TOKEN_BYTES) -> str:
    """Return a URL-safe, unpadded base64 token built from byte_length random bytes."""
    if byte_length <= 0:
        raise ValueError("byte_length must be positive")
    return secrets.token_urlsafe(byte_length)


def encoded_token_length(byte_length: int) -> int:
    """Length of an unpadded base64 encoding of byte_length bytes."""
    return (byte_length * 4 + 2) // 3


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    255 characters, well inside what bcrypt 4.x accepts without error.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash -- treat as a failed check, not a server error.
        logger.warning("Stored password hash is malformed")
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("sessiongate_timing_dummy")


# ---------------------------------------------------------------------------
# Credential verification (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Verify an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. The caller passes
    user.id to SessionManager.create_session().
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user

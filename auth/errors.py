"""
auth/errors.py -- Rejection signals raised by the authorization pipeline.

UnauthorizedError and ForbiddenError are deliberately separate types so the
transport can tell "must log in" (401) apart from "insufficient privilege"
(403). Both carry the machine-readable code used in the API error envelope.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthorizationError(Exception):
    """Base class for guard rejections. Messages are safe to show to clients."""

    code = "authorization_error"
    status_code = 403
    default_message = "Access denied."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(AuthorizationError):
    """Raised when a protected operation runs without an authenticated user."""

    code = "unauthorized"
    status_code = 401
    default_message = "Authentication required."


class ForbiddenError(AuthorizationError):
    """Raised when the user is authenticated but holds none of the required roles."""

    code = "forbidden"
    status_code = 403
    default_message = "Insufficient privileges."


class EmailTakenError(ValueError):
    """Raised by UserStore.create_user when the email is already registered."""

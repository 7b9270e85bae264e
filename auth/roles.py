"""
auth/roles.py -- Role resolution for authenticated users.

roles_for() never raises: a user with no roles and a failed lookup both come back
as an empty set. An empty set still belongs to an authenticated user -- the
role guard turns it into 403, never 401.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from auth.store import UserStore

logger = logging.getLogger("sessiongate.auth.roles")


class RoleResolver:
    """Maps a user id to its current set of role names via the user_roles join."""

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def roles_for(self, user_id: str) -> frozenset[str]:
        try:
            return frozenset(self.store.get_role_names(user_id))
        except SQLAlchemyError:
            logger.exception("Role lookup failed for user %s -- continuing with no roles", user_id)
            return frozenset()

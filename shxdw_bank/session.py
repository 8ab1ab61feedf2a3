"""
Sessions and role-based authorization.

A Session is a plain value handed to every mutating call. Nothing in the
package keeps a process-wide "current user".
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet

from .auth import AuthStore, Role, User
from .errors import AuthenticationError, AuthorizationError


class Permission(Enum):
    """Operations gated by role"""
    OPERATE_LEDGER = "operate_ledger"   # clients, accounts, deposits, withdrawals, transfers
    DELETE_ACCOUNT = "delete_account"
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT_LOG = "view_audit_log"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.OPERATOR: frozenset({Permission.OPERATE_LEDGER}),
}


@dataclass(frozen=True)
class Session:
    """Authenticated actor"""
    user_id: int
    username: str
    role: Role
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_user(cls, user: User) -> 'Session':
        return cls(user_id=user.id, username=user.username, role=user.role)

    def has_permission(self, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS[self.role]


def require_permission(session: Session, permission: Permission) -> None:
    """Raise AuthorizationError unless the session's role grants ``permission``"""
    if not session.has_permission(permission):
        raise AuthorizationError(
            f"{session.username} ({session.role.value}) may not {permission.value}"
        )


class SessionManager:
    """Turns credentials into sessions"""

    def __init__(self, auth_store: AuthStore):
        self.auth_store = auth_store

    def login(self, username: str, password: str) -> Session:
        return Session.for_user(self.auth_store.login(username, password))

    def resume(self, username: str) -> Session:
        """
        Rebuild a session for a previously authenticated username (e.g. from
        a bearer token). The role is re-read so demotions take effect.
        """
        user = self.auth_store.get_user(username)
        if user is None:
            raise AuthenticationError("Session is no longer valid")
        return Session.for_user(user)

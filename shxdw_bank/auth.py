"""
Operator Authentication Module

User registry with unique usernames and salted scrypt password hashes.
Raw passwords are never stored or logged. Login failures are uniform: an
unknown username and a wrong password produce the same error.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import AuthenticationError, DuplicateUserError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .storage import DuplicateKeyError, StorageInterface, StorageRecord


INVALID_CREDENTIALS = "Invalid username or password"


class Role(Enum):
    """Permission tiers"""
    ADMIN = "admin"
    OPERATOR = "operator"


@dataclass
class User(StorageRecord):
    """System operator"""
    username: str
    role: Role
    password_hash: str
    password_salt: str
    must_change_password: bool = False
    last_login: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        data = cls._parse_timestamps(data)
        data['role'] = Role(data['role'])
        if data.get('last_login'):
            data['last_login'] = datetime.fromisoformat(data['last_login'])
        return cls(**data)


class AuthStore:
    """
    Durable user registry and credential verification
    """

    def __init__(self, storage: StorageInterface, password_min_length: int = 4):
        self.storage = storage
        self.table_name = "users"
        self.password_min_length = password_min_length
        self.logger = get_logger("shxdw.auth")
        self.storage.add_unique_constraint(self.table_name, "username")
        # Hashed against on unknown usernames so both failure paths cost the same
        self._dummy_salt = self._generate_salt()

    def has_any_user(self) -> bool:
        return self.storage.count(self.table_name) > 0

    def register(self, username: str, raw_password: str, role: Role,
                 must_change_password: bool = False) -> User:
        """
        Register a new operator

        Raises:
            DuplicateUserError: If the username is taken
            ValidationError: If username or password is unacceptable
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required")
        self._validate_password(raw_password)

        now = datetime.now(timezone.utc)
        salt = self._generate_salt()
        try:
            with self.storage.atomic():
                if self.storage.find(self.table_name, {"username": username}):
                    raise DuplicateUserError(f"User {username} already exists")
                user = User(
                    id=self.storage.next_id(self.table_name),
                    created_at=now,
                    updated_at=now,
                    username=username,
                    role=role,
                    password_hash=self._hash_password(raw_password, salt),
                    password_salt=salt,
                    must_change_password=must_change_password
                )
                self.storage.insert(self.table_name, user.id, user.to_dict())
        except DuplicateKeyError:
            raise DuplicateUserError(f"User {username} already exists")

        log_action(
            self.logger, "info", f"User registered: {username}",
            user_id=username, action="register", resource=f"user:{user.id}",
            extra={"role": role.value}
        )
        return user

    def login(self, username: str, raw_password: str) -> User:
        """
        Verify credentials and record the login time

        The password is checked outside the unit of work; the write re-loads
        the user and only succeeds if the credential is still the one that
        was verified, so a concurrent rotation is never overwritten.

        Raises:
            AuthenticationError: Same message for unknown user and bad password
        """
        verified = self._check_credentials(username, raw_password)

        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            user = self._reload_verified(verified)
            user.last_login = now
            user.updated_at = now
            self.storage.save(self.table_name, user.id, user.to_dict())

        if user.must_change_password:
            log_action(
                self.logger, "warning",
                f"User {username} is still using a default credential and must rotate it",
                user_id=username, action="login"
            )
        return user

    def change_password(self, username: str, old_password: str, new_password: str) -> User:
        """
        Rotate a password; clears the must-change flag

        The old password is verified and the new hash stored in one unit of
        work keyed on the verified hash, so two racing rotations cannot both win.
        """
        verified = self._check_credentials(username, old_password)
        self._validate_password(new_password)
        if self._verify_password(verified, new_password):
            raise ValidationError("New password must differ from the current one")

        salt = self._generate_salt()
        password_hash = self._hash_password(new_password, salt)
        with self.storage.atomic():
            user = self._reload_verified(verified)
            user.password_salt = salt
            user.password_hash = password_hash
            user.must_change_password = False
            user.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table_name, user.id, user.to_dict())

        log_action(self.logger, "info", f"Password changed for {username}",
                   user_id=username, action="change_password")
        return user

    def ensure_bootstrap_admin(self, username: str, password: str) -> Optional[User]:
        """
        Provision the well-known first-run administrator if the registry is
        empty. The account is flagged so the credential must be rotated.

        Returns:
            The created admin, or None if any user already existed
        """
        with self.storage.atomic():
            if self.has_any_user():
                return None
            user = self.register(username, password, Role.ADMIN, must_change_password=True)

        log_action(
            self.logger, "warning",
            f"Provisioned default administrator '{username}' with a well-known password; rotate it now",
            user_id="system", action="bootstrap_admin"
        )
        return user

    def get_user(self, username: str) -> Optional[User]:
        found = self.storage.find(self.table_name, {"username": username})
        return User.from_dict(found[0]) if found else None

    def require_user(self, username: str) -> User:
        user = self.get_user(username)
        if user is None:
            raise NotFoundError(f"User {username} not found")
        return user

    def list_users(self) -> List[User]:
        users = [User.from_dict(d) for d in self.storage.load_all(self.table_name)]
        return sorted(users, key=lambda u: u.username)

    # Private helper methods

    def _check_credentials(self, username: str, raw_password: str) -> User:
        user = self.get_user(username)
        if user is None:
            self._hash_password(raw_password or "", self._dummy_salt)
            self._log_failure(username)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not self._verify_password(user, raw_password or ""):
            self._log_failure(username)
            raise AuthenticationError(INVALID_CREDENTIALS)
        return user

    def _reload_verified(self, verified: User) -> User:
        """Current row of a verified user; must run inside a unit of work"""
        data = self.storage.load(self.table_name, verified.id)
        if data is None or data["password_hash"] != verified.password_hash:
            self._log_failure(verified.username)
            raise AuthenticationError(INVALID_CREDENTIALS)
        return User.from_dict(data)

    def _validate_password(self, raw_password: str) -> None:
        if not raw_password or len(raw_password) < self.password_min_length:
            raise ValidationError(f"Password must be at least {self.password_min_length} characters")

    def _log_failure(self, username: str) -> None:
        log_action(self.logger, "warning", "Login failed",
                   user_id=username, action="login_failed")

    def _generate_salt(self) -> str:
        return secrets.token_hex(16)

    def _hash_password(self, password: str, salt: str) -> str:
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _verify_password(self, user: User, password: str) -> bool:
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)

"""
Test suite for operator authentication, sessions and role gating
"""

import logging
import threading

import pytest

from shxdw_bank.auth import INVALID_CREDENTIALS, AuthStore, Role
from shxdw_bank.errors import (
    AuthenticationError, AuthorizationError, DuplicateUserError, ErrorKind, NotFoundError,
    ValidationError
)
from shxdw_bank.session import Permission, Session, SessionManager, require_permission
from shxdw_bank.storage import InMemoryStorage


@pytest.fixture
def storage():
    """Create in-memory storage for tests"""
    return InMemoryStorage()


@pytest.fixture
def auth_store(storage):
    return AuthStore(storage, password_min_length=4)


@pytest.fixture
def sessions(auth_store):
    return SessionManager(auth_store)


class TestRegister:

    def test_register_and_lookup(self, auth_store):
        assert not auth_store.has_any_user()

        user = auth_store.register("alice", "s3cret!", Role.OPERATOR)

        assert auth_store.has_any_user()
        assert user.id == 1
        assert auth_store.get_user("alice").role == Role.OPERATOR
        assert not user.must_change_password

    def test_raw_password_is_not_stored(self, auth_store, storage):
        auth_store.register("alice", "s3cret!", Role.OPERATOR)
        stored = storage.find("users", {"username": "alice"})[0]

        assert "s3cret!" not in str(stored)
        assert stored["password_hash"] and stored["password_salt"]

    def test_same_password_different_hashes(self, auth_store):
        first = auth_store.register("alice", "samepass", Role.OPERATOR)
        second = auth_store.register("bob", "samepass", Role.OPERATOR)
        assert first.password_hash != second.password_hash

    def test_duplicate_username(self, auth_store):
        auth_store.register("alice", "s3cret!", Role.OPERATOR)
        with pytest.raises(DuplicateUserError) as exc_info:
            auth_store.register("alice", "another", Role.ADMIN)
        assert exc_info.value.kind == ErrorKind.VALIDATION
        assert len(auth_store.list_users()) == 1

    def test_blank_username_and_short_password(self, auth_store):
        with pytest.raises(ValidationError):
            auth_store.register("  ", "s3cret!", Role.OPERATOR)
        with pytest.raises(ValidationError):
            auth_store.register("alice", "abc", Role.OPERATOR)
        assert not auth_store.has_any_user()

    def test_password_never_logged(self, auth_store, caplog):
        caplog.set_level(logging.DEBUG, logger="shxdw")
        auth_store.register("alice", "hunter2hunter2", Role.OPERATOR)
        auth_store.login("alice", "hunter2hunter2")

        assert "hunter2hunter2" not in caplog.text


class TestLogin:

    def test_login_success_records_last_login(self, auth_store):
        auth_store.register("alice", "s3cret!", Role.OPERATOR)

        user = auth_store.login("alice", "s3cret!")

        assert user.username == "alice"
        assert auth_store.get_user("alice").last_login is not None

    def test_failures_are_indistinguishable(self, auth_store):
        auth_store.register("alice", "s3cret!", Role.OPERATOR)

        with pytest.raises(AuthenticationError) as wrong_password:
            auth_store.login("alice", "nope")
        with pytest.raises(AuthenticationError) as unknown_user:
            auth_store.login("mallory", "s3cret!")

        assert wrong_password.value.message == unknown_user.value.message == INVALID_CREDENTIALS
        assert wrong_password.value.kind == unknown_user.value.kind == ErrorKind.AUTH_FAILURE

    def test_empty_password_fails(self, auth_store):
        auth_store.register("alice", "s3cret!", Role.OPERATOR)
        with pytest.raises(AuthenticationError):
            auth_store.login("alice", "")


class TestPasswordRotation:

    def test_change_password(self, auth_store):
        auth_store.register("alice", "old-pass", Role.OPERATOR, must_change_password=True)

        user = auth_store.change_password("alice", "old-pass", "new-pass")

        assert not user.must_change_password
        auth_store.login("alice", "new-pass")
        with pytest.raises(AuthenticationError):
            auth_store.login("alice", "old-pass")

    def test_change_requires_current_password(self, auth_store):
        auth_store.register("alice", "old-pass", Role.OPERATOR)
        with pytest.raises(AuthenticationError):
            auth_store.change_password("alice", "wrong", "new-pass")

    def test_new_password_must_differ(self, auth_store):
        auth_store.register("alice", "old-pass", Role.OPERATOR)
        with pytest.raises(ValidationError):
            auth_store.change_password("alice", "old-pass", "old-pass")


class PausingAuthStore(AuthStore):
    """Holds the thread named ``slow`` right after it verifies a password"""

    def __init__(self, storage):
        super().__init__(storage, password_min_length=4)
        self.verified = threading.Event()
        self.resume = threading.Event()

    def _verify_password(self, user, password):
        result = super()._verify_password(user, password)
        if threading.current_thread().name == "slow":
            self.verified.set()
            self.resume.wait(5)
        return result


class TestConcurrentCredentialWrites:

    def setup_method(self):
        self.store = PausingAuthStore(InMemoryStorage())
        self.store.register("bob", "old-pass", Role.OPERATOR, must_change_password=True)
        self.errors = []

    def run_slow(self, target):
        def body():
            try:
                target()
            except AuthenticationError as e:
                self.errors.append(e)
        thread = threading.Thread(target=body, name="slow")
        thread.start()
        assert self.store.verified.wait(5)
        return thread

    def finish(self, thread):
        self.store.resume.set()
        thread.join(timeout=5)
        assert not thread.is_alive()

    def test_login_overlapping_rotation_does_not_restore_old_password(self):
        thread = self.run_slow(lambda: self.store.login("bob", "old-pass"))
        self.store.change_password("bob", "old-pass", "new-pass")
        self.finish(thread)

        assert len(self.errors) == 1
        assert self.store.login("bob", "new-pass").must_change_password is False
        with pytest.raises(AuthenticationError):
            self.store.login("bob", "old-pass")

    def test_racing_rotations_only_one_wins(self):
        thread = self.run_slow(lambda: self.store.change_password("bob", "old-pass", "slow-pass"))
        self.store.change_password("bob", "old-pass", "fast-pass")
        self.finish(thread)

        assert len(self.errors) == 1
        self.store.login("bob", "fast-pass")
        with pytest.raises(AuthenticationError):
            self.store.login("bob", "slow-pass")

    def test_login_only_touches_last_login(self):
        before = self.store.get_user("bob")
        self.store.login("bob", "old-pass")

        after = self.store.get_user("bob")
        assert after.password_hash == before.password_hash
        assert after.must_change_password is True
        assert after.last_login is not None


class TestBootstrapAdmin:

    def test_created_when_registry_empty(self, auth_store):
        admin = auth_store.ensure_bootstrap_admin("admin", "admin")

        assert admin is not None
        assert admin.role == Role.ADMIN
        assert admin.must_change_password
        assert auth_store.login("admin", "admin").is_admin

    def test_not_created_twice(self, auth_store):
        auth_store.ensure_bootstrap_admin("admin", "admin")
        assert auth_store.ensure_bootstrap_admin("admin", "admin") is None
        assert len(auth_store.list_users()) == 1

    def test_not_created_when_users_exist(self, auth_store):
        auth_store.register("alice", "s3cret!", Role.OPERATOR)
        assert auth_store.ensure_bootstrap_admin("admin", "admin") is None
        assert auth_store.get_user("admin") is None

    def test_unknown_user_lookup(self, auth_store):
        with pytest.raises(NotFoundError):
            auth_store.require_user("ghost")


class TestSessions:

    def test_login_returns_session(self, auth_store, sessions):
        auth_store.register("alice", "s3cret!", Role.OPERATOR)

        session = sessions.login("alice", "s3cret!")

        assert session.username == "alice"
        assert session.role == Role.OPERATOR
        assert session.user_id == 1

    def test_resume_rereads_user(self, auth_store, sessions):
        auth_store.register("alice", "s3cret!", Role.ADMIN)
        assert sessions.resume("alice").role == Role.ADMIN
        with pytest.raises(AuthenticationError):
            sessions.resume("ghost")

    def test_session_is_immutable(self):
        session = Session(user_id=1, username="alice", role=Role.OPERATOR)
        with pytest.raises(AttributeError):
            session.role = Role.ADMIN


class TestPermissions:

    def test_operator_permissions(self):
        operator = Session(user_id=1, username="op", role=Role.OPERATOR)

        require_permission(operator, Permission.OPERATE_LEDGER)
        for permission in (Permission.DELETE_ACCOUNT, Permission.MANAGE_USERS,
                           Permission.VIEW_AUDIT_LOG):
            with pytest.raises(AuthorizationError) as exc_info:
                require_permission(operator, permission)
            assert exc_info.value.kind == ErrorKind.AUTHORIZATION

    def test_admin_has_everything(self):
        admin = Session(user_id=1, username="root", role=Role.ADMIN)
        for permission in Permission:
            require_permission(admin, permission)

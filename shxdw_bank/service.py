"""
Banking Service

The single entry point for operators. Every call takes the caller's Session,
checks the role, runs the ledger or auth operation and writes one audit entry
for it on success. Rejected requests are not audited, except authorization
denials, which are recorded as ``access_denied``.

Audit writes happen after the ledger unit of work has committed, never inside
it, so the audit journal cannot hold the storage lock that a ledger operation
is waiting on.
"""

from typing import Any, Dict, List, Optional, Tuple

from .accounts import Account, AccountStore, AccountView, Client
from .audit import AuditAction, AuditEntry, AuditLog
from .auth import AuthStore, Role, User
from .config import ShxdwConfig, get_config
from .dashboard import DashboardSnapshot, LiveDashboard, build_snapshot
from .errors import AuthorizationError
from .ledger import BalanceCheck, LedgerEngine
from .logging_config import get_logger, log_action
from .money import AmountLike, format_amount, positive_amount
from .numbering import AccountNumberGenerator
from .session import Permission, Session, SessionManager, require_permission
from .storage import StorageInterface, create_storage
from .transactions import Transaction

SYSTEM_ACTOR = "system"


class BankService:
    """
    Session-checked, audited facade over the ledger engine and auth store
    """

    def __init__(self, engine: LedgerEngine, auth_store: AuthStore,
                 sessions: SessionManager, audit: AuditLog):
        self.engine = engine
        self.auth_store = auth_store
        self.sessions = sessions
        self.audit = audit
        self.logger = get_logger("shxdw.service")

    # Authentication

    def login(self, username: str, password: str) -> Session:
        session = self.sessions.login(username, password)
        self.audit.log(session.username, AuditAction.LOGIN, f"role={session.role.value}")
        return session

    def change_password(self, session: Session, old_password: str, new_password: str) -> User:
        """Rotate the caller's own password"""
        user = self.auth_store.change_password(session.username, old_password, new_password)
        self.audit.log(session.username, AuditAction.PASSWORD_CHANGED, f"user:{user.id}")
        return user

    def register_user(self, session: Session, username: str, password: str,
                      role: Role = Role.OPERATOR) -> User:
        self._authorize(session, Permission.MANAGE_USERS, f"register {username}")
        user = self.auth_store.register(username, password, role)
        self.audit.log(session.username, AuditAction.USER_REGISTERED,
                       f"{user.username} as {role.value}")
        return user

    def list_users(self, session: Session) -> List[User]:
        self._authorize(session, Permission.MANAGE_USERS, "list users")
        return self.auth_store.list_users()

    def bootstrap(self, username: str, password: str) -> Optional[User]:
        """Provision the first-run administrator when no user exists yet"""
        user = self.auth_store.ensure_bootstrap_admin(username, password)
        if user is not None:
            self.audit.log(SYSTEM_ACTOR, AuditAction.BOOTSTRAP_ADMIN_CREATED,
                           f"{user.username} (password must be changed)")
        return user

    # Clients

    def create_client(self, session: Session, name: str) -> Client:
        self._authorize(session, Permission.OPERATE_LEDGER, "create client")
        client = self.engine.create_client(name, session)
        self.audit.log(session.username, AuditAction.CLIENT_CREATED,
                       f"client {client.id}: {client.name}")
        return client

    def list_clients(self, session: Session) -> List[Client]:
        self._authorize(session, Permission.OPERATE_LEDGER, "list clients")
        return self.engine.list_clients()

    def get_client(self, session: Session, client_id: int) -> Client:
        self._authorize(session, Permission.OPERATE_LEDGER, f"client {client_id}")
        return self.engine.get_client(client_id)

    def list_client_accounts(self, session: Session, client_id: int) -> List[Account]:
        self._authorize(session, Permission.OPERATE_LEDGER, f"client {client_id} accounts")
        return self.engine.list_client_accounts(client_id)

    # Accounts

    def create_account(self, session: Session, client_id: int, currency: str) -> Account:
        self._authorize(session, Permission.OPERATE_LEDGER, "create account")
        account = self.engine.create_account(client_id, currency, session)
        self.audit.log(session.username, AuditAction.ACCOUNT_CREATED,
                       f"{account.number} ({account.currency}) for client {client_id}")
        return account

    def delete_account(self, session: Session, number: str) -> Account:
        self._authorize(session, Permission.DELETE_ACCOUNT, f"delete {number}")
        account = self.engine.delete_account(number, session)
        self.audit.log(session.username, AuditAction.ACCOUNT_DELETED, account.number)
        return account

    def get_account(self, session: Session, number: str) -> Account:
        self._authorize(session, Permission.OPERATE_LEDGER, f"account {number}")
        return self.engine.get_account(number)

    def list_accounts(self, session: Session) -> List[AccountView]:
        self._authorize(session, Permission.OPERATE_LEDGER, "list accounts")
        return self.engine.list_account_views()

    def verify_account(self, session: Session, number: str) -> BalanceCheck:
        self._authorize(session, Permission.OPERATE_LEDGER, f"verify {number}")
        return self.engine.verify_account(number)

    # Money movements

    def deposit(self, session: Session, number: str, amount: AmountLike,
                note: Optional[str] = None) -> Account:
        self._authorize(session, Permission.OPERATE_LEDGER, f"deposit {number}")
        account = self.engine.deposit(number, amount, session, note=note)
        self.audit.log(session.username, AuditAction.DEPOSIT,
                       f"{format_amount(positive_amount(amount), account.currency)} to {account.number}")
        return account

    def withdraw(self, session: Session, number: str, amount: AmountLike,
                 note: Optional[str] = None) -> Account:
        self._authorize(session, Permission.OPERATE_LEDGER, f"withdraw {number}")
        account = self.engine.withdraw(number, amount, session, note=note)
        self.audit.log(session.username, AuditAction.WITHDRAW,
                       f"{format_amount(positive_amount(amount), account.currency)} from {account.number}")
        return account

    def transfer(self, session: Session, from_number: str, to_number: str,
                 amount: AmountLike) -> Tuple[Account, Account]:
        self._authorize(session, Permission.OPERATE_LEDGER, f"transfer {from_number}")
        source, destination = self.engine.transfer(from_number, to_number, amount, session)
        self.audit.log(
            session.username, AuditAction.TRANSFER,
            f"{format_amount(positive_amount(amount), source.currency)} {source.number} -> {destination.number}"
        )
        return source, destination

    def get_history(self, session: Session, number: str) -> List[Transaction]:
        self._authorize(session, Permission.OPERATE_LEDGER, f"history {number}")
        return self.engine.get_history(number)

    # Oversight

    def recent_audit(self, session: Session, n: int = 20) -> List[AuditEntry]:
        self._authorize(session, Permission.VIEW_AUDIT_LOG, "audit log")
        return self.audit.get_recent(n)

    def verify_audit(self, session: Session) -> Dict[str, Any]:
        self._authorize(session, Permission.VIEW_AUDIT_LOG, "audit verification")
        return self.audit.verify_integrity()

    def top_accounts(self, session: Session, top_n: int) -> DashboardSnapshot:
        self._authorize(session, Permission.OPERATE_LEDGER, "dashboard")
        return build_snapshot(self.engine, top_n)

    # Private helper methods

    def _authorize(self, session: Session, permission: Permission, target: str) -> None:
        try:
            require_permission(session, permission)
        except AuthorizationError as e:
            self.logger.warning(f"Access denied for {session.username}: {e.message}")
            self.audit.log(session.username, AuditAction.ACCESS_DENIED,
                           f"{permission.value}: {target}")
            raise


class BankingSystem:
    """Ledger core with all components wired from configuration"""

    def __init__(self, config: Optional[ShxdwConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        self.logger = get_logger("shxdw.system")
        if self.config.uses_default_jwt_secret:
            log_action(
                self.logger, "warning",
                "JWT secret is the built-in default; set SHXDW_JWT_SECRET before exposing the API",
                user_id="system", action="config_check"
            )

        self.storage = storage or create_storage(self.config.database_path)
        self.audit = AuditLog(self.storage, enabled=self.config.enable_audit_logging)
        self.auth_store = AuthStore(self.storage, password_min_length=self.config.password_min_length)
        self.engine = LedgerEngine(
            AccountStore(self.storage),
            AccountNumberGenerator(prefix=self.config.account_number_prefix),
            max_number_attempts=self.config.account_number_max_attempts
        )
        self.sessions = SessionManager(self.auth_store)
        self.service = BankService(self.engine, self.auth_store, self.sessions, self.audit)
        self.dashboard = LiveDashboard(
            self.engine,
            top_n=self.config.dashboard_top_n,
            interval=self.config.dashboard_refresh_seconds
        )

        self.bootstrap_admin = self.service.bootstrap(
            self.config.bootstrap_admin_username,
            self.config.bootstrap_admin_password
        )

    def close(self) -> None:
        self.storage.close()

"""
Ledger Engine

Runs every balance-changing operation as one unit of work over the account
store: the balance update(s) and the transaction line(s) that explain them
commit together or not at all.

Concurrency: each operation first takes the exclusive lock stripes of its
accounts, always in ascending stripe order, then opens the storage unit of
work and re-reads the balances. Two transfers over the same pair in opposite
directions therefore queue instead of deadlocking, and two debits of one
account cannot both act on a stale balance.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from .accounts import Account, AccountStore, AccountView, Client
from .errors import (
    AccountNumberExhaustedError, BankError, CurrencyMismatchError,
    InsufficientFundsError, NonZeroBalanceError, NotFoundError, ValidationError
)
from .logging_config import get_logger, log_action
from .money import AmountLike, ZERO, exact_add, exact_sub, normalize_currency, positive_amount
from .numbering import AccountNumberGenerator
from .session import Session
from .storage import DuplicateKeyError
from .transactions import Transaction, TransactionKind


class AccountLocks:
    """
    Exclusive locks for account numbers, striped over a fixed pool

    A number always maps to the same stripe. Distinct numbers may share one,
    which only serialises them; the pool never grows with the numbers seen.
    """

    def __init__(self, stripes: int = 256):
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    @property
    def stripes(self) -> int:
        return len(self._locks)

    def _index(self, number: str) -> int:
        return hash(number) % len(self._locks)

    @contextmanager
    def hold(self, *numbers: str) -> Iterator[None]:
        """Acquire the stripes of all ``numbers`` in index order"""
        acquired = []
        try:
            for index in sorted({self._index(number) for number in numbers}):
                lock = self._locks[index]
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


@dataclass
class BalanceCheck:
    """Stored balance compared with the sum of the account's history"""
    account_number: str
    stored_balance: Decimal
    computed_balance: Decimal
    transaction_count: int

    @property
    def matches(self) -> bool:
        return self.stored_balance == self.computed_balance


class LedgerEngine:
    """
    Client/account lifecycle and money movements
    """

    def __init__(
        self,
        store: AccountStore,
        number_generator: Optional[AccountNumberGenerator] = None,
        max_number_attempts: int = 10
    ):
        if max_number_attempts < 1:
            raise ValueError("max_number_attempts must be at least 1")
        self.store = store
        self.storage = store.storage
        self.number_generator = number_generator or AccountNumberGenerator()
        self.max_number_attempts = max_number_attempts
        self.logger = get_logger("shxdw.ledger")
        self._locks = AccountLocks()

    # Clients

    def create_client(self, name: str, actor: Session) -> Client:
        """Create a client; names are trimmed and must not be blank"""
        with self._operation(actor, "create_client", "client"):
            name = (name or "").strip()
            if not name:
                raise ValidationError("Client name is required")
            now = datetime.now(timezone.utc)
            with self.storage.atomic():
                client = Client(id=self.store.new_id("clients"), created_at=now,
                                updated_at=now, name=name)
                self.store.insert_client(client)

        self._committed(actor, "create_client", f"client:{client.id}", {"name": name})
        return client

    def get_client(self, client_id: int) -> Client:
        client = self.store.get_client(client_id)
        if client is None:
            raise NotFoundError(f"Client {client_id} not found")
        return client

    def list_clients(self) -> List[Client]:
        return self.store.list_clients()

    # Accounts

    def create_account(self, client_id: int, currency: str, actor: Session) -> Account:
        """
        Open a zero-balance account for an existing client

        Raises:
            NotFoundError: Unknown client
            AccountNumberExhaustedError: No free number within the retry bound
        """
        with self._operation(actor, "create_account", f"client:{client_id}"):
            currency = normalize_currency(currency)
            with self.storage.atomic():
                self.get_client(client_id)
                account = self._insert_with_fresh_number(client_id, currency)

        self._committed(actor, "create_account", f"account:{account.number}",
                        {"client_id": client_id, "currency": currency})
        return account

    def _insert_with_fresh_number(self, client_id: int, currency: str) -> Account:
        for _ in range(self.max_number_attempts):
            number = self.number_generator.generate()
            if self.store.number_exists(number):
                continue
            now = datetime.now(timezone.utc)
            account = Account(
                id=self.store.new_id("accounts"),
                created_at=now,
                updated_at=now,
                number=number,
                currency=currency,
                balance=ZERO,
                client_id=client_id
            )
            try:
                self.store.insert_account(account)
            except DuplicateKeyError:
                continue
            return account

        raise AccountNumberExhaustedError(
            f"No unused account number found after {self.max_number_attempts} attempts"
        )

    def get_account(self, number: str) -> Account:
        account = self.store.get_account(number)
        if account is None:
            raise NotFoundError(f"Account {number} not found")
        return account

    def list_accounts(self) -> List[Account]:
        return self.store.list_accounts()

    def list_account_views(self) -> List[AccountView]:
        return self.store.list_account_views()

    def list_client_accounts(self, client_id: int) -> List[Account]:
        self.get_client(client_id)
        return self.store.list_client_accounts(client_id)

    def delete_account(self, number: str, actor: Session) -> Account:
        """
        Remove a zero-balance account. Its transaction history is kept.

        Raises:
            NotFoundError: Unknown account
            NonZeroBalanceError: Balance is not exactly zero
        """
        with self._operation(actor, "delete_account", f"account:{number}"):
            with self._locks.hold(number), self.storage.atomic():
                account = self.get_account(number)
                if not account.is_empty:
                    raise NonZeroBalanceError(
                        f"Account {number} has balance {account.balance}; it must be zero to delete"
                    )
                self.store.delete_account(account)

        self._committed(actor, "delete_account", f"account:{number}", {})
        return account

    # Money movements

    def deposit(self, number: str, amount: AmountLike, actor: Session,
                note: Optional[str] = None) -> Account:
        """
        Credit an account

        Raises:
            NotFoundError: Unknown account
            InvalidAmountError: Amount is not strictly positive or not exact in cents
        """
        with self._operation(actor, "deposit", f"account:{number}"):
            with self._locks.hold(number), self.storage.atomic():
                account = self.get_account(number)
                value = positive_amount(amount)
                now = datetime.now(timezone.utc)
                account.balance = exact_add(account.balance, value)
                self.store.update_account(account)
                self._record(account.number, TransactionKind.DEPOSIT, value,
                             note or "Cash deposit", now)

        self._committed(actor, "deposit", f"account:{number}",
                        {"amount": str(value), "balance": str(account.balance)})
        return account

    def withdraw(self, number: str, amount: AmountLike, actor: Session,
                 note: Optional[str] = None) -> Account:
        """
        Debit an account

        Raises:
            NotFoundError: Unknown account
            InvalidAmountError: Amount is not strictly positive
            InsufficientFundsError: Balance is below the amount
        """
        with self._operation(actor, "withdraw", f"account:{number}"):
            with self._locks.hold(number), self.storage.atomic():
                account = self.get_account(number)
                value = positive_amount(amount)
                if account.balance < value:
                    raise InsufficientFundsError(
                        f"Account {number} balance {account.balance} is below {value}"
                    )
                now = datetime.now(timezone.utc)
                account.balance = exact_sub(account.balance, value)
                self.store.update_account(account)
                self._record(account.number, TransactionKind.WITHDRAW, -value,
                             note or "Cash withdrawal", now)

        self._committed(actor, "withdraw", f"account:{number}",
                        {"amount": str(value), "balance": str(account.balance)})
        return account

    def transfer(self, from_number: str, to_number: str, amount: AmountLike,
                 actor: Session) -> Tuple[Account, Account]:
        """
        Move money between two accounts of the same currency, recorded as a
        linked TRANSFER_OUT / TRANSFER_IN pair

        Raises:
            NotFoundError: Either account is unknown
            InvalidAmountError: Amount is not strictly positive
            ValidationError: Source and destination are the same account
            CurrencyMismatchError: Accounts hold different currencies
            InsufficientFundsError: Source balance is below the amount
        """
        resource = f"account:{from_number}->{to_number}"
        with self._operation(actor, "transfer", resource):
            with self._locks.hold(from_number, to_number), self.storage.atomic():
                source = self.get_account(from_number)
                destination = self.get_account(to_number)
                value = positive_amount(amount)
                if source.id == destination.id:
                    raise ValidationError("Source and destination must be different accounts")
                if source.currency != destination.currency:
                    raise CurrencyMismatchError(
                        f"Cannot transfer {source.currency} to {destination.currency} account"
                    )
                if source.balance < value:
                    raise InsufficientFundsError(
                        f"Account {from_number} balance {source.balance} is below {value}"
                    )

                source_balance = exact_sub(source.balance, value)
                destination_balance = exact_add(destination.balance, value)
                now = datetime.now(timezone.utc)
                source.balance = source_balance
                destination.balance = destination_balance
                self.store.update_account(source)
                self.store.update_account(destination)
                self._record(source.number, TransactionKind.TRANSFER_OUT, -value,
                             f"To {destination.number}", now)
                self._record(destination.number, TransactionKind.TRANSFER_IN, value,
                             f"From {source.number}", now)

        self._committed(actor, "transfer", resource,
                        {"amount": str(value), "currency": source.currency})
        return source, destination

    # History

    def get_history(self, number: str) -> List[Transaction]:
        """
        Transaction lines for an account number, oldest first. Works for
        deleted accounts too; an unknown number simply has no lines.
        """
        return self.store.get_transactions(number)

    def verify_account(self, number: str) -> BalanceCheck:
        """Recompute a balance from history and compare with the stored one"""
        with self._locks.hold(number), self.storage.atomic():
            account = self.get_account(number)
            history = self.store.get_transactions(number)
        computed = sum((t.amount for t in history), ZERO)
        return BalanceCheck(
            account_number=number,
            stored_balance=account.balance,
            computed_balance=computed,
            transaction_count=len(history)
        )

    # Private helper methods

    def _record(self, number: str, kind: TransactionKind, amount: Decimal,
                note: str, now: datetime) -> Transaction:
        transaction = Transaction(
            id=self.store.new_id("transactions"),
            created_at=now,
            updated_at=now,
            kind=kind,
            amount=amount,
            note=note,
            account_number=number
        )
        self.store.append_transaction(transaction)
        return transaction

    @contextmanager
    def _operation(self, actor: Session, action: str, resource: str) -> Iterator[None]:
        try:
            yield
        except BankError as e:
            log_action(
                self.logger, "warning", f"{action} rejected: {e.message}",
                user_id=actor.username, action=action, resource=resource,
                extra={"error": e.kind.value}
            )
            raise

    def _committed(self, actor: Session, action: str, resource: str, extra: dict) -> None:
        log_action(self.logger, "info", f"{action} committed",
                   user_id=actor.username, action=action, resource=resource, extra=extra or None)

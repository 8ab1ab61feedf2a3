"""
Account Storage Module

Clients, their accounts, and the durable keyed store behind them. An account
refers to its owner by client id only; owners are resolved by lookup.

The store enforces account-number uniqueness itself, independent of how
numbers are generated, and is also where transaction lines are appended and
read back.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .storage import StorageInterface, StorageRecord
from .transactions import Transaction


@dataclass
class Client(StorageRecord):
    """Account holder"""
    name: str


@dataclass
class Account(StorageRecord):
    """
    Client account. ``balance`` always equals the signed sum of the
    account's transaction lines.
    """
    number: str
    currency: str
    balance: Decimal
    client_id: int

    def __post_init__(self):
        if not isinstance(self.balance, Decimal):
            self.balance = Decimal(str(self.balance))

    @property
    def is_empty(self) -> bool:
        return self.balance == Decimal('0')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = cls._parse_timestamps(data)
        data['balance'] = Decimal(data['balance'])
        return cls(**data)


@dataclass
class AccountView:
    """Account joined with its owner's name, for listings and dashboards"""
    account: Account
    client_name: Optional[str]


class AccountStore:
    """
    Keyed storage for clients, accounts and transaction lines
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.clients_table = "clients"
        self.accounts_table = "accounts"
        self.transactions_table = "transactions"
        self.storage.add_unique_constraint(self.accounts_table, "number")

    def new_id(self, table: str) -> int:
        return self.storage.next_id(table)

    # Clients

    def insert_client(self, client: Client) -> None:
        self.storage.insert(self.clients_table, client.id, client.to_dict())

    def get_client(self, client_id: int) -> Optional[Client]:
        data = self.storage.load(self.clients_table, client_id)
        return Client.from_dict(data) if data else None

    def list_clients(self) -> List[Client]:
        clients = [Client.from_dict(d) for d in self.storage.load_all(self.clients_table)]
        return sorted(clients, key=lambda c: c.id)

    # Accounts

    def insert_account(self, account: Account) -> None:
        """Insert a new account; DuplicateKeyError if the number is taken"""
        self.storage.insert(self.accounts_table, account.id, account.to_dict())

    def update_account(self, account: Account) -> None:
        account.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.accounts_table, account.id, account.to_dict())

    def delete_account(self, account: Account) -> bool:
        return self.storage.delete(self.accounts_table, account.id)

    def get_account(self, number: str) -> Optional[Account]:
        """Point lookup by account number"""
        found = self.storage.find(self.accounts_table, {"number": number})
        return Account.from_dict(found[0]) if found else None

    def number_exists(self, number: str) -> bool:
        return bool(self.storage.find(self.accounts_table, {"number": number}))

    def list_accounts(self) -> List[Account]:
        accounts = [Account.from_dict(d) for d in self.storage.load_all(self.accounts_table)]
        return sorted(accounts, key=lambda a: a.id)

    def list_client_accounts(self, client_id: int) -> List[Account]:
        found = self.storage.find(self.accounts_table, {"client_id": client_id})
        return sorted((Account.from_dict(d) for d in found), key=lambda a: a.id)

    def list_account_views(self) -> List[AccountView]:
        """All accounts joined with their owning client's name"""
        names = {client.id: client.name for client in self.list_clients()}
        return [AccountView(account=a, client_name=names.get(a.client_id))
                for a in self.list_accounts()]

    # Transactions

    def append_transaction(self, transaction: Transaction) -> None:
        self.storage.insert(self.transactions_table, transaction.id, transaction.to_dict())

    def get_transactions(self, account_number: str) -> List[Transaction]:
        """Lines recorded against an account number, oldest first"""
        found = self.storage.find(self.transactions_table, {"account_number": account_number})
        transactions = [Transaction.from_dict(d) for d in found]
        transactions.sort(key=lambda t: (t.created_at, t.id))
        return transactions

"""
Pydantic schemas for API requests and responses
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..accounts import Account, AccountView, Client
from ..audit import AuditEntry
from ..auth import Role, User
from ..ledger import BalanceCheck
from ..transactions import Transaction


# Auth schemas
class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    role: str
    must_change_password: bool = False


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str


class RegisterUserRequest(BaseModel):
    username: str
    password: str
    role: Role = Role.OPERATOR


class UserModel(BaseModel):
    id: int
    username: str
    role: str
    must_change_password: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> 'UserModel':
        return cls(
            id=user.id,
            username=user.username,
            role=user.role.value,
            must_change_password=user.must_change_password,
            created_at=user.created_at,
            last_login=user.last_login
        )


# Client schemas
class CreateClientRequest(BaseModel):
    name: str


class ClientModel(BaseModel):
    id: int
    name: str
    created_at: datetime

    @classmethod
    def from_client(cls, client: Client) -> 'ClientModel':
        return cls(id=client.id, name=client.name, created_at=client.created_at)


# Account schemas
class CreateAccountRequest(BaseModel):
    client_id: int
    currency: str = Field(..., description="Currency code, e.g. USD")


class AccountModel(BaseModel):
    number: str
    currency: str
    balance: str = Field(..., description="Decimal amount as string")
    client_id: int
    client_name: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account, client_name: Optional[str] = None) -> 'AccountModel':
        return cls(
            number=account.number,
            currency=account.currency,
            balance=str(account.balance),
            client_id=account.client_id,
            client_name=client_name,
            created_at=account.created_at
        )

    @classmethod
    def from_view(cls, view: AccountView) -> 'AccountModel':
        return cls.from_account(view.account, view.client_name)


class BalanceCheckModel(BaseModel):
    account_number: str
    stored_balance: str
    computed_balance: str
    transaction_count: int
    matches: bool

    @classmethod
    def from_check(cls, check: BalanceCheck) -> 'BalanceCheckModel':
        return cls(
            account_number=check.account_number,
            stored_balance=str(check.stored_balance),
            computed_balance=str(check.computed_balance),
            transaction_count=check.transaction_count,
            matches=check.matches
        )


# Money movement schemas
class AmountRequest(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    note: Optional[str] = None


class TransferRequest(BaseModel):
    from_account: str
    to_account: str
    amount: str = Field(..., description="Decimal amount as string")


class TransactionModel(BaseModel):
    id: int
    timestamp: datetime
    kind: str
    amount: str
    note: str
    account_number: str

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionModel':
        return cls(
            id=transaction.id,
            timestamp=transaction.timestamp,
            kind=transaction.kind.value,
            amount=str(transaction.amount),
            note=transaction.note,
            account_number=transaction.account_number
        )


class TransferResponse(BaseModel):
    source: AccountModel
    destination: AccountModel
    amount: str


# Audit schemas
class AuditEntryModel(BaseModel):
    id: int
    timestamp: datetime
    actor: str
    action: str
    details: str

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> 'AuditEntryModel':
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            actor=entry.actor,
            action=entry.action,
            details=entry.details
        )


class AuditListResponse(BaseModel):
    entries: List[AuditEntryModel]

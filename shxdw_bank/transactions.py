"""
Transaction Records

Immutable history lines written by the ledger engine. Each line belongs to
one account (by number) and carries a signed amount, so an account's balance
is always the sum of its lines. Lines outlive the account they belong to.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict
from enum import Enum

from .storage import StorageRecord


class TransactionKind(Enum):
    """Closed set of movements the ledger can record"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"

    @property
    def is_credit(self) -> bool:
        """Credits carry a positive amount, debits a negative one"""
        if self is TransactionKind.DEPOSIT or self is TransactionKind.TRANSFER_IN:
            return True
        if self is TransactionKind.WITHDRAW or self is TransactionKind.TRANSFER_OUT:
            return False
        raise AssertionError(f"Unhandled transaction kind {self}")


@dataclass
class Transaction(StorageRecord):
    """
    One signed movement on one account. Written once by insert, never saved again.
    """
    kind: TransactionKind
    amount: Decimal
    note: str
    account_number: str

    def __post_init__(self):
        if self.amount == 0:
            raise ValueError("Transaction amount cannot be zero")
        if self.kind.is_credit != (self.amount > 0):
            raise ValueError(f"Sign of {self.amount} does not match {self.kind.value}")

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = cls._parse_timestamps(data)
        data['kind'] = TransactionKind(data['kind'])
        data['amount'] = Decimal(data['amount'])
        return cls(**data)

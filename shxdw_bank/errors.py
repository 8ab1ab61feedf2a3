"""
Error Taxonomy

Every failure the ledger core reports is one of these typed errors. Each
carries an ErrorKind so callers (CLI, HTTP layer) can branch on the kind
without matching message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Caller-visible failure categories"""
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    ACCOUNT_NUMBER_EXHAUSTED = "account_number_exhausted"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    AUTH_FAILURE = "auth_failure"
    AUTHORIZATION = "authorization"


class BankError(Exception):
    """Base class for all ledger core errors"""
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class NotFoundError(BankError):
    """Unknown client, account or user"""
    kind = ErrorKind.NOT_FOUND


class ValidationError(BankError, ValueError):
    """Request rejected before any mutation"""
    kind = ErrorKind.VALIDATION


class InvalidAmountError(ValidationError):
    pass


class CurrencyMismatchError(ValidationError):
    pass


class NonZeroBalanceError(ValidationError):
    pass


class DuplicateUserError(ValidationError):
    pass


class AccountNumberExhaustedError(BankError):
    """No free account number found within the retry bound"""
    kind = ErrorKind.ACCOUNT_NUMBER_EXHAUSTED


class InsufficientFundsError(BankError):
    kind = ErrorKind.INSUFFICIENT_FUNDS


class AuthenticationError(BankError):
    """Login failed; deliberately does not say why"""
    kind = ErrorKind.AUTH_FAILURE


class AuthorizationError(BankError):
    """Authenticated user lacks the role for the operation"""
    kind = ErrorKind.AUTHORIZATION

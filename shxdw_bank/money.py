"""
Money Helpers

Decimal parsing and display for monetary amounts, and currency code
normalisation. NEVER uses float for monetary values.

Amounts carry at most AMOUNT_PLACES fractional digits and are bounded by
MAX_AMOUNT. Balance arithmetic runs in a context that traps inexact
results, so a sum that cannot be held exactly is rejected instead of
rounded.

Currency codes are free-form: they are normalised (trimmed, upper-cased)
but not checked against an ISO 4217 registry.
"""

from decimal import Decimal, Inexact, InvalidOperation, getcontext, localcontext
from typing import Union
import re

from .errors import InvalidAmountError, ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

AmountLike = Union[Decimal, int, str, float]

ZERO = Decimal('0')

AMOUNT_PLACES = 2
CENT = Decimal(1).scaleb(-AMOUNT_PLACES)
MAX_AMOUNT = Decimal('1000000000000000')

# Plain decimal notation only: no exponents, separators or symbols
_AMOUNT_PATTERN = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)$')


def decimal_from_string(value: str) -> Decimal:
    """
    Strictly convert a string to Decimal

    Accepts optional sign, digits and at most one '.' separator, with
    surrounding whitespace. Anything else (exponents, thousands separators,
    currency symbols, trailing text) is rejected rather than guessed at.

    Raises:
        InvalidAmountError: If string is not a plain decimal number
    """
    if not value or not isinstance(value, str):
        raise InvalidAmountError("Amount must be a non-empty string")

    clean_value = value.strip()
    if not _AMOUNT_PATTERN.match(clean_value):
        raise InvalidAmountError(f"Cannot convert '{value}' to Decimal")

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise InvalidAmountError(f"Cannot convert '{value}' to Decimal")


def to_decimal(value: AmountLike) -> Decimal:
    """Coerce an amount to a finite Decimal"""
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be numeric")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        # Go through str() so 0.1 becomes Decimal('0.1'), not its binary expansion
        result = Decimal(str(value))
    elif isinstance(value, str):
        result = decimal_from_string(value)
    else:
        raise InvalidAmountError(f"Unsupported amount type: {type(value).__name__}")

    if not result.is_finite():
        raise InvalidAmountError("Amount must be finite")
    return result


def positive_amount(value: AmountLike) -> Decimal:
    """
    Coerce an amount and require it to be strictly positive, within
    MAX_AMOUNT and with no more than AMOUNT_PLACES fractional digits

    The result is exact: '1.500' becomes Decimal('1.50'), '0.005' is
    rejected.
    """
    amount = to_decimal(value)
    if amount <= ZERO:
        raise InvalidAmountError(f"Amount must be positive, got {amount}")
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"Amount must not exceed {MAX_AMOUNT}, got {amount}")

    exponent = amount.as_tuple().exponent
    if exponent > 0:
        amount = amount.quantize(Decimal(1))
    elif exponent < -AMOUNT_PLACES:
        scaled = amount.quantize(CENT)
        if scaled != amount:
            raise InvalidAmountError(
                f"Amount must have at most {AMOUNT_PLACES} decimal places, got {amount}"
            )
        amount = scaled
    return amount


def exact_add(a: Decimal, b: Decimal) -> Decimal:
    """Add two amounts, refusing any result the context would round"""
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        try:
            return a + b
        except Inexact:
            raise InvalidAmountError(f"Result of {a} + {b} cannot be represented exactly")


def exact_sub(a: Decimal, b: Decimal) -> Decimal:
    """Subtract two amounts, refusing any result the context would round"""
    with localcontext() as ctx:
        ctx.traps[Inexact] = True
        try:
            return a - b
        except Inexact:
            raise InvalidAmountError(f"Result of {a} - {b} cannot be represented exactly")


def normalize_currency(code: str) -> str:
    """Trim and upper-case a currency code"""
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("Currency code must be a non-empty string")
    return code.strip().upper()


def format_amount(amount: Decimal, currency: str = "") -> str:
    """Format for display, e.g. '1,234.50 USD'"""
    text = f"{amount:,.2f}"
    return f"{text} {currency}" if currency else text

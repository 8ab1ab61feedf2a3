"""
SHXDW Bank Ledger Core

Client accounts, deposits, withdrawals and transfers kept consistent with
their transaction history, plus operator authentication and an audit trail.
All monetary values use Decimal.
"""

__version__ = "1.0.0"

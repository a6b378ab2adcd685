"""
Ledger Exceptions

Every error the core raises derives from LedgerError, so callers can
catch the whole family in one place. Storage failures (NotFoundError,
StorageConflictError) live with the storage interface and share the base.
"""

from decimal import Decimal
from typing import Optional

from pocket_ledger.models.validation import ValidationIssue


class LedgerError(Exception):
    """Base exception for ledger operations."""

    code = "ledger_error"


class ValidationError(LedgerError):
    """
    A draft or update is malformed.

    Raised before any storage access. Carries every issue found, not just
    the first.
    """

    code = "validation_error"

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []


class InsufficientBalanceError(LedgerError):
    """An expense or transfer would overdraw its source account."""

    code = "insufficient_balance"

    def __init__(self, account_id: str, available: Decimal, requested: Decimal):
        self.account_id = account_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient balance in account {account_id}: "
            f"available {available}, requested {requested}"
        )

"""
Data Models Package

This package contains all Pydantic models used in the Pocket Ledger core.
All data flowing through the system must conform to these schemas.
"""

from pocket_ledger.models.account import (
    PROTECTED_ACCOUNT_FIELDS,
    Account,
    AccountDraft,
    AccountType,
    AccountUpdate,
    as_utc,
    utc_now,
)
from pocket_ledger.models.transaction import (
    CATEGORY_LABELS,
    MonthlyTotals,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    TransactionFilters,
    TransactionStats,
    TransactionStatus,
    TransactionType,
    balance_effects,
)
from pocket_ledger.models.validation import ValidationIssue, ValidationResult
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Account models
    "PROTECTED_ACCOUNT_FIELDS",
    "Account",
    "AccountDraft",
    "AccountType",
    "AccountUpdate",
    "as_utc",
    "utc_now",
    # Transaction models
    "CATEGORY_LABELS",
    "MonthlyTotals",
    "Transaction",
    "TransactionCategory",
    "TransactionDraft",
    "TransactionFilters",
    "TransactionStats",
    "TransactionStatus",
    "TransactionType",
    "balance_effects",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

"""
Transaction Models for Pocket Ledger

A transaction moves money into, out of, or between accounts.

DESIGN DECISION: Amounts are always positive. Direction is encoded by the
transaction type, never by the sign of the amount:
- income:   money arrives in account_id
- expense:  money leaves account_id
- transfer: money leaves from_account_id and arrives in to_account_id

balance_effects() is the single place that turns a transaction into
signed per-account deltas. Posting applies them, reversal negates them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pocket_ledger.models.account import as_utc, utc_now


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionCategory(str, Enum):
    """Fixed set of categories; free text is not allowed."""
    SALARY = "salary"
    BUSINESS = "business"
    INVESTMENT = "investment"
    FOOD = "food"
    TRANSPORTATION = "transportation"
    HOUSING = "housing"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    HEALTHCARE = "healthcare"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    EDUCATION = "education"
    SAVINGS = "savings"
    DEBT = "debt"
    OTHER = "other"


CATEGORY_LABELS: dict[TransactionCategory, str] = {
    TransactionCategory.SALARY: "Salary",
    TransactionCategory.BUSINESS: "Business",
    TransactionCategory.INVESTMENT: "Investment",
    TransactionCategory.FOOD: "Food & Dining",
    TransactionCategory.TRANSPORTATION: "Transportation",
    TransactionCategory.HOUSING: "Housing",
    TransactionCategory.UTILITIES: "Utilities",
    TransactionCategory.INSURANCE: "Insurance",
    TransactionCategory.HEALTHCARE: "Healthcare",
    TransactionCategory.ENTERTAINMENT: "Entertainment",
    TransactionCategory.SHOPPING: "Shopping",
    TransactionCategory.EDUCATION: "Education",
    TransactionCategory.SAVINGS: "Savings",
    TransactionCategory.DEBT: "Debt",
    TransactionCategory.OTHER: "Other",
}


class TransactionStatus(str, Enum):
    """
    Transaction status.

    Only COMPLETED is ever written by the poster. The others exist so
    records created elsewhere still parse.
    """
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"
    CANCELLED = "cancelled"


def balance_effects(
    transaction_type: TransactionType,
    amount: Decimal,
    account_id: Optional[str],
    from_account_id: Optional[str],
    to_account_id: Optional[str],
) -> dict[str, Decimal]:
    """
    Signed balance change per account for one posting.

    Returns {account_id: delta}. Callers must have validated the account
    references already.
    """
    if transaction_type == TransactionType.INCOME:
        return {account_id: amount}
    if transaction_type == TransactionType.EXPENSE:
        return {account_id: -amount}
    return {from_account_id: -amount, to_account_id: amount}


class TransactionDraft(BaseModel):
    """
    A proposed transaction, as collected from the user.

    Fields are typed but not constrained: amount sign and account
    references are checked by LedgerValidator so every rule violation
    is reported the same way.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    amount: Decimal
    description: str = Field(default="", max_length=500)
    category: TransactionCategory = TransactionCategory.OTHER
    date: datetime = Field(
        default_factory=utc_now,
        description="When the money moved, as chosen by the user"
    )

    account_id: Optional[str] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None

    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: list[str] = Field(default_factory=list)

    @field_validator('date')
    @classmethod
    def date_to_utc(cls, v: datetime) -> datetime:
        """Stored dates are always aware so they order consistently."""
        return as_utc(v)

    def balance_effects(self) -> dict[str, Decimal]:
        return balance_effects(
            self.type,
            self.amount,
            self.account_id,
            self.from_account_id,
            self.to_account_id,
        )


class Transaction(BaseModel):
    """
    A posted transaction.

    Immutable once stored; the only permitted change is deletion, which
    reverses its effect on the ledger.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity
    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)

    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    description: str = ""
    category: TransactionCategory = TransactionCategory.OTHER
    date: datetime
    status: TransactionStatus = TransactionStatus.COMPLETED

    account_id: Optional[str] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None

    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('date')
    @classmethod
    def date_to_utc(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode='after')
    def validate_account_references(self) -> 'Transaction':
        """Exactly one reference shape, matching the type."""
        if self.type == TransactionType.TRANSFER:
            if not self.from_account_id or not self.to_account_id:
                raise ValueError("Transfer requires from_account_id and to_account_id")
            if self.account_id:
                raise ValueError("Transfer must not set account_id")
            if self.from_account_id == self.to_account_id:
                raise ValueError("Cannot transfer to the same account")
        else:
            if not self.account_id:
                raise ValueError(f"{self.type.value.capitalize()} requires account_id")
            if self.from_account_id or self.to_account_id:
                raise ValueError(
                    f"{self.type.value.capitalize()} must not set transfer accounts"
                )
        return self

    @property
    def account_ids(self) -> list[str]:
        """Every account this transaction touches."""
        if self.type == TransactionType.TRANSFER:
            return [self.from_account_id, self.to_account_id]
        return [self.account_id]

    def balance_effects(self) -> dict[str, Decimal]:
        return balance_effects(
            self.type,
            self.amount,
            self.account_id,
            self.from_account_id,
            self.to_account_id,
        )


# =============================================================================
# QUERY MODELS
# =============================================================================

class TransactionFilters(BaseModel):
    """
    Filters for listing transactions.

    Every filter is optional and all provided filters must match.
    Bounds are inclusive.
    """
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    type: Optional[TransactionType] = None
    category: Optional[TransactionCategory] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Matches account_id, from_account_id or to_account_id"
    )
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search_text: Optional[str] = Field(
        default=None,
        description="Case-insensitive substring of description, notes or tags"
    )


class MonthlyTotals(BaseModel):
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")


class TransactionStats(BaseModel):
    """Aggregates over a set of transactions."""
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    net_income: Decimal = Decimal("0")
    category_totals: dict[TransactionCategory, Decimal] = Field(default_factory=dict)
    monthly_totals: dict[str, MonthlyTotals] = Field(
        default_factory=dict,
        description="Keyed by calendar month of the transaction date, YYYY-MM"
    )

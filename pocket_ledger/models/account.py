"""
Account Models for Pocket Ledger

An account is a pot of money the user tracks: a wallet, a bank account,
a credit card. Its balance is owned by the ledger.

CRITICAL: Balance is written exactly twice in an account's life cycle:
1. Once, as the opening balance, when the account is created
2. By the Transaction Poster, inside an atomic scope, on every posting

No update model below carries a balance field, so a partial update can
never smuggle one in.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AccountType(str, Enum):
    """
    Supported account types.

    NOTE: The type never changes balance arithmetic. A CREDIT_CARD balance
    above zero means money owed, but that is a display convention.
    """
    CASH = "CASH"
    BANK = "BANK"
    CREDIT_CARD = "CREDIT_CARD"
    SAVINGS = "SAVINGS"
    INVESTMENT = "INVESTMENT"


# Fields callers may never set through an account update
PROTECTED_ACCOUNT_FIELDS = frozenset({
    "id",
    "user_id",
    "balance",
    "created_at",
    "updated_at",
})


class AccountDraft(BaseModel):
    """What the user fills in when adding an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Account name"
    )
    type: AccountType = Field(
        ...,
        description="Account type"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Opening balance"
    )
    currency: Optional[str] = Field(
        default=None,
        min_length=3,
        max_length=3,
        description="ISO currency code; the configured default when omitted"
    )
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @field_validator('balance')
    @classmethod
    def balance_must_be_finite(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("Opening balance must be a finite number")
        return v


class Account(BaseModel):
    """
    A stored account.

    Instances are built by storage backends; id and timestamps are
    assigned by the store.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Decimal = Field(default=Decimal("0"))
    currency: str = Field(default="USD", min_length=3, max_length=3)
    is_archived: bool = False

    # Display metadata
    icon: Optional[str] = None
    color: Optional[str] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_liability(self) -> bool:
        """True for accounts whose positive balance is money owed."""
        return self.type == AccountType.CREDIT_CARD


class AccountUpdate(BaseModel):
    """
    Partial update of an account's descriptive fields.

    Unknown keys are rejected, and balance is deliberately absent.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    icon: Optional[str] = Field(default=None, max_length=50)
    color: Optional[str] = Field(default=None, max_length=20)
    is_archived: Optional[bool] = None

    @field_validator('name', 'type', 'currency', 'is_archived')
    @classmethod
    def not_cleared(cls, v):
        """Required account fields may be changed but never set to null."""
        if v is None:
            raise ValueError("cannot be cleared")
        return v

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    def to_fields(self) -> dict:
        """
        Only the fields the caller actually set.

        icon and color may be set to None to clear them.
        """
        return self.model_dump(exclude_unset=True)

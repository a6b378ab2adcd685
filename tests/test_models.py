"""
Tests for Pocket Ledger

Test strategy:
1. Unit tests for individual components (models, validator, queries)
2. Ledger tests against the in-memory backend, which has the same
   optimistic-transaction semantics as production storage
3. No real API calls in tests
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pocket_ledger.models.account import (
    Account,
    AccountDraft,
    AccountType,
    AccountUpdate,
)
from pocket_ledger.models.transaction import (
    CATEGORY_LABELS,
    Transaction,
    TransactionCategory,
    TransactionDraft,
    TransactionStatus,
    TransactionType,
)
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

JAN_5 = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)


class TestAccountModels:
    """Tests for account-related Pydantic models."""

    def test_account_draft_defaults(self):
        """Opening balance defaults to zero and currency is left for the ledger."""
        draft = AccountDraft(name="Wallet", type=AccountType.CASH)
        assert draft.balance == Decimal("0")
        assert draft.currency is None

    def test_account_draft_strips_whitespace(self):
        draft = AccountDraft(name="  Checking  ", type=AccountType.BANK)
        assert draft.name == "Checking"

    def test_account_draft_uppercases_currency(self):
        draft = AccountDraft(name="Euro cash", type=AccountType.CASH, currency="eur")
        assert draft.currency == "EUR"

    def test_account_draft_rejects_empty_name(self):
        with pytest.raises(ValueError):
            AccountDraft(name="   ", type=AccountType.CASH)

    def test_account_draft_rejects_infinite_balance(self):
        with pytest.raises(ValueError, match="finite"):
            AccountDraft(name="Wallet", type=AccountType.CASH, balance=Decimal("Infinity"))

    def test_account_defaults(self):
        account = Account(id="a1", user_id="u1", name="Wallet", type=AccountType.CASH)
        assert account.currency == "USD"
        assert account.is_archived is False
        assert account.balance == Decimal("0")

    def test_credit_card_is_liability(self):
        card = Account(id="a1", user_id="u1", name="Visa", type=AccountType.CREDIT_CARD)
        cash = Account(id="a2", user_id="u1", name="Wallet", type=AccountType.CASH)
        assert card.is_liability is True
        assert cash.is_liability is False

    def test_account_update_has_no_balance(self):
        """Balance is not an updatable field."""
        with pytest.raises(ValueError):
            AccountUpdate(balance=Decimal("10"))

    def test_account_update_only_reports_set_fields(self):
        update = AccountUpdate(name="Renamed")
        assert update.to_fields() == {"name": "Renamed"}

    @pytest.mark.parametrize("field", ["name", "type", "currency", "is_archived"])
    def test_account_update_cannot_clear_required_field(self, field):
        with pytest.raises(ValueError, match="cannot be cleared"):
            AccountUpdate(**{field: None})

    def test_account_update_can_clear_display_metadata(self):
        update = AccountUpdate(icon=None, color=None)
        assert update.to_fields() == {"icon": None, "color": None}


class TestTransactionModels:
    """Tests for transaction models and their invariants."""

    def test_transaction_creation(self):
        transaction = Transaction(
            id="t1",
            user_id="u1",
            type=TransactionType.EXPENSE,
            amount=Decimal("12.50"),
            category=TransactionCategory.FOOD,
            date=JAN_5,
            account_id="a1",
        )
        assert transaction.status == TransactionStatus.COMPLETED
        assert transaction.account_ids == ["a1"]

    def test_transaction_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            Transaction(
                id="t1",
                user_id="u1",
                type=TransactionType.INCOME,
                amount=Decimal("0"),
                date=JAN_5,
                account_id="a1",
            )

    def test_transfer_requires_both_accounts(self):
        with pytest.raises(ValueError, match="Transfer requires"):
            Transaction(
                id="t1",
                user_id="u1",
                type=TransactionType.TRANSFER,
                amount=Decimal("10"),
                date=JAN_5,
                from_account_id="a1",
            )

    def test_transfer_rejects_same_account(self):
        with pytest.raises(ValueError, match="same account"):
            Transaction(
                id="t1",
                user_id="u1",
                type=TransactionType.TRANSFER,
                amount=Decimal("10"),
                date=JAN_5,
                from_account_id="a1",
                to_account_id="a1",
            )

    def test_income_rejects_transfer_accounts(self):
        with pytest.raises(ValueError, match="must not set transfer accounts"):
            Transaction(
                id="t1",
                user_id="u1",
                type=TransactionType.INCOME,
                amount=Decimal("10"),
                date=JAN_5,
                account_id="a1",
                to_account_id="a2",
            )

    def test_transaction_is_immutable(self):
        transaction = Transaction(
            id="t1",
            user_id="u1",
            type=TransactionType.INCOME,
            amount=Decimal("10"),
            date=JAN_5,
            account_id="a1",
        )
        with pytest.raises(ValueError):
            transaction.amount = Decimal("20")

    def test_balance_effects_by_type(self):
        """Direction comes from the type; amounts stay positive."""
        income = TransactionDraft(type=TransactionType.INCOME, amount=Decimal("5"), account_id="a")
        expense = TransactionDraft(type=TransactionType.EXPENSE, amount=Decimal("5"), account_id="a")
        transfer = TransactionDraft(
            type=TransactionType.TRANSFER,
            amount=Decimal("5"),
            from_account_id="a",
            to_account_id="b",
        )
        assert income.balance_effects() == {"a": Decimal("5")}
        assert expense.balance_effects() == {"a": Decimal("-5")}
        assert transfer.balance_effects() == {"a": Decimal("-5"), "b": Decimal("5")}

    def test_naive_dates_become_utc(self):
        """Naive dates are read as UTC so they order against aware ones."""
        naive = datetime(2024, 1, 5, 12, 0)
        draft = TransactionDraft(
            type=TransactionType.INCOME,
            amount=Decimal("1"),
            account_id="a1",
            date=naive,
        )
        transaction = Transaction(
            id="t1",
            user_id="u1",
            type=TransactionType.INCOME,
            amount=Decimal("1"),
            date=naive,
            account_id="a1",
        )

        assert draft.date == JAN_5
        assert draft.date.tzinfo is not None
        assert transaction.date == JAN_5

    def test_draft_accepts_negative_amount_for_validator(self):
        """Drafts only carry types; the validator reports the sign."""
        draft = TransactionDraft(type=TransactionType.INCOME, amount=Decimal("-1"), account_id="a")
        assert draft.amount == Decimal("-1")


class TestTransactionCategories:
    """Tests for the transaction category enum."""

    def test_all_categories_exist(self):
        expected = [
            "salary", "business", "investment", "food", "transportation",
            "housing", "utilities", "insurance", "healthcare", "entertainment",
            "shopping", "education", "savings", "debt", "other",
        ]
        for cat in expected:
            assert TransactionCategory(cat) is not None
        assert len(TransactionCategory) == len(expected)

    def test_every_category_has_a_label(self):
        assert set(CATEGORY_LABELS) == set(TransactionCategory)
        assert CATEGORY_LABELS[TransactionCategory.FOOD] == "Food & Dining"


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_POSTED,
            description="Posted expense",
        )
        assert event.event_type == AuditEventType.TRANSACTION_POSTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            user_id="u1",
            entity_type="account",
            entity_id="a1",
            description="Account created: Wallet",
            details={"opening_balance": "100"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "account_created"
        assert log_dict["entity_id"] == "a1"
        assert log_dict["details"]["opening_balance"] == "100"

    def test_audit_event_builder_transaction_posted(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_posted(
            user_id="u1",
            transaction_id="t1",
            transaction_type="transfer",
            amount="40",
            balance_changes={"a": "-40", "b": "40"},
            correlation_id=correlation_id,
        )
        assert event.entity_type == "transaction"
        assert event.entity_id == "t1"
        assert event.correlation_id == correlation_id
        assert event.details["balance_changes"] == {"a": "-40", "b": "40"}
        assert event.is_user_action is True

    def test_audit_event_builder_posting_rejected_is_warning(self):
        event = AuditEventBuilder.posting_rejected(
            user_id="u1",
            error_code="insufficient_balance",
            error_message="Insufficient balance",
            details={},
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "insufficient_balance"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

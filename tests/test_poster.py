"""
Tests for the Transaction Poster

Every test runs against InMemoryLedgerStorage, which commits atomically
and detects conflicting concurrent writes the way Firestore does.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from pocket_ledger.errors import InsufficientBalanceError, ValidationError
from pocket_ledger.ledger import AccountLedger, TransactionPoster
from pocket_ledger.models.account import AccountType
from pocket_ledger.models.transaction import (
    TransactionCategory,
    TransactionDraft,
    TransactionStatus,
    TransactionType,
)
from pocket_ledger.services.storage import (
    LedgerStorageInterface,
    NotFoundError,
    StorageConflictError,
)

USER_ID = "user-1"


def income(account_id, amount, **kwargs) -> TransactionDraft:
    return TransactionDraft(
        type=TransactionType.INCOME,
        amount=Decimal(amount),
        account_id=account_id,
        **kwargs,
    )


def expense(account_id, amount, **kwargs) -> TransactionDraft:
    return TransactionDraft(
        type=TransactionType.EXPENSE,
        amount=Decimal(amount),
        account_id=account_id,
        **kwargs,
    )


def transfer(from_id, to_id, amount) -> TransactionDraft:
    return TransactionDraft(
        type=TransactionType.TRANSFER,
        amount=Decimal(amount),
        from_account_id=from_id,
        to_account_id=to_id,
    )


@pytest.fixture
def poster(storage) -> TransactionPoster:
    return TransactionPoster(storage)


@pytest.fixture
def ledger(storage) -> AccountLedger:
    return AccountLedger(storage)


class TestPosting:
    """Posting income, expense and transfer transactions."""

    @pytest.mark.asyncio
    async def test_income_then_expenses(self, poster, ledger, storage, open_account):
        """Balance follows every posting; an overdraft leaves it unchanged."""
        wallet = await open_account("100")

        await poster.post(USER_ID, income(wallet, "50"))
        assert await ledger.get_balance(USER_ID, wallet) == Decimal("150")

        await poster.post(USER_ID, expense(wallet, "30"))
        assert await ledger.get_balance(USER_ID, wallet) == Decimal("120")

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await poster.post(USER_ID, expense(wallet, "200"))

        assert exc_info.value.available == Decimal("120")
        assert exc_info.value.requested == Decimal("200")
        assert await ledger.get_balance(USER_ID, wallet) == Decimal("120")
        assert len(await storage.list_transactions(USER_ID)) == 2

    @pytest.mark.asyncio
    async def test_expense_of_exact_balance_succeeds(self, poster, ledger, open_account):
        wallet = await open_account("25.50")

        await poster.post(USER_ID, expense(wallet, "25.50"))

        assert await ledger.get_balance(USER_ID, wallet) == Decimal("0")

    @pytest.mark.asyncio
    async def test_transfer_moves_money_and_preserves_sum(self, poster, ledger, open_account):
        bank = await open_account("100", name="Bank", account_type=AccountType.BANK)
        savings = await open_account("0", name="Savings", account_type=AccountType.SAVINGS)

        await poster.post(USER_ID, transfer(bank, savings, "40"))

        assert await ledger.get_balance(USER_ID, bank) == Decimal("60")
        assert await ledger.get_balance(USER_ID, savings) == Decimal("40")
        assert await ledger.get_total_balance(USER_ID) == Decimal("100")

    @pytest.mark.asyncio
    async def test_transfer_overdraft_changes_neither_account(self, poster, ledger, open_account):
        bank = await open_account("10")
        savings = await open_account("5")

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await poster.post(USER_ID, transfer(bank, savings, "11"))

        assert exc_info.value.account_id == bank
        assert await ledger.get_balance(USER_ID, bank) == Decimal("10")
        assert await ledger.get_balance(USER_ID, savings) == Decimal("5")

    @pytest.mark.asyncio
    async def test_posted_record_keeps_draft_fields(self, poster, storage, open_account):
        wallet = await open_account("100")
        when = datetime(2024, 1, 5, 9, 30, tzinfo=timezone.utc)

        transaction_id = await poster.post(USER_ID, expense(
            wallet,
            "12.75",
            description="Lunch",
            category=TransactionCategory.FOOD,
            date=when,
            notes="team lunch",
            tags=["work"],
        ))

        record = await storage.get_transaction(USER_ID, transaction_id)
        assert record.status == TransactionStatus.COMPLETED
        assert record.user_id == USER_ID
        assert record.date == when
        assert record.amount == Decimal("12.75")
        assert record.category == TransactionCategory.FOOD
        assert record.tags == ["work"]

    @pytest.mark.asyncio
    async def test_post_accepts_plain_dict(self, poster, ledger, open_account):
        wallet = await open_account("0")

        await poster.post(USER_ID, {
            "type": "income",
            "amount": "19.99",
            "account_id": wallet,
            "category": "salary",
        })

        assert await ledger.get_balance(USER_ID, wallet) == Decimal("19.99")

    @pytest.mark.asyncio
    async def test_credit_card_uses_same_arithmetic(self, poster, ledger, open_account):
        """No sign flip for credit cards; the sufficiency rule applies too."""
        card = await open_account("50", account_type=AccountType.CREDIT_CARD)

        await poster.post(USER_ID, expense(card, "20"))
        assert await ledger.get_balance(USER_ID, card) == Decimal("30")

        with pytest.raises(InsufficientBalanceError):
            await poster.post(USER_ID, expense(card, "31"))


class TestPostingRejections:
    """Drafts that never reach storage, or fail inside the scope."""

    @pytest.mark.asyncio
    async def test_same_account_transfer_rejected_before_storage(self):
        storage = AsyncMock(spec=LedgerStorageInterface)
        poster = TransactionPoster(storage)

        with pytest.raises(ValidationError, match="cannot transfer to the same account"):
            await poster.post(USER_ID, transfer("a", "a", "10"))

        storage.run_atomic.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_non_positive_amount_rejected(self, amount):
        storage = AsyncMock(spec=LedgerStorageInterface)
        poster = TransactionPoster(storage)

        with pytest.raises(ValidationError, match="amount must be positive"):
            await poster.post(USER_ID, income("a", amount))

        storage.run_atomic.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_account_raises_not_found(self, poster, storage):
        with pytest.raises(NotFoundError):
            await poster.post(USER_ID, income("no-such-account", "10"))

        assert await storage.list_transactions(USER_ID) == []

    @pytest.mark.asyncio
    async def test_transfer_to_missing_account_leaves_source_alone(
        self, poster, ledger, storage, open_account,
    ):
        bank = await open_account("100")

        with pytest.raises(NotFoundError):
            await poster.post(USER_ID, transfer(bank, "no-such-account", "10"))

        assert await ledger.get_balance(USER_ID, bank) == Decimal("100")
        assert await storage.list_transactions(USER_ID) == []

    @pytest.mark.asyncio
    async def test_accounts_of_other_users_are_invisible(self, poster, open_account):
        other = await open_account("100", user_id="user-2")

        with pytest.raises(NotFoundError):
            await poster.post(USER_ID, expense(other, "10"))


class TestReversal:
    """Deleting a transaction undoes its balance effect."""

    @pytest.mark.asyncio
    async def test_reverse_transfer_restores_both_accounts(
        self, poster, ledger, storage, open_account,
    ):
        bank = await open_account("100")
        savings = await open_account("0")
        transaction_id = await poster.post(USER_ID, transfer(bank, savings, "40"))

        removed = await poster.reverse(USER_ID, transaction_id)

        assert removed.id == transaction_id
        assert await ledger.get_balance(USER_ID, bank) == Decimal("100")
        assert await ledger.get_balance(USER_ID, savings) == Decimal("0")
        assert await storage.get_transaction(USER_ID, transaction_id) is None

    @pytest.mark.asyncio
    async def test_reverse_expense_adds_amount_back(self, poster, ledger, open_account):
        wallet = await open_account("100")
        transaction_id = await poster.post(USER_ID, expense(wallet, "30"))

        await poster.reverse(USER_ID, transaction_id)

        assert await ledger.get_balance(USER_ID, wallet) == Decimal("100")

    @pytest.mark.asyncio
    async def test_reverse_income_may_go_negative(self, poster, ledger, open_account):
        """Reversal has no sufficiency check."""
        wallet = await open_account("0")
        transaction_id = await poster.post(USER_ID, income(wallet, "50"))
        await poster.post(USER_ID, expense(wallet, "40"))

        await poster.reverse(USER_ID, transaction_id)

        assert await ledger.get_balance(USER_ID, wallet) == Decimal("-40")

    @pytest.mark.asyncio
    async def test_reverse_unknown_transaction(self, poster):
        with pytest.raises(NotFoundError):
            await poster.reverse(USER_ID, "no-such-transaction")

    @pytest.mark.asyncio
    async def test_reverse_twice_fails_second_time(self, poster, ledger, open_account):
        wallet = await open_account("0")
        transaction_id = await poster.post(USER_ID, income(wallet, "10"))
        await poster.reverse(USER_ID, transaction_id)

        with pytest.raises(NotFoundError):
            await poster.reverse(USER_ID, transaction_id)

        assert await ledger.get_balance(USER_ID, wallet) == Decimal("0")


class TestConcurrency:
    """Concurrent postings never jointly overdraw an account."""

    @pytest.mark.asyncio
    async def test_concurrent_expenses_only_one_succeeds(
        self, poster, ledger, storage, open_account,
    ):
        wallet = await open_account("100")

        results = await asyncio.gather(
            poster.post(USER_ID, expense(wallet, "80")),
            poster.post(USER_ID, expense(wallet, "80")),
            return_exceptions=True,
        )

        succeeded = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, InsufficientBalanceError)]
        assert len(succeeded) == 1
        assert len(rejected) == 1
        assert rejected[0].available == Decimal("20")
        assert await ledger.get_balance(USER_ID, wallet) == Decimal("20")
        assert storage.conflict_count >= 1

    @pytest.mark.asyncio
    async def test_concurrent_incomes_are_all_applied(self, poster, ledger, open_account):
        wallet = await open_account("0")

        await asyncio.gather(*(
            poster.post(USER_ID, income(wallet, "1")) for _ in range(4)
        ))

        assert await ledger.get_balance(USER_ID, wallet) == Decimal("4")

    @pytest.mark.asyncio
    async def test_persistent_conflict_changes_nothing(
        self, poster, ledger, storage, open_account, monkeypatch,
    ):
        wallet = await open_account("100")

        def always_conflict(user_id, scope):
            raise StorageConflictError("simulated conflict")

        monkeypatch.setattr(storage, "_commit", always_conflict)

        with pytest.raises(StorageConflictError):
            await poster.post(USER_ID, expense(wallet, "10"))

        assert await ledger.get_balance(USER_ID, wallet) == Decimal("100")
        assert await storage.list_transactions(USER_ID) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""Shared fixtures: every test runs against the in-memory backend."""

from decimal import Decimal

import pytest

from pocket_ledger.models.account import AccountDraft, AccountType
from pocket_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage

USER_ID = "user-1"


@pytest.fixture
def storage() -> InMemoryLedgerStorage:
    # No back-off between conflicting attempts keeps tests fast
    return InMemoryLedgerStorage(
        max_attempts=5,
        wait_min_seconds=0,
        wait_max_seconds=0,
    )


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def open_account(storage):
    """Create an account for USER_ID directly in storage and return its id."""
    async def _open(
        balance: str = "0",
        name: str = "Wallet",
        account_type: AccountType = AccountType.CASH,
        user_id: str = USER_ID,
    ) -> str:
        account = await storage.create_account(
            user_id,
            AccountDraft(name=name, type=account_type, balance=Decimal(balance)),
            "USD",
        )
        return account.id

    return _open

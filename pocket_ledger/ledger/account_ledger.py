"""
Account Ledger

Holds each account's current balance and the account records themselves.

DESIGN DECISION: The Account Ledger reads balances but never writes them.
Descriptive fields (name, type, currency, icon, color, archived flag) can
be edited freely; balance is rejected at this layer because a schemaless
document store cannot refuse it structurally.
"""

from decimal import Decimal
from typing import Iterable, Optional, Union

from pocket_ledger.config import get_settings
from pocket_ledger.models.account import Account, AccountDraft, AccountUpdate
from pocket_ledger.services.storage import LedgerStorageInterface, NotFoundError
from pocket_ledger.validation import LedgerValidator


def total_balance(accounts: Iterable[Account]) -> Decimal:
    """
    Sum of balances over the non-archived accounts given.

    Balances are summed as stored; no currency conversion and no sign
    flip for credit cards.
    """
    return sum(
        (account.balance for account in accounts if not account.is_archived),
        Decimal("0"),
    )


class AccountLedger:
    """Account records and balance lookups for one storage backend."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[LedgerValidator] = None,
    ):
        self._storage = storage
        self._validator = validator or LedgerValidator()

    async def add_account(
        self,
        user_id: str,
        draft: Union[AccountDraft, dict],
        default_currency: Optional[str] = None,
    ) -> Account:
        """
        Create an account with its opening balance.

        The opening balance is the only balance ever written outside the
        Transaction Poster. Currency falls back to default_currency (the
        user's preference) and then to the configured app default.
        """
        draft = self._validator.parse_account_draft(draft)
        currency = (
            draft.currency
            or default_currency
            or get_settings().app.default_currency
        )
        return await self._storage.create_account(user_id, draft, currency)

    async def get_account(self, user_id: str, account_id: str) -> Account:
        account = await self._storage.get_account(user_id, account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    async def get_balance(self, user_id: str, account_id: str) -> Decimal:
        """Current balance, read from the account's stored field."""
        account = await self.get_account(user_id, account_id)
        return account.balance

    async def list_accounts(
        self,
        user_id: str,
        include_archived: bool = False,
    ) -> list[Account]:
        return await self._storage.list_accounts(user_id, include_archived=include_archived)

    async def get_total_balance(self, user_id: str) -> Decimal:
        """Total over the user's active accounts, for the dashboard."""
        accounts = await self._storage.list_accounts(user_id, include_archived=False)
        return total_balance(accounts)

    async def update_account(
        self,
        user_id: str,
        account_id: str,
        update: Union[AccountUpdate, dict],
    ) -> Account:
        """
        Edit descriptive fields of an account.

        Raises:
            ValidationError: If the update names balance or another protected field
            NotFoundError: If the account doesn't exist
        """
        parsed = self._validator.validate_account_update(update)
        return await self.apply_update(user_id, account_id, parsed)

    async def apply_update(
        self,
        user_id: str,
        account_id: str,
        update: AccountUpdate,
    ) -> Account:
        """Write an update that has already passed validate_account_update."""
        return await self._storage.update_account(user_id, account_id, update.to_fields())

    async def archive_account(self, user_id: str, account_id: str) -> Account:
        """
        Hide an account from totals and pickers.

        The balance and transaction history are left untouched.
        """
        return await self.apply_update(
            user_id, account_id, AccountUpdate(is_archived=True),
        )

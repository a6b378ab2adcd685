"""
Transaction Poster

The only component allowed to change an account balance after creation,
and the only path that creates or deletes transaction records.

FLOW (post):
1. Structural validation - no storage access, fails fast
2. Open an atomic scope
3. Read every affected account fresh inside the scope
4. Sufficiency check against those fresh balances
5. Buffer the transaction record and the balance writes
6. Commit - all or nothing

FLOW (reverse):
1. Open an atomic scope
2. Read the transaction and its accounts
3. Buffer the inverse balance writes and the record delete
4. Commit - all or nothing

CRITICAL: Any exception inside the scope aborts it. There is never a
balance change without its transaction record, or a record without its
balance change.
"""

from typing import Optional, Union

from pocket_ledger.models.account import Account
from pocket_ledger.models.transaction import (
    Transaction,
    TransactionDraft,
    TransactionStatus,
)
from pocket_ledger.services.storage import (
    AtomicScope,
    LedgerStorageInterface,
    NotFoundError,
)
from pocket_ledger.validation import LedgerValidator


class TransactionPoster:
    """
    Posts and reverses transactions against the account ledger.

    Concurrency is delegated entirely to storage.run_atomic: a conflicting
    concurrent write re-runs the whole operation against fresh balances,
    so the sufficiency check never relies on a stale read.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[LedgerValidator] = None,
    ):
        self._storage = storage
        self._validator = validator or LedgerValidator()

    async def _read_accounts(
        self,
        scope: AtomicScope,
        account_ids: list[str],
    ) -> dict[str, Account]:
        accounts = {}
        for account_id in account_ids:
            account = await scope.get_account(account_id)
            if account is None:
                raise NotFoundError(f"Account not found: {account_id}")
            accounts[account_id] = account
        return accounts

    async def post(
        self,
        user_id: str,
        draft: Union[TransactionDraft, dict],
    ) -> str:
        """
        Validate and atomically apply a transaction.

        Returns:
            The new transaction's id

        Raises:
            ValidationError: Malformed draft (raised before storage access)
            NotFoundError: A referenced account doesn't exist
            InsufficientBalanceError: Expense or transfer would overdraw the source
            StorageConflictError: The scope could not commit after retries
        """
        draft = self._validator.parse_transaction_draft(draft)
        self._validator.ensure_valid_draft(draft)
        effects = draft.balance_effects()

        async def _apply(scope: AtomicScope) -> str:
            accounts = await self._read_accounts(scope, list(effects))

            # A negative effect marks the source of an expense or transfer
            for account_id, delta in effects.items():
                if delta < 0:
                    self._validator.check_sufficiency(accounts[account_id], -delta)

            transaction_id = scope.new_transaction_id()
            scope.create_transaction(Transaction(
                id=transaction_id,
                user_id=user_id,
                status=TransactionStatus.COMPLETED,
                **draft.model_dump(),
            ))
            for account_id, delta in effects.items():
                scope.set_balance(account_id, accounts[account_id].balance + delta)
            return transaction_id

        return await self._storage.run_atomic(user_id, _apply)

    async def reverse(self, user_id: str, transaction_id: str) -> Transaction:
        """
        Delete a transaction and undo its effect on every account it touched.

        No sufficiency check applies: undoing an income may leave an
        account negative, exactly as if the income had never been posted.

        Returns:
            The transaction that was removed

        Raises:
            NotFoundError: The transaction or one of its accounts doesn't exist
            StorageConflictError: The scope could not commit after retries
        """
        async def _apply(scope: AtomicScope) -> Transaction:
            transaction = await scope.get_transaction(transaction_id)
            if transaction is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")

            effects = transaction.balance_effects()
            accounts = await self._read_accounts(scope, list(effects))

            for account_id, delta in effects.items():
                scope.set_balance(account_id, accounts[account_id].balance - delta)
            scope.delete_transaction(transaction_id)
            return transaction

        return await self._storage.run_atomic(user_id, _apply)

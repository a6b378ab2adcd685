"""
In-Memory Storage Implementation

DESIGN DECISION: The in-memory backend behaves like a hosted document
store with optimistic transactions, not like a plain dict:
1. Every document carries a version, bumped on each write
2. An atomic scope remembers the version of every document it read
3. Writes are buffered in the scope until commit
4. Commit fails with StorageConflictError if anything read has changed
5. run_atomic re-runs the whole operation on conflict (tenacity)

This gives tests the same serializable behaviour the ledger relies on in
production: a sufficiency check always sees the balance it will write over.

TRADEOFFS:
- Single process only (state lives in this object)
- Nothing survives a restart
"""

import asyncio
from decimal import Decimal
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID, uuid4

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocket_ledger.config import get_settings
from pocket_ledger.models.account import Account, AccountDraft, utc_now
from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.transaction import Transaction
from pocket_ledger.services.storage.interface import (
    AtomicScope,
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageConflictError,
    StorageError,
)

T = TypeVar("T")

ACCOUNTS = "accounts"
TRANSACTIONS = "transactions"

# Version reported for a document that doesn't exist
ABSENT = 0

logger = structlog.get_logger(__name__)


class _InMemoryScope(AtomicScope):
    """One attempt of an atomic scope against InMemoryLedgerStorage."""

    def __init__(self, storage: "InMemoryLedgerStorage", user_id: str):
        self._storage = storage
        self._user_id = user_id
        self.read_versions: dict[tuple[str, str], int] = {}
        self.balance_writes: dict[str, Decimal] = {}
        self.created: dict[str, Transaction] = {}
        self.deleted: set[str] = set()
        self._writing = False

    async def _read(self, collection: str, doc_id: str):
        if self._writing:
            raise StorageError("All reads in an atomic scope must happen before writes")
        version, model = self._storage._get_document(collection, self._user_id, doc_id)
        # Keep the first version seen; a later re-read must not hide a change
        self.read_versions.setdefault((collection, doc_id), version)
        # Yield like a network round trip would, so concurrent scopes interleave
        await asyncio.sleep(0)
        return model

    async def get_account(self, account_id: str) -> Optional[Account]:
        return await self._read(ACCOUNTS, account_id)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return await self._read(TRANSACTIONS, transaction_id)

    def new_transaction_id(self) -> str:
        return uuid4().hex

    def set_balance(self, account_id: str, balance: Decimal) -> None:
        self._writing = True
        self.balance_writes[account_id] = balance

    def create_transaction(self, transaction: Transaction) -> None:
        self._writing = True
        self.created[transaction.id] = transaction

    def delete_transaction(self, transaction_id: str) -> None:
        self._writing = True
        self.deleted.add(transaction_id)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    In-memory implementation of ledger storage.

    Documents are kept per user as {doc_id: (version, model)}.
    Models are copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        wait_min_seconds: Optional[float] = None,
        wait_max_seconds: Optional[float] = None,
    ):
        settings = get_settings().app
        self._max_attempts = max_attempts or settings.conflict_max_attempts
        self._wait_min = (
            settings.conflict_wait_min_seconds
            if wait_min_seconds is None else wait_min_seconds
        )
        self._wait_max = (
            settings.conflict_wait_max_seconds
            if wait_max_seconds is None else wait_max_seconds
        )
        self._collections: dict[str, dict[str, dict[str, tuple[int, object]]]] = {
            ACCOUNTS: {},
            TRANSACTIONS: {},
        }
        self._clock = 0
        self.commit_count = 0
        self.conflict_count = 0

    # -------------------------------------------------------------------------
    # Document primitives
    # -------------------------------------------------------------------------

    def _partition(self, collection: str, user_id: str) -> dict:
        return self._collections[collection].setdefault(user_id, {})

    def _get_document(self, collection: str, user_id: str, doc_id: str):
        """Return (version, model copy); (ABSENT, None) if missing."""
        entry = self._partition(collection, user_id).get(doc_id)
        if entry is None:
            return ABSENT, None
        version, model = entry
        return version, model.model_copy(deep=True)

    def _put_document(self, collection: str, user_id: str, doc_id: str, model) -> None:
        self._clock += 1
        self._partition(collection, user_id)[doc_id] = (self._clock, model)

    def _commit(self, user_id: str, scope: _InMemoryScope) -> None:
        """
        Validate read versions and apply buffered writes.

        Contains no await, so no other coroutine can run between the
        version check and the writes.
        """
        for (collection, doc_id), version in scope.read_versions.items():
            current, _ = self._get_document(collection, user_id, doc_id)
            if current != version:
                self.conflict_count += 1
                raise StorageConflictError(
                    f"{collection}/{doc_id} changed during atomic scope"
                )

        accounts = self._partition(ACCOUNTS, user_id)
        for account_id in scope.balance_writes:
            if account_id not in accounts:
                raise NotFoundError(f"Account not found: {account_id}")

        now = utc_now()
        for account_id, balance in scope.balance_writes.items():
            _, account = accounts[account_id]
            self._put_document(
                ACCOUNTS,
                user_id,
                account_id,
                account.model_copy(update={"balance": balance, "updated_at": now}),
            )
        for transaction_id, transaction in scope.created.items():
            self._put_document(
                TRANSACTIONS,
                user_id,
                transaction_id,
                transaction.model_copy(update={"created_at": now, "updated_at": now}),
            )
        transactions = self._partition(TRANSACTIONS, user_id)
        for transaction_id in scope.deleted:
            transactions.pop(transaction_id, None)
            self._clock += 1

        self.commit_count += 1

    # -------------------------------------------------------------------------
    # LedgerStorageInterface
    # -------------------------------------------------------------------------

    async def run_atomic(
        self,
        user_id: str,
        operation: Callable[[AtomicScope], Awaitable[T]],
    ) -> T:
        """Run operation with optimistic concurrency, retrying on conflict."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._wait_min,
                min=self._wait_min,
                max=self._wait_max,
            ),
            retry=retry_if_exception_type(StorageConflictError),
            before_sleep=_log_conflict_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                scope = _InMemoryScope(self, user_id)
                result = await operation(scope)
                self._commit(user_id, scope)
        return result

    async def create_account(
        self,
        user_id: str,
        draft: AccountDraft,
        currency: str,
    ) -> Account:
        now = utc_now()
        account = Account(
            id=uuid4().hex,
            user_id=user_id,
            name=draft.name,
            type=draft.type,
            balance=draft.balance,
            currency=currency,
            icon=draft.icon,
            color=draft.color,
            created_at=now,
            updated_at=now,
        )
        self._put_document(ACCOUNTS, user_id, account.id, account)
        return account.model_copy(deep=True)

    async def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        _, account = self._get_document(ACCOUNTS, user_id, account_id)
        return account

    async def update_account(
        self,
        user_id: str,
        account_id: str,
        fields: dict,
    ) -> Account:
        _, account = self._get_document(ACCOUNTS, user_id, account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")

        updated = account.model_copy(update={**fields, "updated_at": utc_now()})
        self._put_document(ACCOUNTS, user_id, account_id, updated)
        return updated.model_copy(deep=True)

    async def list_accounts(
        self,
        user_id: str,
        include_archived: bool = True,
    ) -> list[Account]:
        accounts = [
            model.model_copy(deep=True)
            for _, model in self._partition(ACCOUNTS, user_id).values()
            if include_archived or not model.is_archived
        ]
        accounts.sort(key=lambda a: a.created_at)
        return accounts

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        _, transaction = self._get_document(TRANSACTIONS, user_id, transaction_id)
        return transaction

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        transactions = [
            model.model_copy(deep=True)
            for _, model in self._partition(TRANSACTIONS, user_id).values()
        ]
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions


def _log_conflict_retry(retry_state: RetryCallState) -> None:
    """tenacity hook: note each conflicting attempt before backing off."""
    logger.warning(
        "atomic_scope_conflict",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


class InMemoryAuditStorage(AuditStorageInterface):
    """
    In-memory audit log.

    Audit events are append-only.
    """

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        # Append order is chronological; timestamps can tie
        return list(reversed(self._events))[:limit]

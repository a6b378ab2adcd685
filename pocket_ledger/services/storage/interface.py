"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run on Firestore in production
2. Use in-memory storage for testing
3. Keep ledger rules decoupled from storage implementation

The store is a document database partitioned per user. The one capability
the ledger depends on is run_atomic(): an all-or-nothing read-modify-write
scope with conflict detection. Every balance change goes through it.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from pocket_ledger.errors import LedgerError
from pocket_ledger.models.account import Account, AccountDraft
from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.transaction import Transaction

T = TypeVar("T")


class AtomicScope(ABC):
    """
    One attempt of an atomic read-modify-write scope for a single user.

    Reads see the committed state as of the read. Writes are buffered and
    only become visible if the scope commits. All reads must happen before
    the first write.
    """

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """Read an account inside the scope. None if it doesn't exist."""
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Read a transaction inside the scope. None if it doesn't exist."""
        pass

    @abstractmethod
    def new_transaction_id(self) -> str:
        """Reserve a store-assigned id for a transaction about to be written."""
        pass

    @abstractmethod
    def set_balance(self, account_id: str, balance: Decimal) -> None:
        """
        Buffer a balance write.

        This is the only balance write path in the whole system.
        """
        pass

    @abstractmethod
    def create_transaction(self, transaction: Transaction) -> None:
        """
        Buffer a transaction record write.

        The store assigns created_at/updated_at at commit.
        """
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None:
        """Buffer a transaction record delete."""
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for account and transaction storage.

    Any storage implementation (Firestore, in-memory, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def run_atomic(
        self,
        user_id: str,
        operation: Callable[[AtomicScope], Awaitable[T]],
    ) -> T:
        """
        Run operation inside an atomic scope and commit its writes.

        On a conflicting concurrent write the whole operation is re-run
        against fresh state. Any exception raised by operation aborts the
        scope with nothing written.

        Returns:
            Whatever operation returned

        Raises:
            StorageConflictError: If the scope still conflicts after retries
        """
        pass

    @abstractmethod
    async def create_account(
        self,
        user_id: str,
        draft: AccountDraft,
        currency: str,
    ) -> Account:
        """
        Store a new account with its opening balance.

        Args:
            user_id: Owner
            draft: Account fields chosen by the user
            currency: Resolved ISO currency code

        Returns:
            The stored account with id and timestamps assigned
        """
        pass

    @abstractmethod
    async def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        """Retrieve an account by id. None if not found."""
        pass

    @abstractmethod
    async def update_account(
        self,
        user_id: str,
        account_id: str,
        fields: dict,
    ) -> Account:
        """
        Update descriptive fields of an account.

        Callers must never pass balance here; AccountLedger enforces that.

        Returns:
            The updated account

        Raises:
            NotFoundError: If the account doesn't exist
        """
        pass

    @abstractmethod
    async def list_accounts(
        self,
        user_id: str,
        include_archived: bool = True,
    ) -> list[Account]:
        """List a user's accounts, oldest first."""
        pass

    @abstractmethod
    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        """Retrieve a transaction by id. None if not found."""
        pass

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """List all of a user's transactions, newest date first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(LedgerError):
    """Base exception for storage operations."""

    code = "storage_error"


class NotFoundError(StorageError):
    """Entity not found in storage."""

    code = "not_found"


class StorageConflictError(StorageError):
    """
    An atomic scope could not commit because of concurrent modification.

    The caller may retry the whole operation.
    """

    code = "storage_conflict"


class ConnectionError(StorageError):
    """Could not connect to storage backend."""

    code = "connection_error"

"""
Ledger Service for Pocket Ledger

This module ties together all the components and defines the surface the
UI calls:
1. Accounts (add, update, archive, list, balances)
2. Transactions (add, delete, list, stats)

DESIGN DECISION: The service enforces the boundaries:
- Balances change only through the Transaction Poster
- Every mutation and every rejection is audited
- Listeners are told to refetch after every committed change

Refresh is an explicit notification to subscribers rather than shared
global state; a listener receives the set of data kinds that changed.
"""

from decimal import Decimal
from enum import Enum
from typing import Callable, Optional, Union
from uuid import UUID

import structlog

from pocket_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from pocket_ledger.config import get_settings, validate_all_settings
from pocket_ledger.errors import InsufficientBalanceError, LedgerError, ValidationError
from pocket_ledger.ledger import AccountLedger, TransactionPoster
from pocket_ledger.models.account import Account, AccountDraft, AccountUpdate
from pocket_ledger.models.validation import ValidationIssue
from pocket_ledger.models.transaction import (
    Transaction,
    TransactionDraft,
    TransactionFilters,
    TransactionStats,
)
from pocket_ledger.queries import QueryExecutor
from pocket_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageConflictError,
)
from pocket_ledger.services.storage.firestore import (
    FirestoreAuditStorage,
    FirestoreClient,
    FirestoreLedgerStorage,
)
from pocket_ledger.validation import LedgerValidator

logger = structlog.get_logger(__name__)


class ChangeKind(str, Enum):
    """What a refresh listener should refetch."""
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"


RefreshListener = Callable[[frozenset], None]


def _error_details(error: LedgerError) -> dict:
    """Audit details for a rejected operation."""
    if isinstance(error, ValidationError):
        return {
            "issues": [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in error.issues
            ],
        }
    if isinstance(error, InsufficientBalanceError):
        return {
            "account_id": error.account_id,
            "available": str(error.available),
            "requested": str(error.requested),
        }
    return {}


class LedgerService:
    """
    The ledger as seen by one signed-in user.

    All calls are scoped to the user_id given at construction; there are
    no cross-user references.
    """

    def __init__(
        self,
        user_id: str,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        default_currency: Optional[str] = None,
    ):
        self._user_id = user_id
        self._default_currency = None
        self._validator = validator or LedgerValidator()
        self._accounts = AccountLedger(storage, self._validator)
        self._poster = TransactionPoster(storage, self._validator)
        self._queries = QueryExecutor(storage)
        self._audit_logger = audit_logger or AuditLogger()
        self._listeners: list[RefreshListener] = []
        if default_currency:
            self.set_default_currency(default_currency)

    @property
    def user_id(self) -> str:
        return self._user_id

    # -------------------------------------------------------------------------
    # Refresh notifications
    # -------------------------------------------------------------------------

    def subscribe(self, listener: RefreshListener) -> Callable[[], None]:
        """
        Register a listener called after every committed change.

        Returns:
            A function that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, *kinds: ChangeKind) -> None:
        changed = frozenset(kinds)
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception:
                # The change is already committed; a broken view must not undo that
                logger.exception("refresh_listener_failed", changed=sorted(changed))

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @property
    def default_currency(self) -> Optional[str]:
        """The user's currency preference for new accounts, if set."""
        return self._default_currency

    def set_default_currency(self, currency: str) -> str:
        """
        Change the currency new accounts get when their draft names none.

        Existing accounts keep their currency.
        """
        code = (currency or "").strip().upper()
        if len(code) != 3 or not code.isalpha():
            issue = ValidationIssue(
                field="currency",
                issue_type="invalid_value",
                message="currency must be a three-letter code",
            )
            raise ValidationError(issue.message, [issue])
        self._default_currency = code
        return code

    async def _reject_account_operation(
        self,
        operation: str,
        account_id: Optional[str],
        error: LedgerError,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_account_operation_rejected(
            user_id=self._user_id,
            operation=operation,
            account_id=account_id,
            error_code=error.code,
            error_message=str(error),
            details=_error_details(error),
            correlation_id=correlation_id,
        )

    async def add_account(
        self,
        draft: Union[AccountDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """Create an account and return its id."""
        correlation_id = correlation_id or create_correlation_id()

        try:
            account = await self._accounts.add_account(
                self._user_id, draft, default_currency=self._default_currency,
            )
        except LedgerError as e:
            await self._reject_account_operation("create", None, e, correlation_id)
            raise

        await self._audit_logger.log_account_created(
            user_id=self._user_id,
            account_id=account.id,
            name=account.name,
            account_type=account.type.value,
            opening_balance=str(account.balance),
            correlation_id=correlation_id,
        )
        self._notify(ChangeKind.ACCOUNTS)
        return account.id

    async def update_account(
        self,
        account_id: str,
        update: Union[AccountUpdate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        """
        Edit an account's descriptive fields.

        Any attempt to set balance raises ValidationError.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            parsed = self._validator.validate_account_update(update)
            account = await self._accounts.apply_update(self._user_id, account_id, parsed)
        except LedgerError as e:
            await self._reject_account_operation("update", account_id, e, correlation_id)
            raise

        await self._audit_logger.log_account_updated(
            user_id=self._user_id,
            account_id=account_id,
            fields=list(parsed.to_fields()),
            correlation_id=correlation_id,
        )
        self._notify(ChangeKind.ACCOUNTS)
        return account

    async def archive_account(
        self,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        correlation_id = correlation_id or create_correlation_id()

        try:
            account = await self._accounts.archive_account(self._user_id, account_id)
        except LedgerError as e:
            await self._reject_account_operation("archive", account_id, e, correlation_id)
            raise

        await self._audit_logger.log_account_archived(
            user_id=self._user_id,
            account_id=account_id,
            correlation_id=correlation_id,
        )
        self._notify(ChangeKind.ACCOUNTS)
        return account

    async def list_accounts(self, include_archived: bool = False) -> list[Account]:
        return await self._accounts.list_accounts(self._user_id, include_archived)

    async def get_balance(self, account_id: str) -> Decimal:
        return await self._accounts.get_balance(self._user_id, account_id)

    async def get_total_balance(self) -> Decimal:
        """Sum of balances over the user's non-archived accounts."""
        return await self._accounts.get_total_balance(self._user_id)

    async def _log_system_error(
        self,
        operation: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Audit a failure that is not a ledger rule violation."""
        await self._audit_logger.log_error(
            error_type=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
            correlation_id=correlation_id,
            user_id=self._user_id,
        )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def add_transaction(
        self,
        draft: Union[TransactionDraft, dict],
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """
        Post a transaction and return its id.

        Rejections are audited and re-raised with their kind preserved.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            draft = self._validator.parse_transaction_draft(draft)
            transaction_id = await self._poster.post(self._user_id, draft)
        except StorageConflictError as e:
            await self._audit_logger.log_storage_conflict(
                user_id=self._user_id,
                operation="post",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except LedgerError as e:
            await self._audit_logger.log_posting_rejected(
                user_id=self._user_id,
                error_code=e.code,
                error_message=str(e),
                details=_error_details(e),
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_system_error("post", e, correlation_id)
            raise

        await self._audit_logger.log_transaction_posted(
            user_id=self._user_id,
            transaction_id=transaction_id,
            transaction_type=draft.type.value,
            amount=str(draft.amount),
            balance_changes={
                account_id: str(delta)
                for account_id, delta in draft.balance_effects().items()
            },
            correlation_id=correlation_id,
        )
        self._notify(ChangeKind.ACCOUNTS, ChangeKind.TRANSACTIONS)
        return transaction_id

    async def delete_transaction(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Delete a transaction, reversing its effect on account balances."""
        correlation_id = correlation_id or create_correlation_id()

        try:
            await self._poster.reverse(self._user_id, transaction_id)
        except StorageConflictError as e:
            await self._audit_logger.log_storage_conflict(
                user_id=self._user_id,
                operation="reverse",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except LedgerError as e:
            await self._audit_logger.log_reversal_rejected(
                user_id=self._user_id,
                transaction_id=transaction_id,
                error_code=e.code,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        except Exception as e:
            await self._log_system_error("reverse", e, correlation_id)
            raise

        await self._audit_logger.log_transaction_reversed(
            user_id=self._user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        self._notify(ChangeKind.ACCOUNTS, ChangeKind.TRANSACTIONS)

    async def list_transactions(
        self,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        """Transactions newest first, narrowed by filters."""
        return await self._queries.list_transactions(self._user_id, filters)

    async def get_stats(
        self,
        filters: Optional[TransactionFilters] = None,
    ) -> TransactionStats:
        return await self._queries.get_stats(self._user_id, filters)


def create_app_components(
    backend: Optional[str] = None,
) -> tuple[LedgerStorageInterface, AuditLogger]:
    """
    Factory function to create the storage and audit components.

    Args:
        backend: "memory" or "firestore". Defaults to the configured
                 storage_backend setting.

    Returns:
        (ledger_storage, audit_logger)
    """
    configure_logging()
    backend = backend or get_settings().app.storage_backend

    if backend == "firestore":
        checks = validate_all_settings()
        if not checks["firestore"]:
            logger.error("firestore_settings_invalid", error=checks["firestore_error"])
            raise ValueError(f"Firestore settings invalid: {checks['firestore_error']}")
        client = FirestoreClient()
        storage = FirestoreLedgerStorage(client)
        audit_logger = AuditLogger(FirestoreAuditStorage(client))
    elif backend == "memory":
        storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    logger.info("app_components_created", backend=backend)
    return storage, audit_logger


def create_ledger_service(
    user_id: str,
    backend: Optional[str] = None,
    default_currency: Optional[str] = None,
) -> LedgerService:
    """Build a LedgerService for one user on the configured backend."""
    storage, audit_logger = create_app_components(backend)
    return LedgerService(
        user_id, storage, audit_logger, default_currency=default_currency,
    )

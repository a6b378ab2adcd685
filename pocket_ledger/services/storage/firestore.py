"""
Google Cloud Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because it provides
exactly what the ledger needs:
1. Per-user partitioning (users/{user_id}/accounts, .../transactions)
2. Atomic multi-document transactions with conflict detection and retry
3. Server-assigned document ids and timestamps

TRADEOFFS:
- Transactions must do all reads before any write (the poster already does)
- No native decimal type: amounts are stored as decimal strings so no
  float rounding ever reaches a balance
- Limited query capabilities (transaction filters run in Python)

Documents use camelCase field names, matching the mobile client that
shares the database.
"""

from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import UUID

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from pocket_ledger.config import get_settings
from pocket_ledger.models.account import Account, AccountDraft, AccountType
from pocket_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocket_ledger.models.transaction import (
    Transaction,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from pocket_ledger.services.storage.interface import (
    AtomicScope,
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    StorageConflictError,
    StorageError,
)

T = TypeVar("T")

# Model field -> document field, for account updates
ACCOUNT_FIELD_NAMES = {
    "name": "name",
    "type": "type",
    "currency": "currency",
    "icon": "icon",
    "color": "color",
    "is_archived": "isArchived",
}


# =============================================================================
# DOCUMENT MAPPING
# =============================================================================

def account_to_document(account: Account) -> dict[str, Any]:
    """Convert an Account to a Firestore document (timestamps set by server)."""
    return {
        "userId": account.user_id,
        "name": account.name,
        "type": account.type.value,
        "balance": str(account.balance),
        "currency": account.currency,
        "isArchived": account.is_archived,
        "icon": account.icon,
        "color": account.color,
        "createdAt": firestore.SERVER_TIMESTAMP,
        "updatedAt": firestore.SERVER_TIMESTAMP,
    }


def account_from_document(doc_id: str, data: dict[str, Any]) -> Account:
    """Convert a Firestore document to an Account."""
    return Account(
        id=doc_id,
        user_id=data["userId"],
        name=data["name"],
        type=AccountType(data["type"]),
        # Older clients wrote plain numbers; str() keeps them exact enough
        balance=Decimal(str(data.get("balance", "0"))),
        currency=data.get("currency") or "USD",
        is_archived=bool(data.get("isArchived", False)),
        icon=data.get("icon"),
        color=data.get("color"),
        created_at=data["createdAt"],
        updated_at=data["updatedAt"],
    )


def transaction_to_document(transaction: Transaction) -> dict[str, Any]:
    """Convert a Transaction to a Firestore document (timestamps set by server)."""
    return {
        "userId": transaction.user_id,
        "type": transaction.type.value,
        "amount": str(transaction.amount),
        "description": transaction.description,
        "category": transaction.category.value,
        "date": transaction.date,
        "status": transaction.status.value,
        "accountId": transaction.account_id,
        "fromAccountId": transaction.from_account_id,
        "toAccountId": transaction.to_account_id,
        "notes": transaction.notes,
        "tags": list(transaction.tags),
        "createdAt": firestore.SERVER_TIMESTAMP,
        "updatedAt": firestore.SERVER_TIMESTAMP,
    }


def transaction_from_document(doc_id: str, data: dict[str, Any]) -> Transaction:
    """Convert a Firestore document to a Transaction."""
    return Transaction(
        id=doc_id,
        user_id=data["userId"],
        type=TransactionType(data["type"]),
        amount=Decimal(str(data["amount"])),
        description=data.get("description") or "",
        category=TransactionCategory(data.get("category") or "other"),
        date=data["date"],
        status=TransactionStatus(data.get("status") or "completed"),
        account_id=data.get("accountId"),
        from_account_id=data.get("fromAccountId"),
        to_account_id=data.get("toAccountId"),
        notes=data.get("notes"),
        tags=data.get("tags") or [],
        created_at=data["createdAt"],
        updated_at=data["updatedAt"],
    )


def event_to_document(event: AuditEvent) -> dict[str, Any]:
    """Convert an AuditEvent to a Firestore document."""
    return {
        "timestamp": event.timestamp,
        "eventType": event.event_type.value,
        "severity": event.severity.value,
        "userId": event.user_id,
        "entityType": event.entity_type,
        "entityId": event.entity_id,
        "correlationId": str(event.correlation_id) if event.correlation_id else None,
        "description": event.description,
        "details": event.details,
        "errorCode": event.error_code,
        "errorMessage": event.error_message,
        "isUserAction": event.is_user_action,
    }


def event_from_document(doc_id: str, data: dict[str, Any]) -> AuditEvent:
    """Convert a Firestore document to an AuditEvent."""
    correlation_id = data.get("correlationId")
    return AuditEvent(
        event_id=UUID(doc_id),
        timestamp=data["timestamp"],
        event_type=AuditEventType(data["eventType"]),
        severity=AuditSeverity(data.get("severity") or "info"),
        user_id=data.get("userId"),
        entity_type=data.get("entityType"),
        entity_id=data.get("entityId"),
        correlation_id=UUID(correlation_id) if correlation_id else None,
        description=data["description"],
        details=data.get("details") or {},
        error_code=data.get("errorCode"),
        error_message=data.get("errorMessage"),
        is_user_action=bool(data.get("isUserAction", False)),
    )


def _is_contention(exc: Exception) -> bool:
    """
    Whether exc means Firestore gave up on a contended transaction.

    Depending on the client version, exhausted retries surface either as
    the last Aborted error or as a ValueError chained from it.
    """
    if isinstance(exc, (gcp_exceptions.Aborted, gcp_exceptions.Conflict)):
        return True
    return isinstance(exc, ValueError) and isinstance(
        exc.__cause__, (gcp_exceptions.Aborted, gcp_exceptions.Conflict)
    )


# =============================================================================
# CLIENT
# =============================================================================

class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles authentication and resolves per-user collection references.
    """

    def __init__(self):
        self._client: Optional[firestore.AsyncClient] = None
        self._settings = get_settings().firestore

    @property
    def max_attempts(self) -> int:
        return self._settings.max_attempts

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firestore.AsyncClient:
        """
        Establish connection to Firestore.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                )
                self._client = firestore.AsyncClient(
                    project=self._settings.project_id,
                    credentials=credentials,
                )
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Firestore: {e}")

        return self._client

    def user_document(self, user_id: str) -> firestore.AsyncDocumentReference:
        return self.connect().collection(self._settings.users_collection).document(user_id)

    def accounts(self, user_id: str) -> firestore.AsyncCollectionReference:
        return self.user_document(user_id).collection(self._settings.accounts_collection)

    def transactions(self, user_id: str) -> firestore.AsyncCollectionReference:
        return self.user_document(user_id).collection(self._settings.transactions_collection)

    def audit_log(self) -> firestore.AsyncCollectionReference:
        return self.connect().collection(self._settings.audit_collection)


# =============================================================================
# LEDGER STORAGE
# =============================================================================

class _FirestoreScope(AtomicScope):
    """AtomicScope backed by one Firestore transaction attempt."""

    def __init__(
        self,
        client: FirestoreClient,
        user_id: str,
        transaction: firestore.AsyncTransaction,
    ):
        self._client = client
        self._user_id = user_id
        self._transaction = transaction

    async def get_account(self, account_id: str) -> Optional[Account]:
        ref = self._client.accounts(self._user_id).document(account_id)
        snapshot = await ref.get(transaction=self._transaction)
        if not snapshot.exists:
            return None
        return account_from_document(snapshot.id, snapshot.to_dict())

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        ref = self._client.transactions(self._user_id).document(transaction_id)
        snapshot = await ref.get(transaction=self._transaction)
        if not snapshot.exists:
            return None
        return transaction_from_document(snapshot.id, snapshot.to_dict())

    def new_transaction_id(self) -> str:
        # document() with no id generates one client-side without a round trip
        return self._client.transactions(self._user_id).document().id

    def set_balance(self, account_id: str, balance: Decimal) -> None:
        ref = self._client.accounts(self._user_id).document(account_id)
        self._transaction.update(ref, {
            "balance": str(balance),
            "updatedAt": firestore.SERVER_TIMESTAMP,
        })

    def create_transaction(self, transaction: Transaction) -> None:
        ref = self._client.transactions(self._user_id).document(transaction.id)
        self._transaction.set(ref, transaction_to_document(transaction))

    def delete_transaction(self, transaction_id: str) -> None:
        ref = self._client.transactions(self._user_id).document(transaction_id)
        self._transaction.delete(ref)


class FirestoreLedgerStorage(LedgerStorageInterface):
    """
    Firestore implementation of ledger storage.

    Accounts and transactions are documents in per-user sub-collections.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    async def run_atomic(
        self,
        user_id: str,
        operation: Callable[[AtomicScope], Awaitable[T]],
    ) -> T:
        """
        Run operation in a Firestore transaction.

        Firestore re-runs the callback itself when a commit is aborted by
        contention; once its attempts are exhausted the failure surfaces
        as StorageConflictError. Timeouts and other API errors propagate
        unchanged.
        """
        transaction = self._client.connect().transaction(
            max_attempts=self._client.max_attempts,
        )

        @firestore.async_transactional
        async def _in_transaction(txn: firestore.AsyncTransaction) -> T:
            return await operation(_FirestoreScope(self._client, user_id, txn))

        try:
            return await _in_transaction(transaction)
        except Exception as e:
            if _is_contention(e):
                raise StorageConflictError(
                    f"Firestore transaction for user {user_id} could not commit: {e}"
                ) from e
            raise

    async def create_account(
        self,
        user_id: str,
        draft: AccountDraft,
        currency: str,
    ) -> Account:
        try:
            ref = self._client.accounts(user_id).document()
            document = account_to_document(Account(
                id=ref.id,
                user_id=user_id,
                name=draft.name,
                type=draft.type,
                balance=draft.balance,
                currency=currency,
                icon=draft.icon,
                color=draft.color,
            ))
            await ref.set(document)
            # Read back to pick up the server timestamps
            snapshot = await ref.get()
            return account_from_document(snapshot.id, snapshot.to_dict())
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to create account: {e}") from e

    async def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        try:
            snapshot = await self._client.accounts(user_id).document(account_id).get()
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to get account: {e}") from e
        if not snapshot.exists:
            return None
        return account_from_document(snapshot.id, snapshot.to_dict())

    async def update_account(
        self,
        user_id: str,
        account_id: str,
        fields: dict,
    ) -> Account:
        document = {}
        for name, value in fields.items():
            if isinstance(value, AccountType):
                value = value.value
            document[ACCOUNT_FIELD_NAMES[name]] = value
        document["updatedAt"] = firestore.SERVER_TIMESTAMP

        ref = self._client.accounts(user_id).document(account_id)
        try:
            await ref.update(document)
            snapshot = await ref.get()
        except gcp_exceptions.NotFound:
            raise NotFoundError(f"Account not found: {account_id}")
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to update account: {e}") from e
        return account_from_document(snapshot.id, snapshot.to_dict())

    async def list_accounts(
        self,
        user_id: str,
        include_archived: bool = True,
    ) -> list[Account]:
        query = self._client.accounts(user_id).order_by("createdAt")
        try:
            accounts = [
                account_from_document(snapshot.id, snapshot.to_dict())
                async for snapshot in query.stream()
            ]
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to list accounts: {e}") from e
        if include_archived:
            return accounts
        return [a for a in accounts if not a.is_archived]

    async def get_transaction(
        self,
        user_id: str,
        transaction_id: str,
    ) -> Optional[Transaction]:
        try:
            snapshot = await self._client.transactions(user_id).document(transaction_id).get()
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to get transaction: {e}") from e
        if not snapshot.exists:
            return None
        return transaction_from_document(snapshot.id, snapshot.to_dict())

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        query = self._client.transactions(user_id).order_by(
            "date", direction=firestore.Query.DESCENDING,
        )
        try:
            return [
                transaction_from_document(snapshot.id, snapshot.to_dict())
                async for snapshot in query.stream()
            ]
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to list transactions: {e}") from e


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class FirestoreAuditStorage(AuditStorageInterface):
    """
    Firestore implementation of audit log storage.

    Audit events are append-only, keyed by event_id.
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            ref = self._client.audit_log().document(str(event.event_id))
            await ref.set(event_to_document(event))
            return True
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    async def _query(self, query) -> list[AuditEvent]:
        try:
            return [
                event_from_document(snapshot.id, snapshot.to_dict())
                async for snapshot in query.stream()
            ]
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        query = self._client.audit_log().where(
            filter=FieldFilter("correlationId", "==", str(correlation_id)),
        )
        events = await self._query(query)
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        query = (
            self._client.audit_log()
            .where(filter=FieldFilter("entityType", "==", entity_type))
            .where(filter=FieldFilter("entityId", "==", entity_id))
        )
        events = await self._query(query)
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        query = (
            self._client.audit_log()
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        return await self._query(query)

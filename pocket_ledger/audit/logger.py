"""
Audit Logger

DESIGN DECISION: Every mutation of the ledger is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability for rejected postings
3. Visibility into storage conflicts

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a failed audit write never fails a posting
  that has already committed)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocket_ledger.config import get_settings
from pocket_ledger.models.audit import AuditEvent, AuditEventBuilder
from pocket_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging() -> str:
    """
    Route structlog output through the stdlib root logger.

    The level comes from LOG_LEVEL; DEBUG_MODE forces DEBUG.

    Returns the level name applied.
    """
    settings = get_settings().app
    level = "DEBUG" if settings.debug_mode else settings.log_level.upper()
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)
    return level


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_created(
        self,
        user_id: str,
        account_id: str,
        name: str,
        account_type: str,
        opening_balance: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.account_created(
            user_id=user_id,
            account_id=account_id,
            name=name,
            account_type=account_type,
            opening_balance=opening_balance,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_updated(
        self,
        user_id: str,
        account_id: str,
        fields: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.account_updated(
            user_id=user_id,
            account_id=account_id,
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_archived(
        self,
        user_id: str,
        account_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.account_archived(
            user_id=user_id,
            account_id=account_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_account_operation_rejected(
        self,
        user_id: str,
        operation: str,
        account_id: Optional[str],
        error_code: str,
        error_message: str,
        details: dict,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.account_operation_rejected(
            user_id=user_id,
            operation=operation,
            account_id=account_id,
            error_code=error_code,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_posted(
        self,
        user_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: str,
        balance_changes: dict[str, str],
        correlation_id: UUID,
    ) -> None:
        """Log a committed posting with its per-account balance deltas."""
        event = AuditEventBuilder.transaction_posted(
            user_id=user_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            balance_changes=balance_changes,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_reversed(
        self,
        user_id: str,
        transaction_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_reversed(
            user_id=user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_posting_rejected(
        self,
        user_id: str,
        error_code: str,
        error_message: str,
        details: dict,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.posting_rejected(
            user_id=user_id,
            error_code=error_code,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_reversal_rejected(
        self,
        user_id: str,
        transaction_id: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.reversal_rejected(
            user_id=user_id,
            transaction_id=transaction_id,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_conflict(
        self,
        user_id: str,
        operation: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.storage_conflict(
            user_id=user_id,
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Log an unexpected failure that is not a ledger rule violation."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
            user_id=user_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()

"""Services package."""

from pocket_ledger.services.storage import (
    AtomicScope,
    AuditStorageInterface,
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageConflictError,
    StorageError,
)

__all__ = [
    # Storage services
    "AtomicScope",
    "AuditStorageInterface",
    "ConnectionError",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageConflictError",
    "StorageError",
]

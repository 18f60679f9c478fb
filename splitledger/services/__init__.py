"""Services package."""

from splitledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseFilter,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerSnapshot,
    LedgerStorageInterface,
    LedgerTransaction,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseFilter",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerSnapshot",
    "LedgerStorageInterface",
    "LedgerTransaction",
    "NotFoundError",
    "StorageError",
]

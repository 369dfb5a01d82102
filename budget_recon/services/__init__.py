"""Services package."""

from budget_recon.services.storage import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryMatchStore,
    InMemorySeriesStore,
    InMemoryTransactionSource,
    MatchStoreInterface,
    NotFoundError,
    SeriesStoreInterface,
    StorageError,
    StorageUnavailableError,
    TransactionSourceInterface,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConflictError",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryMatchStore",
    "InMemorySeriesStore",
    "InMemoryTransactionSource",
    "MatchStoreInterface",
    "NotFoundError",
    "SeriesStoreInterface",
    "StorageError",
    "StorageUnavailableError",
    "TransactionSourceInterface",
]

"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend; a database backend implements the same
interfaces.
"""

from budget_recon.services.storage.interface import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    MatchStoreInterface,
    NotFoundError,
    SeriesStoreInterface,
    StorageError,
    StorageUnavailableError,
    TransactionSourceInterface,
)
from budget_recon.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryMatchStore,
    InMemorySeriesStore,
    InMemoryTransactionSource,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "MatchStoreInterface",
    "SeriesStoreInterface",
    "TransactionSourceInterface",
    # Exceptions
    "ConflictError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "StorageUnavailableError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryMatchStore",
    "InMemorySeriesStore",
    "InMemoryTransactionSource",
]

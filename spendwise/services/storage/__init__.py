"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage:
in-memory (default, tests), local JSON files (offline) and Google Sheets
(hosted). The session controller only ever sees the interfaces.
"""

from spendwise.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    NotFoundError,
    PreferenceStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from spendwise.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCollectionStorage,
    InMemoryPreferenceStorage,
    InMemoryTransactionStorage,
)
from spendwise.services.storage.local import (
    LocalCollectionStorage,
    LocalJSONStore,
    LocalPreferenceStorage,
    LocalTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CollectionStorageInterface",
    "PreferenceStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryCollectionStorage",
    "InMemoryPreferenceStorage",
    "InMemoryTransactionStorage",
    # Local JSON implementation
    "LocalCollectionStorage",
    "LocalJSONStore",
    "LocalPreferenceStorage",
    "LocalTransactionStorage",
]

"""Services package."""

from spendwise.services.storage import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    NotFoundError,
    PreferenceStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "CollectionStorageInterface",
    "ConnectionError",
    "NotFoundError",
    "PreferenceStorageInterface",
    "StorageError",
    "TransactionStorageInterface",
]

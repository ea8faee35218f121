"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the session controller decoupled from storage implementation

Two shapes of repository exist:

- Transactions get per-record create/update/delete.
- Every other collection (bills, goals, budgets, notifications, saved
  filters) is synced as a whole: list_all() on load, replace_all() after
  each change. This is deliberately naive. Two sessions writing the same
  collection will overwrite each other (last write wins), and callers
  should assume nothing finer grained.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from spendwise.models.audit import AuditEvent
from spendwise.models.finance import Transaction

T = TypeVar("T")


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Any storage implementation (Google Sheets, JSON files, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """
        List all stored transactions, newest date first.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Returns:
            The transaction as stored

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace an existing transaction with the same id.

        Raises:
            StorageError: If update fails
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> None:
        """
        Delete a transaction by id. Deleting a missing id is a no-op.

        Raises:
            StorageError: If delete fails
        """
        pass


class CollectionStorageInterface(ABC, Generic[T]):
    """
    Full-collection sync storage.

    replace_all() overwrites everything previously stored for the
    collection. There is no per-item diffing and no protection against
    concurrent writers from other sessions.
    """

    @abstractmethod
    async def list_all(self) -> list[T]:
        """Return every stored item."""
        pass

    @abstractmethod
    async def replace_all(self, items: list[T]) -> None:
        """
        Overwrite the stored collection with `items`.

        Raises:
            StorageError: If the write fails
        """
        pass


class PreferenceStorageInterface(ABC):
    """
    Small key/value store for per-user preferences (expected income).

    Kept separate from the collections because these values were never
    synced to the hosted backend.
    """

    @abstractmethod
    async def get_value(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    async def set_value(self, key: str, value: Any) -> None:
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
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass

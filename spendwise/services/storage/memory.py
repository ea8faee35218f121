"""
In-Memory Storage

Process-local implementations of the storage interfaces. Used as the
default backend and throughout the test suite. Stored values are copied
on the way in and out so callers can never alias backend state.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from spendwise.models.audit import AuditEvent
from spendwise.models.finance import Transaction
from spendwise.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    NotFoundError,
    PreferenceStorageInterface,
    TransactionStorageInterface,
)

M = TypeVar("M", bound=BaseModel)


class InMemoryTransactionStorage(TransactionStorageInterface):

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._items: dict[str, Transaction] = {
            t.id: t.model_copy() for t in (transactions or [])
        }

    async def list_transactions(self) -> list[Transaction]:
        items = [t.model_copy() for t in self._items.values()]
        items.sort(key=lambda t: t.date, reverse=True)
        return items

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        self._items[transaction.id] = transaction.model_copy()
        return transaction

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id not in self._items:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        self._items[transaction.id] = transaction.model_copy()
        return transaction

    async def delete_transaction(self, transaction_id: str) -> None:
        self._items.pop(transaction_id, None)


class InMemoryCollectionStorage(CollectionStorageInterface[M], Generic[M]):

    def __init__(self, items: Optional[list[M]] = None):
        self._items: list[M] = [i.model_copy() for i in (items or [])]
        self.write_count = 0

    async def list_all(self) -> list[M]:
        return [i.model_copy() for i in self._items]

    async def replace_all(self, items: list[M]) -> None:
        self._items = [i.model_copy() for i in items]
        self.write_count += 1


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]


class InMemoryPreferenceStorage(PreferenceStorageInterface):

    def __init__(self, values: Optional[dict[str, Any]] = None):
        self._values = dict(values or {})

    async def get_value(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    async def set_value(self, key: str, value: Any) -> None:
        self._values[key] = value

"""
Local JSON Storage

Offline backend: every collection is one JSON file under a data
directory. File names are the web client's local-storage keys
(spendwise_expenses, spendwise_bills, ...) so exported data drops in as-is.

TRADEOFFS:
- Whole file rewritten on every change (fine for personal volumes)
- No locking; one process per data directory
"""

import json
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from spendwise.models.finance import Transaction
from spendwise.services.storage.interface import (
    CollectionStorageInterface,
    NotFoundError,
    PreferenceStorageInterface,
    StorageError,
    TransactionStorageInterface,
)

M = TypeVar("M", bound=BaseModel)

# File keys
TRANSACTIONS_KEY = "spendwise_expenses"
BILLS_KEY = "spendwise_bills"
GOALS_KEY = "spendwise_goals"
BUDGETS_KEY = "spendwise_budgets"
NOTIFICATIONS_KEY = "spendwise_notifications"
FILTERS_KEY = "spendwise_filters"
PREFERENCES_KEY = "spendwise_preferences"


class LocalJSONStore:
    """Reads and writes JSON documents by key inside one directory."""

    def __init__(self, data_dir: str | Path):
        self._dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def read(self, key: str, default: Any) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}")

    def write(self, key: str, data: Any) -> None:
        path = self._path(key)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}")


def _load_models(model: type[M], raw: list) -> list[M]:
    items = []
    for entry in raw:
        try:
            items.append(model.model_validate(entry))
        except ValidationError:
            continue  # Skip malformed entries
    return items


class LocalTransactionStorage(TransactionStorageInterface):

    def __init__(self, store: LocalJSONStore):
        self._store = store

    def _read(self) -> list[Transaction]:
        return _load_models(Transaction, self._store.read(TRANSACTIONS_KEY, []))

    def _write(self, transactions: list[Transaction]) -> None:
        self._store.write(
            TRANSACTIONS_KEY,
            [t.model_dump(mode="json") for t in transactions],
        )

    async def list_transactions(self) -> list[Transaction]:
        transactions = self._read()
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        self._write([transaction, *self._read()])
        return transaction

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        existing = self._read()
        if not any(t.id == transaction.id for t in existing):
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        self._write([transaction if t.id == transaction.id else t for t in existing])
        return transaction

    async def delete_transaction(self, transaction_id: str) -> None:
        self._write([t for t in self._read() if t.id != transaction_id])


class LocalCollectionStorage(CollectionStorageInterface[M], Generic[M]):

    def __init__(self, store: LocalJSONStore, key: str, model: type[M]):
        self._store = store
        self._key = key
        self._model = model

    async def list_all(self) -> list[M]:
        return _load_models(self._model, self._store.read(self._key, []))

    async def replace_all(self, items: list[M]) -> None:
        self._store.write(self._key, [i.model_dump(mode="json") for i in items])


class LocalPreferenceStorage(PreferenceStorageInterface):

    def __init__(self, store: LocalJSONStore):
        self._store = store

    async def get_value(self, key: str, default: Optional[Any] = None) -> Any:
        return self._store.read(PREFERENCES_KEY, {}).get(key, default)

    async def set_value(self, key: str, value: Any) -> None:
        values = self._store.read(PREFERENCES_KEY, {})
        values[key] = value
        self._store.write(PREFERENCES_KEY, values)

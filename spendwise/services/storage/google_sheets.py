"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the hosted backend because:
1. Users can view and fix their data directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions; replace_all() clears and rewrites a whole worksheet
- Limited query capabilities (we filter in Python)

Each collection is one worksheet whose header row is the model's field
names. Values are written as their JSON form so they round-trip through
pydantic on the way back.

Only connection setup is retried. Writes are attempted once; a failed
write surfaces as StorageError and the session keeps its local state.
"""

import json
from typing import Generic, Optional, TypeVar

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from spendwise.config import get_settings
from spendwise.models.audit import AuditEvent, AuditEventType, AuditSeverity
from spendwise.models.finance import Transaction
from spendwise.services.storage.interface import (
    AuditStorageInterface,
    CollectionStorageInterface,
    ConnectionError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)

M = TypeVar("M", bound=BaseModel)

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def model_columns(model: type[BaseModel]) -> list[str]:
    """Header row for a model's worksheet."""
    return list(model.model_fields.keys())


def model_to_row(item: BaseModel, columns: list[str]) -> list[str]:
    data = item.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        elif isinstance(value, (dict, list)):
            row.append(json.dumps(value))
        else:
            row.append(str(value))
    return row


def row_to_model(model: type[M], row: list[str], columns: list[str]) -> M:
    data = {
        column: cell
        for column, cell in zip(columns, row)
        if cell != ""
    }
    return model.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ConnectionError),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row; the id is always column A.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._columns = model_columns(Transaction)
        self._sheet_name = get_settings().google_sheets.transactions_sheet_name

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._sheet_name, self._columns)

    def _find_row(self, sheet: gspread.Worksheet, transaction_id: str) -> Optional[int]:
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if row and row[0] == transaction_id:
                return idx
        return None

    async def list_transactions(self) -> list[Transaction]:
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                transactions.append(row_to_model(Transaction, row, self._columns))
            except ValidationError:
                continue  # Skip malformed rows

        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        try:
            self._sheet().append_row(
                model_to_row(transaction, self._columns),
                value_input_option="RAW",
            )
            return transaction
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        try:
            sheet = self._sheet()
            idx = self._find_row(sheet, transaction.id)
            if idx is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            sheet.update(
                range_name=f"A{idx}",
                values=[model_to_row(transaction, self._columns)],
                value_input_option="RAW",
            )
            return transaction
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, transaction_id: str) -> None:
        try:
            sheet = self._sheet()
            idx = self._find_row(sheet, transaction_id)
            if idx is not None:
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")


class GoogleSheetsCollectionStorage(CollectionStorageInterface[M], Generic[M]):
    """
    Full-sync collection stored in one worksheet.

    replace_all() clears the sheet and writes header + rows. A crash
    between the two leaves an empty sheet; the next successful sync
    restores it from the session's state.
    """

    def __init__(
        self,
        model: type[M],
        sheet_name: str,
        client: Optional[GoogleSheetsClient] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._model = model
        self._sheet_name = sheet_name
        self._columns = model_columns(model)

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._sheet_name, self._columns)

    async def list_all(self) -> list[M]:
        try:
            all_rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list {self._sheet_name}: {e}")

        items = []
        for row in all_rows:
            if not any(row):
                continue
            try:
                items.append(row_to_model(self._model, row, self._columns))
            except ValidationError:
                continue
        return items

    async def replace_all(self, items: list[M]) -> None:
        try:
            sheet = self._sheet()
            sheet.clear()
            sheet.append_row(self._columns)
            if items:
                sheet.append_rows(
                    [model_to_row(item, self._columns) for item in items],
                    value_input_option="RAW",
                )
        except Exception as e:
            raise StorageError(f"Failed to sync {self._sheet_name}: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, ValidationError):
                    continue

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

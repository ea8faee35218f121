"""Query execution package."""

from spendwise.queries.executor import (
    BillStatus,
    BudgetStatus,
    LedgerTotals,
    QueryExecutor,
    bill_status,
    matches_filter,
)

__all__ = [
    "BillStatus",
    "BudgetStatus",
    "LedgerTotals",
    "QueryExecutor",
    "bill_status",
    "matches_filter",
]

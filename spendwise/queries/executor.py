"""
Ledger Query Engine

DESIGN DECISION: Queries are DETERMINISTIC and read-only.
Everything the UI shows about the ledger (filtered lists, totals,
budget usage, bill status) is derived here from the session state,
never stored. The AI collaborator is not involved; it only ever
receives snapshots.
"""

import csv
import io
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from spendwise.alerts import category_spend, compute_balance, period_window
from spendwise.models.finance import (
    Bill,
    Budget,
    BudgetPeriod,
    FilterConfig,
    Transaction,
)
from spendwise.models.state import AppState

ZERO = Decimal("0")

# A bill within this many days of its due day shows as renewing
RENEWING_WINDOW_DAYS = 5

CSV_HEADERS = ["Date", "Description", "Category", "Type", "Amount", "Notes"]


class BillStatus(str, Enum):
    PAID = "paid"
    OVERDUE = "overdue"
    RENEWING = "renewing"
    UPCOMING = "upcoming"


class LedgerTotals(BaseModel):
    income: Decimal
    expense: Decimal
    balance: Decimal


class BudgetStatus(BaseModel):
    """Budget usage in the period containing the reference date."""

    category: str
    limit: Decimal
    period: BudgetPeriod
    spent: Decimal
    percent: Decimal

    @property
    def is_over(self) -> bool:
        return self.spent > self.limit


def matches_filter(transaction: Transaction, config: FilterConfig) -> bool:
    """Does a transaction pass every active criterion in `config`?"""
    if config.query:
        q = config.query.lower()
        haystacks = [
            transaction.description.lower(),
            transaction.category.lower(),
            (transaction.notes or "").lower(),
            str(transaction.amount),
        ]
        if not any(q in h for h in haystacks):
            return False

    if config.transaction_type != "all" and transaction.type.value != config.transaction_type:
        return False

    if config.categories and transaction.category not in config.categories:
        return False

    if config.date_from and transaction.date < config.date_from:
        return False
    if config.date_to and transaction.date > config.date_to:
        return False

    if config.min_amount is not None and transaction.amount < config.min_amount:
        return False
    if config.max_amount is not None and transaction.amount > config.max_amount:
        return False

    return True


def bill_status(bill: Bill, today: date) -> BillStatus:
    if bill.is_paid_in_month(today):
        return BillStatus.PAID
    if today.day > bill.due_day:
        return BillStatus.OVERDUE
    if bill.due_day - today.day <= RENEWING_WINDOW_DAYS:
        return BillStatus.RENEWING
    return BillStatus.UPCOMING


class QueryExecutor:
    """
    Executes read-only queries over a session snapshot.

    GUARANTEES:
    - Only reads the snapshot it was given
    - Never mutates it
    """

    def __init__(self, state: AppState):
        self._state = state

    # ---------------------------------------------------------------- lists

    def filter_transactions(self, config: FilterConfig) -> list[Transaction]:
        return [t for t in self._state.transactions if matches_filter(t, config)]

    def group_by_date(
        self,
        transactions: list[Transaction],
    ) -> "OrderedDict[date, list[Transaction]]":
        """Transactions grouped by day, newest day first."""
        groups: dict[date, list[Transaction]] = {}
        for t in transactions:
            groups.setdefault(t.date, []).append(t)
        return OrderedDict(sorted(groups.items(), key=lambda kv: kv[0], reverse=True))

    def recurring_templates(self) -> list[Transaction]:
        """First recurring transaction per description, for quick re-entry."""
        seen: dict[str, Transaction] = {}
        for t in self._state.transactions:
            if t.is_recurring and t.description not in seen:
                seen[t.description] = t
        return list(seen.values())

    # ----------------------------------------------------------- aggregates

    def totals(self) -> LedgerTotals:
        income = sum((t.amount for t in self._state.transactions if t.is_income), ZERO)
        expense = sum((t.amount for t in self._state.transactions if t.is_expense), ZERO)
        return LedgerTotals(
            income=income,
            expense=expense,
            balance=compute_balance(self._state.transactions),
        )

    def to_csv(self, transactions: Optional[list[Transaction]] = None) -> str:
        """
        Report export: one row per transaction, in the order given.

        Defaults to the whole ledger; pass a filtered list to export a view.
        """
        if transactions is None:
            transactions = self._state.transactions

        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for t in transactions:
            writer.writerow([
                t.date.isoformat(),
                t.description,
                t.category,
                t.type.value,
                f"{t.amount:.2f}",
                t.notes or "",
            ])
        return output.getvalue()

    def expense_breakdown(self) -> dict[str, Decimal]:
        """Expense total per category, largest first, zero categories dropped."""
        totals: dict[str, Decimal] = {}
        for t in self._state.transactions:
            if t.is_expense:
                totals[t.category] = totals.get(t.category, ZERO) + t.amount
        return dict(
            sorted(
                ((k, v) for k, v in totals.items() if v > 0),
                key=lambda kv: kv[1],
                reverse=True,
            )
        )

    def budget_status(self, budget: Budget, today: date) -> BudgetStatus:
        start, end = period_window(budget.period, today)
        spent = category_spend(self._state.transactions, budget.category, start, end)
        return BudgetStatus(
            category=budget.category,
            limit=budget.limit,
            period=budget.period,
            spent=spent,
            percent=spent / budget.limit * 100,
        )

    def budget_statuses(self, today: date) -> list[BudgetStatus]:
        """All budgets, highest usage first."""
        statuses = [self.budget_status(b, today) for b in self._state.budgets]
        statuses.sort(key=lambda s: s.percent, reverse=True)
        return statuses

    def over_budget(self, today: date) -> list[BudgetStatus]:
        return [s for s in self.budget_statuses(today) if s.is_over]

    # ---------------------------------------------------------------- bills

    def unpaid_bills(self, today: date) -> list[Bill]:
        """Bills not yet paid this month, overdue first then by due day."""
        unpaid = [b for b in self._state.bills if not b.is_paid_in_month(today)]

        def sort_key(bill: Bill) -> int:
            return bill.due_day - 31 if bill.due_day < today.day else bill.due_day

        return sorted(unpaid, key=sort_key)

    def monthly_fixed_total(self) -> Decimal:
        return sum((b.amount for b in self._state.bills), ZERO)

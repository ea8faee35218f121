"""
Session State

DESIGN DECISION: Everything the session knows lives in one explicit
AppState value owned by the SessionController. Core rules receive the
slices they need and hand back new slices; the controller assigns them.
There is exactly one writer, so whole-value replacement is enough.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from spendwise.models.finance import (
    AppNotification,
    Bill,
    Budget,
    Goal,
    SavedFilter,
    Transaction,
)


class AppState(BaseModel):
    """Snapshot of all session collections."""

    transactions: list[Transaction] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    notifications: list[AppNotification] = Field(default_factory=list)
    saved_filters: list[SavedFilter] = Field(default_factory=list)
    expected_income: Decimal = Decimal("0")

    def find_transaction(self, transaction_id: str):
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def find_goal(self, goal_id: str):
        return next((g for g in self.goals if g.id == goal_id), None)

    def find_bill(self, bill_id: str):
        return next((b for b in self.bills if b.id == bill_id), None)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

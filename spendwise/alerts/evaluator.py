"""
Budget/Goal Alert Evaluator

Inspects one accepted transaction against the rest of the ledger and
decides which notifications it triggers. Rules run in a fixed order:

1. Income confirmation   - every income transaction
2. Goal milestone        - crossing 50% or 100% of a linked goal
3. Low balance           - balance drops below the threshold
4. Budget exceeded       - category spend in the period goes over limit

DESIGN DECISION: Every threshold rule is a crossing detector. It compares
the ledger before and after this single change and fires only on the
transition, so repeated transactions above a threshold stay quiet.
- Create: "before" is the ledger without the transaction
- Edit: "before" still holds the pre-edit version, so an edit that leaves
  a total on the same side of a threshold is quiet
A batch of transactions has to be fed through one at a time to be judged
correctly.

This module also owns the goal-amount bookkeeping for create, edit and
delete, since the milestone rule and those adjustments must agree on
what counts as a contribution.
"""

import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from spendwise.models.finance import (
    Budget,
    BudgetPeriod,
    Goal,
    NotificationType,
    Transaction,
)
from spendwise.notifications import NotificationDraft, format_money

ZERO = Decimal("0")

HALFWAY_PERCENT = Decimal("50")
COMPLETE_PERCENT = Decimal("100")


# =============================================================================
# PERIOD AND BALANCE HELPERS
# =============================================================================

def period_window(period: BudgetPeriod, anchor: date) -> tuple[date, date]:
    """
    Inclusive date range of the budget period containing `anchor`.

    Monthly periods start on the 1st; weekly periods start on Sunday.
    """
    if period == BudgetPeriod.WEEKLY:
        # date.weekday(): Monday=0 ... Sunday=6
        start = anchor - timedelta(days=(anchor.weekday() + 1) % 7)
        return start, start + timedelta(days=6)

    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last_day)


def compute_balance(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of income minus sum of expenses."""
    return sum((t.signed_amount for t in transactions), ZERO)


def category_spend(
    transactions: Iterable[Transaction],
    category: str,
    start: date,
    end: date,
) -> Decimal:
    return sum(
        (
            t.amount
            for t in transactions
            if t.is_expense and t.category == category and start <= t.date <= end
        ),
        ZERO,
    )


# =============================================================================
# GOAL BOOKKEEPING
# =============================================================================

def goal_contribution(transaction: Optional[Transaction], goal_id: str) -> Decimal:
    """
    How much `transaction` adds to goal `goal_id`.

    Only expenses count: money moved from spending into savings.
    """
    if transaction is None or not transaction.is_expense or transaction.goal_id != goal_id:
        return ZERO
    return transaction.amount


def _adjust_goals(
    goals: list[Goal],
    removed: Optional[Transaction],
    added: Optional[Transaction],
) -> list[Goal]:
    updated = []
    for goal in goals:
        delta = goal_contribution(added, goal.id) - goal_contribution(removed, goal.id)
        if delta == 0:
            updated.append(goal)
            continue
        amount = max(ZERO, goal.current_amount + delta)
        updated.append(goal.model_copy(update={"current_amount": amount}))
    return updated


def apply_goal_contribution(goals: list[Goal], transaction: Transaction) -> list[Goal]:
    """Goals after `transaction` was created."""
    return _adjust_goals(goals, removed=None, added=transaction)


def revert_goal_contribution(goals: list[Goal], transaction: Transaction) -> list[Goal]:
    """Goals after `transaction` was deleted. Never goes below zero."""
    return _adjust_goals(goals, removed=transaction, added=None)


def reconcile_goal_contributions(
    goals: list[Goal],
    original: Transaction,
    updated: Transaction,
) -> list[Goal]:
    """
    Goals after `original` was edited into `updated`.

    The old contribution is taken back and the new one applied, which
    also covers moving a transaction from one goal to another.
    """
    return _adjust_goals(goals, removed=original, added=updated)


# =============================================================================
# EVALUATOR
# =============================================================================

class AlertEvaluator:
    """
    Decides which notifications a single transaction triggers.

    Stateless apart from its thresholds; every call gets the ledger
    slices it needs.
    """

    def __init__(
        self,
        low_balance_threshold: Decimal = Decimal("2000"),
        currency_symbol: str = "₹",
    ):
        self._low_balance_threshold = Decimal(low_balance_threshold)
        self._currency = currency_symbol

    def _money(self, amount: Decimal) -> str:
        return format_money(amount, self._currency)

    def evaluate(
        self,
        transaction: Transaction,
        other_transactions: list[Transaction],
        budgets: list[Budget],
        goals: list[Goal],
        replaced: Optional[Transaction] = None,
    ) -> list[NotificationDraft]:
        """
        Notifications triggered by `transaction`.

        Args:
            transaction: The transaction just created or updated
            other_transactions: Every other transaction in the ledger
                (must NOT contain `transaction` or its pre-edit version)
            budgets: Current budgets
            goals: Current goals, i.e. before this change was applied
            replaced: The pre-edit version when `transaction` is an edit

        Returns:
            Drafts in rule order
        """
        drafts: list[NotificationDraft] = []

        if transaction.is_income and not (replaced is not None and replaced.is_income):
            drafts.append(self._income_received(transaction))

        milestone = self._goal_milestone(transaction, goals, replaced)
        if milestone:
            drafts.append(milestone)

        low_balance = self._low_balance(transaction, other_transactions, replaced)
        if low_balance:
            drafts.append(low_balance)

        exceeded = self._budget_exceeded(transaction, other_transactions, budgets, replaced)
        if exceeded:
            drafts.append(exceeded)

        return drafts

    def _income_received(self, transaction: Transaction) -> NotificationDraft:
        return NotificationDraft(
            title="Income Received",
            message=(
                f"You received {self._money(transaction.amount)} "
                f"from {transaction.description}."
            ),
            type=NotificationType.SUCCESS,
        )

    def _goal_milestone(
        self,
        transaction: Transaction,
        goals: list[Goal],
        replaced: Optional[Transaction] = None,
    ) -> Optional[NotificationDraft]:
        if not transaction.goal_id:
            return None
        goal = next((g for g in goals if g.id == transaction.goal_id), None)
        if goal is None:
            return None

        contribution = goal_contribution(transaction, goal.id)
        if contribution == 0:
            return None

        new_amount = max(
            ZERO,
            goal.current_amount - goal_contribution(replaced, goal.id) + contribution,
        )
        before = goal.percent_of(goal.current_amount)
        after = goal.percent_of(new_amount)
        if before is None or after is None:
            # Target <= 0: no meaningful percentage
            return None

        if before < COMPLETE_PERCENT <= after:
            return NotificationDraft(
                title="Goal Completed! 🎉",
                message=f"You've reached your goal: {goal.name}!",
                type=NotificationType.SUCCESS,
            )
        if before < HALFWAY_PERCENT <= after:
            return NotificationDraft(
                title="Halfway There!",
                message=f"You're 50% of the way to {goal.name}. Keep it up!",
                type=NotificationType.INFO,
            )
        return None

    def _low_balance(
        self,
        transaction: Transaction,
        other_transactions: list[Transaction],
        replaced: Optional[Transaction] = None,
    ) -> Optional[NotificationDraft]:
        rest = compute_balance(other_transactions)
        before = rest + replaced.signed_amount if replaced is not None else rest
        after = rest + transaction.signed_amount
        threshold = self._low_balance_threshold

        if after < threshold <= before:
            return NotificationDraft(
                title="Low Balance Warning",
                message=(
                    f"Your balance has dropped below {self._money(threshold)}. "
                    f"Current: {self._money(after)}"
                ),
                type=NotificationType.ALERT,
            )
        return None

    def _budget_exceeded(
        self,
        transaction: Transaction,
        other_transactions: list[Transaction],
        budgets: list[Budget],
        replaced: Optional[Transaction] = None,
    ) -> Optional[NotificationDraft]:
        if not transaction.is_expense:
            return None
        budget = next((b for b in budgets if b.category == transaction.category), None)
        if budget is None:
            return None

        start, end = period_window(budget.period, transaction.date)
        previous = category_spend(
            [replaced, *other_transactions] if replaced is not None else other_transactions,
            transaction.category,
            start,
            end,
        )
        spent = category_spend(
            [transaction, *other_transactions],
            transaction.category,
            start,
            end,
        )

        if spent > budget.limit and previous <= budget.limit:
            return NotificationDraft(
                title="Budget Exceeded",
                message=(
                    f"You've exceeded your {budget.period.value} limit "
                    f"for {transaction.category}."
                ),
                type=NotificationType.ALERT,
            )
        return None

"""Budget and goal alert rules."""

from spendwise.alerts.evaluator import (
    AlertEvaluator,
    apply_goal_contribution,
    category_spend,
    compute_balance,
    goal_contribution,
    period_window,
    reconcile_goal_contributions,
    revert_goal_contribution,
)

__all__ = [
    "AlertEvaluator",
    "apply_goal_contribution",
    "category_spend",
    "compute_balance",
    "goal_contribution",
    "period_window",
    "reconcile_goal_contributions",
    "revert_goal_contribution",
]

"""
SpendWise - Source Package

Personal-finance tracking: income and expense transactions, budgets,
recurring bills and savings goals, with automatic bill payment and
threshold notifications.

DESIGN PRINCIPLES:
1. Session state is explicit and owned by one controller
2. Core rules are pure: slices in, new slices out
3. Local state is optimistic; persistence failures become notifications
4. Every state change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "SpendWise Team"

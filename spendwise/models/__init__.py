"""
Data Models Package

This package contains all Pydantic models used in SpendWise.
All data flowing through the system must conform to these schemas.
"""

from spendwise.models.finance import (
    AppNotification,
    Bill,
    Budget,
    BudgetPeriod,
    DetectedSubscription,
    ExpenseCategory,
    FilterConfig,
    Goal,
    IncomeCategory,
    InsightData,
    NotificationType,
    PriceChange,
    ReceiptData,
    RedundantSubscription,
    SavedFilter,
    SpendingAnomaly,
    SpendingPrediction,
    SubscriptionAnalysis,
    Transaction,
    TransactionType,
    new_id,
    now_ms,
)
from spendwise.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from spendwise.models.state import AppState

__all__ = [
    # Ledger models
    "AppNotification",
    "Bill",
    "Budget",
    "BudgetPeriod",
    "ExpenseCategory",
    "FilterConfig",
    "Goal",
    "IncomeCategory",
    "NotificationType",
    "SavedFilter",
    "Transaction",
    "TransactionType",
    "new_id",
    "now_ms",
    # AI result models
    "DetectedSubscription",
    "InsightData",
    "PriceChange",
    "ReceiptData",
    "RedundantSubscription",
    "SpendingAnomaly",
    "SpendingPrediction",
    "SubscriptionAnalysis",
    # Session state
    "AppState",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

"""
Core Data Models for SpendWise

These models define the schemas for everything the session holds:
transactions, recurring bills, budgets, savings goals and notifications.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Be replaced as whole values, never mutated in place by the core

DESIGN DECISION: Categories are free-form strings on the entities.
The ExpenseCategory / IncomeCategory enums are the conventional vocabulary
the UI offers, but persisted data from older sessions may carry anything.
"""

import time
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid4())


def _category_value(v):
    if isinstance(v, Enum):
        return v.value
    return v


CategoryName = Annotated[str, BeforeValidator(_category_value)]

# Field named `date` below shadows the type inside class bodies
CalendarDate = date


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    EXPENSE = "expense"
    INCOME = "income"


class ExpenseCategory(str, Enum):
    """Conventional expense categories."""
    FOOD = "Food"
    TRANSPORT = "Transport"
    UTILITIES = "Utilities"
    ENTERTAINMENT = "Entertainment"
    SHOPPING = "Shopping"
    HEALTH = "Health"
    TRAVEL = "Travel"
    BILLS = "Bills"
    SAVINGS = "Savings"
    OTHER = "Other"


class IncomeCategory(str, Enum):
    """Conventional income categories."""
    SALARY = "Salary"
    FREELANCE = "Freelance"
    INVESTMENT = "Investment"
    GIFT = "Gift"
    OTHER = "Other Income"


class BudgetPeriod(str, Enum):
    """
    Budget reset period.

    MONTHLY resets on the first of the calendar month.
    WEEKLY resets on the most recent Sunday.
    """
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class NotificationType(str, Enum):
    """Severity/flavour of a user notification."""
    ALERT = "alert"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


# =============================================================================
# CORE LEDGER MODELS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense entry.

    Created by the user or synthesized by the bill scheduler.
    A transaction may be linked to a savings goal (goal_id) or to a
    recurring bill (bill_id); the engine reasons about one link at a time.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Unique transaction ID"
    )
    type: TransactionType = Field(
        default=TransactionType.EXPENSE,
        description="Expense or income"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount, never negative; direction comes from type"
    )
    description: str = Field(
        default="",
        max_length=200,
    )
    category: CategoryName = Field(
        default=ExpenseCategory.OTHER.value,
        description="Category name (see ExpenseCategory / IncomeCategory)"
    )
    date: CalendarDate = Field(
        ...,
        description="Calendar date of the transaction"
    )
    created_at: int = Field(
        default_factory=now_ms,
        description="Creation timestamp, epoch milliseconds"
    )

    notes: Optional[str] = Field(default=None, max_length=1000)
    attachment: Optional[str] = Field(
        default=None,
        description="Base64 receipt image, opaque to the engine"
    )
    is_recurring: bool = False
    goal_id: Optional[str] = None
    bill_id: Optional[str] = None

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def signed_amount(self) -> Decimal:
        """Contribution of this transaction to the overall balance."""
        return self.amount if self.is_income else -self.amount


class Bill(BaseModel):
    """
    A recurring monthly payment obligation.

    due_day is a day of month (1-31) and is NOT calendar-validated:
    a bill due on the 31st is compared against the day of month as-is.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    amount: Decimal = Field(..., ge=0)
    category: CategoryName = Field(default=ExpenseCategory.BILLS.value)
    due_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month the bill is due"
    )
    auto_pay: bool = False
    last_paid_date: Optional[date] = None
    is_subscription: bool = False
    logo: Optional[str] = None

    def is_paid_in_month(self, today: date) -> bool:
        """True if last_paid_date falls in today's calendar month and year."""
        if self.last_paid_date is None:
            return False
        return (
            self.last_paid_date.year == today.year
            and self.last_paid_date.month == today.month
        )


class Budget(BaseModel):
    """Spending limit for one category over a period."""

    category: CategoryName = Field(..., min_length=1)
    limit: Decimal = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY


class Goal(BaseModel):
    """
    A savings target.

    current_amount moves with linked expense transactions and is
    floored at zero. A target of zero is tolerated; it simply has no
    computable progress percentage.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., ge=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: Optional[date] = None

    # Cosmetic only
    color: str = "bg-blue-500"
    icon: str = "target"

    def percent_of(self, amount: Decimal) -> Optional[Decimal]:
        """Percent of target that `amount` represents, or None if target <= 0."""
        if self.target_amount <= 0:
            return None
        return amount / self.target_amount * 100

    @property
    def percent_complete(self) -> Optional[Decimal]:
        return self.percent_of(self.current_amount)


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class AppNotification(BaseModel):
    """
    A user-facing notification.

    Created only by the notification emitter. The only mutations ever
    applied are the bulk read flag and the bulk clear.
    """

    id: str = Field(default_factory=new_id)
    type: NotificationType
    title: str
    message: str
    created_at: int = Field(
        default_factory=now_ms,
        description="Creation timestamp, epoch milliseconds"
    )
    read: bool = False


# =============================================================================
# FILTER MODELS (transaction list)
# =============================================================================

class FilterConfig(BaseModel):
    """Criteria for filtering the transaction list. Empty fields match all."""

    query: str = ""
    categories: list[str] = Field(default_factory=list)
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    transaction_type: str = Field(
        default="all",
        pattern="^(all|expense|income)$"
    )

    @property
    def active_count(self) -> int:
        """Number of active filter groups (text search excluded)."""
        count = 0
        if self.transaction_type != "all":
            count += 1
        if self.categories:
            count += 1
        if self.date_from or self.date_to:
            count += 1
        if self.min_amount is not None or self.max_amount is not None:
            count += 1
        return count


class SavedFilter(BaseModel):
    """A named filter the user can re-apply."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    config: FilterConfig


# =============================================================================
# AI INSIGHT MODELS
# =============================================================================

class SpendingPrediction(BaseModel):
    next_month_total: float = 0.0
    reasoning: str = ""
    trend: str = Field(
        default="stable",
        pattern="^(increasing|decreasing|stable)$"
    )


class SpendingAnomaly(BaseModel):
    title: str
    description: str
    severity: str = Field(
        default="low",
        pattern="^(high|medium|low)$"
    )


class InsightData(BaseModel):
    """Spending insights produced by the AI collaborator."""

    summary: str
    prediction: SpendingPrediction = Field(default_factory=SpendingPrediction)
    anomalies: list[SpendingAnomaly] = Field(default_factory=list)
    saving_tips: list[str] = Field(default_factory=list)


class DetectedSubscription(BaseModel):
    name: str
    amount: float
    frequency: str = "monthly"
    reason: str = ""


class PriceChange(BaseModel):
    name: str
    old_amount: float
    new_amount: float
    change: float


class RedundantSubscription(BaseModel):
    name: str
    reason: str = ""


class SubscriptionAnalysis(BaseModel):
    """Recurring-payment scan produced by the AI collaborator."""

    new_subscriptions: list[DetectedSubscription] = Field(default_factory=list)
    price_changes: list[PriceChange] = Field(default_factory=list)
    redundant: list[RedundantSubscription] = Field(default_factory=list)


class ReceiptData(BaseModel):
    """
    Fields read off a receipt photo.

    CRITICAL: This is PROPOSED data, NOT verified. It only pre-fills the
    add-transaction form; the user confirms it before anything is saved.
    All fields are optional because the model might miss any of them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Receipt total"
    )
    date: Optional[CalendarDate] = Field(
        default=None,
        description="Date printed on the receipt"
    )
    merchant: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Merchant name, used as the transaction description"
    )
    category: Optional[ExpenseCategory] = None

    @property
    def is_empty(self) -> bool:
        return self.amount is None and self.date is None and not self.merchant

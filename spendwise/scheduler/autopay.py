"""
Bill Auto-Pay Scheduler

Runs once per session load, before any user action is accepted.
For every tracked bill it decides:

- whether the bill was already paid this calendar month
- whether a manual (non auto-pay) bill is due soon and deserves a reminder
- whether an auto-pay bill is due or overdue and must be paid now

CRITICAL: The scheduler only computes. It returns the new bill list,
the synthesized transactions and the notification drafts; the session
controller applies them to state and persists them as one batch.
Running it twice on the same day is harmless because a payment sets
last_paid_date, which marks the bill paid for the rest of the month.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from spendwise.models.finance import (
    AppNotification,
    Bill,
    NotificationType,
    Transaction,
    TransactionType,
    now_ms,
)
from spendwise.notifications import NotificationDraft, format_money, was_recently_reminded


class ScheduleResult(BaseModel):
    """Outcome of one scheduler pass."""

    bills: list[Bill] = Field(
        default_factory=list,
        description="Full bill list, paid bills carrying today's date"
    )
    new_transactions: list[Transaction] = Field(
        default_factory=list,
        description="Synthesized auto-pay expenses, in bill-list order"
    )
    notifications: list[NotificationDraft] = Field(default_factory=list)
    paid_bill_ids: list[str] = Field(default_factory=list)

    @property
    def bills_changed(self) -> bool:
        return bool(self.paid_bill_ids)


class BillScheduler:
    """
    Evaluates bills against the current date.

    due_day is compared directly with the day of month. A bill due on
    the 31st therefore never becomes payable in a shorter month.
    """

    def __init__(
        self,
        reminder_window_days: int = 3,
        reminder_dedup_hours: int = 24,
        currency_symbol: str = "₹",
    ):
        self._reminder_window_days = reminder_window_days
        self._reminder_dedup_hours = reminder_dedup_hours
        self._currency = currency_symbol

    def run(
        self,
        bills: list[Bill],
        notifications: list[AppNotification],
        today: date,
        timestamp: Optional[int] = None,
    ) -> ScheduleResult:
        """
        Evaluate every bill once.

        Args:
            bills: Bills as loaded
            notifications: Notifications as loaded (used for reminder dedup)
            today: The session's current date
            timestamp: Current time in epoch ms (defaults to now)
        """
        timestamp = timestamp if timestamp is not None else now_ms()
        result = ScheduleResult()

        for bill in bills:
            paid = bill.is_paid_in_month(today)

            if not paid and not bill.auto_pay:
                reminder = self._due_soon_reminder(bill, notifications, today, timestamp)
                if reminder:
                    result.notifications.append(reminder)

            if bill.auto_pay and not paid and today.day >= bill.due_day:
                transaction = self._autopay_transaction(bill, today, timestamp)
                result.new_transactions.append(transaction)
                result.paid_bill_ids.append(bill.id)
                result.notifications.append(
                    NotificationDraft(
                        title="Bill Paid Automatically",
                        message=f"Paid {format_money(bill.amount, self._currency)} for {bill.name}.",
                        type=NotificationType.INFO,
                    )
                )
                bill = bill.model_copy(update={"last_paid_date": transaction.date})

            result.bills.append(bill)

        return result

    def _due_soon_reminder(
        self,
        bill: Bill,
        notifications: list[AppNotification],
        today: date,
        timestamp: int,
    ) -> Optional[NotificationDraft]:
        days_until_due = bill.due_day - today.day
        if not 0 <= days_until_due <= self._reminder_window_days:
            return None
        if was_recently_reminded(notifications, bill, timestamp, self._reminder_dedup_hours):
            return None

        if days_until_due == 0:
            when = "today"
        elif days_until_due == 1:
            when = "in 1 day"
        else:
            when = f"in {days_until_due} days"

        return NotificationDraft(
            title="Bill Due Soon",
            message=(
                f"Your {bill.name} bill ({format_money(bill.amount, self._currency)}) "
                f"is due {when}."
            ),
            type=NotificationType.WARNING,
        )

    def _autopay_transaction(self, bill: Bill, today: date, timestamp: int) -> Transaction:
        return Transaction(
            type=TransactionType.EXPENSE,
            amount=bill.amount,
            description=f"{bill.name} (Auto-Pay)",
            category=bill.category,
            date=today,
            created_at=timestamp,
            bill_id=bill.id,
            is_recurring=True,
        )

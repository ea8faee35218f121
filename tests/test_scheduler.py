"""Tests for the bill auto-pay scheduler."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from spendwise.models import Bill, NotificationType, TransactionType
from spendwise.notifications import push_notification
from spendwise.notifications.emitter import MS_PER_HOUR
from spendwise.scheduler import BillScheduler

MAY_16 = date(2024, 5, 16)
NOW = int(datetime(2024, 5, 16, 9, 0).timestamp() * 1000)


@pytest.fixture
def scheduler():
    return BillScheduler()


def netflix(**overrides) -> Bill:
    values = dict(name="Netflix", amount=Decimal("500"), due_day=15, auto_pay=True, category="Entertainment")
    values.update(overrides)
    return Bill(**values)


def manual_bill(due_day: int, name: str = "Rent") -> Bill:
    return Bill(name=name, amount=Decimal("1000"), due_day=due_day, auto_pay=False)


class TestAutoPay:
    """Tests for automatic bill payment."""

    def test_netflix_end_to_end(self, scheduler):
        """Auto-pay bill one day overdue is paid exactly once."""
        bill = netflix()
        result = scheduler.run([bill], [], MAY_16, NOW)

        assert len(result.new_transactions) == 1
        tx = result.new_transactions[0]
        assert tx.type == TransactionType.EXPENSE
        assert tx.amount == Decimal("500")
        assert tx.description == "Netflix (Auto-Pay)"
        assert tx.category == "Entertainment"
        assert tx.date == MAY_16
        assert tx.bill_id == bill.id
        assert tx.is_recurring is True
        assert tx.created_at == NOW

        assert result.bills[0].last_paid_date == MAY_16
        assert result.paid_bill_ids == [bill.id]
        assert result.bills_changed is True

        assert len(result.notifications) == 1
        draft = result.notifications[0]
        assert draft.title == "Bill Paid Automatically"
        assert draft.type == NotificationType.INFO
        assert draft.message == "Paid ₹500.00 for Netflix."

    def test_second_run_is_idempotent(self, scheduler):
        first = scheduler.run([netflix()], [], MAY_16, NOW)
        second = scheduler.run(first.bills, [], MAY_16, NOW)
        assert second.new_transactions == []
        assert second.notifications == []
        assert second.bills_changed is False

    def test_pays_on_due_day(self, scheduler):
        result = scheduler.run([netflix()], [], date(2024, 5, 15), NOW)
        assert len(result.new_transactions) == 1

    def test_not_yet_due(self, scheduler):
        result = scheduler.run([netflix()], [], date(2024, 5, 14), NOW)
        assert result.new_transactions == []
        assert result.bills[0].last_paid_date is None

    def test_already_paid_this_month(self, scheduler):
        bill = netflix(last_paid_date=date(2024, 5, 2))
        result = scheduler.run([bill], [], MAY_16, NOW)
        assert result.new_transactions == []

    def test_paid_last_month_pays_again(self, scheduler):
        bill = netflix(last_paid_date=date(2024, 4, 15))
        result = scheduler.run([bill], [], MAY_16, NOW)
        assert len(result.new_transactions) == 1

    def test_input_bills_not_mutated(self, scheduler):
        bill = netflix()
        scheduler.run([bill], [], MAY_16, NOW)
        assert bill.last_paid_date is None

    def test_due_31_skipped_in_short_month(self, scheduler):
        """due_day is compared as-is, so the 31st never arrives in February."""
        bill = netflix(due_day=31)
        result = scheduler.run([bill], [], date(2024, 2, 29), NOW)
        assert result.new_transactions == []

    def test_due_31_paid_in_long_month(self, scheduler):
        bill = netflix(due_day=31)
        result = scheduler.run([bill], [], date(2024, 3, 31), NOW)
        assert len(result.new_transactions) == 1

    def test_multiple_bills_keep_order(self, scheduler):
        bills = [netflix(name="Netflix"), netflix(name="Spotify", due_day=1)]
        result = scheduler.run(bills, [], MAY_16, NOW)
        assert [t.description for t in result.new_transactions] == [
            "Netflix (Auto-Pay)",
            "Spotify (Auto-Pay)",
        ]
        assert [b.name for b in result.bills] == ["Netflix", "Spotify"]


class TestDueSoonReminder:
    """Tests for manual bill reminders."""

    @pytest.mark.parametrize(
        "due_day, expected",
        [
            (16, "is due today."),
            (17, "is due in 1 day."),
            (19, "is due in 3 days."),
        ],
    )
    def test_reminder_within_window(self, scheduler, due_day, expected):
        result = scheduler.run([manual_bill(due_day)], [], MAY_16, NOW)
        assert len(result.notifications) == 1
        draft = result.notifications[0]
        assert draft.title == "Bill Due Soon"
        assert draft.type == NotificationType.WARNING
        assert draft.message == f"Your Rent bill (₹1,000.00) {expected}"
        assert result.new_transactions == []

    @pytest.mark.parametrize("due_day", [10, 15, 20, 28])
    def test_no_reminder_outside_window(self, scheduler, due_day):
        result = scheduler.run([manual_bill(due_day)], [], MAY_16, NOW)
        assert result.notifications == []

    def test_no_reminder_when_paid(self, scheduler):
        bill = manual_bill(17).model_copy(update={"last_paid_date": date(2024, 5, 1)})
        result = scheduler.run([bill], [], MAY_16, NOW)
        assert result.notifications == []

    def test_auto_pay_bills_get_no_reminder(self, scheduler):
        result = scheduler.run([netflix(due_day=17)], [], MAY_16, NOW)
        assert result.notifications == []

    def test_recent_reminder_suppresses(self, scheduler):
        existing = push_notification(
            [],
            "Bill Due Soon",
            "Your Rent bill (₹1,000.00) is due in 2 days.",
            NotificationType.WARNING,
            NOW - 2 * MS_PER_HOUR,
        )
        result = scheduler.run([manual_bill(17)], existing, MAY_16, NOW)
        assert result.notifications == []

    def test_stale_reminder_does_not_suppress(self, scheduler):
        existing = push_notification(
            [],
            "Bill Due Soon",
            "Your Rent bill (₹1,000.00) is due in 2 days.",
            NotificationType.WARNING,
            NOW - 25 * MS_PER_HOUR,
        )
        result = scheduler.run([manual_bill(17)], existing, MAY_16, NOW)
        assert len(result.notifications) == 1

    def test_configurable_window(self):
        scheduler = BillScheduler(reminder_window_days=5)
        result = scheduler.run([manual_bill(21)], [], MAY_16, NOW)
        assert result.notifications[0].message.endswith("is due in 5 days.")

    def test_reminders_do_not_change_bills(self, scheduler):
        result = scheduler.run([manual_bill(17)], [], MAY_16, NOW)
        assert result.bills_changed is False

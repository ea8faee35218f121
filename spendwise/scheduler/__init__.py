"""Recurring bill scheduling."""

from spendwise.scheduler.autopay import BillScheduler, ScheduleResult

__all__ = ["BillScheduler", "ScheduleResult"]

"""Notification emitter package."""

from spendwise.notifications.emitter import (
    NotificationDraft,
    build_notification,
    clear_all,
    format_money,
    mark_all_read,
    push_drafts,
    push_notification,
    was_recently_reminded,
)

__all__ = [
    "NotificationDraft",
    "build_notification",
    "clear_all",
    "format_money",
    "mark_all_read",
    "push_drafts",
    "push_notification",
    "was_recently_reminded",
]

"""
Notification Emitter

Builds AppNotification records and returns new notification lists.
The list is ordered newest first; entries are never removed one by one,
only bulk-marked read or bulk-cleared. There is no size cap.

Rules elsewhere in the engine do not build notifications themselves.
They return NotificationDraft values and the caller pushes them here,
so id generation and timestamps live in exactly one place.
"""

from decimal import Decimal
from typing import Iterable, NamedTuple, Optional

from spendwise.models.finance import AppNotification, Bill, NotificationType, now_ms

MS_PER_HOUR = 60 * 60 * 1000


class NotificationDraft(NamedTuple):
    """A notification a rule wants emitted, before it has an id or timestamp."""
    title: str
    message: str
    type: NotificationType


def format_money(amount: Decimal, symbol: str = "₹") -> str:
    return f"{symbol}{amount:,.2f}"


def build_notification(
    title: str,
    message: str,
    notification_type: NotificationType,
    timestamp: Optional[int] = None,
) -> AppNotification:
    """Create a fresh unread notification with a new id."""
    return AppNotification(
        title=title,
        message=message,
        type=notification_type,
        created_at=timestamp if timestamp is not None else now_ms(),
    )


def push_notification(
    notifications: list[AppNotification],
    title: str,
    message: str,
    notification_type: NotificationType,
    timestamp: Optional[int] = None,
) -> list[AppNotification]:
    """
    Prepend a new notification.

    Returns the updated list (ready for persistence); the input list is
    left untouched.
    """
    notification = build_notification(title, message, notification_type, timestamp)
    return [notification, *notifications]


def push_drafts(
    notifications: list[AppNotification],
    drafts: Iterable[NotificationDraft],
    timestamp: Optional[int] = None,
) -> list[AppNotification]:
    """Push drafts in order; the last draft ends up first in the list."""
    updated = notifications
    for draft in drafts:
        updated = push_notification(updated, draft.title, draft.message, draft.type, timestamp)
    return updated


def mark_all_read(notifications: list[AppNotification]) -> list[AppNotification]:
    return [n.model_copy(update={"read": True}) for n in notifications]


def clear_all(notifications: Optional[list[AppNotification]] = None) -> list[AppNotification]:
    return []


def was_recently_reminded(
    notifications: list[AppNotification],
    bill: Bill,
    timestamp: int,
    window_hours: int = 24,
) -> bool:
    """
    Has the user already been told about this bill recently?

    Heuristic: any notification whose message contains the bill's name
    and that was created less than `window_hours` ago. It matches on
    text, not bill id, so a bill whose name is a substring of another
    notification's text is considered reminded. Kept as-is for
    compatibility with notifications already stored; a stricter
    (bill id, day) key can replace this function without touching callers.
    """
    window_ms = window_hours * MS_PER_HOUR
    return any(
        bill.name in n.message and timestamp - n.created_at < window_ms
        for n in notifications
    )

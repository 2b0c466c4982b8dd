from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional, TypedDict

NoteType = Literal["plain", "checklist", "reminder"]
Priority = Literal["high", "medium", "low"]

# The settings record always lives under this id.
SETTINGS_ID = 1

DEFAULT_NOTE_CATEGORY = "general"
DEFAULT_NOTE_TYPE: NoteType = "plain"
DEFAULT_CURRENCY = "USD"
DEFAULT_PRIORITY: Priority = "medium"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
class NoteEntity(TypedDict):
    """
    A note as held by the storage backends.

    Fields:
    - id: Unique integer identifier, immutable
    - title / content: Note text
    - category: Free-form tag, 'general' by default
    - type: 'plain', 'checklist' or 'reminder'
    - is_voice_note: Captured by voice input
    - reminder_date: Optional aware datetime
    - is_completed: Completion flag (checklists, reminder notes)
    - created_at / updated_at: Aware UTC timestamps; updated_at >= created_at
    """

    id: int
    title: str
    content: str
    category: str
    type: NoteType
    is_voice_note: bool
    reminder_date: Optional[datetime]
    is_completed: bool
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class ExpenseEntity(TypedDict):
    """
    An expense. `amount` is a Decimal with two fractional digits; `date` may
    be backdated freely and defaults to the creation time.
    """

    id: int
    description: str
    amount: Decimal
    currency: str
    category: str
    date: datetime
    created_at: datetime


# PUBLIC_INTERFACE
class ReminderEntity(TypedDict):
    """
    A scheduled reminder. `notification_sent` flips to True once the reminder
    has been delivered (or suppressed) and only an explicit update clears it.
    """

    id: int
    title: str
    description: Optional[str]
    scheduled_date: datetime
    priority: Priority
    is_completed: bool
    notification_sent: bool
    created_at: datetime


# PUBLIC_INTERFACE
class SettingsEntity(TypedDict):
    """The singleton user settings record (id is always SETTINGS_ID)."""

    id: int
    dark_mode: bool
    default_currency: str
    voice_recognition_enabled: bool
    notifications_enabled: bool
    updated_at: datetime


def default_settings(now: datetime) -> SettingsEntity:
    return {
        "id": SETTINGS_ID,
        "dark_mode": False,
        "default_currency": DEFAULT_CURRENCY,
        "voice_recognition_enabled": True,
        "notifications_enabled": True,
        "updated_at": now,
    }


def is_due(reminder: ReminderEntity, now: datetime) -> bool:
    """True when the reminder is not completed, not yet notified and its time has come."""
    return (
        not reminder["is_completed"]
        and not reminder["notification_sent"]
        and reminder["scheduled_date"] <= now
    )

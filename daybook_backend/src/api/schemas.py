from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, ClassVar, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import (
    DEFAULT_CURRENCY,
    DEFAULT_NOTE_CATEGORY,
    DEFAULT_NOTE_TYPE,
    DEFAULT_PRIORITY,
    NoteType,
    Priority,
)

# Shared type for incoming timestamps which can be a date, datetime, or ISO8601 string
DateTimeInput = Union[date, datetime, str]

PermissionState = Literal["default", "granted", "denied"]

_CENT = Decimal("0.01")
# numeric(10, 2): at most 8 digits before the decimal point
_MAX_AMOUNT_EXPONENT = 8


# PUBLIC_INTERFACE
def parse_datetime(value: Optional[DateTimeInput]) -> Optional[datetime]:
    """
    Normalize timestamp input into an aware UTC datetime.
    - Strings are parsed as ISO8601 datetimes (a trailing 'Z' is accepted); a bare date means midnight.
    - A date (not datetime) becomes midnight UTC.
    - Naive datetimes are taken to be UTC; aware ones are converted to UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(timezone.utc)
        except OverflowError as e:
            # e.g. 9999-12-31T23:59:59-05:00 has no UTC equivalent
            raise ValueError("datetime is out of range once converted to UTC") from e

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, str):
        s = value.strip()
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        parsed: Union[date, datetime]
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            try:
                parsed = date.fromisoformat(s)
            except ValueError as e:
                raise ValueError(
                    "Invalid datetime format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00Z')."
                ) from e
        return parse_datetime(parsed)

    raise ValueError("Invalid type for datetime; expected date, datetime, or ISO8601 string.")


def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("length must be between 1 and 200 characters")
    return s


def _clean_amount(v: Optional[Decimal]) -> Optional[Decimal]:
    if v is None:
        return v
    if not v.is_finite() or (v != 0 and v.adjusted() >= _MAX_AMOUNT_EXPONENT):
        raise ValueError("amount must have at most 8 integer digits")
    try:
        q = v.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise ValueError("amount cannot be rounded to cents") from e
    # rounding can carry into a ninth digit (99999999.995)
    if q != 0 and q.adjusted() >= _MAX_AMOUNT_EXPONENT:
        raise ValueError("amount must have at most 8 integer digits")
    return q


def _clean_currency(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip().upper()
    if not s:
        raise ValueError("currency must not be empty")
    return s


class _Schema(BaseModel):
    """camelCase on the wire, snake_case in Python; either is accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _Patch(_Schema):
    """
    Base for partial updates. Only fields present in the payload are applied;
    an explicit null clears a field only when it is listed in `nullable_fields`.
    """

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    def to_patch(self) -> Dict[str, Any]:
        patch = self.model_dump(exclude_unset=True)
        return {k: v for k, v in patch.items() if v is not None or k in self.nullable_fields}


# ---------------------------------------------------------------- notes


# PUBLIC_INTERFACE
class NoteCreate(_Schema):
    """
    Schema for creating a new note.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Groceries",
                "content": "Milk, eggs, bread",
                "category": "shopping",
                "type": "checklist",
                "isVoiceNote": False,
                "reminderDate": None,
                "isCompleted": False,
            }
        }
    )

    title: str = Field(..., description="Short title for the note", min_length=1, max_length=200)
    content: str = Field(..., description="Body text of the note")
    category: str = Field(default=DEFAULT_NOTE_CATEGORY, description="Free-form category tag")
    type: NoteType = Field(default=DEFAULT_NOTE_TYPE, description="plain, checklist or reminder")
    is_voice_note: bool = Field(default=False, description="Captured by voice input")
    reminder_date: Optional[datetime] = Field(default=None, description="Optional reminder timestamp")
    is_completed: bool = Field(default=False, description="Completion flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _clean_title(v)  # type: ignore[return-value]

    @field_validator("reminder_date", mode="before")
    @classmethod
    def parse_reminder_date(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class NoteUpdate(_Patch):
    """
    Schema for updating an existing note.
    All fields are optional; only provided fields will be updated.
    """

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"reminder_date"})

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = None
    category: Optional[str] = None
    type: Optional[NoteType] = None
    is_voice_note: Optional[bool] = None
    reminder_date: Optional[datetime] = None
    is_completed: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)

    @field_validator("reminder_date", mode="before")
    @classmethod
    def parse_reminder_date(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class NoteOut(_Schema):
    """
    Schema returned by the API for a note.
    """

    id: int
    title: str
    content: str
    category: str
    type: NoteType
    is_voice_note: bool
    reminder_date: Optional[datetime] = None
    is_completed: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------- expenses


# PUBLIC_INTERFACE
class ExpenseCreate(_Schema):
    """
    Schema for creating a new expense. `amount` accepts a string or number and
    is rounded to cents; `date` defaults to the creation time.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "description": "Lunch",
                "amount": "12.50",
                "currency": "USD",
                "category": "food",
                "date": "2024-03-15",
            }
        }
    )

    description: str = Field(..., min_length=1, description="What the money was spent on")
    amount: Decimal = Field(..., description="Amount with two fractional digits")
    currency: str = Field(default=DEFAULT_CURRENCY, description="Currency code")
    category: str = Field(..., min_length=1, description="Expense category")
    date: Optional[datetime] = Field(default=None, description="When the expense happened")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return _clean_amount(v)  # type: ignore[return-value]

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return _clean_currency(v)  # type: ignore[return-value]

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class ExpenseUpdate(_Patch):
    """Partial expense update."""

    description: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    category: Optional[str] = Field(default=None, min_length=1)
    date: Optional[datetime] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _clean_amount(v)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _clean_currency(v)

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class ExpenseOut(_Schema):
    """
    Schema returned by the API for an expense. `amount` serializes as a string.
    """

    id: int
    description: str
    amount: Decimal
    currency: str
    category: str
    date: datetime
    created_at: datetime


# PUBLIC_INTERFACE
class ExpenseSummary(_Schema):
    """Totals over a set of expenses, overall and per category."""

    total: Decimal
    count: int
    by_category: Dict[str, Decimal]


# ---------------------------------------------------------------- reminders


# PUBLIC_INTERFACE
class ReminderCreate(_Schema):
    """
    Schema for creating a new reminder.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Pay rent",
                "description": "Transfer to landlord",
                "scheduledDate": "2025-02-01T09:00:00Z",
                "priority": "high",
            }
        }
    )

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    scheduled_date: datetime = Field(..., description="When the reminder is due")
    priority: Priority = Field(default=DEFAULT_PRIORITY)
    is_completed: bool = False
    notification_sent: bool = False

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _clean_title(v)  # type: ignore[return-value]

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def parse_scheduled_date(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class ReminderUpdate(_Patch):
    """
    Partial reminder update. Moving `scheduledDate` or toggling `isCompleted`
    leaves `notificationSent` untouched; only setting it explicitly changes it.
    """

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"description"})

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    priority: Optional[Priority] = None
    is_completed: Optional[bool] = None
    notification_sent: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)

    @field_validator("scheduled_date", mode="before")
    @classmethod
    def parse_scheduled_date(cls, v: Optional[DateTimeInput]) -> Optional[datetime]:
        return parse_datetime(v)


# PUBLIC_INTERFACE
class ReminderOut(_Schema):
    """Schema returned by the API for a reminder."""

    id: int
    title: str
    description: Optional[str] = None
    scheduled_date: datetime
    priority: Priority
    is_completed: bool
    notification_sent: bool
    created_at: datetime


# ---------------------------------------------------------------- settings


# PUBLIC_INTERFACE
class SettingsUpdate(_Patch):
    """Partial settings update; omitted fields keep their current value."""

    dark_mode: Optional[bool] = None
    default_currency: Optional[str] = None
    voice_recognition_enabled: Optional[bool] = None
    notifications_enabled: Optional[bool] = None

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _clean_currency(v)


# PUBLIC_INTERFACE
class SettingsOut(_Schema):
    id: int
    dark_mode: bool
    default_currency: str
    voice_recognition_enabled: bool
    notifications_enabled: bool
    updated_at: datetime


# ---------------------------------------------------------------- notifications


# PUBLIC_INTERFACE
class NotificationOut(_Schema):
    """A notification waiting for the client to display it."""

    title: str
    body: str
    tag: str
    created_at: datetime


# PUBLIC_INTERFACE
class PermissionPayload(_Schema):
    """Notification permission as reported by the browser."""

    permission: PermissionState


class ReminderFailureOut(_Schema):
    reminder_id: int
    error: str
    message: str


# PUBLIC_INTERFACE
class TickReportOut(_Schema):
    """Outcome of one reminder check."""

    checked: int
    notified: List[int]
    suppressed: List[int]
    failures: List[ReminderFailureOut]

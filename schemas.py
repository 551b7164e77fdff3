"""Pydantic schemas for Recurring Reminder Service.

This module defines the reminder record shape shared by the recurrence engine,
the storage layer and the API, plus request and response schemas.
IMPORTANT: naive datetimes are normalized to UTC when a record is validated.
"""

import enum
from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class RepeatPattern(enum.Enum):
    """Recurrence types understood by the engine"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"


class PriorityEnum(enum.Enum):
    """Priority levels for reminders"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StatusEnum(enum.Enum):
    """Status values for reminders"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReminderType(enum.Enum):
    """Kinds of reminder records"""
    TASK = "task"
    EVENT = "event"
    NOTE = "note"
    REMINDER = "reminder"
    BILL = "bill"
    MED = "med"


class NotificationTiming(BaseModel):
    """When a notification fires relative to the due time."""

    type: str = Field(
        default="exact",
        pattern="^(exact|before|after)$",
        description="exact, before or after the due time"
    )
    value: int = Field(default=0, ge=0, description="Minutes before/after the due time, 0 for exact")
    label: Optional[str] = Field(None, description="Human-readable label")


class RecurrenceRule(BaseModel):
    """Repeat policy derived from a reminder record.

    `type` stays a plain string so that unrecognized values can be reported by
    validation instead of failing here.
    """

    type: Optional[str] = Field(None, description="daily, weekly, monthly, yearly, weekdays or weekends")
    interval: Optional[int] = Field(None, description="Every N units; absent means every 1 unit")
    days_of_week: Optional[List[int]] = Field(None, description="Weekdays for weekly rules (0=Sunday)")
    end_date: Optional[datetime] = Field(None, description="No occurrence after this date")


class ValidationResult(BaseModel):
    """Outcome of a recurrence validation."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)


def _as_utc(value):
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReminderRecord(BaseModel):
    """A reminder as seen by the recurrence engine.

    Built from storage rows (from_attributes) or API payloads. Every generated
    occurrence is a ReminderRecord with a fresh id and the series' group id.
    """

    id: str
    user_id: str
    title: str
    description: Optional[str] = ""
    type: ReminderType = ReminderType.REMINDER
    priority: PriorityEnum = PriorityEnum.MEDIUM
    status: StatusEnum = StatusEnum.PENDING

    due_date: Optional[datetime] = None
    due_time: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_favorite: bool = False

    # Recurrence
    is_recurring: bool = False
    repeat_pattern: Optional[str] = None
    custom_interval: Optional[int] = None
    repeat_days: Optional[List[int]] = None
    recurring_start_date: Optional[datetime] = None
    # Raw strings are kept; an unparseable value means "no end date"
    recurring_end_date: Optional[Union[datetime, str]] = None
    recurring_end_after: Optional[int] = None
    recurring_group_id: Optional[str] = None

    # Notifications and assignment
    has_notification: bool = False
    notification_timings: List[NotificationTiming] = Field(default_factory=list)
    assigned_to: List[str] = Field(default_factory=list)
    assigned_by: Optional[str] = None

    completed: bool = False
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        """Pydantic configuration"""
        from_attributes = True

    @field_validator(
        "due_date", "recurring_start_date", "recurring_end_date",
        "deleted_at", "created_at", "updated_at",
    )
    @classmethod
    def _normalize_timezone(cls, value):
        return _as_utc(value)

    @field_validator("tags", "notification_timings", "assigned_to", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value


class ReminderCreate(BaseModel):
    """Schema for creating a new reminder.

    Recurrence fields are checked by the recurrence validator, not by field
    constraints, so clients get the same error messages as every other caller.
    """

    user_id: str = Field(..., min_length=1, description="Owner of the reminder")
    title: str = Field(..., min_length=1, max_length=200, examples=["Take vitamins"])
    description: Optional[str] = Field(default="", description="Optional detailed description")
    type: ReminderType = Field(default=ReminderType.REMINDER)
    priority: PriorityEnum = Field(default=PriorityEnum.MEDIUM)

    due_date: Optional[datetime] = Field(
        None,
        description="When the reminder is due (ISO 8601 format)",
        examples=["2025-10-26T15:00:00Z"]
    )
    due_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$", description="HH:MM")
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_favorite: bool = False

    is_recurring: bool = False
    repeat_pattern: Optional[str] = Field(None, examples=["weekly"])
    custom_interval: Optional[int] = Field(None, description="Every N units")
    repeat_days: Optional[List[int]] = Field(None, description="Weekdays (0=Sunday) for weekly reminders")
    recurring_start_date: Optional[datetime] = None
    recurring_end_date: Optional[datetime] = None
    recurring_end_after: Optional[int] = Field(None, description="Stop after N completed occurrences")

    has_notification: bool = False
    notification_timings: List[NotificationTiming] = Field(default_factory=list)
    assigned_to: List[str] = Field(default_factory=list)
    assigned_by: Optional[str] = None


class ReminderUpdate(BaseModel):
    """Schema for updating an existing reminder.

    All fields are optional - only provided fields will be updated.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[PriorityEnum] = None
    due_date: Optional[datetime] = None
    due_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    location: Optional[str] = None
    tags: Optional[List[str]] = None
    is_favorite: Optional[bool] = None

    is_recurring: Optional[bool] = None
    repeat_pattern: Optional[str] = None
    custom_interval: Optional[int] = None
    repeat_days: Optional[List[int]] = None
    recurring_end_date: Optional[datetime] = None
    recurring_end_after: Optional[int] = None

    has_notification: Optional[bool] = None
    notification_timings: Optional[List[NotificationTiming]] = None


class ReminderResponse(ReminderRecord):
    """Schema for reminder responses."""

    class Config:
        """Pydantic configuration"""
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "abc-123-def-456",
                "user_id": "user-1",
                "title": "Team standup",
                "description": "",
                "type": "event",
                "priority": "medium",
                "status": "pending",
                "due_date": "2025-10-27T09:30:00+00:00",
                "due_time": "09:30",
                "is_recurring": True,
                "repeat_pattern": "weekly",
                "repeat_days": [1, 3, 5],
                "recurring_group_id": "abc-123-def-456",
                "completed": False,
                "created_at": "2025-10-25T10:30:00+00:00",
                "updated_at": "2025-10-25T10:30:00+00:00"
            }
        }


class RecurrenceInfo(BaseModel):
    """How a reminder repeats."""

    description: str
    rule: RecurrenceRule
    validation: ValidationResult
    end_condition: str = Field(..., description="never, until_date or after_occurrences")


class CompletionResponse(BaseModel):
    """A completed reminder and the occurrence generated after it, if any."""

    completed: ReminderResponse
    next_occurrence: Optional[ReminderResponse] = None

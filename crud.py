"""CRUD operations for Recurring Reminder Service.

This module is the storage side of recurring reminders: persisting generated
occurrences, looking up every occurrence of a series and soft-deleting them.
IMPORTANT: All datetime parameters and return values are datetime objects, NOT strings.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from database import Reminder
from logger_config import setup_logger
from recurrence import parse_end_date
from schemas import PriorityEnum, ReminderRecord, ReminderType, StatusEnum

logger = setup_logger(__name__, 'crud.log')

_COLUMNS = {column.name for column in Reminder.__table__.columns}
_JSON_COLUMNS = {'tags', 'repeat_days', 'notification_timings', 'assigned_to'}
_ENUM_COLUMNS = {'type': ReminderType, 'priority': PriorityEnum, 'status': StatusEnum}
_DATETIME_COLUMNS = {'due_date', 'recurring_start_date', 'recurring_end_date', 'deleted_at', 'created_at', 'updated_at'}


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _column_value(key: str, value):
    """Convert a record/payload value to what the column stores."""
    if key in _ENUM_COLUMNS and isinstance(value, str):
        return _ENUM_COLUMNS[key](value.lower())
    if key == 'recurring_end_date' and isinstance(value, str):
        return _to_utc(parse_end_date(value))
    if key in _DATETIME_COLUMNS and isinstance(value, datetime):
        return _to_utc(value)
    return value


def to_record(reminder: Reminder) -> ReminderRecord:
    """Validate a stored row into a ReminderRecord."""
    return ReminderRecord.model_validate(reminder)


def create_reminder(db: Session, reminder_data: dict) -> Reminder:
    """Create a new reminder in the database.

    A recurring reminder created without a recurring_group_id starts a new
    series: its own id becomes the group id.

    Args:
        db: Database session
        reminder_data: Dictionary with reminder fields (e.g. ReminderCreate.model_dump())

    Returns:
        Reminder: Created reminder object

    Raises:
        SQLAlchemyError: On database errors
    """
    reminder_id = str(uuid.uuid4())
    now = datetime.now(timezone.utc)

    fields = {
        key: _column_value(key, value)
        for key, value in reminder_data.items()
        if key in _COLUMNS and key not in ('id', 'status', 'completed', 'deleted_at', 'created_at', 'updated_at')
    }
    if fields.get('is_recurring') and not fields.get('recurring_group_id'):
        fields['recurring_group_id'] = reminder_id

    db_reminder = Reminder(
        id=reminder_id,
        status=StatusEnum.PENDING,
        completed=False,
        created_at=now,
        updated_at=now,
        **fields
    )

    db.add(db_reminder)
    db.commit()
    db.refresh(db_reminder)
    return db_reminder


def save_occurrence(db: Session, occurrence: ReminderRecord) -> Reminder:
    """Persist an occurrence produced by the recurrence engine, keeping its id and group id.

    Raises:
        SQLAlchemyError: On database errors
    """
    data = occurrence.model_dump()
    db_reminder = Reminder(**{key: _column_value(key, value) for key, value in data.items() if key in _COLUMNS})

    db.add(db_reminder)
    db.commit()
    db.refresh(db_reminder)
    logger.info(
        f"Saved occurrence {db_reminder.id} of series {db_reminder.recurring_group_id} "
        f"due {db_reminder.due_date}"
    )
    return db_reminder


def get_reminder(db: Session, reminder_id: str, user_id: str) -> Optional[Reminder]:
    """Get a specific, not deleted reminder by ID.

    Args:
        db: Database session
        reminder_id: Reminder UUID
        user_id: Owner (for security)

    Returns:
        Optional[Reminder]: Reminder object if found, None otherwise
    """
    return db.query(Reminder).filter(
        Reminder.id == reminder_id,
        Reminder.user_id == user_id,
        Reminder.deleted_at.is_(None)
    ).first()


def get_reminders_by_user(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    limit: int = 50
) -> List[Reminder]:
    """Get not deleted reminders for a user, latest due first.

    Args:
        db: Database session
        user_id: Owner
        status: Optional status filter (pending, completed, cancelled)
        limit: Maximum number of results (default: 50)
    """
    query = db.query(Reminder).filter(
        Reminder.user_id == user_id,
        Reminder.deleted_at.is_(None)
    )

    if status:
        query = query.filter(Reminder.status == StatusEnum(status.lower()))

    return query.order_by(Reminder.due_date.desc()).limit(limit).all()


def get_open_recurring_reminders(db: Session, user_id: str) -> List[Reminder]:
    """Recurring reminders of a user that are neither completed nor deleted."""
    return db.query(Reminder).filter(
        Reminder.user_id == user_id,
        Reminder.is_recurring.is_(True),
        Reminder.repeat_pattern.isnot(None),
        Reminder.completed.is_(False),
        Reminder.deleted_at.is_(None)
    ).order_by(Reminder.due_date).all()


def get_due_reminders(db: Session, user_id: str) -> List[Reminder]:
    """Get all pending reminders that are currently due."""
    now = datetime.now(timezone.utc)
    return db.query(Reminder).filter(
        Reminder.user_id == user_id,
        Reminder.status == StatusEnum.PENDING,
        Reminder.deleted_at.is_(None),
        Reminder.due_date <= now
    ).order_by(Reminder.due_date).all()


def update_reminder(
    db: Session,
    reminder_id: str,
    user_id: str,
    updates: dict
) -> Optional[Reminder]:
    """Update an existing reminder.

    None values are ignored. Turning a reminder recurring starts a new series
    unless it already belongs to one.

    Returns:
        Optional[Reminder]: Updated reminder object if found, None otherwise

    Raises:
        SQLAlchemyError: On database errors
    """
    reminder = get_reminder(db, reminder_id, user_id)
    if not reminder:
        return None

    for key, value in updates.items():
        if value is None or key not in _COLUMNS or key in ('id', 'user_id', 'created_at'):
            continue

        setattr(reminder, key, _column_value(key, value))

        # JSON columns need explicit change tracking
        if key in _JSON_COLUMNS:
            flag_modified(reminder, key)

    if reminder.is_recurring and not reminder.recurring_group_id:
        reminder.recurring_group_id = reminder.id

    reminder.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(reminder)
    return reminder


def complete_reminder(db: Session, reminder_id: str, user_id: str) -> Optional[Reminder]:
    """Mark a reminder completed."""
    return update_reminder(db, reminder_id, user_id, {
        'status': StatusEnum.COMPLETED,
        'completed': True,
    })


def delete_reminder(db: Session, reminder_id: str, user_id: str) -> bool:
    """Soft-delete a single reminder (status cancelled, deleted_at set).

    Returns:
        bool: True if deleted, False if not found
    """
    reminder = get_reminder(db, reminder_id, user_id)
    if not reminder:
        return False

    now = datetime.now(timezone.utc)
    reminder.status = StatusEnum.CANCELLED
    reminder.deleted_at = now
    reminder.updated_at = now
    db.commit()
    return True


def get_recurring_group_reminders(db: Session, recurring_group_id: str) -> List[Reminder]:
    """All not deleted occurrences of a series, earliest due first."""
    return db.query(Reminder).filter(
        Reminder.recurring_group_id == recurring_group_id,
        Reminder.deleted_at.is_(None)
    ).order_by(Reminder.due_date.asc()).all()


def delete_recurring_group(db: Session, recurring_group_id: str) -> List[str]:
    """Soft-delete every occurrence of a series.

    Returns:
        List[str]: Ids of the occurrences that were cancelled
    """
    reminders = get_recurring_group_reminders(db, recurring_group_id)
    now = datetime.now(timezone.utc)

    for reminder in reminders:
        reminder.status = StatusEnum.CANCELLED
        reminder.deleted_at = now
        reminder.updated_at = now

    db.commit()
    logger.info(f"Deleted {len(reminders)} reminder(s) from recurring group {recurring_group_id}")
    return [reminder.id for reminder in reminders]


def get_users_with_overdue_recurring(db: Session, now: Optional[datetime] = None) -> List[str]:
    """Users owning an open recurring reminder whose due date has passed."""
    now = _to_utc(now) or datetime.now(timezone.utc)
    rows = db.query(Reminder.user_id).filter(
        Reminder.is_recurring.is_(True),
        Reminder.completed.is_(False),
        Reminder.deleted_at.is_(None),
        Reminder.due_date <= now
    ).distinct().all()
    return [row[0] for row in rows]

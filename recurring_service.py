"""Recurring reminder service.

Drives the recurrence engine from the storage side:
- completing a recurring reminder creates its next occurrence
- a catch-up sweep creates next occurrences for overdue recurring reminders
- end-after-N-occurrences limits are enforced by counting the completed and
  still open occurrences of the series

The engine never de-duplicates. Every generation path here first checks that
the series has no open future occurrence and claims a short-lived
"recently processed" marker in a RecurringCheckState owned by the caller
(API process, MCP server, background worker).
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

import crud
import recurrence
from config import settings
from logger_config import setup_logger
from schemas import ReminderRecord, StatusEnum

logger = setup_logger(__name__, 'recurring.log')


class RecurringCheckState:
    """Throttle and de-duplication markers for recurring generation.

    last_check maps user id -> timestamp of that user's last sweep.
    recently_processed maps "<reminder id>-<group id>" -> timestamp of the
    last generation attempt for that occurrence.
    Timestamps are POSIX seconds.
    """

    def __init__(self):
        self.last_check: Dict[str, float] = {}
        self.recently_processed: Dict[str, float] = {}
        self._lock = threading.Lock()

    def should_check(self, user_id: str, now: float, throttle_seconds: float) -> bool:
        """Record a sweep for `user_id` unless one ran less than `throttle_seconds` ago."""
        with self._lock:
            last = self.last_check.get(user_id)
            if last is not None and now - last < throttle_seconds:
                return False
            self.last_check[user_id] = now
            return True

    def claim(self, key: str, now: float, cooldown_seconds: float) -> bool:
        """Mark `key` processed unless it already was within `cooldown_seconds`."""
        with self._lock:
            last = self.recently_processed.get(key)
            if last is not None and now - last < cooldown_seconds:
                return False
            self.recently_processed[key] = now
            return True


def series_key(reminder: ReminderRecord) -> str:
    """Group id of the reminder's series (its own id for a first occurrence)."""
    return reminder.recurring_group_id or reminder.id


def processing_key(reminder: ReminderRecord) -> str:
    return f"{reminder.id}-{series_key(reminder)}"


def has_future_occurrence(group: List[ReminderRecord], reminder: ReminderRecord, after: datetime) -> bool:
    """True if another open, not deleted occurrence of the series is due after `after`."""
    return any(
        other.id != reminder.id
        and other.due_date is not None
        and other.due_date > after
        and not other.completed
        and other.deleted_at is None
        for other in group
    )


def get_series(db: Session, recurring_group_id: str) -> List[ReminderRecord]:
    """Every not deleted occurrence of a series as records, earliest first."""
    return [crud.to_record(row) for row in crud.get_recurring_group_reminders(db, recurring_group_id)]


def handle_recurring_reminder(
    db: Session,
    reminder: ReminderRecord,
    max_iterations: Optional[int] = None,
    now: Optional[datetime] = None
) -> Optional[ReminderRecord]:
    """Generate, check and persist the occurrence following `reminder`.

    Args:
        db: Database session
        reminder: Open occurrence to advance from
        max_iterations: Scan bound for the engine (default: settings.MAX_SCAN_ITERATIONS)
        now: Reference time

    Returns:
        Optional[ReminderRecord]: The stored occurrence, or None when the series
        ended (end date, end-after count) or the pattern yields no date

    Raises:
        SQLAlchemyError: On database errors
    """
    max_iterations = max_iterations or settings.MAX_SCAN_ITERATIONS

    occurrence = recurrence.generate_next_occurrence(reminder, max_iterations=max_iterations, now=now)
    if occurrence is None:
        logger.info(f"No next occurrence for reminder {reminder.id} ('{reminder.title}')")
        return None

    if reminder.recurring_end_after:
        # Open members can still be completed, so they use up the limit too
        counted = {
            member.id for member in get_series(db, series_key(reminder))
            if member.completed or member.status is not StatusEnum.CANCELLED
        }
        counted.add(reminder.id)
        logger.info(
            f"Series {series_key(reminder)}: {len(counted)} of "
            f"{reminder.recurring_end_after} occurrence(s) used"
        )
        if len(counted) >= reminder.recurring_end_after:
            logger.info(f"Series {series_key(reminder)} reached its occurrence limit, stopping")
            return None

    saved = crud.save_occurrence(db, occurrence)
    logger.info(
        f"Created occurrence {saved.id} of '{reminder.title}' due {occurrence.due_date.isoformat()}"
    )
    return crud.to_record(saved)


def complete_reminder(
    db: Session,
    reminder_id: str,
    user_id: str,
    state: RecurringCheckState,
    now: Optional[datetime] = None
) -> Optional[Tuple[ReminderRecord, Optional[ReminderRecord]]]:
    """Complete a reminder and, if it recurs, create its next occurrence.

    Returns:
        None if the reminder does not exist, otherwise (completed reminder,
        next occurrence or None)
    """
    now = now or datetime.now(timezone.utc)

    row = crud.get_reminder(db, reminder_id, user_id)
    if row is None:
        return None

    before = crud.to_record(row)
    if before.completed:
        logger.info(f"Reminder {reminder_id} already completed")
        return before, None

    completed = crud.to_record(crud.complete_reminder(db, reminder_id, user_id))

    if not recurrence.is_recurring_reminder(before):
        return completed, None

    series = get_series(db, series_key(before))
    if has_future_occurrence(series, before, before.due_date or now):
        logger.info(f"Series {series_key(before)} already has a future occurrence, not generating")
        return completed, None

    if not state.claim(processing_key(before), now.timestamp(), settings.RECURRING_PROCESSED_COOLDOWN_SECONDS):
        logger.info(f"Reminder {reminder_id} was processed recently, not generating")
        return completed, None

    # The engine works from the open occurrence, before it was marked completed
    return completed, handle_recurring_reminder(db, before, now=now)


def check_and_generate_recurring_reminders(
    db: Session,
    user_id: str,
    state: RecurringCheckState,
    now: Optional[datetime] = None
) -> List[ReminderRecord]:
    """Catch-up sweep: create next occurrences for a user's overdue recurring reminders.

    Skipped entirely when the user was checked less than
    RECURRING_CHECK_THROTTLE_SECONDS ago. Within each series only the latest
    overdue open occurrence is advanced, and only if the series has no open
    future occurrence and that occurrence was not processed within
    RECURRING_PROCESSED_COOLDOWN_SECONDS. A failing series is logged and skipped.

    Returns:
        List[ReminderRecord]: Occurrences created by this sweep
    """
    now = now or datetime.now(timezone.utc)
    timestamp = now.timestamp()

    if not state.should_check(user_id, timestamp, settings.RECURRING_CHECK_THROTTLE_SECONDS):
        logger.info(f"Skipping recurring check for user {user_id}: checked recently")
        return []

    logger.info(f"Starting recurring reminder check for user {user_id}")

    overdue_by_series: Dict[str, ReminderRecord] = {}
    for row in crud.get_open_recurring_reminders(db, user_id):
        reminder = crud.to_record(row)
        if reminder.due_date is None or reminder.due_date > now:
            continue
        key = series_key(reminder)
        latest = overdue_by_series.get(key)
        if latest is None or reminder.due_date > latest.due_date:
            overdue_by_series[key] = reminder

    created: List[ReminderRecord] = []
    for group_id, reminder in overdue_by_series.items():
        try:
            series = get_series(db, group_id)
            if has_future_occurrence(series, reminder, now):
                logger.info(f"Skipping '{reminder.title}': future occurrence already exists")
                continue

            if not state.claim(processing_key(reminder), timestamp, settings.RECURRING_PROCESSED_COOLDOWN_SECONDS):
                logger.info(f"Skipping '{reminder.title}': processed recently")
                continue

            logger.info(f"Generating overdue recurring reminder '{reminder.title}' (series {group_id})")
            occurrence = handle_recurring_reminder(db, reminder, now=now)
            if occurrence is not None:
                created.append(occurrence)
        except Exception as e:
            logger.error(f"Error processing recurring group {group_id}: {str(e)}", exc_info=True)
            db.rollback()

    logger.info(f"Recurring reminder check completed for user {user_id}: {len(created)} created")
    return created


def delete_recurring_series(db: Session, reminder_id: str, user_id: str) -> List[str]:
    """Soft-delete every occurrence of the reminder's series.

    A non-recurring reminder is deleted on its own.

    Returns:
        List[str]: Ids of the deleted reminders (empty if not found)
    """
    row = crud.get_reminder(db, reminder_id, user_id)
    if row is None:
        return []

    reminder = crud.to_record(row)
    if reminder.is_recurring and reminder.recurring_group_id:
        return crud.delete_recurring_group(db, reminder.recurring_group_id)

    return [reminder_id] if crud.delete_reminder(db, reminder_id, user_id) else []

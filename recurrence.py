"""Recurrence engine for recurring reminders.

Pure functions that turn a reminder record into a recurrence rule, compute the
next due date for that rule and materialize the next occurrence(s) of a series.

Nothing here touches storage or notifications: callers hand in records and
persist what comes back. "No further occurrence" is always reported as None or
a shorter list, never as an exception.

Weekdays are numbered 0=Sunday ... 6=Saturday, as stored on reminder records.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from logger_config import setup_logger
from schemas import (
    RecurrenceRule,
    ReminderRecord,
    RepeatPattern,
    StatusEnum,
    ValidationResult,
)

logger = setup_logger(__name__, 'recurrence.log')

DEFAULT_MAX_ITERATIONS = 366
"""Default bound for day-by-day scans (weekly with days, weekdays, weekends)"""

VALID_PATTERN_TYPES = [pattern.value for pattern in RepeatPattern]

WEEKDAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')

_SINGLE_UNIT_DESCRIPTIONS = {
    RepeatPattern.DAILY: 'Daily',
    RepeatPattern.WEEKLY: 'Weekly',
    RepeatPattern.MONTHLY: 'Monthly',
    RepeatPattern.YEARLY: 'Yearly',
}

_UNIT_NAMES = {
    RepeatPattern.DAILY: 'day',
    RepeatPattern.WEEKLY: 'week',
    RepeatPattern.MONTHLY: 'month',
    RepeatPattern.YEARLY: 'year',
}


def _sunday_based_weekday(value: date) -> int:
    return value.isoweekday() % 7


def _utc_instant(value) -> datetime:
    """Comparable UTC instant; naive values and plain dates are taken as UTC."""
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_end_date(value) -> Optional[datetime]:
    """Return the end date as a datetime, or None when absent or unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return isoparse(value.strip())
        except (ValueError, OverflowError):
            logger.debug(f"Ignoring unparseable recurring end date: {value!r}")
            return None
    return None


def _scan_forward(start, matches: Callable[[date], bool], max_iterations: int):
    """First day after `start` accepted by `matches`, looking at most `max_iterations` days ahead."""
    candidate = start
    for _ in range(max_iterations):
        candidate = candidate + timedelta(days=1)
        if matches(candidate):
            return candidate
    return None


def is_recurring_reminder(reminder: ReminderRecord) -> bool:
    """True when the reminder is flagged recurring and has a repeat pattern."""
    return bool(reminder.is_recurring and reminder.repeat_pattern)


def get_end_condition(reminder: ReminderRecord) -> str:
    """How the series ends: 'after_occurrences', 'until_date' or 'never'."""
    if reminder.recurring_end_after:
        return 'after_occurrences'
    if parse_end_date(reminder.recurring_end_date) is not None:
        return 'until_date'
    return 'never'


def parse_recurring_pattern(reminder: ReminderRecord) -> RecurrenceRule:
    """Derive the recurrence rule of a reminder.

    Args:
        reminder: Record carrying repeat_pattern, custom_interval, repeat_days
            and recurring_end_date

    Returns:
        RecurrenceRule: interval is only set when it differs from 1,
        days_of_week only for weekly rules with a non-empty day list, and an
        unparseable end date is dropped
    """
    interval = reminder.custom_interval
    days = reminder.repeat_days

    return RecurrenceRule(
        type=reminder.repeat_pattern,
        interval=interval if interval is not None and interval != 1 else None,
        days_of_week=list(days) if reminder.repeat_pattern == RepeatPattern.WEEKLY.value and days else None,
        end_date=parse_end_date(reminder.recurring_end_date),
    )


def calculate_next_occurrence_date(
    current_date: datetime,
    rule: RecurrenceRule,
    max_iterations: int = DEFAULT_MAX_ITERATIONS
) -> Optional[datetime]:
    """Compute the first date strictly after `current_date` that satisfies `rule`.

    daily/weekly-without-days/monthly/yearly advance arithmetically by the
    interval. weekly-with-days, weekdays and weekends scan day by day and give
    up after `max_iterations` days, so a low bound can return None even though
    a later occurrence exists. Monthly steps clamp to the last day of shorter
    months; a yearly step from Feb 29 into a non-leap year lands on Mar 1.

    Args:
        current_date: Date (or datetime) to advance from; the time of day is kept
        rule: Parsed recurrence rule
        max_iterations: Scan bound for the day-by-day types

    Returns:
        The next due date, or None when the rule cannot be interpreted, the
        scan is exhausted or the date would fall after rule.end_date
    """
    try:
        pattern = RepeatPattern(rule.type)
    except ValueError:
        logger.warning(f"Unrecognized recurrence type {rule.type!r}, no next occurrence")
        return None

    interval = 1 if rule.interval is None else rule.interval
    if interval <= 0:
        logger.warning(f"Non-positive recurrence interval {interval}, no next occurrence")
        return None

    if pattern is RepeatPattern.DAILY:
        candidate = current_date + timedelta(days=interval)

    elif pattern is RepeatPattern.WEEKLY:
        if rule.days_of_week:
            # Out-of-range entries never match and are ignored
            days = set(rule.days_of_week)
            candidate = _scan_forward(
                current_date, lambda d: _sunday_based_weekday(d) in days, max_iterations
            )
        else:
            candidate = current_date + timedelta(weeks=interval)

    elif pattern is RepeatPattern.WEEKDAYS:
        candidate = _scan_forward(current_date, lambda d: d.weekday() < 5, max_iterations)

    elif pattern is RepeatPattern.WEEKENDS:
        candidate = _scan_forward(current_date, lambda d: d.weekday() >= 5, max_iterations)

    elif pattern is RepeatPattern.MONTHLY:
        # relativedelta clamps the day of month instead of overflowing
        candidate = current_date + relativedelta(months=interval)

    else:
        candidate = current_date + relativedelta(years=interval)
        if current_date.month == 2 and current_date.day == 29 and candidate.day == 28:
            candidate = candidate + timedelta(days=1)

    if candidate is None:
        return None

    if rule.end_date is not None and _utc_instant(candidate) > _utc_instant(rule.end_date):
        return None

    return candidate


def should_generate_next_occurrence(reminder: ReminderRecord, now: Optional[datetime] = None) -> bool:
    """Whether a reminder may produce another occurrence.

    Requires a recurring, not completed reminder whose end date (if any) has
    not passed yet. recurring_end_after is not checked here: counting completed
    occurrences needs the rest of the series, which only the caller has.
    """
    if not reminder.is_recurring or reminder.completed:
        return False

    end_date = parse_end_date(reminder.recurring_end_date)
    if end_date is not None:
        now = now or datetime.now(timezone.utc)
        if _utc_instant(end_date) < _utc_instant(now):
            return False

    return True


def _build_occurrence(reminder: ReminderRecord, due_date: datetime, now: Optional[datetime] = None) -> ReminderRecord:
    timestamp = now or datetime.now(timezone.utc)
    return reminder.model_copy(
        deep=True,
        update={
            'id': str(uuid.uuid4()),
            'due_date': due_date,
            'is_recurring': True,
            'completed': False,
            'status': StatusEnum.PENDING,
            'deleted_at': None,
            'recurring_group_id': reminder.recurring_group_id or reminder.id,
            'created_at': timestamp,
            'updated_at': timestamp,
        }
    )


def generate_next_occurrence(
    reminder: ReminderRecord,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    now: Optional[datetime] = None
) -> Optional[ReminderRecord]:
    """Build the occurrence that follows `reminder` in its series.

    The new record copies every field of the source with a fresh id, the next
    due date, completed reset and fresh timestamps. Its recurring_group_id is
    the source's group id, or the source's own id when the source is the first
    occurrence. The input record is never modified.

    Args:
        reminder: Current occurrence
        max_iterations: Scan bound passed to calculate_next_occurrence_date
        now: Reference time for the end-date check and the new timestamps

    Returns:
        Optional[ReminderRecord]: The next occurrence, or None when the series
        should not continue or has no further date
    """
    if not should_generate_next_occurrence(reminder, now):
        return None

    if reminder.due_date is None:
        return None

    rule = parse_recurring_pattern(reminder)
    next_due = calculate_next_occurrence_date(reminder.due_date, rule, max_iterations)
    if next_due is None:
        return None

    return _build_occurrence(reminder, next_due, now)


def generate_occurrences(
    reminder: ReminderRecord,
    max_count: int = 50,
    max_iterations: int = DEFAULT_MAX_ITERATIONS
) -> List[ReminderRecord]:
    """Materialize up to `max_count` future occurrences after the reminder's due date.

    Each step advances from the previous computed date. The list is shorter
    than `max_count` when the end date is reached or a scan is exhausted.
    """
    if max_count <= 0 or reminder.due_date is None:
        return []

    rule = parse_recurring_pattern(reminder)
    occurrences: List[ReminderRecord] = []
    current = reminder.due_date

    while len(occurrences) < max_count:
        next_due = calculate_next_occurrence_date(current, rule, max_iterations)
        if next_due is None:
            break
        occurrences.append(_build_occurrence(reminder, next_due))
        current = next_due

    return occurrences


def get_recurring_pattern_description(reminder: ReminderRecord) -> str:
    """Human-readable summary, e.g. "Daily", "Every 3 days", "Weekly: Monday, Friday".

    Weekday lists are ordered Sunday to Saturday.
    """
    if not is_recurring_reminder(reminder):
        return 'Not recurring'

    rule = parse_recurring_pattern(reminder)
    try:
        pattern = RepeatPattern(rule.type)
    except ValueError:
        return 'Custom pattern'

    # weekdays/weekends ignore the interval when computing dates
    if pattern is RepeatPattern.WEEKDAYS:
        return 'Every weekday (Monday-Friday)'
    if pattern is RepeatPattern.WEEKENDS:
        return 'Every weekend (Saturday-Sunday)'

    # weekly rules with explicit days step day by day and ignore the interval
    interval = 1 if rule.days_of_week else (rule.interval or 1)
    if interval > 1:
        summary = f"Every {interval} {_UNIT_NAMES[pattern]}s"
    else:
        summary = _SINGLE_UNIT_DESCRIPTIONS[pattern]

    if rule.days_of_week:
        names = [WEEKDAY_NAMES[day] for day in sorted(set(rule.days_of_week)) if 0 <= day <= 6]
        if names:
            summary = f"{summary}: {', '.join(names)}"

    return summary


def validate_recurring_pattern(rule: RecurrenceRule) -> ValidationResult:
    """Check that a rule can be interpreted.

    Rejects a missing or unrecognized type and a non-positive interval.
    days_of_week contents are not checked; out-of-range days are simply never
    matched by the weekly scan.
    """
    errors: List[str] = []

    if not rule.type:
        errors.append('Pattern type is required')
    elif rule.type not in VALID_PATTERN_TYPES:
        errors.append(
            f"Invalid pattern type: {rule.type}. Must be one of: {', '.join(VALID_PATTERN_TYPES)}"
        )

    if rule.interval is not None and rule.interval <= 0:
        errors.append('Interval must be greater than 0')

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_recurring_reminder(reminder) -> ValidationResult:
    """Validate the recurrence settings of a reminder record or create payload.

    Adds record-level checks on top of validate_recurring_pattern: the
    end-after count must be at least 1 and the start date must precede the
    end date. Non-recurring reminders are always valid.
    """
    if not reminder.is_recurring:
        return ValidationResult(is_valid=True)

    errors = list(validate_recurring_pattern(parse_recurring_pattern(reminder)).errors)

    if reminder.recurring_end_after is not None and reminder.recurring_end_after < 1:
        errors.append('End after occurrences must be at least 1')

    start_date = reminder.recurring_start_date
    end_date = parse_end_date(reminder.recurring_end_date)
    if start_date is not None and end_date is not None:
        if _utc_instant(start_date) >= _utc_instant(end_date):
            errors.append('Recurring start date must be before end date')

    return ValidationResult(is_valid=not errors, errors=errors)

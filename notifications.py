"""Notification service client for Recurring Reminder Service.

Schedules notifications for newly generated occurrences and cancels them for
completed or deleted ones by calling an external notification service.
Failures are logged and reported through the return value; they never abort
reminder processing.
"""

from datetime import datetime, timedelta
from typing import List, Optional

import httpx

from config import settings
from logger_config import setup_logger
from schemas import ReminderRecord

logger = setup_logger(__name__, 'notifications.log')

REQUEST_TIMEOUT = 30.0


def notification_fire_times(reminder: ReminderRecord) -> List[datetime]:
    """Moments at which the reminder's notifications fire, earliest first.

    "before" timings fire `value` minutes before the due date, "after"
    timings after it, "exact" at the due date. A reminder with notifications
    enabled but no timings fires once at its due date.
    """
    if not reminder.has_notification or reminder.due_date is None:
        return []

    if not reminder.notification_timings:
        return [reminder.due_date]

    fire_times = set()
    for timing in reminder.notification_timings:
        offset = timedelta(minutes=timing.value)
        if timing.type == "before":
            fire_times.add(reminder.due_date - offset)
        elif timing.type == "after":
            fire_times.add(reminder.due_date + offset)
        else:
            fire_times.add(reminder.due_date)

    return sorted(fire_times)


async def schedule_reminder_notifications(reminder: ReminderRecord) -> Optional[dict]:
    """Ask the notification service to schedule a reminder's notifications.

    Args:
        reminder: Reminder or generated occurrence

    Returns:
        dict: API response if scheduled, None if skipped or failed
    """
    if not settings.NOTIFICATIONS_ENABLED:
        return None

    fire_times = notification_fire_times(reminder)
    if not fire_times:
        return None

    payload = {
        "reminder_id": reminder.id,
        "user_id": reminder.user_id,
        "title": reminder.title,
        "body": reminder.description or "",
        "recurring_group_id": reminder.recurring_group_id,
        "fire_at": [moment.isoformat() for moment in fire_times],
    }
    api_url = f"{settings.NOTIFICATION_API_URL}/api/notifications/schedule"

    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.post(api_url, json=payload)

        if response.status_code in (200, 201):
            logger.info(f"Scheduled {len(fire_times)} notification(s) for reminder {reminder.id}")
            return response.json()

        logger.error(
            f"Failed to schedule notifications for reminder {reminder.id}. "
            f"Status: {response.status_code}, Response: {response.text}"
        )
        return None

    except httpx.TimeoutException:
        logger.error(f"Timeout while scheduling notifications for reminder {reminder.id}")
        return None
    except httpx.RequestError as e:
        logger.error(f"Network error while scheduling notifications for reminder {reminder.id}: {str(e)}")
        return None
    except ValueError as e:
        logger.error(f"Invalid response while scheduling notifications for reminder {reminder.id}: {str(e)}")
        return None


async def cancel_reminder_notifications(reminder_id: str) -> bool:
    """Cancel every pending notification of a reminder.

    Returns:
        bool: True if the service acknowledged the cancellation
    """
    if not settings.NOTIFICATIONS_ENABLED:
        return False

    api_url = f"{settings.NOTIFICATION_API_URL}/api/notifications/{reminder_id}"

    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.delete(api_url)

        # Nothing scheduled counts as cancelled
        if response.status_code in (200, 204, 404):
            logger.info(f"Cancelled notifications for reminder {reminder_id}")
            return True

        logger.error(
            f"Failed to cancel notifications for reminder {reminder_id}. "
            f"Status: {response.status_code}, Response: {response.text}"
        )
        return False

    except httpx.TimeoutException:
        logger.error(f"Timeout while cancelling notifications for reminder {reminder_id}")
        return False
    except httpx.RequestError as e:
        logger.error(f"Network error while cancelling notifications for reminder {reminder_id}: {str(e)}")
        return False

"""Background Worker for Recurring Reminder Service.

This module runs the catch-up sweep for recurring reminders.

The worker:
- Runs continuously, sweeping every WORKER_CHECK_INTERVAL seconds (configurable)
- Finds users owning overdue recurring reminders
- Creates the next occurrence of each overdue series through recurring_service
- Bounds every user's sweep with SWEEP_TIMEOUT_SECONDS of wall-clock time
- Schedules notifications for the occurrences it created
"""

import asyncio
import signal
import sys
from typing import List

import crud
import database
import notifications
import recurring_service
from config import settings
from logger_config import setup_logger
from schemas import ReminderRecord

logger = setup_logger(__name__, 'worker.log')

# Global flag for graceful shutdown
shutdown_requested = False

# Throttle/de-duplication markers owned by this worker process
recurring_state = recurring_service.RecurringCheckState()


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


async def _schedule_notifications(created: List[ReminderRecord]):
    for occurrence in created:
        await notifications.schedule_reminder_notifications(occurrence)


def _sweep_user(user_id: str) -> List[ReminderRecord]:
    db = database.SessionLocal()
    try:
        created = recurring_service.check_and_generate_recurring_reminders(db, user_id, recurring_state)
    finally:
        db.close()

    # Notify from the sweep thread: a sweep that outlives its timeout still notifies
    if created:
        asyncio.run(_schedule_notifications(created))
    return created


async def sweep_user(user_id: str) -> List[ReminderRecord]:
    """Run one user's catch-up sweep in a thread, bounded by SWEEP_TIMEOUT_SECONDS.

    The thread cannot be cancelled. After a timeout it keeps running to the end
    of that user's sweep (one generation per overdue series) and schedules
    notifications for what it created; the caller just stops waiting for it.

    Raises:
        asyncio.TimeoutError: If the sweep did not finish in time
    """
    return await asyncio.wait_for(
        asyncio.to_thread(_sweep_user, user_id),
        timeout=settings.SWEEP_TIMEOUT_SECONDS
    )


async def process_overdue_recurring() -> int:
    """Sweep every user with overdue recurring reminders.

    Returns:
        int: Number of occurrences created by sweeps that finished in time
    """
    db = database.SessionLocal()
    try:
        user_ids = crud.get_users_with_overdue_recurring(db)
    finally:
        db.close()

    if not user_ids:
        logger.debug("No overdue recurring reminders at this time")
        return 0

    logger.info(f"Found {len(user_ids)} user(s) with overdue recurring reminders")

    created_total = 0
    for user_id in user_ids:
        try:
            created = await sweep_user(user_id)
        except asyncio.TimeoutError:
            logger.error(
                f"Recurring check for user {user_id} timed out after {settings.SWEEP_TIMEOUT_SECONDS}s, "
                f"it finishes in the background"
            )
            continue
        except Exception as e:
            logger.error(f"Recurring check for user {user_id} failed: {str(e)}", exc_info=True)
            continue

        created_total += len(created)

    return created_total


async def worker_loop():
    """Main worker loop that runs continuously."""
    logger.info("Background worker started")
    logger.info(f"Worker enabled: {settings.WORKER_ENABLED}")
    logger.info(f"Check interval: {settings.WORKER_CHECK_INTERVAL} seconds")
    logger.info(f"Sweep timeout: {settings.SWEEP_TIMEOUT_SECONDS} seconds")

    if not settings.WORKER_ENABLED:
        logger.warning("Worker is disabled in configuration. Exiting.")
        return

    iteration = 0
    while not shutdown_requested:
        try:
            iteration += 1
            created = await process_overdue_recurring()
            if created:
                logger.info(f"Worker iteration {iteration} created {created} occurrence(s)")

            # Sleep in 1-second steps to allow quick shutdown
            for _ in range(settings.WORKER_CHECK_INTERVAL):
                if shutdown_requested:
                    break
                await asyncio.sleep(1)

        except Exception as e:
            logger.error(f"Error in worker loop iteration {iteration}: {str(e)}", exc_info=True)
            await asyncio.sleep(5)

    logger.info("Background worker shutting down gracefully")


def main():
    """Main entry point for the background worker."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 60)
    logger.info("Recurring Reminder Service - Background Worker")
    logger.info("=" * 60)

    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error in background worker: {str(e)}", exc_info=True)
        sys.exit(1)

    logger.info("Background worker stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()

"""FastAPI REST API server for Recurring Reminder Service.

This module provides HTTP endpoints for managing reminders and their
recurrence: completing an occurrence creates the next one, and recurring
series can be described, previewed and deleted as a whole.

IMPORTANT: Pydantic automatically converts ISO datetime strings to datetime objects.
"""

from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

import crud
import database
import notifications
import recurrence
import recurring_service
import schemas
from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'api.log')

app = FastAPI(
    title="Recurring Reminder Service API",
    description="Reminders with daily, weekly, monthly, yearly, weekday and weekend recurrence",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

origins = [
    "http://localhost:1800",
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Throttle/de-duplication markers owned by the API process
recurring_state = recurring_service.RecurringCheckState()


def _get_record_or_404(db: Session, reminder_id: str, user_id: str) -> schemas.ReminderRecord:
    reminder = crud.get_reminder(db, reminder_id, user_id)
    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return crud.to_record(reminder)


def _raise_if_invalid(reminder) -> None:
    validation = recurrence.validate_recurring_reminder(reminder)
    if not validation.is_valid:
        raise HTTPException(status_code=422, detail=validation.errors)


@app.get("/")
def root():
    """Root endpoint - service information"""
    return {
        "service": "Recurring Reminder Service API",
        "version": "1.0.0",
        "status": "healthy",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "reminders": "/reminders",
            "recurring_check": "/recurring/check"
        }
    }


@app.get("/health")
def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "recurring_reminder_service",
        "database": settings.DATABASE_URL.split("://")[0]
    }


@app.post("/reminders", response_model=schemas.ReminderResponse, status_code=201)
def create_reminder(
    reminder: schemas.ReminderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(database.get_db)
):
    """Create a new reminder.

    Request body example:
    ```json
    {
        "user_id": "user-1",
        "title": "Team standup",
        "due_date": "2025-10-27T09:30:00Z",
        "is_recurring": true,
        "repeat_pattern": "weekly",
        "repeat_days": [1, 3, 5],
        "recurring_end_after": 10
    }
    ```

    A recurring reminder starts a new series whose group id is its own id.
    Invalid recurrence settings are rejected with 422 and a list of errors.
    """
    _raise_if_invalid(reminder)

    try:
        created = crud.to_record(crud.create_reminder(db, reminder.model_dump()))
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Error creating reminder: {str(e)}")

    background_tasks.add_task(notifications.schedule_reminder_notifications, created)
    return created


@app.get("/reminders", response_model=List[schemas.ReminderResponse])
def list_reminders(
    user_id: str = Query(..., description="Owner of the reminders"),
    status: Optional[str] = Query(None, pattern="^(pending|completed|cancelled)$", description="Filter by status"),
    limit: int = Query(50, ge=1, le=1000, description="Maximum number of results"),
    db: Session = Depends(database.get_db)
):
    """List all reminders for a user, latest due first."""
    return crud.get_reminders_by_user(db, user_id, status, limit)


@app.get("/reminders/due/now", response_model=List[schemas.ReminderResponse])
def check_due_reminders(
    user_id: str = Query(..., description="Owner of the reminders"),
    db: Session = Depends(database.get_db)
):
    """Get all pending reminders whose due date has passed."""
    return crud.get_due_reminders(db, user_id)


@app.get("/reminders/{reminder_id}", response_model=schemas.ReminderResponse)
def get_reminder(
    reminder_id: str,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Get a specific reminder by ID."""
    return _get_record_or_404(db, reminder_id, user_id)


@app.put("/reminders/{reminder_id}", response_model=schemas.ReminderResponse)
def update_reminder(
    reminder_id: str,
    updates: schemas.ReminderUpdate,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Update an existing reminder.

    Only provided fields will be updated. The resulting recurrence settings are
    validated before anything is stored.
    """
    current = _get_record_or_404(db, reminder_id, user_id)
    update_dict = updates.model_dump(exclude_unset=True)

    _raise_if_invalid(current.model_copy(update={k: v for k, v in update_dict.items() if v is not None}))

    try:
        reminder = crud.update_reminder(db, reminder_id, user_id, update_dict)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Error updating reminder: {str(e)}")

    if not reminder:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return reminder


@app.delete("/reminders/{reminder_id}", status_code=200)
def delete_reminder(
    reminder_id: str,
    background_tasks: BackgroundTasks,
    user_id: str = Query(..., description="Owner of the reminder"),
    series: bool = Query(False, description="Delete every occurrence of the recurring series"),
    db: Session = Depends(database.get_db)
):
    """Soft-delete a reminder, or its whole recurring series with series=true."""
    if series:
        deleted_ids = recurring_service.delete_recurring_series(db, reminder_id, user_id)
    else:
        deleted_ids = [reminder_id] if crud.delete_reminder(db, reminder_id, user_id) else []

    if not deleted_ids:
        raise HTTPException(status_code=404, detail="Reminder not found")

    for deleted_id in deleted_ids:
        background_tasks.add_task(notifications.cancel_reminder_notifications, deleted_id)

    return {"message": "Reminder deleted successfully", "deleted_ids": deleted_ids}


@app.post("/reminders/{reminder_id}/complete", response_model=schemas.CompletionResponse)
def complete_reminder(
    reminder_id: str,
    background_tasks: BackgroundTasks,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Complete a reminder; a recurring one gets its next occurrence."""
    result = recurring_service.complete_reminder(db, reminder_id, user_id, recurring_state)
    if result is None:
        raise HTTPException(status_code=404, detail="Reminder not found")

    completed, next_occurrence = result
    background_tasks.add_task(notifications.cancel_reminder_notifications, completed.id)
    if next_occurrence is not None:
        background_tasks.add_task(notifications.schedule_reminder_notifications, next_occurrence)

    return {"completed": completed, "next_occurrence": next_occurrence}


@app.get("/reminders/{reminder_id}/recurrence", response_model=schemas.RecurrenceInfo)
def get_recurrence(
    reminder_id: str,
    user_id: str = Query(..., description="Owner of the reminder"),
    db: Session = Depends(database.get_db)
):
    """Describe how a reminder repeats."""
    reminder = _get_record_or_404(db, reminder_id, user_id)
    rule = recurrence.parse_recurring_pattern(reminder)

    return schemas.RecurrenceInfo(
        description=recurrence.get_recurring_pattern_description(reminder),
        rule=rule,
        validation=recurrence.validate_recurring_pattern(rule),
        end_condition=recurrence.get_end_condition(reminder),
    )


@app.get("/reminders/{reminder_id}/occurrences", response_model=List[schemas.ReminderResponse])
def preview_occurrences(
    reminder_id: str,
    user_id: str = Query(..., description="Owner of the reminder"),
    count: int = Query(10, ge=1, le=100, description="Maximum number of occurrences"),
    db: Session = Depends(database.get_db)
):
    """Preview upcoming occurrences without storing them."""
    reminder = _get_record_or_404(db, reminder_id, user_id)
    if not recurrence.is_recurring_reminder(reminder):
        return []
    return recurrence.generate_occurrences(reminder, count, settings.MAX_SCAN_ITERATIONS)


@app.post("/recurring/check")
def check_recurring(
    background_tasks: BackgroundTasks,
    user_id: str = Query(..., description="User whose overdue recurring reminders are processed"),
    db: Session = Depends(database.get_db)
):
    """Run the catch-up sweep for one user (throttled per user)."""
    created = recurring_service.check_and_generate_recurring_reminders(db, user_id, recurring_state)

    for occurrence in created:
        background_tasks.add_task(notifications.schedule_reminder_notifications, occurrence)

    return {
        "user_id": user_id,
        "created": [schemas.ReminderResponse.model_validate(o.model_dump()) for o in created]
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info"
    )

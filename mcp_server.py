"""MCP Server for Recurring Reminder Service.

This module provides MCP tools for AI agents to create recurring reminders,
complete occurrences and inspect how a reminder repeats.
Uses the same database as the REST API for data consistency.

Transport Support:
- stdio: Standard input/output (local process communication)
- sse: Server-Sent Events over HTTP (network access)
"""

import os
from datetime import datetime, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from mcp.server.fastmcp import FastMCP

import crud
import database
import recurrence
import recurring_service
import schemas
from config import settings
from logger_config import setup_logger

logger = setup_logger(__name__, 'mcp.log')

mcp = FastMCP(
    "RecurringReminderService",
    host=settings.MCP_HOST,
    port=settings.MCP_PORT
)

# Throttle/de-duplication markers owned by the MCP server process
recurring_state = recurring_service.RecurringCheckState()


def parse_datetime_to_utc(datetime_str: str) -> datetime:
    """Parse an ISO datetime string and convert it to UTC.

    Naive values are interpreted in settings.TIMEZONE.

    Raises:
        ValueError: If the string is not ISO 8601
    """
    dt = datetime.fromisoformat(datetime_str.replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(settings.TIMEZONE))
    return dt.astimezone(timezone.utc)


def _format_occurrence(reminder) -> str:
    due = reminder.due_date.strftime("%Y-%m-%d %H:%M %Z") if reminder.due_date else "no due date"
    return f"• {reminder.title} | Due: {due} | ID: {reminder.id}"


@mcp.tool()
def create_reminder(
    user_id: str,
    title: str,
    due_datetime: str,
    description: str = "",
    priority: str = "medium",
    repeat_pattern: Optional[str] = None,
    custom_interval: Optional[int] = None,
    repeat_days: Optional[List[int]] = None,
    recurring_end_date: Optional[str] = None,
    recurring_end_after: Optional[int] = None
) -> str:
    """Create a reminder, optionally recurring.

    Args:
        user_id: Owner of the reminder
        title: Reminder title
        due_datetime: When the reminder is due - ISO format (e.g., "2025-10-26T15:00:00Z")
        description: Optional detailed description
        priority: "low", "medium" or "high"
        repeat_pattern: "daily", "weekly", "monthly", "yearly", "weekdays" or "weekends"
        custom_interval: Repeat every N days/weeks/months/years
        repeat_days: Weekdays for weekly reminders, 0=Sunday ... 6=Saturday
        recurring_end_date: Last possible date of the series - ISO format
        recurring_end_after: Stop after this many completed occurrences

    Returns:
        Success message with reminder ID and recurrence, or error message
    """
    db = database.SessionLocal()
    try:
        logger.info(f"Creating reminder: {title} | Due: {due_datetime} | Repeat: {repeat_pattern}")

        reminder = schemas.ReminderCreate(
            user_id=user_id,
            title=title,
            description=description,
            priority=priority,
            due_date=parse_datetime_to_utc(due_datetime),
            is_recurring=bool(repeat_pattern),
            repeat_pattern=repeat_pattern,
            custom_interval=custom_interval,
            repeat_days=repeat_days,
            recurring_end_date=parse_datetime_to_utc(recurring_end_date) if recurring_end_date else None,
            recurring_end_after=recurring_end_after,
        )

        validation = recurrence.validate_recurring_reminder(reminder)
        if not validation.is_valid:
            return "✗ Invalid recurrence: " + "; ".join(validation.errors)

        created = crud.to_record(crud.create_reminder(db, reminder.model_dump()))

        return (
            f"✓ Reminder created successfully!\n"
            f"ID: {created.id}\n"
            f"Title: {created.title}\n"
            f"Due: {created.due_date.isoformat()}\n"
            f"Repeats: {recurrence.get_recurring_pattern_description(created)}"
        )
    except Exception as e:
        return f"✗ Error creating reminder: {str(e)}"
    finally:
        db.close()


@mcp.tool()
def list_reminders(user_id: str, status: str = None, limit: int = 50) -> str:
    """List reminders for a user.

    Args:
        user_id: Owner of the reminders
        status: Optional status filter - "pending", "completed", or "cancelled"
        limit: Maximum number of results (default: 50, max: 1000)
    """
    db = database.SessionLocal()
    try:
        reminders = [crud.to_record(r) for r in crud.get_reminders_by_user(db, user_id, status, min(limit, 1000))]

        if not reminders:
            filter_text = f" with status '{status}'" if status else ""
            return f"No reminders found{filter_text}."

        result = [f"Found {len(reminders)} reminder(s):"]
        for r in reminders:
            result.append(
                f"\n[{r.status.value.upper()}] {_format_occurrence(r)}\n"
                f"  Repeats: {recurrence.get_recurring_pattern_description(r)}"
            )
        return "\n".join(result)
    finally:
        db.close()


@mcp.tool()
def complete_reminder(reminder_id: str, user_id: str) -> str:
    """Mark a reminder completed; a recurring reminder gets its next occurrence.

    Args:
        reminder_id: Reminder UUID
        user_id: Owner of the reminder
    """
    db = database.SessionLocal()
    try:
        result = recurring_service.complete_reminder(db, reminder_id, user_id, recurring_state)
        if result is None:
            return "✗ Reminder not found."

        completed, next_occurrence = result
        message = f"✓ Completed: {completed.title}"
        if next_occurrence is not None:
            message += f"\nNext occurrence:\n{_format_occurrence(next_occurrence)}"
        elif completed.is_recurring:
            message += "\nNo further occurrence was created."
        return message
    except Exception as e:
        return f"✗ Error completing reminder: {str(e)}"
    finally:
        db.close()


@mcp.tool()
def describe_recurrence(reminder_id: str, user_id: str) -> str:
    """Explain how a reminder repeats and whether its recurrence is valid.

    Args:
        reminder_id: Reminder UUID
        user_id: Owner of the reminder
    """
    db = database.SessionLocal()
    try:
        row = crud.get_reminder(db, reminder_id, user_id)
        if not row:
            return "✗ Reminder not found."

        reminder = crud.to_record(row)
        validation = recurrence.validate_recurring_pattern(recurrence.parse_recurring_pattern(reminder))
        lines = [
            f"{reminder.title}",
            f"Repeats: {recurrence.get_recurring_pattern_description(reminder)}",
            f"Ends: {recurrence.get_end_condition(reminder)}",
            f"Series: {reminder.recurring_group_id or 'N/A'}",
        ]
        if reminder.is_recurring and not validation.is_valid:
            lines.append("Problems: " + "; ".join(validation.errors))
        return "\n".join(lines)
    finally:
        db.close()


@mcp.tool()
def preview_occurrences(reminder_id: str, user_id: str, count: int = 5) -> str:
    """List the next occurrences of a recurring reminder without creating them.

    Args:
        reminder_id: Reminder UUID
        user_id: Owner of the reminder
        count: Number of occurrences to show (max 50)
    """
    db = database.SessionLocal()
    try:
        row = crud.get_reminder(db, reminder_id, user_id)
        if not row:
            return "✗ Reminder not found."

        reminder = crud.to_record(row)
        if not recurrence.is_recurring_reminder(reminder):
            return "This reminder does not repeat."

        occurrences = recurrence.generate_occurrences(reminder, min(count, 50), settings.MAX_SCAN_ITERATIONS)
        if not occurrences:
            return "No upcoming occurrences (the series has ended)."

        return "\n".join(
            [f"Next {len(occurrences)} occurrence(s) of '{reminder.title}':"]
            + [o.due_date.strftime("%Y-%m-%d %H:%M") for o in occurrences]
        )
    finally:
        db.close()


if __name__ == "__main__":
    transport = os.getenv("MCP_TRANSPORT", settings.MCP_TRANSPORT).lower()

    if transport == "sse":
        print(f"Starting MCP server with SSE transport on {settings.MCP_HOST}:{settings.MCP_PORT}")
        print(f"SSE endpoint: http://{settings.MCP_HOST}:{settings.MCP_PORT}/sse")
        mcp.run(transport="sse")
    else:
        print("Starting MCP server with stdio transport")
        mcp.run(transport="stdio")

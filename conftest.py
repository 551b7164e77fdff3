import os

# Must be set before any module instantiates Settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["WORKER_ENABLED"] = "false"

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402


@pytest.fixture
def db():
    """Session on the in-memory database, emptied after each test."""
    import database

    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.query(database.Reminder).delete()
        session.commit()
        session.close()


@pytest.fixture
def make_reminder():
    """Build a ReminderRecord with sensible defaults."""
    from schemas import ReminderRecord

    def _make(**overrides):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        fields = {
            "id": "rem-1",
            "user_id": "user-1",
            "title": "Water the plants",
            "due_date": datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc),
            "is_recurring": True,
            "repeat_pattern": "daily",
            "created_at": created,
            "updated_at": created,
        }
        fields.update(overrides)
        return ReminderRecord(**fields)

    return _make

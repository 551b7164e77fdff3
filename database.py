"""Database module for Recurring Reminder Service.

This module defines SQLAlchemy models and database session management.
IMPORTANT: due_date is stored as DateTime object, NOT string.
"""

from sqlalchemy import Boolean, Column, DateTime, Enum as SQLEnum, Index, Integer, JSON, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from schemas import PriorityEnum, ReminderType, StatusEnum

# SQLAlchemy Base
Base = declarative_base()


class Reminder(Base):
    """Reminder model - one row per occurrence.

    Occurrences of one recurring series share recurring_group_id, which is the
    id of the series' first occurrence.
    """

    __tablename__ = "reminders"

    # Primary Key
    id = Column(String, primary_key=True, doc="Unique reminder ID (UUID)")
    user_id = Column(String, nullable=False, index=True, doc="Owner of the reminder")

    # Reminder Content
    title = Column(String, nullable=False, doc="Reminder title")
    description = Column(String, default="", doc="Optional detailed description")
    type = Column(SQLEnum(ReminderType), default=ReminderType.REMINDER, doc="Kind of reminder")
    priority = Column(SQLEnum(PriorityEnum), default=PriorityEnum.MEDIUM, doc="Priority level")
    status = Column(SQLEnum(StatusEnum), default=StatusEnum.PENDING, index=True, doc="Current status")

    due_date = Column(DateTime(timezone=True), nullable=True, doc="When the reminder is due")
    due_time = Column(String, nullable=True, doc="Display time HH:MM")
    location = Column(String, nullable=True)
    tags = Column(JSON, default=list)
    is_favorite = Column(Boolean, default=False, nullable=False)

    # Recurrence
    is_recurring = Column(Boolean, default=False, nullable=False)
    repeat_pattern = Column(String, nullable=True, doc="daily, weekly, monthly, yearly, weekdays, weekends")
    custom_interval = Column(Integer, nullable=True, doc="Every N units")
    repeat_days = Column(JSON, nullable=True, doc="Weekdays for weekly patterns (0=Sunday)")
    recurring_start_date = Column(DateTime(timezone=True), nullable=True)
    recurring_end_date = Column(DateTime(timezone=True), nullable=True)
    recurring_end_after = Column(Integer, nullable=True, doc="Maximum completed occurrences")
    recurring_group_id = Column(String, nullable=True, index=True, doc="Id of the series' first occurrence")

    # Notifications and assignment
    has_notification = Column(Boolean, default=False, nullable=False)
    notification_timings = Column(JSON, default=list)
    assigned_to = Column(JSON, default=list)
    assigned_by = Column(String, nullable=True)

    # System fields
    completed = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, doc="Soft delete marker")
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index('idx_user_status', 'user_id', 'status'),
        Index('idx_group_due', 'recurring_group_id', 'due_date'),
        Index('idx_user_due', 'user_id', 'due_date'),
    )

    def __repr__(self):
        """String representation"""
        return (
            f"<Reminder(id={self.id}, user={self.user_id}, title={self.title}, "
            f"due={self.due_date}, group={self.recurring_group_id}, status={self.status.value})>"
        )


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    options = {"connect_args": {"check_same_thread": False}}
    # In-memory databases live as long as their single connection
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


# Database Engine Setup
engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))

# Session Factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Database session dependency for FastAPI.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Create all tables
Base.metadata.create_all(bind=engine)

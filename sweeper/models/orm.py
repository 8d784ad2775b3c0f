"""SQLAlchemy ORM models.

These models define the database schema. DAOs convert these to Pydantic
domain models before returning to services - SQLAlchemy objects should
never leak outside the DAO layer.
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)

from sweeper.database import Base
from sweeper.enums import DispatchSource
from sweeper.utils import utcnow


class ScheduleModel(Base):
    """Cleaning schedule ORM model.

    Trigger variants are stored flattened; unused columns stay NULL.
    """

    __tablename__ = "schedules"

    id = Column(String, primary_key=True)
    profile_id = Column(String, nullable=False, index=True)
    trigger = Column(String, nullable=False)
    frequency = Column(String, nullable=True)
    time = Column(String, nullable=True)
    day_of_week = Column(Integer, nullable=True)
    day_of_month = Column(Integer, nullable=True)
    interval_minutes = Column(Integer, nullable=True)
    idle_minutes = Column(Integer, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    last_run = Column(DateTime, nullable=True)
    next_run = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class ExecutionLogModel(Base):
    """Execution history ORM model.

    No foreign key to schedules: history outlives deleted schedules.
    """

    __tablename__ = "execution_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    schedule_id = Column(String, nullable=False, index=True)
    profile_id = Column(String, nullable=False)
    source = Column(String, nullable=False, default=DispatchSource.TIME.value)
    started_at = Column(DateTime, nullable=False, index=True)
    finished_at = Column(DateTime, nullable=False)
    duration_seconds = Column(Float, nullable=False, default=0.0)
    status = Column(String, nullable=False)
    items_cleaned = Column(Integer, nullable=False, default=0)
    space_freed = Column(BigInteger, nullable=False, default=0)
    error = Column(Text, nullable=True)
    skip_reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_execution_logs_schedule_started", "schedule_id", "started_at"),
    )

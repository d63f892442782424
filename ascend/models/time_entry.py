"""TimeEntry SQLAlchemy model for time tracking."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class TimeEntry(Base):
    """
    A span of tracked time against a task, note or project.

    A running timer has ``end_time`` and ``duration`` unset. ``duration`` is
    stored in whole seconds once the timer stops.
    """

    __tablename__ = "time_entries"
    __allow_unmapped__ = True
    __table_args__ = (
        # At most one running timer per user
        Index(
            "ux_time_entries_one_running",
            "user_id",
            unique=True,
            postgresql_where=text("end_time IS NULL"),
            sqlite_where=text("end_time IS NULL"),
        ),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)
    timezone = Column(String(64), nullable=False, default="UTC")
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    @property
    def is_running(self) -> bool:
        return self.end_time is None

    def __repr__(self) -> str:
        return (
            f"<TimeEntry(id={self.id}, {self.entity_type}={self.entity_id}, "
            f"duration={self.duration})>"
        )

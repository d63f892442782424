"""Task SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class Task(Base):
    """
    Task model: a unit of work, optionally belonging to a project.

    Tasks without a project are personal tasks visible only to their creator.
    Ordering within a Kanban column is by ``position`` (lowest first).

    Attributes:
        id: Unique identifier (UUID)
        project_id: FK to parent project (nullable for standalone tasks)
        title: Task title
        description: Optional description (plain text, markdown or HTML)
        status: todo, in-progress or done
        priority: low, medium, high or urgent
        due_date: Optional due date/time
        assignee_id: FK to assigned user
        is_duplicate: Marked as a duplicate of another task
        is_archived: Hidden from active lists and search
        position: Order within the status column
        source_type: manual or ai_extraction
        created_by: FK to the creating user
        due_reminder_sent_at: When the due reminder went out, cleared on reschedule
    """

    __tablename__ = "tasks"
    __allow_unmapped__ = True

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    # Foreign keys
    project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    assignee_id = Column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_by = Column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="todo", index=True)
    priority = Column(String(20), nullable=False, default="medium")
    due_date = Column(DateTime, nullable=True)
    due_reminder_sent_at = Column(DateTime, nullable=True)

    is_duplicate = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    source_type = Column(String(20), nullable=False, default="manual")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title={self.title}, status={self.status})>"

"""Project SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class Project(Base):
    """
    Project model: the grouping entity that owns tasks, notes and documents.

    Deleting a project removes its members, tasks, notes, documents,
    comments and activity entries through ON DELETE CASCADE.

    Attributes:
        id: Unique identifier (UUID)
        title: Project title
        description: Optional description (plain text, markdown or HTML)
        status: active, completed or archived
        priority: low, medium, high or urgent
        color: Hex color used for display
        lead_id: FK to the user leading the project
        due_date: Optional due date/time
        created_by: FK to the creating user (the project owner)
        due_reminder_sent_at: When the due reminder went out, cleared on reschedule
    """

    __tablename__ = "projects"
    __allow_unmapped__ = True

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active", index=True)
    priority = Column(String(20), nullable=False, default="medium")
    color = Column(String(7), nullable=False, default="#3b82f6")

    lead_id = Column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    due_date = Column(DateTime, nullable=True)
    due_reminder_sent_at = Column(DateTime, nullable=True)

    created_by = Column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, title={self.title})>"

"""ProjectDocument SQLAlchemy model for links, documents and quick notes."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID

from ..database import Base


class ProjectDocument(Base):
    """
    A document attached to a project.

    ``type`` decides which field carries the payload: links use ``url``,
    notes use ``content``, documents may use either.
    """

    __tablename__ = "project_documents"
    __allow_unmapped__ = True

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    url = Column(String(2000), nullable=True)
    content = Column(Text, nullable=True)
    type = Column(String(20), nullable=False, default="link")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ProjectDocument(id={self.id}, type={self.type}, title={self.title})>"

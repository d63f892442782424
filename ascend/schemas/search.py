"""Pydantic schemas for global search."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..utils.descriptions import strip_formatting

SNIPPET_LENGTH = 120


class TaskSearchHit(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    status: str
    project_id: Optional[UUID] = None
    description: Optional[str] = Field(None, exclude=True)

    @computed_field
    @property
    def snippet(self) -> Optional[str]:
        """Description as one line of plain text, cut to SNIPPET_LENGTH."""
        if not self.description:
            return None
        text = strip_formatting(self.description)
        if len(text) <= SNIPPET_LENGTH:
            return text or None
        return text[:SNIPPET_LENGTH].rstrip() + "…"


class ProjectSearchHit(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    color: str


class SearchResults(BaseModel):
    """Title matches across tasks and projects."""

    tasks: list[TaskSearchHit]
    projects: list[ProjectSearchHit]

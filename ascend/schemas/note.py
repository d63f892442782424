"""Pydantic schemas for notes and note-task links."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import SafeOptionalString, SafeRequiredString


class NoteCreate(BaseModel):
    """Schema for creating a note."""

    title: SafeRequiredString(200) = Field(..., description="Note title", examples=["Kickoff meeting"])
    content: SafeOptionalString(50000) = Field(None, description="Note body")


class NoteUpdate(BaseModel):
    """Schema for updating a note."""

    title: Optional[SafeRequiredString(200)] = Field(None, description="Note title")
    content: SafeOptionalString(50000) = Field(None, description="Note body")


class NoteTaskCreate(BaseModel):
    """Link an existing task to a note."""

    task_id: UUID = Field(..., description="Task to link")


class NoteResponse(BaseModel):
    """Schema for note response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    title: str
    content: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class NoteWithTasks(NoteResponse):
    """Note with the IDs of its linked tasks."""

    task_ids: list[UUID] = Field(default_factory=list)

"""Pydantic schemas for comments."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import SafeRequiredString


class CommentCreate(BaseModel):
    """Schema for creating a comment on a task or project."""

    content: SafeRequiredString(5000) = Field(..., description="Comment text")
    mentioned_user_ids: list[UUID] = Field(
        default_factory=list,
        description="Users mentioned in the comment; each gets a mention notification",
    )


class CommentUpdate(BaseModel):
    """Schema for editing a comment."""

    content: SafeRequiredString(5000) = Field(..., description="Comment text")


class CommentAuthor(BaseModel):
    """Minimal author info shown next to a comment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class CommentResponse(BaseModel):
    """Schema for comment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    author_id: UUID
    content: str
    created_at: datetime
    updated_at: datetime
    author: Optional[CommentAuthor] = None

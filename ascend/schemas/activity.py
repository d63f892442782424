"""Pydantic schemas for the project activity feed."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .user import UserSummary


class ActivityAction(str, Enum):
    """Kinds of activity recorded in a project's feed."""

    TASK_CREATED = "task_created"
    TASK_STATUS_CHANGED = "task_status_changed"
    TASK_PRIORITY_CHANGED = "task_priority_changed"
    TASK_ASSIGNED = "task_assigned"
    TASK_DELETED = "task_deleted"
    COMMENT_ADDED = "comment_added"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    PROJECT_UPDATED = "project_updated"
    NOTE_CREATED = "note_created"
    NOTE_UPDATED = "note_updated"
    NOTE_DELETED = "note_deleted"


class ActivityResponse(BaseModel):
    """One activity feed entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    task_id: Optional[UUID] = None
    actor_id: Optional[UUID] = None
    action: ActivityAction
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    actor: Optional[UserSummary] = None


class ActivityPage(BaseModel):
    """A page of activity, newest first."""

    items: list[ActivityResponse]
    next_cursor: Optional[datetime] = Field(
        None,
        description="Pass as ?before= to fetch the next page; null when exhausted",
    )

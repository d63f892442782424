"""Pydantic schemas for Notification model validation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Notification type enumeration."""

    MENTION = "mention"
    TASK_ASSIGNED = "task_assigned"
    TASK_UNASSIGNED = "task_unassigned"
    PROJECT_INVITED = "project_invited"
    PROJECT_LEAD_ASSIGNED = "project_lead_assigned"
    PROJECT_LEAD_REMOVED = "project_lead_removed"
    TASK_DUE = "task_due"
    PROJECT_DUE = "project_due"


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    actor_id: Optional[UUID] = None
    type: NotificationType
    comment_id: Optional[UUID] = None
    task_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    read: bool = False
    created_at: datetime


class UnreadCount(BaseModel):
    """Number of unread notifications for the current user."""

    count: int = Field(..., ge=0)


class MarkAllReadResult(BaseModel):
    """Result of marking every notification read."""

    updated: int = Field(..., ge=0)

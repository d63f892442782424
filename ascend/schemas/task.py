"""Pydantic schemas for Task model validation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .common import Priority, SafeOptionalString, SafeRequiredString, UtcDateTime
from ..utils import dates


class TaskStatus(str, Enum):
    """Kanban column a task sits in."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class TaskSource(str, Enum):
    """How the task was created."""

    MANUAL = "manual"
    AI_EXTRACTION = "ai_extraction"


class TaskCreate(BaseModel):
    """
    Schema for creating a new task.

    When ``position`` is omitted the task is placed at the end of its
    status column.
    """

    project_id: Optional[UUID] = Field(
        None,
        description="Parent project; omit for a personal task",
    )
    title: SafeRequiredString(200) = Field(
        ...,
        description="Task title",
        examples=["Implement user authentication"],
    )
    description: SafeOptionalString(5000) = Field(
        None,
        description="Task description (markdown or HTML)",
    )
    status: TaskStatus = Field(TaskStatus.TODO, description="Task status")
    priority: Priority = Field(Priority.MEDIUM, description="Task priority")
    position: Optional[int] = Field(None, ge=0, description="Order within the status column")
    due_date: Optional[UtcDateTime] = Field(None, description="Task due date/time")
    assignee_id: Optional[UUID] = Field(None, description="Assigned user")
    source_type: TaskSource = Field(TaskSource.MANUAL, description="How the task was created")


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only provided fields are changed."""

    project_id: Optional[UUID] = Field(None, description="Move the task to another project")
    title: Optional[SafeRequiredString(200)] = Field(None, description="Task title")
    description: SafeOptionalString(5000) = Field(None, description="Task description")
    status: Optional[TaskStatus] = Field(None, description="Task status")
    priority: Optional[Priority] = Field(None, description="Task priority")
    is_duplicate: Optional[bool] = Field(None, description="Mark as duplicate")
    is_archived: Optional[bool] = Field(None, description="Archive or restore")
    position: Optional[int] = Field(None, ge=0, description="Order within the status column")
    due_date: Optional[UtcDateTime] = Field(None, description="Task due date/time")
    assignee_id: Optional[UUID] = Field(None, description="Assigned user")


class TaskPositionUpdate(BaseModel):
    """Move a task to a status column and position (drag and drop)."""

    id: UUID = Field(..., description="Task ID")
    status: TaskStatus = Field(..., description="Destination column")
    position: int = Field(..., ge=0, description="Destination position")


class TaskReorder(BaseModel):
    """Bulk position update for several tasks at once."""

    items: list[TaskPositionUpdate] = Field(..., min_length=1, max_length=500)


class TaskResponse(BaseModel):
    """Schema for task response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: Priority
    due_date: Optional[datetime] = None
    assignee_id: Optional[UUID] = None
    is_duplicate: bool = False
    is_archived: bool = False
    position: int = 0
    source_type: TaskSource = TaskSource.MANUAL
    created_by: UUID
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def is_overdue(self) -> bool:
        """Past its due day and not done."""
        if self.due_date is None or self.status == TaskStatus.DONE:
            return False
        return dates.is_overdue(self.due_date)

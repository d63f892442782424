"""Pydantic schemas for Project model validation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import HexColor, Priority, SafeLongText, SafeRequiredString, UtcDateTime


class ProjectStatus(str, Enum):
    """Project lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class ProjectCreate(BaseModel):
    """Schema for creating a new project."""

    title: SafeRequiredString(100) = Field(
        ...,
        description="Project title",
        examples=["Website Redesign"],
    )
    description: SafeLongText = Field(
        None,
        description="Project description",
    )
    status: ProjectStatus = Field(
        ProjectStatus.ACTIVE,
        description="Project status",
    )
    priority: Priority = Field(
        Priority.MEDIUM,
        description="Project priority",
        examples=["medium", "high"],
    )
    color: HexColor = Field(
        "#3b82f6",
        description="Display color as #rrggbb",
        examples=["#3b82f6"],
    )
    lead_id: Optional[UUID] = Field(None, description="User leading the project")
    due_date: Optional[UtcDateTime] = Field(None, description="Project due date/time")


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Only provided fields are changed."""

    title: Optional[SafeRequiredString(100)] = Field(None, description="Project title")
    description: SafeLongText = Field(None, description="Project description")
    status: Optional[ProjectStatus] = Field(None, description="Project status")
    priority: Optional[Priority] = Field(None, description="Project priority")
    color: Optional[HexColor] = Field(None, description="Display color as #rrggbb")
    lead_id: Optional[UUID] = Field(None, description="User leading the project")
    due_date: Optional[UtcDateTime] = Field(None, description="Project due date/time")


class ProjectResponse(BaseModel):
    """Schema for project response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: Optional[str] = None
    status: ProjectStatus
    priority: Priority
    color: str
    lead_id: Optional[UUID] = None
    due_date: Optional[datetime] = None
    created_by: UUID
    created_at: datetime
    updated_at: datetime


class ProjectWithCounts(ProjectResponse):
    """Project list item with task progress counts."""

    task_count: int = Field(0, description="Non-archived tasks in the project")
    done_count: int = Field(0, description="Non-archived tasks marked done")

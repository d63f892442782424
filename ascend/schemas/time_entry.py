"""Pydantic schemas for time tracking."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import SafeOptionalString, UtcDateTime


class TimeEntityType(str, Enum):
    """What a time entry is tracked against."""

    TASK = "task"
    NOTE = "note"
    PROJECT = "project"


class TimerStart(BaseModel):
    """Start a timer against an entity."""

    entity_type: TimeEntityType = Field(..., description="Entity kind")
    entity_id: UUID = Field(..., description="Entity ID")
    timezone: str = Field("UTC", max_length=64, description="IANA timezone of the user")
    description: SafeOptionalString(500) = Field(None, description="What is being worked on")


class TimeEntryCreate(TimerStart):
    """Record a finished span of time manually."""

    start_time: UtcDateTime = Field(..., description="Start of the span")
    end_time: UtcDateTime = Field(..., description="End of the span")

    @model_validator(mode="after")
    def check_range(self) -> "TimeEntryCreate":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class TimeEntryUpdate(BaseModel):
    """Edit a time entry; duration is recomputed from start and end."""

    start_time: Optional[UtcDateTime] = None
    end_time: Optional[UtcDateTime] = None
    description: SafeOptionalString(500) = None


class TimeEntryResponse(BaseModel):
    """Schema for time entry response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: TimeEntityType
    entity_id: UUID
    user_id: UUID
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, description="Seconds; unset while running")
    timezone: str
    description: Optional[str] = None
    created_at: datetime


class TaskTimeTotal(BaseModel):
    """Seconds tracked against one task."""

    task_id: UUID
    title: str
    seconds: int
    status: Optional[str] = None
    is_archived: Optional[bool] = None


class DayTimeGroup(BaseModel):
    """Seconds tracked on one calendar day, broken down by task."""

    date: str = Field(..., description="YYYY-MM-DD")
    total_seconds: int
    tasks: list[TaskTimeTotal]


class ProjectTimeReport(BaseModel):
    """Aggregated time tracked on a project's tasks."""

    project_id: UUID
    total_seconds: int
    formatted_total: str
    by_task: list[TaskTimeTotal]
    by_day: list[DayTimeGroup]

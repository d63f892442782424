"""Pydantic schemas for ProjectMember model validation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .user import UserSummary


class MemberRole(str, Enum):
    """Role of a project member.

    - OWNER: Can edit the project and manage members
    - MEMBER: Can read and edit project content
    """

    OWNER = "owner"
    MEMBER = "member"


class ProjectMemberInvite(BaseModel):
    """Invite an existing user to a project by email."""

    email: EmailStr = Field(..., description="Email of the user to invite")
    role: MemberRole = Field(MemberRole.MEMBER, description="Role to grant")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ProjectMemberUpdate(BaseModel):
    """Change a member's role."""

    role: MemberRole = Field(..., description="New role")


class ProjectMemberResponse(BaseModel):
    """Schema for project member response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    user_id: UUID
    role: MemberRole
    invited_by: Optional[UUID] = None
    invited_at: datetime
    accepted_at: Optional[datetime] = None
    user: Optional[UserSummary] = None

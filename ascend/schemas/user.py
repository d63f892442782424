"""Pydantic schemas for users, registration and account settings."""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from ..utils.security import PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH, password_strength_errors

ACCOUNT_DELETION_PHRASE = "delete my account"


class UserBase(BaseModel):
    """Base schema with common user fields."""

    email: EmailStr = Field(
        ...,
        description="User's email address",
        examples=["user@example.com"],
    )
    display_name: Optional[str] = Field(
        None,
        max_length=50,
        description="User's display name",
        examples=["Jane Doe"],
    )


class UserCreate(UserBase):
    """Schema for creating a new user (registration)."""

    password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
        description="User's password (will be hashed)",
        examples=["SecureP4ssword"],
    )


class UserResponse(UserBase):
    """Schema for user response (public data only)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique user identifier")
    avatar_url: Optional[str] = Field(None, description="URL to user's avatar image")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserSummary(BaseModel):
    """Minimal user info embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


# ============================================================================
# Account settings
# ============================================================================


class ProfileUpdate(BaseModel):
    """Change the display name."""

    display_name: str = Field(..., description="New display name")

    @field_validator("display_name")
    @classmethod
    def check_display_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Display name is required")
        if len(value) > 50:
            raise ValueError("Display name must be less than 50 characters")
        return value


class EmailChange(BaseModel):
    """Change the login email address."""

    new_email: EmailStr = Field(..., description="New email address")


class PasswordChange(BaseModel):
    """
    Change the password.

    The new password needs 8 to 72 characters with at least one lowercase
    letter, one uppercase letter and one digit. It must match the
    confirmation and differ from the current password.
    """

    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., description="New password")
    confirm_password: str = Field(..., min_length=1, description="New password again")

    @field_validator("new_password")
    @classmethod
    def check_strength(cls, value: str) -> str:
        errors = password_strength_errors(value)
        if errors:
            raise ValueError("; ".join(errors))
        return value

    @model_validator(mode="after")
    def check_confirmation(self) -> "PasswordChange":
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        if self.new_password == self.current_password:
            raise ValueError("New password must be different from current password")
        return self


class AccountDeletion(BaseModel):
    """Typed confirmation required before deleting an account."""

    confirmation: Literal["delete my account"] = Field(
        ...,
        description=f'Must be exactly "{ACCOUNT_DELETION_PHRASE}"',
    )

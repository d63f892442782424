"""Shared field types and enumerations used across request schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, Field

from ..utils.sanitize import sanitize_string, sanitize_url


class Priority(str, Enum):
    """Priority shared by projects and tasks."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def _required_text(value: str) -> str:
    cleaned = sanitize_string(value)
    if not cleaned:
        raise ValueError("This field is required")
    return cleaned


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return sanitize_string(value)


def _optional_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return sanitize_url(value)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store timestamps as naive UTC, matching the database columns."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def SafeRequiredString(max_length: int = 500):
    """Required text: 1..max_length characters, sanitized."""
    return Annotated[str, Field(min_length=1, max_length=max_length), AfterValidator(_required_text)]


def SafeOptionalString(max_length: int = 2000):
    """Optional text up to max_length characters, sanitized."""
    return Annotated[Optional[str], Field(max_length=max_length), AfterValidator(_optional_text)]


# Long-form text (descriptions) with no length cap
SafeLongText = Annotated[Optional[str], AfterValidator(_optional_text)]

# URL: at most 2000 characters; unsafe or malformed URLs become None
SafeUrl = Annotated[Optional[str], Field(max_length=2000), AfterValidator(_optional_url)]

UtcDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]

HexColor = Annotated[str, Field(pattern=r"^#[0-9a-fA-F]{6}$")]

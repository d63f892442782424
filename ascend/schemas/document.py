"""Pydantic schemas for project documents."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import SafeOptionalString, SafeRequiredString, SafeUrl


class DocumentType(str, Enum):
    """Kind of project document."""

    LINK = "link"
    DOCUMENT = "document"
    NOTE = "note"


class DocumentCreate(BaseModel):
    """Schema for creating a project document."""

    title: SafeRequiredString(200) = Field(..., description="Document title")
    url: SafeUrl = Field(None, description="http(s) URL", examples=["https://example.com/brief"])
    content: SafeOptionalString(10000) = Field(None, description="Inline content")
    type: DocumentType = Field(DocumentType.LINK, description="Document type")

    @model_validator(mode="after")
    def check_payload_for_type(self) -> "DocumentCreate":
        if self.type == DocumentType.LINK and not self.url:
            raise ValueError("Links require a URL, notes require content")
        if self.type == DocumentType.NOTE and not self.content:
            raise ValueError("Links require a URL, notes require content")
        return self


class DocumentUpdate(BaseModel):
    """Schema for updating a project document."""

    title: Optional[SafeRequiredString(200)] = Field(None, description="Document title")
    url: SafeUrl = Field(None, description="http(s) URL")
    content: SafeOptionalString(10000) = Field(None, description="Inline content")
    type: Optional[DocumentType] = Field(None, description="Document type")


class DocumentResponse(BaseModel):
    """Schema for document response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    title: str
    url: Optional[str] = None
    content: Optional[str] = None
    type: DocumentType
    created_at: datetime
    updated_at: datetime

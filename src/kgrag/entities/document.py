"""Document entity - represents an ingested source document."""

from datetime import datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class Document(BaseModel):
    """A source document owned by a workspace.

    Only the fields needed for ingestion and for citing sources are modelled;
    binary storage and upload bookkeeping live outside this package.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace: str = Field(..., min_length=1, description="Tenant scope")
    file_name: str = Field(..., description="Display name of the document")
    file_type: str = Field(default="txt", description="File extension or MIME-ish type tag")
    content: str = Field(default="", description="Normalized text content")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("file_name")
    @classmethod
    def file_name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Document file_name cannot be empty")
        return v

    @property
    def is_markdown(self) -> bool:
        return self.file_type.lower() in ("md", "markdown")

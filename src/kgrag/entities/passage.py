"""Passage entity - a bounded span of a document's text."""

from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class ChunkType(str, Enum):
    """Where the passage text came from."""

    TEXT = "text"
    TABLE = "table"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"


class Passage(BaseModel):
    """The atomic unit of vector retrieval.

    A passage belongs to exactly one document; ``chunk_order_index`` values
    are contiguous and zero-based per document.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace: str = Field(..., min_length=1, description="Tenant scope")
    document_id: str = Field(..., description="Parent document ID")
    chunk_order_index: int = Field(..., ge=0, description="Position in the document")
    content: str = Field(..., description="Text content of this passage")
    tokens: int = Field(default=0, ge=0, description="Estimated token count")
    chunk_type: ChunkType = Field(default=ChunkType.TEXT)
    content_vector: Optional[list[float]] = Field(default=None, repr=False)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def content_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Passage content cannot be empty")
        return v

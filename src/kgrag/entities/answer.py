"""Response envelope returned by the query pipeline."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from kgrag.entities.passage import ChunkType
from kgrag.entities.search_result import RetrievalResult


class AnswerStatus(str, Enum):
    """Outcome of answer generation.

    NO_EVIDENCE and GENERATION_FAILED both carry fixed text, the status lets
    callers tell them apart and decide whether a retry makes sense.
    """

    NO_EVIDENCE = "no_evidence"
    GENERATED = "generated"
    GENERATION_FAILED = "generation_failed"


class SourceReference(BaseModel):
    """Citation-ready view of a passage."""

    id: str
    content: str
    document_id: str
    document_name: str
    document_type: str
    similarity: float
    chunk_type: ChunkType = ChunkType.TEXT


class EntitySummary(BaseModel):
    """Name and type of an entity used as evidence."""

    name: str
    type: str


class QueryResponse(BaseModel):
    """Always well-formed, whatever happened during generation."""

    status: AnswerStatus
    response: str
    sources: list[SourceReference] = Field(default_factory=list)
    entities: list[EntitySummary] = Field(default_factory=list)
    retrieval: Optional[RetrievalResult] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.status == AnswerStatus.GENERATED


class StreamEvent(BaseModel):
    """One event of a streamed answer."""

    type: str = Field(..., pattern="^(context|text|done)$")
    data: Any = None

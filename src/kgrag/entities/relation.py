"""Relation - a typed, directed edge between two entities."""

from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class Relation(BaseModel):
    """An edge of the knowledge graph.

    Both endpoints must resolve to entities of the same workspace.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace: str = Field(..., min_length=1, description="Tenant scope")
    source_entity_id: str
    target_entity_id: str
    relation_type: str = Field(..., description="Type label, e.g. WORKS_FOR")
    description: Optional[str] = None
    content_vector: Optional[list[float]] = Field(default=None, repr=False)
    source_chunk_ids: list[str] = Field(default_factory=list)

"""Entity - a named concept extracted from one or more passages."""

from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class Entity(BaseModel):
    """A node of the knowledge graph.

    ``source_chunk_ids`` links the entity back to the passages it was derived
    from. Persisted entities always carry at least one source passage; only
    placeholders built during graph traversal have an empty list.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    workspace: str = Field(..., min_length=1, description="Tenant scope")
    entity_name: str = Field(..., description="Display name")
    entity_type: str = Field(default="", description="Type label, e.g. PERSON")
    description: Optional[str] = None
    content_vector: Optional[list[float]] = Field(default=None, repr=False)
    source_chunk_ids: list[str] = Field(default_factory=list)

    @classmethod
    def placeholder(cls, entity_id: str, workspace: str, name: str) -> "Entity":
        """Build a name-only entity for an endpoint reached through a relation."""
        return cls(id=entity_id, workspace=workspace, entity_name=name)

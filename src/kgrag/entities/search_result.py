"""Scored items and the request-scoped retrieval aggregate."""

from enum import Enum

from pydantic import BaseModel, Field

from kgrag.entities.entity import Entity
from kgrag.entities.passage import Passage
from kgrag.entities.relation import Relation

# Scores assigned to items reached through provenance links rather than
# ranked directly by a similarity search. Not calibrated against cosine scores.
LINKED_PASSAGE_SCORE = 0.8
PLACEHOLDER_ENTITY_SCORE = 0.7


class QueryMode(str, Enum):
    """Retrieval strategies."""

    NAIVE = "naive"
    LOCAL = "local"
    GLOBAL = "global"
    HYBRID = "hybrid"
    MIX = "mix"

    @classmethod
    def parse(cls, value: "str | QueryMode | None") -> "QueryMode":
        """Exact-match a mode name, falling back to ``MIX``."""
        if isinstance(value, QueryMode):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.MIX


class ScoredPassage(BaseModel):
    """A passage with its similarity to the query."""

    passage: Passage
    similarity: float = Field(..., ge=0.0, le=1.0)

    @property
    def id(self) -> str:
        return self.passage.id


class ScoredEntity(BaseModel):
    """An entity with its similarity to the query."""

    entity: Entity
    similarity: float = Field(..., ge=0.0, le=1.0)

    @property
    def id(self) -> str:
        return self.entity.id


class ScoredRelation(BaseModel):
    """A relation with its similarity to the query."""

    relation: Relation
    similarity: float = Field(..., ge=0.0, le=1.0)

    @property
    def id(self) -> str:
        return self.relation.id


class RetrievalResult(BaseModel):
    """Ranked evidence for one request. Never persisted or shared."""

    passages: list[ScoredPassage] = Field(default_factory=list)
    entities: list[ScoredEntity] = Field(default_factory=list)
    relations: list[ScoredRelation] = Field(default_factory=list)
    context: str = ""

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to answer from."""
        return not self.passages and not self.entities

"""Entities - domain models for the retrieval engine.

- Document: an ingested source document
- Passage: a bounded span of a document, the unit of vector retrieval
- Entity / Relation: nodes and edges of the extracted knowledge graph
- Scored*: items annotated with a similarity score
- RetrievalResult / QueryResponse: request-scoped aggregates
"""

from kgrag.entities.answer import (
    AnswerStatus,
    EntitySummary,
    QueryResponse,
    SourceReference,
    StreamEvent,
)
from kgrag.entities.document import Document
from kgrag.entities.entity import Entity
from kgrag.entities.passage import ChunkType, Passage
from kgrag.entities.relation import Relation
from kgrag.entities.search_result import (
    LINKED_PASSAGE_SCORE,
    PLACEHOLDER_ENTITY_SCORE,
    QueryMode,
    RetrievalResult,
    ScoredEntity,
    ScoredPassage,
    ScoredRelation,
)

__all__ = [
    "AnswerStatus",
    "ChunkType",
    "Document",
    "Entity",
    "EntitySummary",
    "LINKED_PASSAGE_SCORE",
    "PLACEHOLDER_ENTITY_SCORE",
    "Passage",
    "QueryMode",
    "QueryResponse",
    "Relation",
    "RetrievalResult",
    "ScoredEntity",
    "ScoredPassage",
    "ScoredRelation",
    "SourceReference",
    "StreamEvent",
]

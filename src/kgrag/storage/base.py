"""Abstract base class for knowledge stores.

Why this exists:
- The retriever only needs two read primitives: similarity search over one
  of three logical collections, and keyed lookup by ID
- Separates the retrieval algorithms from the database that backs them
- Enables testing with an in-memory implementation

Every read takes a ``workspace`` and must only return items of that
workspace. Writes exist for ingestion and fixtures; the retriever never
calls them.

How to extend:
1. Subclass KnowledgeStore
2. Implement all abstract methods
3. Register in ``kgrag.storage.create_knowledge_store``
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Union

from kgrag.config.schema import StoreConfig
from kgrag.entities import (
    Document,
    Entity,
    Passage,
    Relation,
    ScoredEntity,
    ScoredPassage,
    ScoredRelation,
)

DEFAULT_MATCH_THRESHOLD = 0.3

StoredItem = Union[Passage, Entity, Relation]
ScoredItem = Union[ScoredPassage, ScoredEntity, ScoredRelation]


class Collection(str, Enum):
    """Logical collections that can be searched."""

    PASSAGES = "passages"
    ENTITIES = "entities"
    RELATIONS = "relations"


def to_scored(collection: Collection, item: StoredItem, score: float) -> ScoredItem:
    """Wrap a stored item with its similarity, clamped to [0, 1]."""
    score = min(1.0, max(0.0, score))
    if collection == Collection.PASSAGES:
        return ScoredPassage(passage=item, similarity=score)
    if collection == Collection.ENTITIES:
        return ScoredEntity(entity=item, similarity=score)
    return ScoredRelation(relation=item, similarity=score)


class KnowledgeStore(ABC):
    """Abstract interface for the passage/entity/relation store."""

    storage_type = "abstract"

    def __init__(self, config: Optional[StoreConfig] = None) -> None:
        """Initialize storage with configuration."""
        self.config = config or StoreConfig()

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare collections, connections, indices."""

    @abstractmethod
    async def search(
        self,
        collection: Collection,
        query_vector: list[float],
        workspace: str,
        match_count: int,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> list[ScoredItem]:
        """Similarity search within one workspace.

        Args:
            collection: Which logical collection to search
            query_vector: Query embedding
            workspace: Tenant scope
            match_count: Maximum number of matches
            match_threshold: Only matches scoring strictly above this are returned

        Returns:
            Matches ordered by descending similarity

        Raises:
            StorageError: If the search fails
        """

    @abstractmethod
    async def get_by_ids(
        self, collection: Collection, ids: list[str], workspace: str
    ) -> list[StoredItem]:
        """Fetch items by ID within one workspace. Unknown IDs are skipped.

        Raises:
            StorageError: If the lookup fails
        """

    @abstractmethod
    async def get_documents(self, ids: list[str], workspace: str) -> list[Document]:
        """Fetch documents by ID within one workspace."""

    @abstractmethod
    async def add_document(self, document: Document) -> None:
        """Store a document."""

    @abstractmethod
    async def add_passages(self, passages: list[Passage]) -> None:
        """Store passages (with their vectors)."""

    @abstractmethod
    async def add_entities(self, entities: list[Entity]) -> None:
        """Store entities (with their vectors)."""

    @abstractmethod
    async def add_relations(self, relations: list[Relation]) -> None:
        """Store relations (with their vectors)."""

    @abstractmethod
    async def count(self, collection: Collection, workspace: Optional[str] = None) -> int:
        """Count items, optionally within one workspace."""

    @abstractmethod
    async def close(self) -> None:
        """Close connections and cleanup resources."""


class StorageError(Exception):
    """Base exception for storage errors."""

    def __init__(self, message: str, storage_type: str, original_error: Optional[Exception] = None):
        self.message = message
        self.storage_type = storage_type
        self.original_error = original_error
        super().__init__(self.message)

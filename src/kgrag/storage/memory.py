"""In-memory knowledge store for testing and development.

Stores everything in dictionaries and scores with plain cosine similarity.
Useful for:
- Testing without external dependencies
- Development and prototyping
"""

from typing import Optional

from kgrag.entities import Document, Entity, Passage, Relation
from kgrag.storage.base import (
    DEFAULT_MATCH_THRESHOLD,
    Collection,
    KnowledgeStore,
    ScoredItem,
    StoredItem,
    to_scored,
)


def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
    """Calculate cosine similarity between two vectors."""
    if len(vec1) != len(vec2):
        return 0.0

    dot_product = sum(a * b for a, b in zip(vec1, vec2))
    magnitude1 = sum(a * a for a in vec1) ** 0.5
    magnitude2 = sum(b * b for b in vec2) ** 0.5

    if magnitude1 == 0 or magnitude2 == 0:
        return 0.0

    return dot_product / (magnitude1 * magnitude2)


class InMemoryKnowledgeStore(KnowledgeStore):
    """Dictionary-backed store. Items are kept in insertion order."""

    storage_type = "memory"

    def __init__(self, config=None) -> None:
        super().__init__(config)
        self.documents: dict[str, Document] = {}
        self.collections: dict[Collection, dict[str, StoredItem]] = {
            collection: {} for collection in Collection
        }

    async def initialize(self) -> None:
        pass

    async def search(
        self,
        collection: Collection,
        query_vector: list[float],
        workspace: str,
        match_count: int,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> list[ScoredItem]:
        scored = []
        for item in self.collections[collection].values():
            if item.workspace != workspace or item.content_vector is None:
                continue
            score = cosine_similarity(query_vector, item.content_vector)
            if score > match_threshold:
                scored.append((score, item))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [to_scored(collection, item, score) for score, item in scored[:match_count]]

    async def get_by_ids(
        self, collection: Collection, ids: list[str], workspace: str
    ) -> list[StoredItem]:
        items = self.collections[collection]
        return [
            items[item_id]
            for item_id in dict.fromkeys(ids)
            if item_id in items and items[item_id].workspace == workspace
        ]

    async def get_documents(self, ids: list[str], workspace: str) -> list[Document]:
        return [
            self.documents[doc_id]
            for doc_id in dict.fromkeys(ids)
            if doc_id in self.documents and self.documents[doc_id].workspace == workspace
        ]

    async def add_document(self, document: Document) -> None:
        self.documents[document.id] = document

    async def add_passages(self, passages: list[Passage]) -> None:
        for passage in passages:
            self.collections[Collection.PASSAGES][passage.id] = passage

    async def add_entities(self, entities: list[Entity]) -> None:
        for entity in entities:
            self.collections[Collection.ENTITIES][entity.id] = entity

    async def add_relations(self, relations: list[Relation]) -> None:
        for relation in relations:
            self.collections[Collection.RELATIONS][relation.id] = relation

    async def count(self, collection: Collection, workspace: Optional[str] = None) -> int:
        items = self.collections[collection].values()
        if workspace is None:
            return len(items)
        return sum(1 for item in items if item.workspace == workspace)

    async def close(self) -> None:
        self.documents.clear()
        for items in self.collections.values():
            items.clear()

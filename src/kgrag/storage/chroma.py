"""Chroma knowledge store.

One Chroma collection per logical collection (``{prefix}_passages``,
``{prefix}_entities``, ``{prefix}_relations``), all using cosine space.
Every record carries a ``workspace`` metadata field and every read filters
on it. Chroma metadata only holds scalars, so ID lists are stored as JSON.

Document display data (name and type) is denormalized onto passage
metadata; documents themselves are not stored in Chroma.

Trade-offs:
- Single-node, file-based storage
- Chroma calls are synchronous and run in a worker thread
"""

import asyncio
import json
import re
from typing import Any, Optional

import structlog

from kgrag.config.schema import StoreConfig
from kgrag.entities import ChunkType, Document, Entity, Passage, Relation
from kgrag.storage.base import (
    DEFAULT_MATCH_THRESHOLD,
    Collection,
    KnowledgeStore,
    ScoredItem,
    StorageError,
    StoredItem,
    to_scored,
)

logger = structlog.get_logger(__name__)


def sanitize_collection_name(name: str) -> str:
    """Sanitize a collection name for Chroma (3-63 chars, alphanumeric ends)."""
    sanitized = re.sub(r"[^a-zA-Z0-9_-]", "_", name)
    if sanitized and not sanitized[0].isalnum():
        sanitized = "c" + sanitized
    if sanitized and not sanitized[-1].isalnum():
        sanitized = sanitized + "0"
    if len(sanitized) < 3:
        sanitized = sanitized + "_kg"
    return sanitized[:63]


def _passage_metadata(passage: Passage, document: Optional[Document]) -> dict[str, Any]:
    metadata = {
        "workspace": passage.workspace,
        "document_id": passage.document_id,
        "chunk_order_index": passage.chunk_order_index,
        "tokens": passage.tokens,
        "chunk_type": passage.chunk_type.value,
        "extra": json.dumps(passage.metadata),
    }
    if document is not None:
        metadata["file_name"] = document.file_name
        metadata["file_type"] = document.file_type
    return metadata


def _entity_metadata(entity: Entity) -> dict[str, Any]:
    return {
        "workspace": entity.workspace,
        "entity_name": entity.entity_name,
        "entity_type": entity.entity_type,
        "description": entity.description or "",
        "source_chunk_ids": json.dumps(entity.source_chunk_ids),
    }


def _relation_metadata(relation: Relation) -> dict[str, Any]:
    return {
        "workspace": relation.workspace,
        "source_entity_id": relation.source_entity_id,
        "target_entity_id": relation.target_entity_id,
        "relation_type": relation.relation_type,
        "description": relation.description or "",
        "source_chunk_ids": json.dumps(relation.source_chunk_ids),
    }


def _to_item(collection: Collection, item_id: str, document: str, metadata: dict) -> StoredItem:
    if collection == Collection.PASSAGES:
        return Passage(
            id=item_id,
            workspace=metadata["workspace"],
            document_id=metadata["document_id"],
            chunk_order_index=metadata["chunk_order_index"],
            content=document,
            tokens=metadata.get("tokens", 0),
            chunk_type=ChunkType(metadata.get("chunk_type", "text")),
            metadata=json.loads(metadata.get("extra", "{}")),
        )
    if collection == Collection.ENTITIES:
        return Entity(
            id=item_id,
            workspace=metadata["workspace"],
            entity_name=metadata["entity_name"],
            entity_type=metadata.get("entity_type", ""),
            description=metadata.get("description") or None,
            source_chunk_ids=json.loads(metadata.get("source_chunk_ids", "[]")),
        )
    return Relation(
        id=item_id,
        workspace=metadata["workspace"],
        source_entity_id=metadata["source_entity_id"],
        target_entity_id=metadata["target_entity_id"],
        relation_type=metadata["relation_type"],
        description=metadata.get("description") or None,
        source_chunk_ids=json.loads(metadata.get("source_chunk_ids", "[]")),
    )


class ChromaKnowledgeStore(KnowledgeStore):
    """Persistent store backed by ChromaDB.

    Example:
        config = StoreConfig(store_type="chroma", persist_directory=Path("./kg_db"))
        store = ChromaKnowledgeStore(config)
        await store.initialize()
    """

    storage_type = "chroma"

    def __init__(self, config: Optional[StoreConfig] = None) -> None:
        super().__init__(config)
        self.persist_directory = str(self.config.persist_directory or "./kgrag_db")
        self._client = None
        self._collections: dict[Collection, Any] = {}
        self._documents: dict[str, Document] = {}

    async def initialize(self) -> None:
        """Create the persistent client and the three collections.

        Raises:
            StorageError: If chromadb is missing or initialization fails
        """
        try:
            import chromadb
        except ImportError as e:
            raise StorageError(
                message="chromadb not installed. Install with: pip install chromadb",
                storage_type="chroma",
                original_error=e,
            ) from e

        try:
            self._client = chromadb.PersistentClient(path=self.persist_directory)
            for collection in Collection:
                name = sanitize_collection_name(f"{self.config.collection_prefix}_{collection.value}")
                self._collections[collection] = self._client.get_or_create_collection(
                    name=name,
                    metadata={"hnsw:space": "cosine"},
                )
        except Exception as e:
            raise StorageError(
                message=f"Failed to initialize Chroma client: {e}",
                storage_type="chroma",
                original_error=e,
            ) from e

        logger.info("chroma_knowledge_store_initialized", persist_directory=self.persist_directory)

    def _collection(self, collection: Collection) -> Any:
        if collection not in self._collections:
            raise StorageError(message="Store not initialized", storage_type="chroma")
        return self._collections[collection]

    async def search(
        self,
        collection: Collection,
        query_vector: list[float],
        workspace: str,
        match_count: int,
        match_threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> list[ScoredItem]:
        chroma_collection = self._collection(collection)
        try:
            results = await asyncio.to_thread(
                chroma_collection.query,
                query_embeddings=[query_vector],
                n_results=match_count,
                where={"workspace": workspace},
                include=["documents", "metadatas", "distances"],
            )
        except Exception as e:
            raise StorageError(
                message=f"Failed to search {collection.value}: {e}",
                storage_type="chroma",
                original_error=e,
            ) from e

        matches: list[ScoredItem] = []
        if not results["ids"] or not results["ids"][0]:
            return matches

        for i, item_id in enumerate(results["ids"][0]):
            metadata = results["metadatas"][0][i]
            if metadata.get("workspace") != workspace:
                continue
            # Cosine space: distance = 1 - similarity
            score = 1.0 - results["distances"][0][i]
            if score <= match_threshold:
                continue
            item = _to_item(collection, item_id, results["documents"][0][i] or "", metadata)
            matches.append(to_scored(collection, item, score))

        matches.sort(key=lambda match: match.similarity, reverse=True)
        return matches

    async def get_by_ids(
        self, collection: Collection, ids: list[str], workspace: str
    ) -> list[StoredItem]:
        if not ids:
            return []
        chroma_collection = self._collection(collection)
        try:
            results = await asyncio.to_thread(
                chroma_collection.get,
                ids=list(dict.fromkeys(ids)),
                where={"workspace": workspace},
                include=["documents", "metadatas"],
            )
        except Exception as e:
            raise StorageError(
                message=f"Failed to fetch {collection.value} by id: {e}",
                storage_type="chroma",
                original_error=e,
            ) from e

        return [
            _to_item(collection, item_id, results["documents"][i] or "", results["metadatas"][i])
            for i, item_id in enumerate(results["ids"])
            if results["metadatas"][i].get("workspace") == workspace
        ]

    async def get_documents(self, ids: list[str], workspace: str) -> list[Document]:
        if not ids:
            return []
        found = {
            doc_id: self._documents[doc_id]
            for doc_id in ids
            if doc_id in self._documents and self._documents[doc_id].workspace == workspace
        }
        missing = [doc_id for doc_id in dict.fromkeys(ids) if doc_id not in found]
        if missing:
            passages = self._collection(Collection.PASSAGES)
            try:
                results = await asyncio.to_thread(
                    passages.get,
                    where={"$and": [{"workspace": workspace}, {"document_id": {"$in": missing}}]},
                    include=["metadatas"],
                )
            except Exception as e:
                raise StorageError(
                    message=f"Failed to fetch documents: {e}",
                    storage_type="chroma",
                    original_error=e,
                ) from e
            for metadata in results["metadatas"]:
                doc_id = metadata["document_id"]
                if doc_id in found or "file_name" not in metadata:
                    continue
                found[doc_id] = Document(
                    id=doc_id,
                    workspace=workspace,
                    file_name=metadata["file_name"],
                    file_type=metadata.get("file_type", "unknown"),
                )
        return [found[doc_id] for doc_id in dict.fromkeys(ids) if doc_id in found]

    async def add_document(self, document: Document) -> None:
        self._documents[document.id] = document

    async def _upsert(self, collection: Collection, ids, embeddings, metadatas, documents) -> None:
        if not ids:
            return
        try:
            await asyncio.to_thread(
                self._collection(collection).upsert,
                ids=ids,
                embeddings=embeddings,
                metadatas=metadatas,
                documents=documents,
            )
        except Exception as e:
            raise StorageError(
                message=f"Failed to store {collection.value}: {e}",
                storage_type="chroma",
                original_error=e,
            ) from e
        logger.info("items_stored", collection=collection.value, count=len(ids))

    @staticmethod
    def _require_vectors(items: list) -> None:
        missing = [item.id for item in items if item.content_vector is None]
        if missing:
            raise StorageError(
                message=f"Items without content_vector cannot be stored: {missing[:5]}",
                storage_type="chroma",
            )

    async def add_passages(self, passages: list[Passage]) -> None:
        self._require_vectors(passages)
        await self._upsert(
            Collection.PASSAGES,
            [p.id for p in passages],
            [p.content_vector for p in passages],
            [_passage_metadata(p, self._documents.get(p.document_id)) for p in passages],
            [p.content for p in passages],
        )

    async def add_entities(self, entities: list[Entity]) -> None:
        self._require_vectors(entities)
        await self._upsert(
            Collection.ENTITIES,
            [e.id for e in entities],
            [e.content_vector for e in entities],
            [_entity_metadata(e) for e in entities],
            [f"{e.entity_name}: {e.description or ''}" for e in entities],
        )

    async def add_relations(self, relations: list[Relation]) -> None:
        self._require_vectors(relations)
        await self._upsert(
            Collection.RELATIONS,
            [r.id for r in relations],
            [r.content_vector for r in relations],
            [_relation_metadata(r) for r in relations],
            [f"{r.relation_type}: {r.description or ''}" for r in relations],
        )

    async def count(self, collection: Collection, workspace: Optional[str] = None) -> int:
        chroma_collection = self._collection(collection)
        if workspace is None:
            return await asyncio.to_thread(chroma_collection.count)
        results = await asyncio.to_thread(
            chroma_collection.get, where={"workspace": workspace}, include=[]
        )
        return len(results["ids"])

    async def close(self) -> None:
        self._collections.clear()
        self._documents.clear()
        self._client = None

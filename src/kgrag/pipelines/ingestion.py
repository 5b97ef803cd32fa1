"""Ingestion pipeline: chunk, embed and store documents and graph items.

Why this exists:
- Turns a document into embedded passages the retriever can search
- Stores entities and relations produced by an upstream extractor, after
  checking their provenance and workspace invariants

Entity and relation extraction itself happens upstream.

How to use:
    from kgrag.pipelines.ingestion import IngestionPipeline

    pipeline = IngestionPipeline(config, embedding_provider, store)
    result = await pipeline.ingest(document)
"""

from dataclasses import dataclass
from typing import Optional

from kgrag.config.schema import AppConfig
from kgrag.core.chunking import create_passages
from kgrag.entities import Document, Entity, Relation
from kgrag.observability.logging import get_logger
from kgrag.providers.base import EmbeddingProvider, ProviderError
from kgrag.storage.base import Collection, KnowledgeStore, StorageError

logger = get_logger(__name__)


@dataclass
class IngestionResult:
    """Result of an ingestion call."""

    workspace: str
    document_id: Optional[str] = None
    passage_count: int = 0
    entity_count: int = 0
    relation_count: int = 0


class IngestionError(Exception):
    """Raised when content cannot be ingested."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


def entity_text(entity: Entity) -> str:
    """Text embedded for an entity."""
    if entity.description:
        return f"{entity.entity_name}: {entity.description}"
    return entity.entity_name


def relation_text(relation: Relation, names: dict[str, str]) -> str:
    """Text embedded for a relation, using endpoint names where known."""
    source = names.get(relation.source_entity_id, relation.source_entity_id)
    target = names.get(relation.target_entity_id, relation.target_entity_id)
    text = f"{source} {relation.relation_type} {target}"
    if relation.description:
        text += f": {relation.description}"
    return text


class IngestionPipeline:
    """Pipeline for adding content to a workspace's knowledge store."""

    def __init__(
        self,
        config: AppConfig,
        embedding_provider: EmbeddingProvider,
        store: KnowledgeStore,
    ):
        self.config = config
        self.embedding_provider = embedding_provider
        self.store = store

    async def _embed_all(self, texts: list[str]) -> list[list[float]]:
        batch_size = self.config.embedding.batch_size
        vectors: list[list[float]] = []
        try:
            for start in range(0, len(texts), batch_size):
                vectors.extend(await self.embedding_provider.embed_batch(texts[start : start + batch_size]))
        except ProviderError as e:
            raise IngestionError(f"Embedding failed: {e.message}", original_error=e) from e
        if len(vectors) != len(texts):
            raise IngestionError(f"Embedder returned {len(vectors)} vectors for {len(texts)} texts")
        return vectors

    async def ingest(self, document: Document) -> IngestionResult:
        """Chunk, embed and store one document.

        Raises:
            IngestionError: If the document is empty or embedding/storage fails
        """
        logger.info("ingestion_started", document_id=document.id, workspace=document.workspace)

        passages = create_passages(document, self.config.chunking)
        if not passages:
            raise IngestionError(f"Document '{document.file_name}' has no text to ingest")

        vectors = await self._embed_all([p.content for p in passages])
        passages = [
            passage.model_copy(update={"content_vector": vector})
            for passage, vector in zip(passages, vectors)
        ]

        try:
            await self.store.add_document(document)
            await self.store.add_passages(passages)
        except StorageError as e:
            raise IngestionError(f"Failed to store document: {e.message}", original_error=e) from e

        logger.info(
            "ingestion_completed",
            document_id=document.id,
            workspace=document.workspace,
            passage_count=len(passages),
        )
        return IngestionResult(
            workspace=document.workspace,
            document_id=document.id,
            passage_count=len(passages),
        )

    async def _validate_graph(
        self, entities: list[Entity], relations: list[Relation], workspace: str
    ) -> dict[str, str]:
        """Check graph invariants and return entity names by ID."""
        for item in [*entities, *relations]:
            if item.workspace != workspace:
                raise IngestionError(
                    f"{type(item).__name__} {item.id} belongs to workspace '{item.workspace}', not '{workspace}'"
                )
        for entity in entities:
            if not entity.source_chunk_ids:
                raise IngestionError(f"Entity {entity.id} has no source passages")

        names = {entity.id: entity.entity_name for entity in entities}
        endpoints = {r.source_entity_id for r in relations} | {r.target_entity_id for r in relations}
        unresolved = [entity_id for entity_id in endpoints if entity_id not in names]
        if unresolved:
            try:
                stored = await self.store.get_by_ids(Collection.ENTITIES, unresolved, workspace)
            except StorageError as e:
                raise IngestionError(f"Failed to resolve relation endpoints: {e.message}", original_error=e) from e
            names.update({entity.id: entity.entity_name for entity in stored})
            missing = sorted(entity_id for entity_id in unresolved if entity_id not in names)
            if missing:
                raise IngestionError(f"Relation endpoints not found in workspace '{workspace}': {missing}")
        return names

    async def ingest_graph(
        self,
        entities: list[Entity],
        relations: list[Relation],
        workspace: Optional[str] = None,
    ) -> IngestionResult:
        """Embed and store pre-extracted entities and relations.

        Args:
            entities: Entities to store, each citing at least one passage
            relations: Relations whose endpoints are in ``entities`` or
                already stored in the same workspace
            workspace: Target workspace; taken from the items when omitted

        Raises:
            IngestionError: If an invariant is violated or embedding/storage fails
        """
        items = [*entities, *relations]
        if workspace is None:
            if not items:
                raise IngestionError("workspace is required when no items are given")
            workspace = items[0].workspace
        names = await self._validate_graph(entities, relations, workspace)

        texts = [entity_text(e) for e in entities] + [relation_text(r, names) for r in relations]
        vectors = await self._embed_all(texts) if texts else []

        entities = [
            entity.model_copy(update={"content_vector": vector})
            for entity, vector in zip(entities, vectors[: len(entities)])
        ]
        relations = [
            relation.model_copy(update={"content_vector": vector})
            for relation, vector in zip(relations, vectors[len(entities) :])
        ]

        try:
            await self.store.add_entities(entities)
            await self.store.add_relations(relations)
        except StorageError as e:
            raise IngestionError(f"Failed to store graph: {e.message}", original_error=e) from e

        logger.info(
            "graph_ingested",
            workspace=workspace,
            entity_count=len(entities),
            relation_count=len(relations),
        )
        return IngestionResult(
            workspace=workspace,
            entity_count=len(entities),
            relation_count=len(relations),
        )

"""Unit tests for IngestionPipeline."""

import pytest

from kgrag.entities import Document, Entity, Relation
from kgrag.pipelines.ingestion import IngestionError, IngestionPipeline, entity_text, relation_text
from kgrag.providers.base import ProviderConfig
from kgrag.providers.mock import MockEmbeddingProvider
from kgrag.storage.base import Collection


def sentences(count: int) -> str:
    return " ".join(f"Acme launched rocket number {i} today." for i in range(count))


class CountingEmbedder(MockEmbeddingProvider):
    def __init__(self, **extra_params):
        super().__init__(ProviderConfig(provider_type="mock", model_name="hash", extra_params=extra_params))
        self.batches: list[int] = []

    async def embed_batch(self, texts):
        self.batches.append(len(texts))
        return await super().embed_batch(texts)


@pytest.mark.asyncio
class TestIngest:
    """Test document ingestion."""

    @pytest.fixture
    def embedder(self):
        return CountingEmbedder()

    @pytest.fixture
    def pipeline(self, mock_config, embedder, memory_store):
        mock_config.chunking.target_tokens = 40
        mock_config.chunking.overlap_tokens = 5
        return IngestionPipeline(mock_config, embedder, memory_store)

    async def test_ingest_document(self, pipeline, memory_store, embedder):
        document = Document(workspace="acme", file_name="launches.txt", content=sentences(30))

        result = await pipeline.ingest(document)

        assert result.document_id == document.id
        assert result.passage_count > 1
        assert await memory_store.count(Collection.PASSAGES, "acme") == result.passage_count
        assert await memory_store.get_documents([document.id], "acme") == [document]

        stored = list(memory_store.collections[Collection.PASSAGES].values())
        assert all(p.content_vector is not None for p in stored)
        assert sorted(p.chunk_order_index for p in stored) == list(range(result.passage_count))

    async def test_embeds_in_configured_batches(self, pipeline, embedder, mock_config):
        result = await pipeline.ingest(Document(workspace="acme", file_name="a.txt", content=sentences(30)))

        batch_size = mock_config.embedding.batch_size
        assert sum(embedder.batches) == result.passage_count
        assert all(size <= batch_size for size in embedder.batches)

    async def test_empty_document(self, pipeline):
        with pytest.raises(IngestionError):
            await pipeline.ingest(Document(workspace="acme", file_name="empty.txt", content=""))

    async def test_embedding_failure(self, mock_config, memory_store):
        pipeline = IngestionPipeline(mock_config, CountingEmbedder(fail=True), memory_store)

        with pytest.raises(IngestionError) as exc_info:
            await pipeline.ingest(Document(workspace="acme", file_name="a.txt", content="Some text."))
        assert exc_info.value.original_error is not None
        assert await memory_store.count(Collection.PASSAGES) == 0


@pytest.mark.asyncio
class TestIngestGraph:
    """Test entity/relation ingestion and its invariants."""

    @pytest.fixture
    def pipeline(self, mock_config, memory_store):
        return IngestionPipeline(mock_config, CountingEmbedder(), memory_store)

    @pytest.fixture
    def acme(self):
        return Entity(id="e1", workspace="acme", entity_name="Acme", description="Rocket maker", source_chunk_ids=["p1"])

    @pytest.fixture
    def bob(self):
        return Entity(id="e2", workspace="acme", entity_name="Bob", source_chunk_ids=["p2"])

    async def test_stores_entities_and_relations(self, pipeline, memory_store, acme, bob):
        relation = Relation(
            workspace="acme", source_entity_id="e2", target_entity_id="e1", relation_type="WORKS_FOR"
        )

        result = await pipeline.ingest_graph([acme, bob], [relation])

        assert result.workspace == "acme"
        assert (result.entity_count, result.relation_count) == (2, 1)
        stored = await memory_store.get_by_ids(Collection.ENTITIES, ["e1", "e2"], "acme")
        assert all(e.content_vector is not None for e in stored)
        stored_relation = (await memory_store.get_by_ids(Collection.RELATIONS, [relation.id], "acme"))[0]
        assert stored_relation.content_vector is not None

    async def test_endpoint_resolved_from_store(self, pipeline, acme, bob):
        await pipeline.ingest_graph([acme], [])
        relation = Relation(
            workspace="acme", source_entity_id="e2", target_entity_id="e1", relation_type="KNOWS"
        )

        result = await pipeline.ingest_graph([bob], [relation])

        assert result.relation_count == 1

    async def test_unresolved_endpoint_rejected(self, pipeline, acme):
        relation = Relation(
            workspace="acme", source_entity_id="e1", target_entity_id="nobody", relation_type="KNOWS"
        )

        with pytest.raises(IngestionError, match="nobody"):
            await pipeline.ingest_graph([acme], [relation])

    async def test_endpoint_in_other_workspace_rejected(self, pipeline, memory_store, acme):
        globex = Entity(id="g1", workspace="globex", entity_name="Globex", source_chunk_ids=["q1"])
        await pipeline.ingest_graph([globex], [])
        relation = Relation(
            workspace="acme", source_entity_id="e1", target_entity_id="g1", relation_type="COMPETES_WITH"
        )

        with pytest.raises(IngestionError):
            await pipeline.ingest_graph([acme], [relation])
        assert await memory_store.count(Collection.ENTITIES, "acme") == 0

    async def test_entity_without_sources_rejected(self, pipeline):
        orphan = Entity(workspace="acme", entity_name="Orphan")

        with pytest.raises(IngestionError, match="no source passages"):
            await pipeline.ingest_graph([orphan], [])

    async def test_mixed_workspaces_rejected(self, pipeline, acme):
        globex = Entity(workspace="globex", entity_name="Globex", source_chunk_ids=["q1"])

        with pytest.raises(IngestionError):
            await pipeline.ingest_graph([acme, globex], [], workspace="acme")

    async def test_empty_graph_needs_workspace(self, pipeline):
        with pytest.raises(IngestionError):
            await pipeline.ingest_graph([], [])
        result = await pipeline.ingest_graph([], [], workspace="acme")
        assert result.entity_count == 0


class TestEmbeddingText:
    def test_entity_text(self):
        assert entity_text(Entity(workspace="ws", entity_name="Acme", description="Rockets")) == "Acme: Rockets"
        assert entity_text(Entity(workspace="ws", entity_name="Acme")) == "Acme"

    def test_relation_text(self):
        relation = Relation(
            workspace="ws", source_entity_id="e1", target_entity_id="e2", relation_type="KNOWS"
        )
        assert relation_text(relation, {"e1": "Bob"}) == "Bob KNOWS e2"

"""Unit tests for QueryPipeline (answer generation)."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import vector_with_similarity as vec
from kgrag.entities import AnswerStatus, Document, Entity, Passage
from kgrag.pipelines.query import (
    DEFAULT_SYSTEM_PROMPT,
    GENERATION_FAILED_RESPONSE,
    NO_EVIDENCE_RESPONSE,
    ChatSettings,
    QueryPipeline,
)
from kgrag.pipelines.retrieval import QueryError, Retriever
from kgrag.providers.base import LLMProvider, LLMUnavailable, ProviderConfig
from kgrag.providers.cache import ProviderClientCache
from kgrag.providers.mock import MockLLMProvider
from kgrag.service.tasks import BackgroundTasks
from kgrag.service.usage import InMemoryUsageRecorder, UsageEvent, UsageRecorder


def mock_llm(**extra_params) -> MockLLMProvider:
    return MockLLMProvider(ProviderConfig(provider_type="mock", model_name="mock-llm", extra_params=extra_params))


class FailingRecorder(UsageRecorder):
    async def record(self, event: UsageEvent) -> None:
        raise RuntimeError("billing backend down")


@pytest.mark.asyncio
class TestQueryPipeline:
    """Test answer generation around a populated in-memory store."""

    @pytest.fixture
    async def store(self, memory_store):
        document = Document(id="doc-1", workspace="acme", file_name="handbook.pdf", file_type="pdf")
        await memory_store.add_document(document)
        await memory_store.add_passages(
            [
                Passage(
                    id="p1",
                    workspace="acme",
                    document_id="doc-1",
                    chunk_order_index=0,
                    content="Acme builds rockets.",
                    content_vector=vec(0.9),
                ),
                Passage(
                    id="p2",
                    workspace="acme",
                    document_id="doc-missing",
                    chunk_order_index=0,
                    content="x" * 600,
                    content_vector=vec(0.7),
                ),
            ]
        )
        await memory_store.add_entities(
            [
                Entity(
                    id="e1",
                    workspace="acme",
                    entity_name="Acme",
                    content_vector=vec(0.8),
                    source_chunk_ids=["p1"],
                )
            ]
        )
        return memory_store

    @pytest.fixture
    def llm(self):
        return mock_llm()

    @pytest.fixture
    def recorder(self):
        return InMemoryUsageRecorder()

    @pytest.fixture
    def pipeline(self, mock_config, embedder, store, llm, recorder):
        return QueryPipeline(
            config=mock_config,
            retriever=Retriever(embedder, store),
            llm_provider=llm,
            store=store,
            usage_recorder=recorder,
            background=BackgroundTasks(),
        )

    async def test_no_evidence_skips_llm(self, pipeline, llm):
        response = await pipeline.answer("anything", mode="mix", workspace="empty-ws")

        assert response.status == AnswerStatus.NO_EVIDENCE
        assert response.response == NO_EVIDENCE_RESPONSE
        assert response.sources == []
        assert response.entities == []
        assert llm.prompts == []
        assert not response.ok

    async def test_generated_answer(self, pipeline, llm):
        response = await pipeline.answer("What does Acme build?", mode="naive", workspace="acme")

        assert response.status == AnswerStatus.GENERATED
        assert response.ok
        assert response.response == "This is a mock answer. [Source 1]"
        assert [s.id for s in response.sources] == ["p1", "p2"]

        first = response.sources[0]
        assert first.document_name == "handbook.pdf"
        assert first.document_type == "pdf"
        assert first.similarity == pytest.approx(0.9)

        prompt = llm.prompts[0]
        assert prompt.startswith(DEFAULT_SYSTEM_PROMPT + "\n\n## Context\n\n### Source Documents")
        assert "## Question\nWhat does Acme build?" in prompt
        assert "[Source 1] (similarity: 0.900)\nAcme builds rockets." in prompt

    async def test_source_content_is_truncated(self, pipeline):
        response = await pipeline.answer("q", mode="naive", workspace="acme")

        long_source = response.sources[1]
        assert long_source.content == "x" * 500 + "..."
        assert response.sources[0].content == "Acme builds rockets."

    async def test_unknown_document_fallback(self, pipeline):
        response = await pipeline.answer("q", mode="naive", workspace="acme")

        assert response.sources[1].document_name == "Unknown Document"
        assert response.sources[1].document_type == "unknown"

    async def test_document_lookup_failure_falls_back(self, pipeline, store):
        store.get_documents = AsyncMock(side_effect=RuntimeError("db down"))

        response = await pipeline.answer("q", mode="naive", workspace="acme")

        assert response.status == AnswerStatus.GENERATED
        assert {s.document_name for s in response.sources} == {"Unknown Document"}

    async def test_entity_summary(self, pipeline):
        response = await pipeline.answer("q", mode="local", workspace="acme")

        assert [(e.name, e.type) for e in response.entities] == [("Acme", "Unknown")]

    async def test_custom_system_prompt(self, pipeline, llm):
        await pipeline.answer("q", workspace="acme", settings=ChatSettings(system_prompt="Answer in French."))
        assert llm.prompts[0].startswith("Answer in French.\n\n## Context")

    async def test_configured_system_prompt(self, pipeline, llm):
        pipeline.config.system_prompt = "Be brief."
        await pipeline.answer("q", workspace="acme")
        assert llm.prompts[0].startswith("Be brief.\n\n")

    async def test_generation_failure(self, mock_config, embedder, store):
        pipeline = QueryPipeline(mock_config, Retriever(embedder, store), mock_llm(fail=True), store)

        response = await pipeline.answer("q", mode="naive", workspace="acme")

        assert response.status == AnswerStatus.GENERATION_FAILED
        assert response.response == GENERATION_FAILED_RESPONSE
        assert len(response.sources) == 2

    async def test_unexpected_llm_exception(self, mock_config, embedder, store):
        llm = MagicMock(spec=LLMProvider)
        llm.generate = AsyncMock(side_effect=RuntimeError("socket closed"))
        pipeline = QueryPipeline(mock_config, Retriever(embedder, store), llm, store)

        response = await pipeline.answer("q", workspace="acme")

        assert response.status == AnswerStatus.GENERATION_FAILED

    async def test_model_override(self, mock_config, embedder, store):
        llm = MagicMock(spec=LLMProvider)
        llm.generate = AsyncMock(return_value="ok")
        pipeline = QueryPipeline(mock_config, Retriever(embedder, store), llm, store)

        await pipeline.answer("q", workspace="acme", settings=ChatSettings(model="gpt-x"))

        kwargs = llm.generate.call_args.kwargs
        assert kwargs["model"] == "gpt-x"
        assert kwargs["max_tokens"] == mock_config.llm.max_tokens
        assert kwargs["temperature"] == mock_config.llm.temperature

    async def test_no_llm_configured(self, mock_config, embedder, store):
        pipeline = QueryPipeline(mock_config, Retriever(embedder, store), None, store)

        with pytest.raises(LLMUnavailable):
            await pipeline.answer("q", workspace="acme")

        response = await pipeline.answer("q", workspace="empty-ws")
        assert response.status == AnswerStatus.NO_EVIDENCE

    async def test_invalid_top_k(self, pipeline):
        with pytest.raises(QueryError):
            await pipeline.answer("q", workspace="acme", top_k=0)

    async def test_usage_is_recorded(self, pipeline, recorder):
        await pipeline.answer("q", mode="naive", workspace="acme")
        await pipeline.background.drain()

        summary = recorder.summary("acme")
        assert summary.api_requests == 1
        assert summary.embedding_requests == 1
        assert summary.by_type["llm_call"] == 1
        assert summary.llm_input_tokens > 0
        assert summary.llm_output_tokens > 0

    async def test_usage_failure_does_not_fail_request(self, mock_config, embedder, store):
        pipeline = QueryPipeline(
            mock_config,
            Retriever(embedder, store),
            mock_llm(),
            store,
            usage_recorder=FailingRecorder(),
        )

        response = await pipeline.answer("q", workspace="acme")
        await pipeline.background.drain()

        assert response.status == AnswerStatus.GENERATED
        assert len(pipeline.background) == 0

    async def test_per_request_api_key_uses_client_cache(self, mock_config, embedder, store, llm):
        built = []

        def factory(api_key):
            built.append(api_key)
            return mock_llm(response="tenant answer")

        pipeline = QueryPipeline(
            mock_config,
            Retriever(embedder, store),
            llm,
            store,
            llm_clients=ProviderClientCache(max_size=4, ttl_seconds=60),
            llm_factory=factory,
        )
        settings = ChatSettings(api_key="sk-tenant")

        first = await pipeline.answer("q", workspace="acme", settings=settings)
        second = await pipeline.answer("q", workspace="acme", settings=settings)

        assert first.response == second.response == "tenant answer"
        assert built == ["sk-tenant"]
        assert llm.prompts == []

    async def test_evicted_tenant_client_is_closed(self, mock_config, embedder, store, llm):
        clients = {}

        def factory(api_key):
            client = mock_llm()
            client.close = AsyncMock()
            clients[api_key] = client
            return client

        pipeline = QueryPipeline(
            mock_config,
            Retriever(embedder, store),
            llm,
            store,
            llm_clients=ProviderClientCache(max_size=1, ttl_seconds=60),
            llm_factory=factory,
        )

        await pipeline.answer("q", workspace="acme", settings=ChatSettings(api_key="sk-a"))
        await pipeline.answer("q", workspace="acme", settings=ChatSettings(api_key="sk-b"))
        await pipeline.background.drain()

        clients["sk-a"].close.assert_awaited_once()
        clients["sk-b"].close.assert_not_awaited()

    async def test_keeps_injected_background_tasks(self, mock_config, embedder, store, llm, recorder):
        tasks = BackgroundTasks()
        pipeline = QueryPipeline(
            mock_config, Retriever(embedder, store), llm, store, usage_recorder=recorder, background=tasks
        )

        await pipeline.answer("q", workspace="acme")

        assert pipeline.background is tasks
        await tasks.drain()
        assert recorder.summary("acme").llm_input_tokens > 0

    async def test_stream_answer(self, pipeline):
        events = [event async for event in pipeline.stream_answer("q", mode="naive", workspace="acme")]

        assert [e.type for e in events] == ["context", "text", "done"]
        assert events[0].data["passages_found"] == 2
        assert events[1].data == "This is a mock answer. [Source 1]"
        assert events[2].data == {"status": "generated"}

    async def test_stream_answer_without_evidence(self, pipeline, llm):
        events = [event async for event in pipeline.stream_answer("q", workspace="empty-ws")]

        assert [e.type for e in events] == ["context", "text", "done"]
        assert events[1].data == NO_EVIDENCE_RESPONSE
        assert events[2].data == {"status": "no_evidence"}
        assert llm.prompts == []

"""Query pipeline: retrieval-augmented answer generation.

Why this exists:
- Orchestrates retrieve -> assemble context -> prompt -> LLM
- Packages the answer with citation-ready sources
- Always returns a well-formed response: no evidence and generation
  failures are reported through ``AnswerStatus``, not exceptions

How to use:
    from kgrag.pipelines.query import QueryPipeline

    pipeline = QueryPipeline(config, retriever, llm_provider, store)
    response = await pipeline.answer("What does Acme build?", mode="mix", workspace="acme")
"""

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Optional, Union

from kgrag.config.schema import AppConfig
from kgrag.core.chunking import estimate_token_count
from kgrag.entities import (
    AnswerStatus,
    EntitySummary,
    QueryMode,
    QueryResponse,
    RetrievalResult,
    ScoredPassage,
    SourceReference,
    StreamEvent,
)
from kgrag.observability.logging import get_logger
from kgrag.pipelines.retrieval import Retriever
from kgrag.providers.base import EmbeddingProvider, LLMProvider, LLMUnavailable
from kgrag.providers.cache import ProviderClientCache
from kgrag.service.tasks import BackgroundTasks
from kgrag.service.usage import UsageEvent, UsageEventType, UsageRecorder
from kgrag.storage.base import KnowledgeStore

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are a helpful assistant that answers questions based on provided context.

## Guidelines
1. Only use information from the provided context
2. If the context doesn't contain enough information, say so clearly
3. Cite your sources using [Source X] format where X is the source number
4. Be concise but thorough
5. If multiple sources agree, synthesize the information
6. Maintain factual accuracy - don't add information not in context
7. Format your response with clear structure when appropriate"""

NO_EVIDENCE_RESPONSE = (
    "I couldn't find any relevant information in the documents to answer your question. "
    "Please make sure documents have been uploaded and processed."
)
GENERATION_FAILED_RESPONSE = "I encountered an error while generating a response. Please try again."

SOURCE_PREVIEW_CHARS = 500


@dataclass
class ChatSettings:
    """Per-request overrides."""

    system_prompt: Optional[str] = None
    model: Optional[str] = None
    api_key: Optional[str] = None


def build_user_prompt(query: str, retrieval: RetrievalResult) -> str:
    """Render the context block and the literal question."""
    return (
        "## Context\n\n"
        f"{retrieval.context}\n\n"
        "---\n\n"
        "## Question\n"
        f"{query}\n\n"
        "---\n\n"
        "Provide a comprehensive answer based on the context above. "
        "Cite sources as [Source 1], [Source 2], etc."
    )


def _preview(content: str) -> str:
    if len(content) > SOURCE_PREVIEW_CHARS:
        return content[:SOURCE_PREVIEW_CHARS] + "..."
    return content


class QueryPipeline:
    """Pipeline for answering questions against a workspace."""

    def __init__(
        self,
        config: AppConfig,
        retriever: Retriever,
        llm_provider: Optional[LLMProvider],
        store: KnowledgeStore,
        usage_recorder: Optional[UsageRecorder] = None,
        background: Optional[BackgroundTasks] = None,
        llm_clients: Optional[ProviderClientCache] = None,
        llm_factory: Optional[Callable[[str], LLMProvider]] = None,
        embedding_clients: Optional[ProviderClientCache] = None,
        embedding_factory: Optional[Callable[[str], EmbeddingProvider]] = None,
    ):
        """Initialize the query pipeline.

        Args:
            config: Application configuration
            retriever: Retriever used for evidence selection
            llm_provider: Default LLM; None when no credential is configured
            store: Knowledge store, used for document lookups on sources
            usage_recorder: Optional sink for usage events
            background: Task set that runs usage recording
            llm_clients: Cache of LLM clients for per-request API keys
            llm_factory: Builds an LLM client for an API key
            embedding_clients: Cache of embedders for per-request API keys
            embedding_factory: Builds an embedder for an API key
        """
        self.config = config
        self.retriever = retriever
        self.llm_provider = llm_provider
        self.store = store
        self.usage_recorder = usage_recorder
        self.background = background if background is not None else BackgroundTasks()
        self.llm_clients = llm_clients
        self.llm_factory = llm_factory
        self.embedding_clients = embedding_clients
        self.embedding_factory = embedding_factory

    def _track(self, event: UsageEvent) -> None:
        if self.usage_recorder is None:
            return
        self.background.spawn(self.usage_recorder.record(event), name=f"usage:{event.type.value}")

    def _cached_client(self, cache: ProviderClientCache, factory: Callable, api_key: str):
        client = cache.get(api_key, factory)
        if cache.retired_count:
            self.background.spawn(cache.close_retired(), name="close_retired_clients")
        return client

    def _llm_for(self, settings: ChatSettings) -> LLMProvider:
        if settings.api_key and self.llm_clients is not None and self.llm_factory is not None:
            return self._cached_client(self.llm_clients, self.llm_factory, settings.api_key)
        if self.llm_provider is None:
            raise LLMUnavailable(message="No language model is configured", provider="none")
        return self.llm_provider

    def _embedder_for(self, settings: ChatSettings) -> Optional[EmbeddingProvider]:
        if settings.api_key and self.embedding_clients is not None and self.embedding_factory is not None:
            return self._cached_client(self.embedding_clients, self.embedding_factory, settings.api_key)
        return None

    async def _retrieve(
        self,
        query: str,
        mode: Union[str, QueryMode, None],
        workspace: str,
        top_k: int,
        settings: ChatSettings,
    ) -> RetrievalResult:
        self._track(UsageEvent(workspace=workspace, type=UsageEventType.API_REQUEST))
        retrieval = await self.retriever.retrieve(
            query,
            mode=mode,
            workspace=workspace,
            top_k=top_k,
            embedding_provider=self._embedder_for(settings),
        )
        self._track(
            UsageEvent(workspace=workspace, type=UsageEventType.EMBEDDING, embedding_requests=1)
        )
        return retrieval

    def _full_prompt(self, query: str, retrieval: RetrievalResult, settings: ChatSettings) -> str:
        system_prompt = settings.system_prompt or self.config.system_prompt or DEFAULT_SYSTEM_PROMPT
        return f"{system_prompt}\n\n{build_user_prompt(query, retrieval)}"

    async def _generate(self, prompt: str, workspace: str, settings: ChatSettings) -> tuple[AnswerStatus, str]:
        llm = self._llm_for(settings)
        try:
            text = await llm.generate(
                prompt,
                model=settings.model or self.config.llm.model_name,
                max_tokens=self.config.llm.max_tokens,
                temperature=self.config.llm.temperature,
            )
        except LLMUnavailable:
            raise
        except Exception as e:
            logger.error(
                "generation_failed",
                workspace=workspace,
                error=str(e),
                error_type=type(e).__name__,
            )
            return AnswerStatus.GENERATION_FAILED, GENERATION_FAILED_RESPONSE

        self._track(
            UsageEvent(
                workspace=workspace,
                type=UsageEventType.LLM_CALL,
                input_tokens=estimate_token_count(prompt),
                output_tokens=estimate_token_count(text),
            )
        )
        return AnswerStatus.GENERATED, text

    async def format_sources(
        self, passages: list[ScoredPassage], workspace: str
    ) -> list[SourceReference]:
        """Build citation records, resolving parent document name and type."""
        document_ids = list(dict.fromkeys(item.passage.document_id for item in passages))
        documents = {}
        if document_ids:
            try:
                documents = {
                    doc.id: doc
                    for doc in await self.store.get_documents(document_ids, workspace)
                    if doc.workspace == workspace
                }
            except Exception as e:
                logger.warning("document_lookup_failed", error=str(e), document_count=len(document_ids))

        sources = []
        for item in passages:
            passage = item.passage
            document = documents.get(passage.document_id)
            sources.append(
                SourceReference(
                    id=passage.id,
                    content=_preview(passage.content),
                    document_id=passage.document_id,
                    document_name=document.file_name if document else "Unknown Document",
                    document_type=document.file_type if document else "unknown",
                    similarity=item.similarity,
                    chunk_type=passage.chunk_type,
                )
            )
        return sources

    async def answer(
        self,
        query: str,
        mode: Union[str, QueryMode, None] = QueryMode.MIX,
        workspace: str = "default",
        top_k: int = 10,
        settings: Optional[ChatSettings] = None,
    ) -> QueryResponse:
        """Answer a question using retrieved evidence.

        Args:
            query: Question to answer
            mode: Retrieval mode (unrecognised values mean ``mix``)
            workspace: Tenant scope
            top_k: Number of items to retrieve, 1 to 50
            settings: Optional system prompt, model and API key overrides

        Returns:
            QueryResponse whose ``status`` tells no-evidence, generated and
            generation-failed apart

        Raises:
            EmbeddingUnavailable: If the query cannot be embedded
            LLMUnavailable: If evidence was found but no LLM is configured
        """
        settings = settings or ChatSettings()
        logger.info("answer_started", workspace=workspace, mode=str(mode), top_k=top_k)

        retrieval = await self._retrieve(query, mode, workspace, top_k, settings)

        if retrieval.is_empty:
            logger.info("no_evidence_found", workspace=workspace)
            return QueryResponse(
                status=AnswerStatus.NO_EVIDENCE,
                response=NO_EVIDENCE_RESPONSE,
                retrieval=retrieval,
            )

        prompt = self._full_prompt(query, retrieval, settings)
        status, text = await self._generate(prompt, workspace, settings)

        response = QueryResponse(
            status=status,
            response=text,
            sources=await self.format_sources(retrieval.passages, workspace),
            entities=[
                EntitySummary(name=item.entity.entity_name, type=item.entity.entity_type or "Unknown")
                for item in retrieval.entities
            ],
            retrieval=retrieval,
        )

        logger.info(
            "answer_completed",
            workspace=workspace,
            status=status.value,
            source_count=len(response.sources),
        )
        return response

    async def stream_answer(
        self,
        query: str,
        mode: Union[str, QueryMode, None] = QueryMode.MIX,
        workspace: str = "default",
        top_k: int = 10,
        settings: Optional[ChatSettings] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield a ``context`` event, then ``text``, then ``done``."""
        settings = settings or ChatSettings()
        retrieval = await self._retrieve(query, mode, workspace, top_k, settings)

        yield StreamEvent(
            type="context",
            data={
                "passages_found": len(retrieval.passages),
                "entities_found": len(retrieval.entities),
                "relations_found": len(retrieval.relations),
            },
        )

        if retrieval.is_empty:
            yield StreamEvent(type="text", data=NO_EVIDENCE_RESPONSE)
            yield StreamEvent(type="done", data={"status": AnswerStatus.NO_EVIDENCE.value})
            return

        status, text = await self._generate(self._full_prompt(query, retrieval, settings), workspace, settings)
        yield StreamEvent(type="text", data=text)
        yield StreamEvent(type="done", data={"status": status.value})

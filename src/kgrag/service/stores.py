"""Service initialization.

Builds the store, providers, client caches and pipelines from an
``AppConfig``. This is the only place where long-lived shared objects are
created; everything below receives them as constructor arguments.
"""

from dataclasses import dataclass, field
from typing import Optional

from kgrag.config.loader import load_config
from kgrag.config.schema import AppConfig, EmbeddingConfig, LLMConfig
from kgrag.observability.logging import get_logger
from kgrag.pipelines.ingestion import IngestionPipeline
from kgrag.pipelines.query import QueryPipeline
from kgrag.pipelines.retrieval import Retriever
from kgrag.providers import (
    EmbeddingProvider,
    LLMProvider,
    LLMUnavailable,
    ProviderClientCache,
    ProviderConfig,
    create_embedding_provider,
    create_llm_provider,
)
from kgrag.service.tasks import BackgroundTasks
from kgrag.service.usage import LoggingUsageRecorder, UsageRecorder
from kgrag.storage import KnowledgeStore, create_knowledge_store

logger = get_logger(__name__)


def embedding_provider_config(config: EmbeddingConfig, api_key: Optional[str] = None) -> ProviderConfig:
    return ProviderConfig(
        provider_type=config.provider.value,
        model_name=config.model_name,
        api_key=api_key or config.api_key,
        dimension=config.dimension,
        extra_params=config.extra_params,
    )


def llm_provider_config(config: LLMConfig, api_key: Optional[str] = None) -> ProviderConfig:
    return ProviderConfig(
        provider_type=config.provider.value,
        model_name=config.model_name,
        api_key=api_key or config.api_key,
        extra_params=config.extra_params,
    )


@dataclass
class Services:
    """Everything a caller needs to ingest and query."""

    config: AppConfig
    store: KnowledgeStore
    embedding_provider: EmbeddingProvider
    llm_provider: Optional[LLMProvider]
    retriever: Retriever
    query: QueryPipeline
    ingestion: IngestionPipeline
    background: BackgroundTasks = field(default_factory=BackgroundTasks)

    async def close(self) -> None:
        """Wait for background work, then release clients and the store."""
        await self.background.drain()
        await self.embedding_provider.close()
        if self.llm_provider is not None:
            await self.llm_provider.close()
        for cache in (self.query.llm_clients, self.query.embedding_clients):
            if cache is not None:
                await cache.aclose()
        await self.store.close()


async def initialize_services(
    config: Optional[AppConfig] = None,
    config_path=None,
    usage_recorder: Optional[UsageRecorder] = None,
) -> Services:
    """Initialize the knowledge store, providers and pipelines.

    Args:
        config: Application configuration; loaded from ``config_path`` when None
        config_path: Optional path to config file
        usage_recorder: Usage sink; defaults to logging usage events

    Returns:
        Ready-to-use Services

    Raises:
        EmbeddingUnavailable: If the embedding provider cannot be created
    """
    if config is None:
        config = load_config(config_path=config_path)

    store = create_knowledge_store(config.store)
    await store.initialize()

    embedding_provider = create_embedding_provider(embedding_provider_config(config.embedding))

    llm_provider: Optional[LLMProvider]
    try:
        llm_provider = create_llm_provider(llm_provider_config(config.llm))
    except LLMUnavailable as e:
        # Retrieval still works; answering needs a per-request key
        logger.warning("llm_provider_unavailable", error=e.message, provider=e.provider)
        llm_provider = None

    llm_clients: ProviderClientCache[LLMProvider] = ProviderClientCache(
        max_size=config.client_cache.max_size,
        ttl_seconds=config.client_cache.ttl_seconds,
    )
    embedding_clients: ProviderClientCache[EmbeddingProvider] = ProviderClientCache(
        max_size=config.client_cache.max_size,
        ttl_seconds=config.client_cache.ttl_seconds,
    )

    retriever = Retriever(
        embedding_provider,
        store,
        match_threshold=config.retrieval.match_threshold,
    )
    background = BackgroundTasks()
    query = QueryPipeline(
        config=config,
        retriever=retriever,
        llm_provider=llm_provider,
        store=store,
        usage_recorder=usage_recorder if usage_recorder is not None else LoggingUsageRecorder(),
        background=background,
        llm_clients=llm_clients,
        llm_factory=lambda key: create_llm_provider(llm_provider_config(config.llm, key)),
        embedding_clients=embedding_clients,
        embedding_factory=lambda key: create_embedding_provider(
            embedding_provider_config(config.embedding, key)
        ),
    )
    ingestion = IngestionPipeline(config=config, embedding_provider=embedding_provider, store=store)

    logger.info(
        "services_initialized",
        store=config.store.store_type.value,
        embedding_provider=config.embedding.provider.value,
        llm_available=llm_provider is not None,
    )

    return Services(
        config=config,
        store=store,
        embedding_provider=embedding_provider,
        llm_provider=llm_provider,
        retriever=retriever,
        query=query,
        ingestion=ingestion,
        background=background,
    )

"""Shared fixtures: a fixed query embedder and vectors with chosen similarity."""

import math

import pytest

from kgrag.config.schema import AppConfig, EmbeddingConfig, LLMConfig, StoreConfig
from kgrag.providers.base import EmbeddingProvider, ProviderConfig
from kgrag.storage.memory import InMemoryKnowledgeStore

QUERY_VECTOR = [1.0, 0.0, 0.0]


class FixedEmbedder(EmbeddingProvider):
    """Embeds every text as QUERY_VECTOR and counts calls."""

    def __init__(self) -> None:
        super().__init__(ProviderConfig(provider_type="fixed", model_name="fixed", dimension=3))
        self.calls = 0

    async def embed_text(self, text: str) -> list[float]:
        self.calls += 1
        return list(QUERY_VECTOR)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_text(text) for text in texts]

    def get_dimension(self) -> int:
        return 3


def vector_with_similarity(similarity: float) -> list[float]:
    """Unit vector whose cosine with QUERY_VECTOR is ``similarity``."""
    return [similarity, math.sqrt(1.0 - similarity * similarity), 0.0]


@pytest.fixture
def vec():
    return vector_with_similarity


@pytest.fixture
def embedder():
    return FixedEmbedder()


@pytest.fixture
async def memory_store():
    store = InMemoryKnowledgeStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def mock_config():
    """Config wired to the offline providers and the in-memory store."""
    return AppConfig(
        embedding=EmbeddingConfig(provider="mock", model_name="hash", dimension=64, batch_size=4),
        llm=LLMConfig(provider="mock", model_name="mock-llm"),
        store=StoreConfig(store_type="memory"),
    )

"""Unit tests for the offline providers and the provider factories."""

import pytest

from kgrag.providers import create_embedding_provider, create_llm_provider
from kgrag.providers.base import EmbeddingUnavailable, ProviderConfig, ProviderError
from kgrag.providers.mock import MockEmbeddingProvider, MockLLMProvider
from kgrag.storage.memory import cosine_similarity


def config(**kwargs) -> ProviderConfig:
    return ProviderConfig(provider_type="mock", model_name="mock", **kwargs)


@pytest.mark.asyncio
class TestMockEmbeddingProvider:
    """Test MockEmbeddingProvider functionality."""

    async def test_dimension(self):
        provider = MockEmbeddingProvider(config(dimension=32))
        vector = await provider.embed_text("hello world")

        assert provider.get_dimension() == 32
        assert len(vector) == 32

    async def test_deterministic_and_normalized(self):
        provider = MockEmbeddingProvider(config())
        first = await provider.embed_text("Acme builds rockets")
        second = await provider.embed_text("Acme builds rockets")

        assert first == second
        assert sum(v * v for v in first) == pytest.approx(1.0)

    async def test_shared_words_are_similar(self):
        provider = MockEmbeddingProvider(config())
        query = await provider.embed_text("rockets")
        related = await provider.embed_text("Acme builds rockets")
        unrelated = await provider.embed_text("banana bread recipe")

        assert cosine_similarity(query, related) > cosine_similarity(query, unrelated)

    async def test_batch_preserves_order(self):
        provider = MockEmbeddingProvider(config())
        batch = await provider.embed_batch(["one", "two"])
        assert batch == [await provider.embed_text("one"), await provider.embed_text("two")]

    async def test_fail_flag(self):
        provider = MockEmbeddingProvider(config(extra_params={"fail": True}))
        with pytest.raises(EmbeddingUnavailable):
            await provider.embed_text("hello")


@pytest.mark.asyncio
class TestMockLLMProvider:
    """Test MockLLMProvider functionality."""

    async def test_records_prompts(self):
        provider = MockLLMProvider(config(extra_params={"response": "42"}))

        assert await provider.generate("What is the answer?") == "42"
        assert provider.prompts == ["What is the answer?"]

    async def test_fail_flag(self):
        provider = MockLLMProvider(config(extra_params={"fail": True}))
        with pytest.raises(ProviderError):
            await provider.generate("hi")


class TestFactories:
    """Test create_embedding_provider / create_llm_provider."""

    def test_mock_embedding(self):
        assert isinstance(create_embedding_provider(config()), MockEmbeddingProvider)

    def test_mock_llm(self):
        assert isinstance(create_llm_provider(config()), MockLLMProvider)

    def test_unknown_embedding_provider(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            create_embedding_provider(ProviderConfig(provider_type="nope", model_name="x"))

    def test_unknown_llm_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            create_llm_provider(ProviderConfig(provider_type="nope", model_name="x"))

    def test_openai_llm_without_key(self, monkeypatch):
        from kgrag.providers.base import LLMUnavailable

        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(LLMUnavailable):
            create_llm_provider(ProviderConfig(provider_type="openai", model_name="gpt-4o-mini"))

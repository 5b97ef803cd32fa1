"""OpenAI embedding provider using the official async client.

Trade-offs:
- API costs per token
- Requires internet connection
- Rate limits apply
"""

import os

import structlog

from kgrag.providers.base import EmbeddingProvider, EmbeddingUnavailable, ProviderConfig

logger = structlog.get_logger(__name__)


# Model metadata for OpenAI embedding models
MODEL_METADATA = {
    "text-embedding-ada-002": {"dimension": 1536, "variable": False},
    "text-embedding-3-small": {"dimension": 1536, "variable": True},
    "text-embedding-3-large": {"dimension": 3072, "variable": True},
}

DEFAULT_MODEL = "text-embedding-3-small"

# Maximum batch size for OpenAI API
MAX_BATCH_SIZE = 2048


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embedding provider.

    The ``text-embedding-3`` models are asked for ``config.dimension``
    components so that vectors match the store's fixed dimension.

    Example:
        config = ProviderConfig(
            provider_type="openai",
            model_name="text-embedding-3-small",
            api_key="sk-...",
            dimension=768,
        )
        provider = OpenAIEmbeddingProvider(config)
        vector = await provider.embed_text("Hello world")
    """

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize OpenAI embedding provider.

        Raises:
            EmbeddingUnavailable: If no API key is configured
        """
        super().__init__(config)

        api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise EmbeddingUnavailable(
                message="No API key configured for embeddings (set KGRAG_EMBEDDING__API_KEY or OPENAI_API_KEY)",
                provider="openai",
            )

        self.model_name = config.model_name or DEFAULT_MODEL
        metadata = MODEL_METADATA.get(self.model_name)
        if metadata is None:
            logger.warning(
                "unknown_openai_model",
                model_name=self.model_name,
                known_models=list(MODEL_METADATA),
            )
            metadata = {"dimension": config.dimension or 1536, "variable": True}

        self._variable_dimension = metadata["variable"]
        if self._variable_dimension and config.dimension:
            self._dimension = config.dimension
        else:
            self._dimension = metadata["dimension"]

        from openai import AsyncOpenAI

        client_kwargs = {"api_key": api_key}
        if "base_url" in config.extra_params:
            client_kwargs["base_url"] = config.extra_params["base_url"]
        self.client = AsyncOpenAI(**client_kwargs)

        logger.info(
            "openai_embedding_provider_initialized",
            model_name=self.model_name,
            dimension=self._dimension,
        )

    def _request_kwargs(self) -> dict:
        kwargs: dict = {"model": self.model_name}
        if self._variable_dimension:
            kwargs["dimensions"] = self._dimension
        return kwargs

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        if not text or not text.strip():
            raise EmbeddingUnavailable(message="Cannot embed empty text", provider="openai")

        try:
            response = await self.client.embeddings.create(input=text, **self._request_kwargs())
        except Exception as e:
            raise EmbeddingUnavailable(
                message=f"Failed to generate embedding: {e}",
                provider="openai",
                original_error=e,
            ) from e

        if getattr(response, "usage", None):
            logger.debug(
                "openai_embedding_generated",
                tokens_used=response.usage.total_tokens,
                model=self.model_name,
            )
        return list(response.data[0].embedding)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts, splitting oversized batches."""
        if not texts:
            return []

        for i, text in enumerate(texts):
            if not text or not text.strip():
                raise EmbeddingUnavailable(
                    message=f"Cannot embed empty text at index {i}",
                    provider="openai",
                )

        vectors: list[list[float]] = []
        for start in range(0, len(texts), MAX_BATCH_SIZE):
            batch = texts[start : start + MAX_BATCH_SIZE]
            try:
                response = await self.client.embeddings.create(input=batch, **self._request_kwargs())
            except Exception as e:
                raise EmbeddingUnavailable(
                    message=f"Failed to generate batch embeddings: {e}",
                    provider="openai",
                    original_error=e,
                ) from e
            vectors.extend(list(item.embedding) for item in response.data)

        logger.info(
            "openai_batch_embeddings_generated",
            total_texts=len(texts),
            model=self.model_name,
        )
        return vectors

    def get_dimension(self) -> int:
        return self._dimension

    async def close(self) -> None:
        await self.client.close()

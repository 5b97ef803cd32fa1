"""Provider abstractions: embeddings and LLM backends."""

from kgrag.providers.base import (
    EmbeddingProvider,
    EmbeddingUnavailable,
    LLMProvider,
    LLMUnavailable,
    ProviderConfig,
    ProviderError,
)
from kgrag.providers.cache import ProviderClientCache


def create_embedding_provider(config: ProviderConfig) -> EmbeddingProvider:
    """Factory function to create embedding providers based on configuration.

    Args:
        config: Provider configuration with provider_type

    Returns:
        Initialized embedding provider

    Raises:
        ValueError: If provider_type is unknown
        EmbeddingUnavailable: If the credential is missing or the openai
            package is not installed

    Example:
        config = ProviderConfig(provider_type="mock", model_name="hash", dimension=64)
        provider = create_embedding_provider(config)
    """
    provider_type = config.provider_type.lower()

    if provider_type == "mock":
        from kgrag.providers.mock import MockEmbeddingProvider

        return MockEmbeddingProvider(config)

    if provider_type == "openai":
        try:
            from kgrag.providers.openai import OpenAIEmbeddingProvider
        except ImportError as e:
            raise EmbeddingUnavailable(
                message="OpenAI embedding provider requires the openai package. Install with: pip install 'kgrag[openai]'",
                provider="openai",
                original_error=e,
            ) from e
        try:
            return OpenAIEmbeddingProvider(config)
        except ImportError as e:
            raise EmbeddingUnavailable(
                message="openai package not installed. Install with: pip install 'kgrag[openai]'",
                provider="openai",
                original_error=e,
            ) from e

    raise ValueError(
        f"Unknown embedding provider type: '{provider_type}'. "
        f"Supported types: openai, mock"
    )


def create_llm_provider(config: ProviderConfig) -> LLMProvider:
    """Factory function to create LLM providers based on configuration.

    Raises:
        ValueError: If provider_type is unknown
        LLMUnavailable: If the credential is missing
    """
    provider_type = config.provider_type.lower()

    if provider_type == "mock":
        from kgrag.providers.mock import MockLLMProvider

        return MockLLMProvider(config)

    if provider_type == "openai":
        from kgrag.providers.openai_llm import OpenAILLMProvider

        return OpenAILLMProvider(config)

    raise ValueError(
        f"Unknown LLM provider type: '{provider_type}'. "
        f"Supported types: openai, mock"
    )


__all__ = [
    "EmbeddingProvider",
    "EmbeddingUnavailable",
    "LLMProvider",
    "LLMUnavailable",
    "ProviderClientCache",
    "ProviderConfig",
    "ProviderError",
    "create_embedding_provider",
    "create_llm_provider",
]

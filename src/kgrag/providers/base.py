"""Abstract base classes for embedding and LLM providers.

Why this exists:
- Allows swapping between different embedding/LLM backends
- Enables testing with mock providers
- Gives the retriever and the query pipeline a narrow, stable contract

How to extend:
1. Subclass EmbeddingProvider or LLMProvider
2. Implement all abstract methods
3. Register in ``kgrag.providers.create_*_provider``
4. Add optional dependencies to pyproject.toml
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel


class ProviderConfig(BaseModel):
    """Base configuration for all providers."""

    provider_type: str
    model_name: str
    api_key: Optional[str] = None
    dimension: Optional[int] = None
    extra_params: dict[str, Any] = {}


class EmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize provider with configuration."""
        self.config = config

    @abstractmethod
    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Raises:
            EmbeddingUnavailable: If no credential is configured or the call fails
        """

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts, in input order.

        Raises:
            EmbeddingUnavailable: If no credential is configured or the call fails
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the embedding dimension for this model."""

    async def close(self) -> None:
        """Release client resources."""


class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize provider with configuration."""
        self.config = config

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        """Generate text completion.

        Args:
            prompt: Full prompt
            system_prompt: Optional system message
            model: Model override for this call
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Raises:
            ProviderError: If generation fails
        """

    async def close(self) -> None:
        """Release client resources."""


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str, original_error: Optional[Exception] = None):
        self.message = message
        self.provider = provider
        self.original_error = original_error
        super().__init__(self.message)


class EmbeddingUnavailable(ProviderError):
    """The query could not be embedded: missing credential or upstream failure."""


class LLMUnavailable(ProviderError):
    """No credential is configured for the language model."""

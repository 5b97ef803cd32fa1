"""Deterministic offline providers.

Used by the test suite and for running the CLI without credentials. The
embedder hashes words into buckets, so texts that share words end up with
a positive cosine similarity.
"""

import hashlib
import math
import re
from typing import Optional

from kgrag.providers.base import (
    EmbeddingProvider,
    EmbeddingUnavailable,
    LLMProvider,
    ProviderConfig,
    ProviderError,
)

_WORD = re.compile(r"\w+")


class MockEmbeddingProvider(EmbeddingProvider):
    """Bag-of-words hashing embedder.

    ``extra_params["fail"] = True`` makes every call raise
    ``EmbeddingUnavailable``.
    """

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self._dimension = config.dimension or 64
        self._fail = bool(config.extra_params.get("fail", False))

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for word in _WORD.findall(text.lower()):
            digest = hashlib.md5(word.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimension] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def embed_text(self, text: str) -> list[float]:
        if self._fail:
            raise EmbeddingUnavailable(message="Mock embedder configured to fail", provider="mock")
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_text(text) for text in texts]

    def get_dimension(self) -> int:
        return self._dimension


class MockLLMProvider(LLMProvider):
    """Returns a canned answer and remembers every prompt it was given."""

    def __init__(self, config: ProviderConfig) -> None:
        super().__init__(config)
        self.response = config.extra_params.get("response", "This is a mock answer. [Source 1]")
        self.fail = bool(config.extra_params.get("fail", False))
        self.prompts: list[str] = []

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise ProviderError(message="Mock LLM configured to fail", provider="mock")
        return self.response

"""OpenAI-compatible LLM provider.

Talks to ``/chat/completions`` over httpx, so any compatible endpoint
(OpenAI, Ollama, vLLM) works through ``extra_params["base_url"]``.
"""

import os
from typing import Any, Optional

import httpx

from kgrag.providers.base import LLMProvider, LLMUnavailable, ProviderConfig, ProviderError


class OpenAILLMProvider(LLMProvider):
    """LLM provider using the OpenAI chat completions API."""

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize the provider.

        Raises:
            LLMUnavailable: If no API key is configured
        """
        super().__init__(config)
        api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise LLMUnavailable(
                message="No API key configured for the language model (set KGRAG_LLM__API_KEY or OPENAI_API_KEY)",
                provider="openai",
            )

        self.model_name = config.model_name
        self.extra_params = config.extra_params
        self.base_url = self.extra_params.get("base_url", "https://api.openai.com/v1")

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.extra_params.get("timeout", 60.0),
        )

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> str:
        """Generate a chat completion for ``prompt``."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, Any] = {
            "model": model or self.model_name,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                message=f"OpenAI API error: {e.response.status_code} - {e.response.text}",
                provider="openai",
                original_error=e,
            ) from e
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            raise ProviderError(
                message=f"LLM generation failed: {e}",
                provider="openai",
                original_error=e,
            ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

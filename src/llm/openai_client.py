"""OpenAI Chat Completions wrapper."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from openai import AsyncOpenAI, OpenAIError

from agents.errors import GenerationError
from config.settings import get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Wrapper for the OpenAI (or compatible) Chat Completion API."""

    def __init__(self, model: str, *, client: AsyncOpenAI | None = None) -> None:
        super().__init__(model)
        if client is None:
            settings = get_settings()
            if not settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY must be configured for the OpenAI client.")
            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url or None,
                timeout=settings.provider_timeout_seconds,
            )
        self._client = client

    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            LOGGER.error("OpenAI chat completion failed (model=%s): %s", self._model, exc)
            raise GenerationError(f"OpenAI request failed: {exc}") from exc

        if not response.choices:
            raise GenerationError("OpenAI response contains no choices.")
        return (response.choices[0].message.content or "").strip()

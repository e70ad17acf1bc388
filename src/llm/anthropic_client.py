"""Anthropic Messages API wrapper."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from anthropic import AnthropicError, AsyncAnthropic

from agents.errors import GenerationError
from config.settings import get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)


class AnthropicClient(BaseLLMClient):
    """Adapter for Claude models.

    The Messages API takes the system prompt as a separate argument, so the
    system entries of the history are lifted out of the message list.
    """

    def __init__(self, model: str, *, client: AsyncAnthropic | None = None) -> None:
        super().__init__(model)
        if client is None:
            settings = get_settings()
            if not settings.anthropic_api_key:
                raise ValueError("ANTHROPIC_API_KEY must be configured for the Anthropic client.")
            client = AsyncAnthropic(
                api_key=settings.anthropic_api_key,
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
        system_prompt, chat_messages = split_system_prompt(messages)
        kwargs = {
            "model": self._model,
            "messages": chat_messages,
            "temperature": min(temperature, 1.0),
            "max_tokens": max_tokens,
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await self._client.messages.create(**kwargs)
        except AnthropicError as exc:
            LOGGER.error("Anthropic request failed (model=%s): %s", self._model, exc)
            raise GenerationError(f"Anthropic request failed: {exc}") from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return text.strip()


def split_system_prompt(
    messages: Sequence[dict[str, str]],
) -> tuple[str, list[dict[str, str]]]:
    system_parts: list[str] = []
    chat_messages: list[dict[str, str]] = []
    for message in messages:
        if message["role"] == "system":
            system_parts.append(message["content"])
        else:
            chat_messages.append({"role": message["role"], "content": message["content"]})
    return "\n\n".join(system_parts), chat_messages

"""Factory returning the generation client configured for an assistant."""

from __future__ import annotations

from agents.schemas import AssistantConfig
from llm.base import BaseLLMClient


def build_llm_client(assistant: AssistantConfig) -> BaseLLMClient:
    """Instantiate the generation connector selected by the assistant."""

    if assistant.model_provider == "openai":
        from llm.openai_client import OpenAIClient

        return OpenAIClient(assistant.model_name)
    if assistant.model_provider == "anthropic":
        from llm.anthropic_client import AnthropicClient

        return AnthropicClient(assistant.model_name)
    raise ValueError(f"Unsupported model_provider: {assistant.model_provider}")

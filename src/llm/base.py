"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence


class BaseLLMClient(ABC):
    """Abstract base class for generation providers.

    One instance is bound to a single model for the lifetime of a session.
    """

    def __init__(self, model: str) -> None:
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        *,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> str:
        """Return the assistant reply for the ordered message history.

        Raises:
            GenerationError: if the provider call fails or yields no text.
        """

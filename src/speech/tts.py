"""Text-to-speech synthesis for assistant replies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx
from openai import AsyncOpenAI, OpenAIError

from agents.errors import SynthesisError
from agents.schemas import AssistantConfig, VoiceSettings
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


class BaseSynthesizer(ABC):
    """Interface for all text-to-speech synthesizers."""

    mime_type: str = "audio/mpeg"

    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Synthesize speech for the given text with the bound voice."""


class ElevenLabsSynthesizer(BaseSynthesizer):
    """ElevenLabs REST text-to-speech."""

    def __init__(
        self,
        voice_id: str,
        voice_settings: VoiceSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        if not settings.elevenlabs_api_key:
            raise ValueError("ELEVENLABS_API_KEY must be configured for ElevenLabs synthesis.")

        self._api_key = settings.elevenlabs_api_key
        self._base_url = settings.elevenlabs_base_url.rstrip("/")
        self._model_id = settings.elevenlabs_model_id
        self._timeout = settings.provider_timeout_seconds
        self._voice_id = voice_id
        self._voice_settings = voice_settings or VoiceSettings()
        self._transport = transport

    async def synthesize(self, text: str) -> bytes:
        payload = {
            "text": text,
            "model_id": self._model_id,
            "voice_settings": self._voice_settings.model_dump(),
        }
        headers = {
            "xi-api-key": self._api_key,
            "Content-Type": "application/json",
            "Accept": self.mime_type,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/text-to-speech/{self._voice_id}",
                    json=payload,
                    headers=headers,
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("ElevenLabs synthesis failed (voice=%s): %s", self._voice_id, exc)
            raise SynthesisError(f"ElevenLabs request failed: {exc}") from exc

        return response.content


class OpenAISynthesizer(BaseSynthesizer):
    """OpenAI speech endpoint (tts-1 family)."""

    def __init__(self, voice: str, *, client: AsyncOpenAI | None = None) -> None:
        settings = get_settings()
        if client is None:
            if not settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY must be configured for OpenAI synthesis.")
            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url or None,
                timeout=settings.provider_timeout_seconds,
            )
        self._client = client
        self._voice = voice or "alloy"
        self._model = settings.openai_tts_model

    async def synthesize(self, text: str) -> bytes:
        try:
            response = await self._client.audio.speech.create(
                model=self._model,
                voice=self._voice,
                input=text,
            )
        except OpenAIError as exc:
            LOGGER.error("OpenAI synthesis failed (voice=%s): %s", self._voice, exc)
            raise SynthesisError(f"OpenAI TTS request failed: {exc}") from exc

        return response.content


def build_synthesizer(assistant: AssistantConfig) -> BaseSynthesizer:
    """Factory returning the synthesizer selected by the assistant."""

    if assistant.voice_provider == "elevenlabs":
        return ElevenLabsSynthesizer(assistant.voice_id, assistant.voice_settings)
    if assistant.voice_provider == "openai":
        return OpenAISynthesizer(assistant.voice_id)
    raise ValueError(f"Unsupported voice provider: {assistant.voice_provider}")

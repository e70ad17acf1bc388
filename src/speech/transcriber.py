"""Batch speech-to-text for complete audio clips."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx
from openai import AsyncOpenAI, OpenAIError

from agents.errors import TranscriptionError
from agents.schemas import AssistantConfig
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

DEFAULT_AUDIO_MIME = "audio/webm"


class BaseTranscriber(ABC):
    """Interface for batch transcription providers."""

    @abstractmethod
    async def transcribe(self, audio_bytes: bytes, *, mime_type: str = DEFAULT_AUDIO_MIME) -> str:
        """Return the transcript of the clip; an empty string when nothing was recognized."""


class DeepgramTranscriber(BaseTranscriber):
    """Deepgram pre-recorded transcription over REST."""

    def __init__(
        self,
        model: str = "nova-2",
        language: str = "en-US",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        if not settings.deepgram_api_key:
            raise ValueError("DEEPGRAM_API_KEY must be configured for Deepgram transcription.")

        self._api_key = settings.deepgram_api_key
        self._endpoint = f"{settings.deepgram_base_url.rstrip('/')}/listen"
        self._timeout = settings.provider_timeout_seconds
        self._model = model
        self._language = language
        self._transport = transport

    async def transcribe(self, audio_bytes: bytes, *, mime_type: str = DEFAULT_AUDIO_MIME) -> str:
        params = {
            "model": self._model,
            "language": self._language,
            "punctuate": "true",
        }
        headers = {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": mime_type,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    self._endpoint,
                    params=params,
                    content=audio_bytes,
                    headers=headers,
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("Deepgram transcription failed: %s", exc)
            raise TranscriptionError(f"Deepgram request failed: {exc}") from exc

        return extract_deepgram_transcript(response.json())


class WhisperTranscriber(BaseTranscriber):
    """OpenAI Whisper transcription endpoint."""

    def __init__(self, language: str = "en-US", *, client: AsyncOpenAI | None = None) -> None:
        settings = get_settings()
        if client is None:
            if not settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY must be configured for Whisper transcription.")
            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url or None,
                timeout=settings.provider_timeout_seconds,
            )
        self._client = client
        self._model = settings.openai_transcription_model
        # Whisper expects ISO-639-1 codes.
        self._language = language.split("-")[0] or "en"

    async def transcribe(self, audio_bytes: bytes, *, mime_type: str = DEFAULT_AUDIO_MIME) -> str:
        extension = mime_type.split("/")[-1] or "webm"
        try:
            transcription = await self._client.audio.transcriptions.create(
                file=(f"audio.{extension}", audio_bytes, mime_type),
                model=self._model,
                language=self._language,
                temperature=0,
                response_format="text",
            )
        except OpenAIError as exc:
            LOGGER.error("Whisper transcription failed: %s", exc)
            raise TranscriptionError(f"Whisper request failed: {exc}") from exc

        return str(transcription).strip()


def extract_deepgram_transcript(payload: dict) -> str:
    """Pull the best alternative out of a Deepgram pre-recorded response."""

    channels = (payload.get("results") or {}).get("channels") or []
    if not channels:
        return ""
    alternatives = channels[0].get("alternatives") or []
    if not alternatives:
        return ""
    return str(alternatives[0].get("transcript") or "").strip()


def build_transcriber(assistant: AssistantConfig) -> BaseTranscriber:
    """Factory returning the batch transcriber selected by the assistant."""

    if assistant.stt_provider == "deepgram":
        return DeepgramTranscriber(assistant.stt_model, assistant.stt_language)
    if assistant.stt_provider == "whisper":
        return WhisperTranscriber(assistant.stt_language)
    raise ValueError(f"Unsupported STT provider: {assistant.stt_provider}")

"""Per-session bundle of provider adapters."""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial

from agents.schemas import AssistantConfig
from llm.base import BaseLLMClient
from llm.factory import build_llm_client
from speech.streaming import DeepgramLiveConnection, LiveConnector
from speech.transcriber import BaseTranscriber, build_transcriber
from speech.tts import BaseSynthesizer, build_synthesizer


@dataclass(frozen=True)
class ProviderSet:
    """The one active implementation of each capability for a session."""

    llm: BaseLLMClient
    synthesizer: BaseSynthesizer
    transcriber: BaseTranscriber
    live_connector: LiveConnector


def build_providers(assistant: AssistantConfig) -> ProviderSet:
    """Select every adapter once from the assistant configuration."""

    # Deepgram is the only live provider; Whisper has no streaming mode.
    live_connector = partial(
        DeepgramLiveConnection.connect,
        model=assistant.stt_model if assistant.stt_provider == "deepgram" else "nova-2",
        language=assistant.stt_language,
    )
    return ProviderSet(
        llm=build_llm_client(assistant),
        synthesizer=build_synthesizer(assistant),
        transcriber=build_transcriber(assistant),
        live_connector=live_connector,
    )

"""Pydantic schemas exchanged between orchestration components."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

Role = Literal["system", "user", "assistant"]
TransportKind = Literal["socket", "phone"]

DEFAULT_END_CALL_PHRASES = ["goodbye", "thanks bye", "end call"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VoiceSettings(BaseModel):
    """Synthesis tuning knobs understood by the voice providers."""

    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0)
    style: float = Field(default=0.0, ge=0.0, le=1.0)


class CallSettings(BaseModel):
    """Telephony behaviour attached to an assistant."""

    end_call_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_END_CALL_PHRASES))
    max_call_duration: int = 1800
    silence_timeout: int = 30
    voicemail_detection: bool = True
    recording_enabled: bool = True
    transcription_enabled: bool = True


class AssistantConfig(BaseModel):
    """Immutable snapshot of an assistant taken when a session starts."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    org_id: str | None = None
    name: str = "Assistant"
    first_message: str | None = None
    system_prompt: str

    voice_provider: Literal["elevenlabs", "openai"] = "elevenlabs"
    voice_id: str = "alloy"
    voice_settings: VoiceSettings = Field(default_factory=VoiceSettings)

    stt_provider: Literal["deepgram", "whisper"] = "deepgram"
    stt_model: str = "nova-2"
    stt_language: str = "en-US"

    model_provider: Literal["openai", "anthropic"] = "openai"
    model_name: str = "gpt-4"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, ge=1)

    call_settings: CallSettings = Field(default_factory=CallSettings)
    interruptions_enabled: bool = True
    background_denoising: bool = True

    @field_validator("voice_settings", "call_settings", mode="before")
    @classmethod
    def none_to_defaults(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("temperature", "max_tokens", "stt_model", "stt_language", mode="before")
    @classmethod
    def none_to_model_defaults(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class ChatMessage(BaseModel):
    """A single entry of the in-memory conversation history.

    Entries are frozen: history is append-only.
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str
    audio_ref: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    def as_prompt(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class TurnResult(BaseModel):
    """Outcome of one completed turn (or the greeting)."""

    text: str
    audio: bytes
    transcription: str | None = None


class TranscriptEvent(BaseModel):
    """An interim or final result emitted by a live transcription channel."""

    text: str
    is_final: bool = False
    confidence: float | None = None

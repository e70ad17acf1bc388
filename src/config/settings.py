"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/orchestrator.db",
        description="SQLAlchemy connection string.",
    )

    # Migrations / schema
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # Language generation
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(default=None)
    anthropic_api_key: str | None = Field(default=None)

    # Text to speech
    elevenlabs_api_key: str | None = Field(default=None)
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1")
    elevenlabs_model_id: str = Field(default="eleven_monolingual_v1")
    openai_tts_model: str = Field(default="tts-1")

    # Speech recognition
    deepgram_api_key: str | None = Field(default=None)
    deepgram_base_url: str = Field(default="https://api.deepgram.com/v1")
    deepgram_live_url: str = Field(default="wss://api.deepgram.com/v1/listen")
    openai_transcription_model: str = Field(default="whisper-1")
    streaming_silence_ms: int = Field(
        default=300,
        ge=10,
        description="Silence window after which the live transcriber finalizes an utterance.",
    )
    streaming_utterance_end_ms: int = Field(default=1000, ge=1000)
    streaming_sample_rate: int = Field(default=16000)

    # Provider HTTP timeouts (seconds)
    provider_timeout_seconds: float = Field(default=60.0, gt=0)

    # Session registry
    registry_ttl_seconds: int = Field(
        default=7200,
        ge=1,
        description="Maximum lifetime of an idle registry entry.",
    )
    registry_sweep_interval_seconds: int = Field(default=60, ge=1)

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +1415...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_say_voice: str = Field(default="Polly.Joanna")
    twilio_gather_timeout: int = Field(default=3, ge=1)
    twilio_speech_model: str = Field(default="experimental_conversations")
    twilio_validate_signatures: bool = Field(
        default=False,
        description="If true, rejects webhooks without a valid X-Twilio-Signature.",
    )
    twilio_wait_music_url: str = Field(
        default="http://com.twilio.sounds.music.s3.amazonaws.com/ClockworkWaltz.mp3"
    )

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()

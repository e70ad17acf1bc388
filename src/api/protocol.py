"""Socket wire protocol: one JSON object per message, audio as base64."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from agents.errors import TransportError, ValidationError
from agents.schemas import TranscriptEvent, TurnResult

InboundType = Literal[
    "user-message",
    "user-audio",
    "user-audio-stream-start",
    "user-audio-stream-chunk",
    "user-audio-stream-end",
    "end-session",
]


class InboundMessage(BaseModel):
    """A client-to-server socket message."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: InboundType
    text: str | None = None
    data: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


def encode_audio(audio: bytes) -> str:
    return base64.b64encode(audio).decode("ascii")


def decode_audio(data: str | None) -> bytes:
    """Decode a base64 audio payload, rejecting missing or malformed data."""

    if not data:
        raise ValidationError("Audio data required")
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Invalid base64 audio data") from exc


def parse_inbound(raw: str) -> InboundMessage:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise TransportError("Malformed JSON message") from exc
    if not isinstance(payload, dict):
        raise TransportError("Message must be a JSON object")
    try:
        return InboundMessage.model_validate(payload)
    except PydanticValidationError as exc:
        raise TransportError(f"Unknown or invalid message type: {payload.get('type')!r}") from exc


# Server to client ------------------------------------------------------------


def connected(session_id: str) -> dict:
    return {"type": "connected", "sessionId": session_id}


def assistant_message(result: TurnResult) -> dict:
    message = {
        "type": "assistant-message",
        "text": result.text,
        "audio": encode_audio(result.audio),
    }
    if result.transcription is not None:
        message["transcription"] = result.transcription
    return message


def interim_transcript(event: TranscriptEvent) -> dict:
    message = {"type": "interim-transcript", "text": event.text}
    if event.confidence is not None:
        message["confidence"] = event.confidence
    return message


def error(message: str) -> dict:
    return {"type": "error", "message": message}


AUDIO_STREAM_READY = {"type": "audio-stream-ready"}
AUDIO_STREAM_CLOSED = {"type": "audio-stream-closed"}
SESSION_ENDED = {"type": "session-ended"}

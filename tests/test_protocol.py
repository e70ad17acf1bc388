from __future__ import annotations

import os

import pytest

from agents.errors import TransportError, ValidationError
from agents.schemas import TranscriptEvent, TurnResult
from api import protocol


def test_audio_survives_encode_and_decode():
    audio = os.urandom(257) + b"\x00\xff"

    assert protocol.decode_audio(protocol.encode_audio(audio)) == audio


def test_decode_rejects_missing_or_invalid_base64():
    with pytest.raises(ValidationError, match="Audio data required"):
        protocol.decode_audio(None)
    with pytest.raises(ValidationError, match="Invalid base64"):
        protocol.decode_audio("not base64!!")


def test_parse_inbound_reads_known_message_types():
    message = protocol.parse_inbound('{"type": "user-audio", "data": "AAE=", "mimeType": "audio/wav"}')

    assert message.type == "user-audio"
    assert message.data == "AAE="
    assert message.mime_type == "audio/wav"


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '{"type": "user-dance"}', "{}"])
def test_parse_inbound_rejects_malformed_messages(raw):
    with pytest.raises(TransportError):
        protocol.parse_inbound(raw)


def test_assistant_message_includes_transcription_only_when_present():
    plain = protocol.assistant_message(TurnResult(text="Hi", audio=b"\x01"))
    heard = protocol.assistant_message(TurnResult(text="Hi", audio=b"\x01", transcription="hello"))

    assert plain == {"type": "assistant-message", "text": "Hi", "audio": "AQ=="}
    assert heard["transcription"] == "hello"


def test_interim_transcript_carries_confidence():
    message = protocol.interim_transcript(TranscriptEvent(text="hel", confidence=0.4))

    assert message == {"type": "interim-transcript", "text": "hel", "confidence": 0.4}

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest

from agents.errors import SynthesisError, TranscriptionError
from agents.schemas import AssistantConfig, VoiceSettings
from llm.anthropic_client import AnthropicClient, split_system_prompt
from speech.transcriber import DeepgramTranscriber, extract_deepgram_transcript
from speech.tts import ElevenLabsSynthesizer


@pytest.fixture()
def provider_keys(monkeypatch):
    from config.settings import get_settings

    monkeypatch.setenv("ELEVENLABS_API_KEY", "eleven-key")
    monkeypatch.setenv("DEEPGRAM_API_KEY", "deepgram-key")
    monkeypatch.setenv("OPENAI_API_KEY", "openai-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "anthropic-key")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_elevenlabs_posts_text_and_voice_settings(provider_keys):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["xi-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"MP3DATA")

    synthesizer = ElevenLabsSynthesizer(
        "voice-42", VoiceSettings(stability=0.3), transport=httpx.MockTransport(handler)
    )

    audio = asyncio.run(synthesizer.synthesize("Good morning"))

    assert audio == b"MP3DATA"
    assert seen["url"].endswith("/text-to-speech/voice-42")
    assert seen["key"] == "eleven-key"
    assert seen["body"]["text"] == "Good morning"
    assert seen["body"]["voice_settings"]["stability"] == 0.3


def test_elevenlabs_http_errors_become_synthesis_errors(provider_keys):
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"detail": "bad key"}))
    synthesizer = ElevenLabsSynthesizer("voice-42", transport=transport)

    with pytest.raises(SynthesisError):
        asyncio.run(synthesizer.synthesize("Hello"))


def test_deepgram_transcriber_sends_audio_with_mime_type(provider_keys):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return httpx.Response(
            200,
            json={"results": {"channels": [{"alternatives": [{"transcript": " Hello there "}]}]}},
        )

    transcriber = DeepgramTranscriber("nova-2", "en-GB", transport=httpx.MockTransport(handler))

    text = asyncio.run(transcriber.transcribe(b"\x00\x01", mime_type="audio/wav"))

    assert text == "Hello there"
    assert seen["params"]["model"] == "nova-2"
    assert seen["params"]["language"] == "en-GB"
    assert seen["content_type"] == "audio/wav"
    assert seen["body"] == b"\x00\x01"


def test_deepgram_transcriber_wraps_failures(provider_keys):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    transcriber = DeepgramTranscriber(transport=transport)

    with pytest.raises(TranscriptionError):
        asyncio.run(transcriber.transcribe(b"\x00"))


def test_extract_deepgram_transcript_handles_empty_payloads():
    assert extract_deepgram_transcript({}) == ""
    assert extract_deepgram_transcript({"results": {"channels": [{"alternatives": []}]}}) == ""


def test_split_system_prompt_lifts_system_entries():
    system, chat = split_system_prompt(
        [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ]
    )

    assert system == "Be brief."
    assert chat == [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello"}]


def test_anthropic_client_caps_temperature_and_joins_text_blocks():
    captured = {}

    async def create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Sure, "),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="Tuesday works."),
            ]
        )

    fake_sdk = SimpleNamespace(messages=SimpleNamespace(create=create))
    client = AnthropicClient("claude-model", client=fake_sdk)

    reply = asyncio.run(
        client.generate(
            [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Tuesday?"}],
            temperature=1.5,
            max_tokens=64,
        )
    )

    assert reply == "Sure, Tuesday works."
    assert captured["system"] == "Be brief."
    assert captured["temperature"] == 1.0
    assert captured["max_tokens"] == 64
    assert captured["messages"] == [{"role": "user", "content": "Tuesday?"}]


def test_build_providers_follows_assistant_config(provider_keys):
    from llm.anthropic_client import AnthropicClient as Anthropic
    from speech.providers import build_providers
    from speech.transcriber import WhisperTranscriber
    from speech.tts import OpenAISynthesizer

    assistant = AssistantConfig(
        id="asst-9",
        system_prompt="Be brief.",
        voice_provider="openai",
        voice_id="alloy",
        stt_provider="whisper",
        model_provider="anthropic",
        model_name="claude-model",
    )

    providers = build_providers(assistant)

    assert isinstance(providers.llm, Anthropic)
    assert isinstance(providers.synthesizer, OpenAISynthesizer)
    assert isinstance(providers.transcriber, WhisperTranscriber)
    assert callable(providers.live_connector)

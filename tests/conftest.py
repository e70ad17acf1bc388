from __future__ import annotations

import asyncio
import os
import sys
import tempfile
import uuid
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before importing modules that create the SQLAlchemy engine.
_RUNTIME_DIR = Path(tempfile.mkdtemp(prefix="orchestrator-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{(_RUNTIME_DIR / 'orchestrator_test.db').as_posix()}"
os.environ["DATA_DIR"] = str(_RUNTIME_DIR)
# Ensure tests can rely on the schema existing without running Alembic.
os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"
os.environ["TWILIO_VALIDATE_SIGNATURES"] = "false"
os.environ.pop("PUBLIC_BASE_URL", None)

from agents.schemas import TranscriptEvent  # noqa: E402
from speech.providers import ProviderSet  # noqa: E402
from speech.streaming import LiveConnection  # noqa: E402


class FakeLLM:
    def __init__(self, reply: str = "Happy to help with that.") -> None:
        self.reply = reply
        self.calls: list[list[dict[str, str]]] = []
        self.fail = False
        self.stall = False

    async def generate(self, messages, *, temperature: float = 0.7, max_tokens: int = 500) -> str:
        self.calls.append(list(messages))
        if self.fail:
            from agents.errors import GenerationError

            raise GenerationError("Language model request failed.")
        if self.stall:
            await asyncio.Event().wait()
        return self.reply


class FakeSynthesizer:
    mime_type = "audio/mpeg"

    def __init__(self) -> None:
        self.texts: list[str] = []

    async def synthesize(self, text: str) -> bytes:
        self.texts.append(text)
        return b"AUDIO:" + text.encode("utf-8")


class FakeTranscriber:
    def __init__(self, text: str = "I need an appointment") -> None:
        self.text = text
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio_bytes: bytes, *, mime_type: str) -> str:
        self.calls.append((audio_bytes, mime_type))
        return self.text


class FakeLiveConnection(LiveConnection):
    """Live channel driven by the test: push events, inspect sent audio."""

    def __init__(self) -> None:
        self.sent: list[bytes] = []
        self.finished = False
        self.fail_sends = False
        self._events: asyncio.Queue[TranscriptEvent | Exception | None] = asyncio.Queue()

    async def send(self, chunk: bytes) -> None:
        from agents.errors import TranscriptionError

        if self.fail_sends:
            raise TranscriptionError("Live transcription channel is closed.")
        self.sent.append(chunk)

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            if isinstance(event, Exception):
                raise event
            yield event

    async def finish(self) -> None:
        self.finished = True
        self.drop()

    def push(self, text: str, *, is_final: bool, confidence: float | None = None) -> None:
        self._events.put_nowait(TranscriptEvent(text=text, is_final=is_final, confidence=confidence))

    def drop(self) -> None:
        self._events.put_nowait(None)

    def crash(self, exc: Exception) -> None:
        self._events.put_nowait(exc)


class FakeLiveConnector:
    def __init__(self) -> None:
        self.connections: list[FakeLiveConnection] = []

    async def __call__(self) -> FakeLiveConnection:
        connection = FakeLiveConnection()
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeLiveConnection:
        return self.connections[-1]


class FakeStore:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str, str]] = []

    async def add_message(self, session_id: str, *, role: str, content: str, audio_ref=None):
        self.messages.append((session_id, role, content))


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture()
def fake_synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture()
def fake_transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture()
def live_connector() -> FakeLiveConnector:
    return FakeLiveConnector()


@pytest.fixture()
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def providers(fake_llm, fake_synthesizer, fake_transcriber, live_connector) -> ProviderSet:
    return ProviderSet(
        llm=fake_llm,
        synthesizer=fake_synthesizer,
        transcriber=fake_transcriber,
        live_connector=live_connector,
    )


@pytest.fixture(scope="session")
def app():
    import importlib

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app, providers):
    # Override the orchestrator factory so tests never reach real providers.
    import api.dependencies as deps
    from agents.orchestrator import ConversationOrchestrator

    repository = deps.get_repository()

    async def create(session_id, assistant):
        orchestrator = ConversationOrchestrator(session_id, repository, providers)
        orchestrator.initialize(assistant)
        return orchestrator

    app.dependency_overrides[deps.get_orchestrator_factory] = lambda: create

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _phone_number() -> str:
    return f"+1555{uuid.uuid4().int % 10**7:07d}"


async def _create_assistant(fields: dict) -> tuple[str, str | None]:
    from db.base import AsyncSessionFactory
    from db.models import Assistant, PhoneNumber

    phone_number = fields.pop("phone_number", None)
    org_id = fields.setdefault("org_id", str(uuid.uuid4()))
    fields.setdefault("name", "Front Desk")
    fields.setdefault("system_prompt", "You are a helpful receptionist.")
    fields.setdefault("voice_id", "voice-1")

    async with AsyncSessionFactory() as session:
        assistant = Assistant(**fields)
        session.add(assistant)
        await session.flush()
        if phone_number:
            session.add(PhoneNumber(org_id=org_id, phone_number=phone_number, assistant_id=assistant.id))
        await session.commit()
        return assistant.id, phone_number


@pytest.fixture()
def make_assistant(client):
    """Insert an assistant row; pass `with_number=True` to route a phone number to it."""

    def make(*, with_number: bool = False, **fields) -> tuple[str, str | None]:
        if with_number:
            fields["phone_number"] = _phone_number()
        return client.portal.call(_create_assistant, fields)

    return make


@pytest.fixture()
def repository(client):
    import api.dependencies as deps

    return deps.get_repository()

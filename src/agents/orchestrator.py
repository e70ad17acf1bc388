"""Turn-taking orchestration for one live conversation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

from agents.errors import (
    AssistantError,
    GenerationError,
    ProviderError,
    SessionEndedError,
    TranscriptionError,
    ValidationError,
)
from agents.schemas import AssistantConfig, ChatMessage, TranscriptEvent, TurnResult
from speech.providers import ProviderSet, build_providers
from speech.streaming import StreamingTranscriptionSession
from speech.transcriber import DEFAULT_AUDIO_MIME

LOGGER = logging.getLogger(__name__)

TurnCallback = Callable[[TurnResult], Awaitable[None]]
InterimCallback = Callable[[TranscriptEvent], Awaitable[None]]
ErrorCallback = Callable[[AssistantError], Awaitable[None]]


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_INPUT = "awaiting_input"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    SYNTHESIZING = "synthesizing"
    EMITTED = "emitted"
    ENDED = "ended"


class MessageStore(Protocol):
    async def add_message(
        self, session_id: str, *, role: str, content: str, audio_ref: str | None = None
    ): ...


class ConversationOrchestrator:
    """Owns one session's history and drives one turn at a time.

    Every message is written to the store before it is appended in memory;
    the in-memory history is never reloaded and stays authoritative for the
    session. Turns are serialized by an instance-owned lock, so a final
    transcript arriving mid-turn queues behind the running turn instead of
    interrupting it.
    """

    def __init__(self, session_id: str, store: MessageStore, providers: ProviderSet) -> None:
        self._session_id = session_id
        self._store = store
        self._providers = providers
        self._assistant: AssistantConfig | None = None
        self._history: list[ChatMessage] = []
        self._state = TurnState.IDLE
        self._turn_lock = asyncio.Lock()
        self._greeted = False
        self._stream: StreamingTranscriptionSession | None = None
        self._stream_turns: set[asyncio.Task] = set()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def assistant(self) -> AssistantConfig | None:
        return self._assistant

    @property
    def history(self) -> tuple[ChatMessage, ...]:
        return tuple(self._history)

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_ended(self) -> bool:
        return self._state is TurnState.ENDED

    @property
    def stream_open(self) -> bool:
        return self._stream is not None and self._stream.is_open

    def initialize(self, assistant: AssistantConfig) -> None:
        """Seed the history with the system prompt. Repeated calls are ignored."""

        if self._assistant is not None:
            return
        self._assistant = assistant
        self._history.append(ChatMessage(role="system", content=assistant.system_prompt))

    async def get_greeting(self) -> TurnResult | None:
        """Speak the configured opening line, at most once per session."""

        assistant = self._require_ready()
        if self._greeted:
            return None
        self._greeted = True
        if not assistant.first_message:
            return None

        async with self._turn_lock:
            self._require_ready()
            try:
                await self._append("assistant", assistant.first_message)
                self._state = TurnState.SYNTHESIZING
                audio = await self._providers.synthesizer.synthesize(assistant.first_message)
                self._ensure_active()
                self._state = TurnState.EMITTED
                return TurnResult(text=assistant.first_message, audio=audio)
            finally:
                self._settle()

    async def handle_text_input(self, text: str) -> TurnResult:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Text input is empty.")

        async with self._turn_lock:
            self._require_ready()
            try:
                return await self._run_turn(text)
            finally:
                self._settle()

    async def handle_audio_input(
        self, audio_bytes: bytes, *, mime_type: str = DEFAULT_AUDIO_MIME
    ) -> TurnResult:
        if not audio_bytes:
            raise ValidationError("Audio data required")

        async with self._turn_lock:
            self._require_ready()
            try:
                self._state = TurnState.TRANSCRIBING
                transcription = await self._providers.transcriber.transcribe(
                    audio_bytes, mime_type=mime_type
                )
                self._ensure_active()
                transcription = (transcription or "").strip()
                if not transcription:
                    raise TranscriptionError("Failed to transcribe audio")
                return await self._run_turn(transcription, transcription=transcription)
            finally:
                self._settle()

    async def open_stream(
        self,
        *,
        on_interim: InterimCallback,
        on_turn: TurnCallback,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Start live transcription; each final transcript becomes a turn."""

        self._require_ready()
        if self.stream_open:
            return

        async def handle_final(event: TranscriptEvent) -> None:
            if not event.text.strip():
                return
            task = asyncio.create_task(self._stream_turn(event.text, on_turn, on_error))
            self._stream_turns.add(task)
            task.add_done_callback(self._stream_turns.discard)

        stream = StreamingTranscriptionSession(self._providers.live_connector, label=self._session_id)
        stream.subscribe(on_interim=on_interim, on_final=handle_final)
        await stream.open()
        self._stream = stream
        LOGGER.info("Live transcription opened for session %s", self._session_id)

    async def feed_stream(self, chunk: bytes) -> None:
        if self._stream is None:
            LOGGER.warning(
                "Protocol violation: audio chunk before stream start (session %s)", self._session_id
            )
            return
        await self._stream.feed(chunk)

    async def close_stream(self) -> None:
        if self._stream is not None:
            await self._stream.close()

    async def end(self) -> None:
        """Close the session. Results of provider calls still in flight are discarded."""

        if self._state is TurnState.ENDED:
            return
        self._state = TurnState.ENDED
        await self.close_stream()
        for task in list(self._stream_turns):
            task.cancel()
        LOGGER.info("Session %s ended with %d history entries", self._session_id, len(self._history))

    async def _run_turn(self, text: str, *, transcription: str | None = None) -> TurnResult:
        assistant = self._require_ready()
        self._state = TurnState.AWAITING_INPUT
        await self._append("user", text)

        self._state = TurnState.GENERATING
        reply = await self._providers.llm.generate(
            [message.as_prompt() for message in self._history],
            temperature=assistant.temperature,
            max_tokens=assistant.max_tokens,
        )
        self._ensure_active()
        reply = (reply or "").strip()
        if not reply:
            raise GenerationError("Language model returned an empty reply.")
        await self._append("assistant", reply)

        self._state = TurnState.SYNTHESIZING
        audio = await self._providers.synthesizer.synthesize(reply)
        self._ensure_active()

        self._state = TurnState.EMITTED
        return TurnResult(text=reply, audio=audio, transcription=transcription)

    async def _stream_turn(
        self, text: str, on_turn: TurnCallback, on_error: ErrorCallback | None
    ) -> None:
        try:
            async with self._turn_lock:
                self._require_ready()
                try:
                    result = await self._run_turn(text, transcription=text)
                finally:
                    self._settle()
        except SessionEndedError:
            return
        except AssistantError as exc:
            LOGGER.warning("Streaming turn failed for session %s: %s", self._session_id, exc)
            if on_error is not None:
                await on_error(exc)
            return
        await on_turn(result)

    async def _append(self, role: str, content: str) -> None:
        await self._store.add_message(self._session_id, role=role, content=content)
        self._history.append(ChatMessage(role=role, content=content))

    def _require_ready(self) -> AssistantConfig:
        if self._state is TurnState.ENDED:
            raise SessionEndedError()
        if self._assistant is None:
            raise RuntimeError("initialize() must be called before any turn.")
        return self._assistant

    def _ensure_active(self) -> None:
        if self._state is TurnState.ENDED:
            LOGGER.info("Discarding provider result for ended session %s", self._session_id)
            raise SessionEndedError()

    def _settle(self) -> None:
        if self._state is not TurnState.ENDED:
            self._state = TurnState.IDLE


OrchestratorFactory = Callable[[str, AssistantConfig], Awaitable[ConversationOrchestrator]]


def orchestrator_factory(store: MessageStore) -> OrchestratorFactory:
    """Return a factory that builds initialized orchestrators backed by `store`."""

    async def create(session_id: str, assistant: AssistantConfig) -> ConversationOrchestrator:
        try:
            providers = build_providers(assistant)
        except ValueError as exc:
            LOGGER.error("Provider setup failed for session %s: %s", session_id, exc)
            raise ProviderError(str(exc)) from exc
        orchestrator = ConversationOrchestrator(session_id, store, providers)
        orchestrator.initialize(assistant)
        return orchestrator

    return create

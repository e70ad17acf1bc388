"""Live (streaming) transcription.

A `StreamingTranscriptionSession` owns at most one provider connection and
moves between two states:

    CLOSED --open()--> OPEN --close()--> CLOSED

While OPEN, audio is forwarded with `feed()` and transcript events are
delivered to the subscribed handlers from a background reader task, so the
feed path never waits on a handler. If the provider connection drops while
the session is OPEN, the next `feed()` reconnects.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from agents.errors import TranscriptionError
from agents.schemas import TranscriptEvent
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

TranscriptHandler = Callable[[TranscriptEvent], Awaitable[None]]

FLUSH_TIMEOUT_SECONDS = 2.0


class LiveConnection(ABC):
    """A single open channel to a live transcription provider."""

    @abstractmethod
    async def send(self, chunk: bytes) -> None:
        """Forward raw audio. Raises TranscriptionError if the channel is gone."""

    @abstractmethod
    def events(self) -> AsyncIterator[TranscriptEvent]:
        """Yield transcript events until the channel closes."""

    @abstractmethod
    async def finish(self) -> None:
        """Ask the provider to flush pending results and close the channel."""


LiveConnector = Callable[[], Awaitable[LiveConnection]]


class DeepgramLiveConnection(LiveConnection):
    """Deepgram real-time WebSocket API (linear16 PCM in, JSON results out)."""

    def __init__(self, ws) -> None:
        self._ws = ws
        self._pending_interim: TranscriptEvent | None = None

    @classmethod
    async def connect(
        cls,
        *,
        model: str = "nova-2",
        language: str = "en-US",
        silence_ms: int | None = None,
        utterance_end_ms: int | None = None,
    ) -> DeepgramLiveConnection:
        settings = get_settings()
        if not settings.deepgram_api_key:
            raise TranscriptionError("DEEPGRAM_API_KEY is not configured.")

        params = {
            "model": model,
            "language": language,
            "encoding": "linear16",
            "sample_rate": str(settings.streaming_sample_rate),
            "channels": "1",
            "punctuate": "true",
            "interim_results": "true",
            "vad_events": "true",
            "endpointing": str(silence_ms or settings.streaming_silence_ms),
            "utterance_end_ms": str(utterance_end_ms or settings.streaming_utterance_end_ms),
        }
        url = f"{settings.deepgram_live_url}?{urlencode(params)}"

        try:
            ws = await websockets.connect(
                url,
                additional_headers={"Authorization": f"Token {settings.deepgram_api_key}"},
                ping_interval=5,
                ping_timeout=20,
            )
        except (OSError, WebSocketException) as exc:
            LOGGER.error("Deepgram live connection failed: %s", exc)
            raise TranscriptionError(f"Failed to initialize live transcription: {exc}") from exc

        LOGGER.info("Deepgram live connection opened (model=%s, language=%s)", model, language)
        return cls(ws)

    async def send(self, chunk: bytes) -> None:
        try:
            await self._ws.send(chunk)
        except ConnectionClosed as exc:
            raise TranscriptionError("Live transcription channel is closed.") from exc

    async def events(self) -> AsyncIterator[TranscriptEvent]:
        try:
            async for message in self._ws:
                if not isinstance(message, str):
                    continue
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    LOGGER.warning("Skipping malformed Deepgram frame: %.80r", message)
                    continue
                if not isinstance(data, dict):
                    continue
                event = self._parse(data)
                if event is not None:
                    yield event
        except ConnectionClosed as exc:
            LOGGER.warning("Deepgram live connection closed: %s", exc)

    async def finish(self) -> None:
        with contextlib.suppress(ConnectionClosed):
            await self._ws.send(json.dumps({"type": "CloseStream"}))

    def _parse(self, data: dict) -> TranscriptEvent | None:
        msg_type = data.get("type", "")

        if msg_type == "Results":
            alternatives = (data.get("channel") or {}).get("alternatives") or []
            if not alternatives:
                return None
            best = alternatives[0]
            text = str(best.get("transcript") or "").strip()
            if not text:
                return None
            event = TranscriptEvent(
                text=text,
                is_final=bool(data.get("is_final")),
                confidence=best.get("confidence"),
            )
            self._pending_interim = None if event.is_final else event
            return event

        if msg_type == "UtteranceEnd":
            # Speech stopped without a final result; settle the last interim.
            pending, self._pending_interim = self._pending_interim, None
            if pending is not None:
                return TranscriptEvent(text=pending.text, is_final=True, confidence=pending.confidence)
            return None

        if msg_type == "Error":
            LOGGER.error("Deepgram live error: %s", data)
        return None


class StreamState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"


class StreamingTranscriptionSession:
    """Open/feed/close lifecycle around a live transcription connection."""

    def __init__(self, connector: LiveConnector, *, label: str = "") -> None:
        self._connector = connector
        self._label = label
        self._state = StreamState.CLOSED
        self._connection: LiveConnection | None = None
        self._reader: asyncio.Task | None = None
        self._on_interim: TranscriptHandler | None = None
        self._on_final: TranscriptHandler | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is StreamState.OPEN

    def subscribe(
        self,
        *,
        on_interim: TranscriptHandler | None = None,
        on_final: TranscriptHandler | None = None,
    ) -> None:
        self._on_interim = on_interim
        self._on_final = on_final

    async def open(self) -> None:
        if self.is_open:
            return
        await self._connect()
        self._state = StreamState.OPEN

    async def feed(self, chunk: bytes) -> None:
        if not self.is_open:
            LOGGER.warning("Protocol violation: audio fed to closed transcription stream %s", self._label)
            return

        connection = self._connection or await self._connect()
        try:
            await connection.send(chunk)
        except TranscriptionError:
            LOGGER.info("Transcription stream %s dropped; reconnecting", self._label)
            await self._discard_connection()
            connection = await self._connect()
            await connection.send(chunk)

    async def close(self) -> None:
        if not self.is_open:
            return
        self._state = StreamState.CLOSED
        connection, reader = self._connection, self._reader
        self._connection = None
        self._reader = None

        if connection is not None:
            try:
                await connection.finish()
            except TranscriptionError:
                LOGGER.debug("Finishing transcription stream %s failed", self._label)
        if reader is not None:
            try:
                await asyncio.wait_for(reader, timeout=FLUSH_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader
            except Exception:
                LOGGER.exception("Transcription reader for stream %s failed", self._label)
        LOGGER.info("Transcription stream %s closed", self._label)

    async def _connect(self) -> LiveConnection:
        connection = await self._connector()
        self._connection = connection
        self._reader = asyncio.create_task(self._read(connection))
        return connection

    async def _discard_connection(self) -> None:
        reader = self._reader
        self._connection = None
        self._reader = None
        if reader is not None and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    async def _read(self, connection: LiveConnection) -> None:
        try:
            async for event in connection.events():
                handler = self._on_final if event.is_final else self._on_interim
                if handler is None:
                    continue
                try:
                    await handler(event)
                except Exception:
                    LOGGER.exception("Transcript handler failed on stream %s", self._label)
        except Exception:
            LOGGER.exception("Transcription stream %s reader failed", self._label)

        if self._connection is connection:
            # Ended without close(): keep OPEN so the next feed reconnects.
            LOGGER.warning("Transcription stream %s lost its provider connection", self._label)
            self._connection = None
            self._reader = None

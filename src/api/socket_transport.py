"""Bidirectional socket adapter between a browser client and an orchestrator."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from agents.errors import AssistantError, SessionEndedError
from agents.orchestrator import ConversationOrchestrator, OrchestratorFactory
from agents.registry import RegistryEntry, SessionRegistry
from agents.schemas import TranscriptEvent, TurnResult
from api import protocol
from db.repository import ConversationRepository
from speech.transcriber import DEFAULT_AUDIO_MIME

LOGGER = logging.getLogger(__name__)


class SocketTransport:
    """Serves one socket connection for one session.

    Turns run in arrival order on a worker task while the receive loop keeps
    reading, so `end-session` or a disconnect is seen during a long turn.
    Sends are serialized because streaming turns also complete on background
    tasks.
    """

    def __init__(
        self,
        websocket: WebSocket,
        repository: ConversationRepository,
        registry: SessionRegistry,
        create_orchestrator: OrchestratorFactory,
    ) -> None:
        self._ws = websocket
        self._repo = repository
        self._registry = registry
        self._create_orchestrator = create_orchestrator
        self._send_lock = asyncio.Lock()
        self._session_id: str | None = None
        self._orchestrator: ConversationOrchestrator | None = None
        self._released = False

    async def serve(self, session_id: str | None) -> None:
        await self._ws.accept()
        try:
            orchestrator = await self._attach(session_id)
        except AssistantError as exc:
            LOGGER.warning("Socket setup failed for session %s: %s", session_id, exc)
            await self._send(protocol.error(exc.detail))
            orchestrator = None
        if orchestrator is None:
            await self._close()
            return

        try:
            await self._greet(orchestrator)
            await self._receive(orchestrator)
        except WebSocketDisconnect:
            LOGGER.info("Socket for session %s disconnected", self._session_id)
        finally:
            await self._release()
        await self._close()

    async def _attach(self, session_id: str | None) -> ConversationOrchestrator | None:
        if not session_id:
            await self._send(protocol.error("session_id required"))
            return None

        session = await self._repo.get_session(session_id)
        if session is None:
            await self._send(protocol.error("Session not found"))
            return None
        if session.status != "active":
            await self._send(protocol.error("Session has ended"))
            return None
        assistant = await self._repo.get_assistant(session.assistant_id)
        if assistant is None:
            await self._send(protocol.error("Assistant not found"))
            return None

        orchestrator = await self._create_orchestrator(session_id, assistant)
        await self._registry.put(
            RegistryEntry(
                key=session_id,
                orchestrator=orchestrator,
                assistant=assistant,
                transport="socket",
                session_id=session_id,
            )
        )
        self._session_id = session_id
        self._orchestrator = orchestrator
        LOGGER.info("Socket attached to session %s (assistant %s)", session_id, assistant.id)
        await self._send(protocol.connected(session_id))
        return orchestrator

    async def _greet(self, orchestrator: ConversationOrchestrator) -> None:
        try:
            greeting = await orchestrator.get_greeting()
        except AssistantError as exc:
            LOGGER.warning("Greeting failed for session %s: %s", self._session_id, exc)
            await self._send(protocol.error(exc.detail))
            return
        if greeting is not None:
            await self._send(protocol.assistant_message(greeting))

    async def _receive(self, orchestrator: ConversationOrchestrator) -> None:
        inbox: asyncio.Queue[str] = asyncio.Queue()
        worker = asyncio.create_task(self._work(orchestrator, inbox))
        try:
            while True:
                receiving = asyncio.create_task(self._ws.receive_text())
                done, _ = await asyncio.wait({receiving, worker}, return_when=asyncio.FIRST_COMPLETED)
                if receiving not in done:
                    # The worker stopped the conversation.
                    receiving.cancel()
                    with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                        await receiving
                    worker.result()
                    return
                raw = receiving.result()
                if _is_end_session(raw):
                    await _stop(worker)
                    await self._end_session()
                    await self._send(protocol.SESSION_ENDED)
                    return
                inbox.put_nowait(raw)
        finally:
            await _stop(worker)

    async def _work(self, orchestrator: ConversationOrchestrator, inbox: asyncio.Queue[str]) -> None:
        while await self._dispatch(orchestrator, await inbox.get()):
            pass

    async def _dispatch(self, orchestrator: ConversationOrchestrator, raw: str) -> bool:
        """Handle one inbound message. Returns False once the connection should close."""

        try:
            message = protocol.parse_inbound(raw)
            if message.type == "user-message":
                result = await orchestrator.handle_text_input(message.text or "")
                await self._send(protocol.assistant_message(result))
            elif message.type == "user-audio":
                audio = protocol.decode_audio(message.data)
                result = await orchestrator.handle_audio_input(
                    audio, mime_type=message.mime_type or DEFAULT_AUDIO_MIME
                )
                await self._send(protocol.assistant_message(result))
            elif message.type == "user-audio-stream-start":
                await orchestrator.open_stream(
                    on_interim=self._on_interim, on_turn=self._on_turn, on_error=self._on_error
                )
                await self._send(protocol.AUDIO_STREAM_READY)
            elif message.type == "user-audio-stream-chunk":
                await orchestrator.feed_stream(protocol.decode_audio(message.data))
            elif message.type == "user-audio-stream-end":
                await orchestrator.close_stream()
                await self._send(protocol.AUDIO_STREAM_CLOSED)
        except SessionEndedError as exc:
            await self._send(protocol.error(exc.detail))
            return False
        except AssistantError as exc:
            LOGGER.warning("Socket message failed for session %s: %s", self._session_id, exc)
            await self._send(protocol.error(exc.detail))
        except WebSocketDisconnect:
            raise
        except Exception:
            LOGGER.exception("Socket message failed for session %s", self._session_id)
            await self._send(protocol.error("Failed to process message"))
        return True

    # Streaming callbacks run on background tasks.

    async def _on_interim(self, event: TranscriptEvent) -> None:
        await self._send(protocol.interim_transcript(event))

    async def _on_turn(self, result: TurnResult) -> None:
        await self._send(protocol.assistant_message(result))

    async def _on_error(self, exc: AssistantError) -> None:
        await self._send(protocol.error(exc.detail))

    async def _end_session(self, *, explicit: bool = True) -> None:
        if self._session_id is None or self._released:
            return
        self._released = True
        entry = await self._registry.remove(self._session_id, owner=self._orchestrator)
        # A superseded connection leaves the session to its replacement.
        if entry is None and not explicit and self._session_id in self._registry:
            LOGGER.info("Session %s was taken over by another socket", self._session_id)
            return
        await self._repo.end_session(self._session_id)
        LOGGER.info("Session %s released", self._session_id)

    async def _release(self) -> None:
        try:
            await self._end_session(explicit=False)
        except AssistantError:
            LOGGER.exception("Cleanup failed for session %s", self._session_id)

    async def _send(self, message: dict) -> None:
        async with self._send_lock:
            if self._ws.application_state is not WebSocketState.CONNECTED:
                LOGGER.debug("Dropping %s for closed socket", message.get("type"))
                return
            try:
                await self._ws.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                LOGGER.debug("Socket closed while sending %s", message.get("type"))

    async def _close(self) -> None:
        if self._ws.application_state is WebSocketState.CONNECTED:
            try:
                await self._ws.close()
            except RuntimeError:
                LOGGER.debug("Socket already closed")


def _is_end_session(raw: str) -> bool:
    try:
        return protocol.parse_inbound(raw).type == "end-session"
    except AssistantError:
        return False


async def _stop(task: asyncio.Task) -> None:
    if task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task

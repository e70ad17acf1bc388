"""FastAPI routes for browser sessions: REST lifecycle plus the socket endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, WebSocket

from agents.errors import NotFoundError
from agents.orchestrator import OrchestratorFactory
from agents.registry import SessionRegistry
from api.dependencies import get_orchestrator_factory, get_registry, get_repository
from api.schemas import (
    CreateSessionRequest,
    CreateSessionResponse,
    MessageResponse,
    SessionResponse,
)
from api.socket_transport import SocketTransport
from config.settings import get_settings
from db.repository import ConversationRepository

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


def _websocket_url(request: Request, session_id: str) -> str:
    settings = get_settings()
    base = settings.public_base_url.rstrip("/") if settings.public_base_url else str(request.base_url).rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base.removeprefix("https://")
    elif base.startswith("http://"):
        base = "ws://" + base.removeprefix("http://")
    return f"{base}/api/ws?session_id={session_id}"


@router.post("/sessions", response_model=CreateSessionResponse, status_code=201)
async def create_session(
    payload: CreateSessionRequest,
    request: Request,
    repo: ConversationRepository = Depends(get_repository),
) -> CreateSessionResponse:
    assistant = await repo.get_assistant(payload.assistant_id)
    if assistant is None:
        raise NotFoundError("Assistant not found")
    session = await repo.create_session(assistant, session_type="socket", metadata=payload.metadata)
    LOGGER.info("Created session %s for assistant %s", session.id, assistant.id)
    return CreateSessionResponse(session_id=session.id, websocket_url=_websocket_url(request, session.id))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    repo: ConversationRepository = Depends(get_repository),
) -> SessionResponse:
    session = await repo.get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/end", response_model=SessionResponse)
async def end_session(
    session_id: str,
    repo: ConversationRepository = Depends(get_repository),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResponse:
    session = await repo.get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found")
    # Phone sessions are registered under their call sid.
    await registry.remove((session.extra or {}).get("call_sid") or session_id)
    await repo.end_session(session_id)
    return SessionResponse.model_validate(await repo.get_session(session_id))


@router.get("/sessions/{session_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    session_id: str,
    repo: ConversationRepository = Depends(get_repository),
) -> list[MessageResponse]:
    if await repo.get_session(session_id) is None:
        raise NotFoundError("Session not found")
    messages = await repo.list_messages(session_id)
    return [MessageResponse.model_validate(message) for message in messages]


@router.websocket("/ws")
async def session_socket(
    websocket: WebSocket,
    repo: ConversationRepository = Depends(get_repository),
    registry: SessionRegistry = Depends(get_registry),
    create_orchestrator: OrchestratorFactory = Depends(get_orchestrator_factory),
) -> None:
    transport = SocketTransport(websocket, repo, registry, create_orchestrator)
    await transport.serve(websocket.query_params.get("session_id"))

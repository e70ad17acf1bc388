"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request
from starlette.requests import HTTPConnection

from agents.orchestrator import OrchestratorFactory, orchestrator_factory
from agents.registry import SessionRegistry
from config.settings import Settings, get_settings
from db.repository import ConversationRepository
from integrations.twilio_client import is_valid_signature
from telephony.bridge import TelephonyBridge
from telephony.twiml import TwimlRenderer

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _repository() -> ConversationRepository:
    return ConversationRepository()


def get_repository() -> ConversationRepository:
    return _repository()


def get_registry(connection: HTTPConnection) -> SessionRegistry:
    # Created per application in the lifespan handler (see main.py).
    return connection.app.state.registry


def get_orchestrator_factory(
    repository: ConversationRepository = Depends(get_repository),
) -> OrchestratorFactory:
    return orchestrator_factory(repository)


def get_bridge(
    repository: ConversationRepository = Depends(get_repository),
    registry: SessionRegistry = Depends(get_registry),
    create_orchestrator: OrchestratorFactory = Depends(get_orchestrator_factory),
    settings: Settings = Depends(get_settings),
) -> TelephonyBridge:
    return TelephonyBridge(
        repository,
        registry,
        create_orchestrator,
        TwimlRenderer.from_settings(settings),
        public_base_url=settings.public_base_url,
    )


def _signed_url(request: Request, settings: Settings) -> str:
    if not settings.public_base_url:
        return str(request.url)
    url = f"{settings.public_base_url.rstrip('/')}{request.url.path}"
    return f"{url}?{request.url.query}" if request.url.query else url


async def verify_twilio_signature(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.twilio_validate_signatures:
        return
    if not settings.twilio_auth_token:
        LOGGER.error("Signature validation enabled without TWILIO_AUTH_TOKEN")
        raise HTTPException(status_code=403, detail="Invalid signature")

    form = await request.form()
    params = {key: str(value) for key, value in form.items()}
    signature = request.headers.get("X-Twilio-Signature")
    if not is_valid_signature(settings.twilio_auth_token, _signed_url(request, settings), params, signature):
        LOGGER.warning("Rejected webhook %s with invalid signature", request.url.path)
        raise HTTPException(status_code=403, detail="Invalid signature")

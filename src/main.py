"""Entry point for the voice and text conversation orchestration service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from agents.errors import AssistantError
from agents.registry import SessionRegistry
from api.routes import router as api_router
from api.twilio_routes import router as twilio_router
from config.settings import get_settings
from db.base import init_db

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    registry = SessionRegistry(settings.registry_ttl_seconds)
    app.state.registry = registry
    sweeper = asyncio.create_task(registry.run_sweeper(settings.registry_sweep_interval_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await registry.close_all()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Voice Conversation Orchestrator",
    description="Real-time voice and text conversations with configurable AI assistants.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
app.include_router(twilio_router, prefix="/api")


@app.exception_handler(AssistantError)
async def assistant_error_handler(request: Request, exc: AssistantError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}

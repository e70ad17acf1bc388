"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateSessionRequest(BaseModel):
    assistant_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    assistant_id: str
    call_id: str | None = None
    session_type: str
    status: str
    started_at: datetime
    ended_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="extra")


class CreateSessionResponse(BaseModel):
    session_id: str
    status: str = "active"
    websocket_url: str = Field(description="Socket endpoint to connect to for this session.")


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    content: str
    audio_ref: str | None = None
    timestamp: datetime


class OutboundCallRequest(BaseModel):
    to_number: str = Field(description="E.164 phone number, e.g. +1415...")
    assistant_id: str
    from_number: str | None = None
    detect_voicemail: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class OutboundCallResponse(BaseModel):
    call_sid: str
    status: str | None = None
    to_number: str
    from_number: str

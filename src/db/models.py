"""SQLAlchemy models for sessions, calls and conversation capture."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Assistant(Base):
    """Assistant persona configuration (managed elsewhere, read here)."""

    __tablename__ = "assistants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str | None] = mapped_column(String(36), index=True)
    name: Mapped[str] = mapped_column(String(255))
    first_message: Mapped[str | None] = mapped_column(Text())
    system_prompt: Mapped[str] = mapped_column(Text())

    voice_provider: Mapped[str] = mapped_column(String(50), default="elevenlabs")
    voice_id: Mapped[str] = mapped_column(String(255))
    voice_settings: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    stt_provider: Mapped[str] = mapped_column(String(50), default="deepgram")
    stt_model: Mapped[str | None] = mapped_column(String(100), default="nova-2")
    stt_language: Mapped[str | None] = mapped_column(String(10), default="en-US")

    model_provider: Mapped[str] = mapped_column(String(50), default="openai")
    model_name: Mapped[str] = mapped_column(String(100), default="gpt-4")
    temperature: Mapped[float | None] = mapped_column(default=0.7)
    max_tokens: Mapped[int | None] = mapped_column(Integer, default=500)

    call_settings: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    interruptions_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    background_denoising: Mapped[bool] = mapped_column(Boolean, default=True)
    phone_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    transfer_number: Mapped[str | None] = mapped_column(String(20))

    created_at: Mapped[datetime] = mapped_column(default=_utcnow)


class PhoneNumber(Base):
    """Provisioned number routed to an assistant."""

    __tablename__ = "phone_numbers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str | None] = mapped_column(String(36), index=True)
    phone_number: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    assistant_id: Mapped[str | None] = mapped_column(
        ForeignKey("assistants.id", ondelete="SET NULL"), index=True
    )
    status: Mapped[str] = mapped_column(String(50), default="active")


class Call(Base):
    """Telephony record backing a phone session."""

    __tablename__ = "calls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str | None] = mapped_column(String(36), index=True)
    assistant_id: Mapped[str | None] = mapped_column(
        ForeignKey("assistants.id", ondelete="SET NULL"), index=True
    )
    call_sid: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    direction: Mapped[str] = mapped_column(String(20), default="inbound")
    from_number: Mapped[str | None] = mapped_column(String(20))
    to_number: Mapped[str | None] = mapped_column(String(20))

    status: Mapped[str] = mapped_column(String(50), default="initiated", index=True)
    answered_by: Mapped[str | None] = mapped_column(String(50))

    started_at: Mapped[datetime] = mapped_column(default=_utcnow)
    answered_at: Mapped[datetime | None] = mapped_column()
    ended_at: Mapped[datetime | None] = mapped_column()
    duration_seconds: Mapped[int | None] = mapped_column(Integer)

    recording_url: Mapped[str | None] = mapped_column(String(500))
    recording_duration: Mapped[int | None] = mapped_column(Integer)

    cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 4))
    end_reason: Mapped[str | None] = mapped_column(String(100))
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    session: Mapped[Session | None] = relationship(back_populates="call", uselist=False)


class Session(Base):
    """Live conversational context over either transport."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str | None] = mapped_column(String(36), index=True)
    assistant_id: Mapped[str] = mapped_column(
        ForeignKey("assistants.id", ondelete="CASCADE"), index=True
    )
    call_id: Mapped[str | None] = mapped_column(
        ForeignKey("calls.id", ondelete="SET NULL"), index=True
    )
    session_type: Mapped[str] = mapped_column(String(20), default="socket")
    status: Mapped[str] = mapped_column(String(20), default="active")
    started_at: Mapped[datetime] = mapped_column(default=_utcnow)
    ended_at: Mapped[datetime | None] = mapped_column()
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    call: Mapped[Call | None] = relationship(back_populates="session")
    messages: Mapped[list[Message]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )


class Message(Base):
    """Append-only conversation entry."""

    __tablename__ = "messages"

    # Integer ids keep insertion order; timestamps can tie within one turn.
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String(20))
    content: Mapped[str] = mapped_column(Text())
    audio_ref: Mapped[str | None] = mapped_column(String(500))
    timestamp: Mapped[datetime] = mapped_column(default=_utcnow)

    session: Mapped[Session] = relationship(back_populates="messages")


class Voicemail(Base):
    """Voicemail left on an organization's number."""

    __tablename__ = "voicemails"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    org_id: Mapped[str] = mapped_column(String(36), index=True)
    call_sid: Mapped[str | None] = mapped_column(String(255), index=True)
    from_number: Mapped[str] = mapped_column(String(20))
    to_number: Mapped[str] = mapped_column(String(20))
    recording_url: Mapped[str | None] = mapped_column(Text())
    recording_sid: Mapped[str | None] = mapped_column(String(255), index=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer)
    transcription: Mapped[str | None] = mapped_column(Text())
    transcription_status: Mapped[str | None] = mapped_column(String(50))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow)


class CallTransfer(Base):
    """Warm transfer bridged through a conference."""

    __tablename__ = "call_transfers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    call_sid: Mapped[str] = mapped_column(String(255), index=True)
    conference_sid: Mapped[str | None] = mapped_column(String(255), index=True)
    transferred_to: Mapped[str | None] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(50), default="initiated")
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)

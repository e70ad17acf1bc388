"""Repository utilities for persisting sessions, calls and messages."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from agents.errors import DatabaseOperationError
from agents.schemas import AssistantConfig
from db.base import AsyncSessionFactory
from db.models import Assistant, Call, CallTransfer, Message, PhoneNumber, Session, Voicemail
from telephony.call_status import CallStatus, can_transition

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StatusUpdate:
    """Outcome of applying a provider-reported call status."""

    call: Call | None
    applied: bool

    @property
    def found(self) -> bool:
        return self.call is not None


class ConversationRepository:
    """Async repository encapsulating storage operations.

    Every method runs in its own short-lived database session; rows are
    assumed to be updated atomically.
    """

    def __init__(self, session_factory=AsyncSessionFactory) -> None:
        self._session_factory = session_factory

    # Assistants -----------------------------------------------------------

    async def get_assistant(self, assistant_id: str) -> AssistantConfig | None:
        async with self._session_factory() as session:
            assistant = await session.get(Assistant, assistant_id)
            return AssistantConfig.model_validate(assistant) if assistant else None

    async def find_assistant_by_number(self, phone_number: str) -> AssistantConfig | None:
        async with self._session_factory() as session:
            query = (
                select(Assistant)
                .join(PhoneNumber, PhoneNumber.assistant_id == Assistant.id)
                .where(PhoneNumber.phone_number == phone_number, PhoneNumber.status == "active")
                .limit(1)
            )
            assistant = (await session.execute(query)).scalar_one_or_none()
            return AssistantConfig.model_validate(assistant) if assistant else None

    async def get_phone_number(self, phone_number: str) -> PhoneNumber | None:
        async with self._session_factory() as session:
            query = select(PhoneNumber).where(PhoneNumber.phone_number == phone_number)
            return (await session.execute(query)).scalar_one_or_none()

    # Sessions -------------------------------------------------------------

    async def create_session(
        self,
        assistant: AssistantConfig,
        *,
        session_type: str,
        call_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Session:
        async with self._session_factory() as session:
            record = Session(
                org_id=assistant.org_id,
                assistant_id=assistant.id,
                call_id=call_id,
                session_type=session_type,
                status="active",
                extra=metadata or {},
            )
            session.add(record)
            await self._commit(session)
            await session.refresh(record)
            return record

    async def get_session(self, session_id: str) -> Session | None:
        async with self._session_factory() as session:
            return await session.get(Session, session_id)

    async def end_session(self, session_id: str) -> bool:
        """Mark an active session ended. Returns False if it was already ended or unknown."""

        async with self._session_factory() as session:
            result = await session.execute(
                update(Session)
                .where(Session.id == session_id, Session.status == "active")
                .values(status="ended", ended_at=_utcnow())
            )
            await self._commit(session)
            return result.rowcount > 0

    async def end_session_for_call(self, call_sid: str) -> bool:
        async with self._session_factory() as session:
            call_id = (
                select(Call.id).where(Call.call_sid == call_sid).scalar_subquery()
            )
            result = await session.execute(
                update(Session)
                .where(Session.call_id == call_id, Session.status == "active")
                .values(status="ended", ended_at=_utcnow())
            )
            await self._commit(session)
            return result.rowcount > 0

    # Messages -------------------------------------------------------------

    async def add_message(
        self,
        session_id: str,
        *,
        role: str,
        content: str,
        audio_ref: str | None = None,
    ) -> Message:
        async with self._session_factory() as session:
            message = Message(session_id=session_id, role=role, content=content, audio_ref=audio_ref)
            session.add(message)
            await self._commit(session)
            await session.refresh(message)
            return message

    async def list_messages(self, session_id: str) -> list[Message]:
        async with self._session_factory() as session:
            query = select(Message).where(Message.session_id == session_id).order_by(Message.id)
            result = await session.execute(query)
            return list(result.scalars().all())

    # Calls ----------------------------------------------------------------

    async def create_call(
        self,
        call_sid: str,
        *,
        direction: str,
        from_number: str | None,
        to_number: str | None,
        assistant: AssistantConfig | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Call:
        async with self._session_factory() as session:
            call = Call(
                call_sid=call_sid,
                direction=direction or "inbound",
                from_number=from_number,
                to_number=to_number,
                status=CallStatus.INITIATED.value,
                assistant_id=assistant.id if assistant else None,
                org_id=assistant.org_id if assistant else None,
                extra=metadata or {},
            )
            session.add(call)
            await self._commit(session)
            await session.refresh(call)
            return call

    async def get_or_create_call(self, call_sid: str, **fields: Any) -> Call:
        """Outbound calls are recorded when dialled; the call-start webhook reuses that row."""

        existing = await self.get_call(call_sid)
        if existing is not None:
            return existing
        return await self.create_call(call_sid, **fields)

    async def get_call(self, call_sid: str) -> Call | None:
        async with self._session_factory() as session:
            query = select(Call).where(Call.call_sid == call_sid)
            return (await session.execute(query)).scalar_one_or_none()

    async def apply_call_status(
        self,
        call_sid: str,
        status: CallStatus,
        *,
        duration_seconds: int | None = None,
        answered_by: str | None = None,
    ) -> StatusUpdate:
        async with self._session_factory() as session:
            query = select(Call).where(Call.call_sid == call_sid)
            call = (await session.execute(query)).scalar_one_or_none()
            if call is None:
                return StatusUpdate(call=None, applied=False)
            if not can_transition(call.status, status):
                LOGGER.info(
                    "Ignoring call status %s for %s (current=%s)", status.value, call_sid, call.status
                )
                return StatusUpdate(call=call, applied=False)

            now = _utcnow()
            call.status = status.value
            if answered_by:
                call.answered_by = answered_by
            if duration_seconds is not None:
                call.duration_seconds = duration_seconds
            if status is CallStatus.IN_PROGRESS and call.answered_at is None:
                call.answered_at = now
            if status.is_terminal:
                call.ended_at = now
                call.end_reason = status.value
            await self._commit(session)
            return StatusUpdate(call=call, applied=True)

    async def attach_recording(
        self, call_sid: str, *, recording_url: str | None, duration_seconds: int | None
    ) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Call)
                .where(Call.call_sid == call_sid)
                .values(recording_url=recording_url, recording_duration=duration_seconds)
            )
            await self._commit(session)
            return result.rowcount > 0

    async def attach_call_transcription(self, call_sid: str, text: str | None) -> bool:
        async with self._session_factory() as session:
            query = select(Call).where(Call.call_sid == call_sid)
            call = (await session.execute(query)).scalar_one_or_none()
            if call is None:
                return False
            # Reassign so the JSON column is flagged dirty.
            call.extra = {**(call.extra or {}), "transcription": text}
            await self._commit(session)
            return True

    # Voicemail / transfers --------------------------------------------------

    async def create_voicemail(
        self,
        *,
        org_id: str,
        call_sid: str | None,
        from_number: str,
        to_number: str,
        recording_url: str | None,
        recording_sid: str | None,
        duration_seconds: int | None,
    ) -> Voicemail:
        async with self._session_factory() as session:
            voicemail = Voicemail(
                org_id=org_id,
                call_sid=call_sid,
                from_number=from_number,
                to_number=to_number,
                recording_url=recording_url,
                recording_sid=recording_sid,
                duration_seconds=duration_seconds,
            )
            session.add(voicemail)
            await self._commit(session)
            await session.refresh(voicemail)
            return voicemail

    async def update_voicemail_transcription(
        self, recording_sid: str, *, text: str | None, status: str | None
    ) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Voicemail)
                .where(Voicemail.recording_sid == recording_sid)
                .values(transcription=text, transcription_status=status, updated_at=_utcnow())
            )
            await self._commit(session)
            return result.rowcount > 0

    async def list_voicemails(self, call_sid: str) -> Sequence[Voicemail]:
        async with self._session_factory() as session:
            query = select(Voicemail).where(Voicemail.call_sid == call_sid)
            return list((await session.execute(query)).scalars().all())

    async def complete_transfers(self, conference_sid: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                update(CallTransfer)
                .where(CallTransfer.conference_sid == conference_sid)
                .values(status="completed")
            )
            await self._commit(session)
            return result.rowcount

    @staticmethod
    async def _commit(session) -> None:
        try:
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            LOGGER.error("Database commit failed: %s", exc)
            raise DatabaseOperationError() from exc

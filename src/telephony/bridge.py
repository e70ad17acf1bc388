"""Translate telephony webhooks into orchestrator calls and voice markup.

Every public handler returns TwiML. Internal failures are logged with the
call sid and answered with an apology plus hangup, so the caller never hears
a raw error.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from urllib.parse import urlencode

from agents.errors import StaleRegistryError, SynthesisError
from agents.orchestrator import ConversationOrchestrator, OrchestratorFactory
from agents.registry import RegistryEntry, SessionRegistry
from agents.schemas import AssistantConfig
from db.repository import ConversationRepository
from telephony.call_status import parse_status
from telephony.twiml import (
    NOT_CONFIGURED_TEXT,
    REPROMPT_TEXT,
    SESSION_EXPIRED_TEXT,
    VOICEMAIL_THANKS_TEXT,
    TwimlRenderer,
)

LOGGER = logging.getLogger(__name__)

FormData = Mapping[str, str]


def _field(form: FormData, name: str) -> str:
    return str(form.get(name) or "").strip()


def _int_field(form: FormData, name: str) -> int | None:
    value = _field(form, name)
    try:
        return int(value) if value else None
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s=%r", name, value)
        return None


def _direction(raw: str) -> str:
    # Provider reports "outbound-api" / "outbound-dial" for dialled calls.
    return "outbound" if raw.startswith("outbound") else "inbound"


def matches_end_phrase(speech: str, phrases: list[str]) -> bool:
    """Case-insensitive substring match of the caller's speech against end phrases."""

    lowered = speech.lower()
    return any(phrase.strip() and phrase.strip().lower() in lowered for phrase in phrases)


class TelephonyBridge:
    def __init__(
        self,
        repository: ConversationRepository,
        registry: SessionRegistry,
        create_orchestrator: OrchestratorFactory,
        renderer: TwimlRenderer,
        *,
        public_base_url: str | None = None,
    ) -> None:
        self._repo = repository
        self._registry = registry
        self._create_orchestrator = create_orchestrator
        self._renderer = renderer
        self._base_url = (public_base_url or "").rstrip("/")

    # URLs -----------------------------------------------------------------

    def gather_url(self, call_sid: str) -> str:
        return f"{self._base_url}/api/twilio/gather?{urlencode({'call_sid': call_sid})}"

    def greeting_url(self, call_sid: str) -> str | None:
        if not self._base_url:
            return None
        return f"{self._base_url}/api/twilio/audio/{call_sid}/greeting"

    # Conversation ---------------------------------------------------------

    async def handle_call_start(self, form: FormData, *, assistant_id: str | None = None) -> str:
        call_sid = _field(form, "CallSid")
        try:
            return await self._start_call(call_sid, form, assistant_id)
        except Exception:
            LOGGER.exception("Call start failed for call %s", call_sid)
            return self._renderer.apology()

    async def _start_call(self, call_sid: str, form: FormData, assistant_id: str | None) -> str:
        to_number = _field(form, "To")
        from_number = _field(form, "From")

        if assistant_id:
            assistant = await self._repo.get_assistant(assistant_id)
        else:
            assistant = await self._repo.find_assistant_by_number(to_number)
        if assistant is None:
            LOGGER.warning(
                "No assistant for call %s (assistant_id=%s, to=%s)", call_sid, assistant_id, to_number
            )
            return self._renderer.speak_and_hangup(NOT_CONFIGURED_TEXT)

        call = await self._repo.get_or_create_call(
            call_sid,
            direction=_direction(_field(form, "Direction")),
            from_number=from_number or None,
            to_number=to_number or None,
            assistant=assistant,
        )
        session = await self._repo.create_session(
            assistant, session_type="phone", call_id=call.id, metadata={"call_sid": call_sid}
        )
        orchestrator = await self._create_orchestrator(session.id, assistant)

        greeting_text, greeting_audio = await self._greeting(call_sid, orchestrator, assistant)
        await self._registry.put(
            RegistryEntry(
                key=call_sid,
                orchestrator=orchestrator,
                assistant=assistant,
                transport="phone",
                session_id=session.id,
                call_id=call.id,
                greeting_audio=greeting_audio,
            )
        )
        LOGGER.info("Call %s started with assistant %s (session %s)", call_sid, assistant.id, session.id)

        play_url = self.greeting_url(call_sid) if greeting_audio else None
        return self._renderer.speak_and_gather(
            action_url=self.gather_url(call_sid), text=greeting_text, play_url=play_url
        )

    async def _greeting(
        self, call_sid: str, orchestrator: ConversationOrchestrator, assistant: AssistantConfig
    ) -> tuple[str | None, bytes | None]:
        try:
            greeting = await orchestrator.get_greeting()
        except SynthesisError as exc:
            # The greeting text is already in history; fall back to provider speech.
            LOGGER.warning("Greeting synthesis failed for call %s: %s", call_sid, exc)
            return assistant.first_message, None
        if greeting is None:
            return None, None
        return greeting.text, greeting.audio or None

    async def handle_speech_result(self, form: FormData, *, call_sid: str | None = None) -> str:
        call_sid = call_sid or _field(form, "CallSid")
        speech = _field(form, "SpeechResult")
        if not speech:
            LOGGER.info("No speech captured for call %s; re-prompting", call_sid)
            return self._renderer.speak_and_gather(
                action_url=self.gather_url(call_sid), text=REPROMPT_TEXT
            )
        try:
            return await self._respond(call_sid, speech)
        except Exception:
            LOGGER.exception("Speech handling failed for call %s", call_sid)
            return self._renderer.apology()

    async def _respond(self, call_sid: str, speech: str) -> str:
        try:
            entry = await self._registry.require(call_sid)
        except StaleRegistryError:
            LOGGER.warning("Speech result for unknown or expired call %s", call_sid)
            return self._renderer.speak_and_hangup(SESSION_EXPIRED_TEXT)

        result = await entry.orchestrator.handle_text_input(speech)
        if matches_end_phrase(speech, entry.assistant.call_settings.end_call_phrases):
            LOGGER.info("End phrase detected on call %s", call_sid)
            await self._registry.remove(call_sid)
            await self._repo.end_session(entry.session_id)
            return self._renderer.speak_and_hangup(result.text)
        return self._renderer.speak_and_gather(action_url=self.gather_url(call_sid), text=result.text)

    async def greeting_audio(self, call_sid: str) -> bytes | None:
        entry = await self._registry.get(call_sid)
        return entry.greeting_audio if entry else None

    # Out-of-band callbacks --------------------------------------------------
    #
    # These return None when handled, or apology markup when handling failed.

    async def handle_status(self, form: FormData) -> str | None:
        return await self._guarded(self._status, form)

    async def handle_recording(self, form: FormData) -> str | None:
        return await self._guarded(self._recording, form)

    async def handle_transcription(self, form: FormData) -> str | None:
        return await self._guarded(self._transcription, form)

    async def handle_voicemail_transcription(self, form: FormData) -> str | None:
        return await self._guarded(self._voicemail_transcription, form)

    async def handle_conference_status(self, form: FormData) -> str | None:
        return await self._guarded(self._conference_status, form)

    async def _guarded(
        self, handler: Callable[[FormData], Awaitable[None]], form: FormData
    ) -> str | None:
        try:
            await handler(form)
        except Exception:
            LOGGER.exception(
                "Callback %s failed for call %s", handler.__name__.lstrip("_"), _field(form, "CallSid")
            )
            return self._renderer.apology()
        return None

    async def _status(self, form: FormData) -> None:
        call_sid = _field(form, "CallSid")
        raw_status = _field(form, "CallStatus")
        status = parse_status(raw_status)
        if status is None:
            LOGGER.warning("Unknown call status %r for call %s", raw_status, call_sid)
            return

        update = await self._repo.apply_call_status(
            call_sid,
            status,
            duration_seconds=_int_field(form, "CallDuration"),
            answered_by=_field(form, "AnsweredBy") or None,
        )
        if not update.found:
            LOGGER.warning("Status %s for unknown call %s", status.value, call_sid)
        if status.is_terminal:
            await self._registry.remove(call_sid)
            if await self._repo.end_session_for_call(call_sid):
                LOGGER.info("Session for call %s ended on status %s", call_sid, status.value)

    async def _recording(self, form: FormData) -> None:
        call_sid = _field(form, "CallSid")
        stored = await self._repo.attach_recording(
            call_sid,
            recording_url=_field(form, "RecordingUrl") or None,
            duration_seconds=_int_field(form, "RecordingDuration"),
        )
        if not stored:
            LOGGER.warning("Recording for unknown call %s", call_sid)

    async def _transcription(self, form: FormData) -> None:
        call_sid = _field(form, "CallSid")
        if not await self._repo.attach_call_transcription(
            call_sid, _field(form, "TranscriptionText") or None
        ):
            LOGGER.warning("Transcription for unknown call %s", call_sid)

    async def handle_voicemail(self, form: FormData) -> str:
        call_sid = _field(form, "CallSid")
        try:
            to_number = _field(form, "To")
            phone_number = await self._repo.get_phone_number(to_number)
            if phone_number is None or not phone_number.org_id:
                LOGGER.warning("Voicemail for unmapped number %s (call %s)", to_number, call_sid)
            else:
                await self._repo.create_voicemail(
                    org_id=phone_number.org_id,
                    call_sid=call_sid or None,
                    from_number=_field(form, "From"),
                    to_number=to_number,
                    recording_url=_field(form, "RecordingUrl") or None,
                    recording_sid=_field(form, "RecordingSid") or None,
                    duration_seconds=_int_field(form, "RecordingDuration"),
                )
        except Exception:
            LOGGER.exception("Voicemail handling failed for call %s", call_sid)
            return self._renderer.apology()
        return self._renderer.speak_and_hangup(VOICEMAIL_THANKS_TEXT)

    async def _voicemail_transcription(self, form: FormData) -> None:
        recording_sid = _field(form, "RecordingSid")
        if not await self._repo.update_voicemail_transcription(
            recording_sid,
            text=_field(form, "TranscriptionText") or None,
            status=_field(form, "TranscriptionStatus") or None,
        ):
            LOGGER.warning("Transcription for unknown voicemail recording %s", recording_sid)

    async def _conference_status(self, form: FormData) -> None:
        conference_sid = _field(form, "ConferenceSid")
        event = _field(form, "StatusCallbackEvent")
        LOGGER.info("Conference %s event %s", conference_sid, event)
        if event == "conference-end" and conference_sid:
            await self._repo.complete_transfers(conference_sid)

    def wait_music(self, music_url: str) -> str:
        return self._renderer.wait_music(music_url)

"""Twilio Voice integration.

This module provides:
- Call-start and speech-result webhooks answering with TwiML.
- Out-of-band status, recording, transcription, voicemail and conference callbacks.
- Greeting audio playback and an endpoint to place outbound calls.

The voice flow is speech-to-text via Twilio <Gather input="speech">.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.dependencies import get_bridge, get_repository, verify_twilio_signature
from api.schemas import OutboundCallRequest, OutboundCallResponse
from config.settings import get_settings
from db.repository import ConversationRepository
from integrations.twilio_client import (
    TwilioConfig,
    build_twilio_client,
    get_twilio_config,
    place_call,
)
from telephony.bridge import TelephonyBridge

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])

signed = [Depends(verify_twilio_signature)]


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _callback_response(xml: str | None) -> Response:
    if xml is not None:
        return _twiml_response(xml)
    return Response(content="OK", media_type="text/plain")


async def _form(request: Request) -> dict[str, str]:
    form = await request.form()
    return {key: str(value) for key, value in form.items()}


@router.post("/voice", dependencies=signed)
async def twilio_voice_webhook(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    form = await _form(request)
    assistant_id = request.query_params.get("assistant_id")
    return _twiml_response(await bridge.handle_call_start(form, assistant_id=assistant_id))


@router.post("/gather", dependencies=signed)
async def twilio_gather_webhook(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    form = await _form(request)
    call_sid = request.query_params.get("call_sid")
    return _twiml_response(await bridge.handle_speech_result(form, call_sid=call_sid))


@router.post("/status", dependencies=signed)
async def twilio_status_callback(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    return _callback_response(await bridge.handle_status(await _form(request)))


@router.post("/recording", dependencies=signed)
async def twilio_recording_callback(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    return _callback_response(await bridge.handle_recording(await _form(request)))


@router.post("/transcription", dependencies=signed)
async def twilio_transcription_callback(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    return _callback_response(await bridge.handle_transcription(await _form(request)))


@router.post("/voicemail", dependencies=signed)
async def twilio_voicemail_webhook(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    return _twiml_response(await bridge.handle_voicemail(await _form(request)))


@router.post("/voicemail-transcription", dependencies=signed)
async def twilio_voicemail_transcription_callback(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    return _callback_response(await bridge.handle_voicemail_transcription(await _form(request)))


@router.post("/conference-status", dependencies=signed)
async def twilio_conference_status_callback(
    request: Request,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    return _callback_response(await bridge.handle_conference_status(await _form(request)))


@router.api_route("/wait-music", methods=["GET", "POST"])
async def twilio_wait_music(bridge: TelephonyBridge = Depends(get_bridge)) -> Response:
    return _twiml_response(bridge.wait_music(get_settings().twilio_wait_music_url))


@router.get("/audio/{call_sid}/greeting")
async def twilio_greeting_audio(
    call_sid: str,
    bridge: TelephonyBridge = Depends(get_bridge),
) -> Response:
    audio = await bridge.greeting_audio(call_sid)
    if not audio:
        raise HTTPException(status_code=404, detail="Greeting audio not found")
    return Response(content=audio, media_type="audio/mpeg")


def get_twilio_cfg() -> TwilioConfig:
    try:
        return get_twilio_config()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def get_twilio_client(cfg: TwilioConfig = Depends(get_twilio_cfg)):
    return build_twilio_client(cfg)


@router.post("/calls", response_model=OutboundCallResponse, status_code=201)
async def create_outbound_call(
    payload: OutboundCallRequest,
    repo: ConversationRepository = Depends(get_repository),
    twilio_client=Depends(get_twilio_client),
    cfg: TwilioConfig = Depends(get_twilio_cfg),
) -> OutboundCallResponse:
    assistant = await repo.get_assistant(payload.assistant_id)
    if assistant is None:
        raise HTTPException(status_code=404, detail="Assistant not found")

    call = await place_call(
        twilio_client,
        cfg,
        to_number=payload.to_number,
        assistant_id=assistant.id,
        from_number=payload.from_number,
        detect_voicemail=payload.detect_voicemail,
        record=assistant.call_settings.recording_enabled,
    )
    await repo.create_call(
        call.call_sid,
        direction="outbound",
        from_number=call.from_number,
        to_number=call.to_number,
        assistant=assistant,
        metadata=payload.metadata,
    )
    LOGGER.info("Placed outbound call %s to %s", call.call_sid, call.to_number)
    return OutboundCallResponse(
        call_sid=call.call_sid,
        status=call.status,
        to_number=call.to_number,
        from_number=call.from_number,
    )

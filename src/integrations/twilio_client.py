from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlencode

from agents.errors import TelephonyError
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str


@dataclass(frozen=True)
class OutboundCall:
    call_sid: str
    status: str | None
    to_number: str
    from_number: str


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise ValueError("Twilio from-number is not configured")
    if not settings.public_base_url:
        raise ValueError("PUBLIC_BASE_URL is required for Twilio callbacks")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/"),
    )


def build_twilio_client(cfg: TwilioConfig | None = None):
    from twilio.rest import Client

    cfg = cfg or get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)


async def place_call(
    client,
    cfg: TwilioConfig,
    *,
    to_number: str,
    assistant_id: str,
    from_number: str | None = None,
    detect_voicemail: bool = False,
    record: bool = True,
) -> OutboundCall:
    """Dial `to_number` with the call-start webhook bound to `assistant_id`."""

    from twilio.base.exceptions import TwilioException

    base = cfg.public_base_url
    params = {
        "to": to_number,
        "from_": from_number or cfg.from_number,
        "url": f"{base}/api/twilio/voice?{urlencode({'assistant_id': assistant_id})}",
        "method": "POST",
        "status_callback": f"{base}/api/twilio/status",
        "status_callback_event": STATUS_CALLBACK_EVENTS,
        "status_callback_method": "POST",
        "record": record,
    }
    if record:
        params["recording_status_callback"] = f"{base}/api/twilio/recording"
    if detect_voicemail:
        params.update(
            machine_detection="DetectMessageEnd",
            machine_detection_timeout=30,
            machine_detection_speech_threshold=2400,
            machine_detection_speech_end_threshold=1200,
            machine_detection_silence_timeout=5000,
        )

    try:
        # The REST client is synchronous.
        call = await asyncio.to_thread(client.calls.create, **params)
    except TwilioException as exc:
        LOGGER.error("Outbound call to %s failed: %s", to_number, exc)
        raise TelephonyError(f"Failed to place call: {exc}") from exc

    return OutboundCall(
        call_sid=str(call.sid),
        status=getattr(call, "status", None),
        to_number=to_number,
        from_number=params["from_"],
    )


def is_valid_signature(
    auth_token: str, url: str, params: Mapping[str, str], signature: str | None
) -> bool:
    """Check an inbound webhook's X-Twilio-Signature header."""

    from twilio.request_validator import RequestValidator

    if not signature:
        return False
    return RequestValidator(auth_token).validate(url, dict(params), signature)

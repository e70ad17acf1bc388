"""Domain-specific exceptions for orchestration operations.

These exceptions are safe to import from API layers without pulling in provider SDKs.
"""

from __future__ import annotations


class AssistantError(Exception):
    status_code: int = 500
    default_detail: str = "Assistant error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class TransportError(AssistantError):
    status_code = 400
    default_detail = "Malformed or undeliverable transport message."


class ValidationError(AssistantError):
    status_code = 422
    default_detail = "Required field missing or invalid."


class NotFoundError(AssistantError):
    status_code = 404
    default_detail = "Resource not found."


class StaleRegistryError(NotFoundError):
    default_detail = "Session expired."


class SessionEndedError(AssistantError):
    status_code = 409
    default_detail = "Session has ended."


class ProviderError(AssistantError):
    status_code = 503
    default_detail = "Upstream provider request failed."


class GenerationError(ProviderError):
    default_detail = "Language generation failed."


class SynthesisError(ProviderError):
    default_detail = "Speech synthesis failed."


class TranscriptionError(ProviderError):
    default_detail = "Transcription failed."


class TelephonyError(ProviderError):
    default_detail = "Telephony provider request failed."


class DatabaseOperationError(AssistantError):
    status_code = 503
    default_detail = "Database operation failed."

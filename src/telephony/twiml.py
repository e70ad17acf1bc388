"""TwiML (voice-response markup) rendering."""

from __future__ import annotations

from dataclasses import dataclass

from twilio.twiml.voice_response import VoiceResponse

from config.settings import Settings

APOLOGY_TEXT = "We're sorry, an error occurred. Goodbye."
NOT_CONFIGURED_TEXT = "Sorry, this number is not configured. Please try again later."
SESSION_EXPIRED_TEXT = "Session expired. Please call again."
REPROMPT_TEXT = "I didn't catch that. Could you please repeat?"
VOICEMAIL_THANKS_TEXT = "Thank you for your message. Goodbye."
HOLD_TEXT = "Thank you for holding. An agent will be with you shortly."


@dataclass(frozen=True)
class TwimlRenderer:
    voice: str = "Polly.Joanna"
    gather_timeout: int = 3
    speech_model: str = "experimental_conversations"

    @classmethod
    def from_settings(cls, settings: Settings) -> TwimlRenderer:
        return cls(
            voice=settings.twilio_say_voice,
            gather_timeout=settings.twilio_gather_timeout,
            speech_model=settings.twilio_speech_model,
        )

    def speak_and_gather(
        self,
        *,
        action_url: str,
        text: str | None = None,
        play_url: str | None = None,
    ) -> str:
        """Play or speak a prompt, then listen for the caller's reply.

        An empty gather result still posts to `action_url`, so a provider-side
        timeout reaches the same handler as "no speech captured".
        """

        response = VoiceResponse()
        if play_url:
            response.play(play_url)
        elif text:
            response.say(text, voice=self.voice)
        response.gather(
            input="speech",
            action=action_url,
            method="POST",
            timeout=self.gather_timeout,
            speech_timeout="auto",
            speech_model=self.speech_model,
            action_on_empty_result=True,
        )
        return str(response)

    def speak_and_hangup(self, text: str) -> str:
        response = VoiceResponse()
        response.say(text, voice=self.voice)
        response.hangup()
        return str(response)

    def apology(self) -> str:
        return self.speak_and_hangup(APOLOGY_TEXT)

    def wait_music(self, music_url: str) -> str:
        response = VoiceResponse()
        response.say(HOLD_TEXT, voice=self.voice)
        response.play(music_url, loop=10)
        return str(response)

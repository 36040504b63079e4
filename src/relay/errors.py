"""Domain-specific exceptions for the relay pipeline.

These exceptions are safe to import from API layers without pulling in the
OpenAI or Twilio clients.
"""

from __future__ import annotations


class RelayError(Exception):
    default_detail: str = "Relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class DuplicateConnectionError(RelayError):
    default_detail = "Connection id already registered."


class ConnectionNotFoundError(RelayError):
    default_detail = "Connection not found."


class EmptyAudioError(RelayError):
    default_detail = "Audio segment is empty."


class TranscriptionFailedError(RelayError):
    default_detail = "Transcription failed."


class TranslationFailedError(RelayError):
    default_detail = "Translation failed."


class NoTargetParticipantError(RelayError):
    default_detail = "No other participant to receive the translation."


class DeliveryFailedError(RelayError):
    default_detail = "Spoken response delivery failed."

"""Delivers translated text to the other participant of a call."""

from __future__ import annotations

import logging

from integrations.telephony import TelephonyControlPlane
from relay.errors import ConnectionNotFoundError, DeliveryFailedError, NoTargetParticipantError
from relay.registry import ConnectionRegistry
from relay.schemas import TranslationResult

LOGGER = logging.getLogger(__name__)


class ResponseRouter:
    def __init__(
        self,
        registry: ConnectionRegistry,
        telephony: TelephonyControlPlane,
        *,
        voices: dict[str, str] | None = None,
        locales: dict[str, str] | None = None,
        default_voice: str = "Polly.Miguel",
    ) -> None:
        self._registry = registry
        self._telephony = telephony
        self._voices = voices or {}
        self._locales = locales or {}
        self._default_voice = default_voice

    async def route(self, result: TranslationResult, *, room_id: str | None = None) -> str:
        """Speak `result` into the other leg of the speaker's call.

        Returns the id of the connection that received the response.
        """

        target_id = await self._registry.find_other(result.speaker_id, room_id=room_id)
        if target_id is None:
            raise NoTargetParticipantError(
                f"No other participant for speaker {result.speaker_id}."
            )
        await self.deliver_spoken_response(
            target_id, result.translated_text, language=result.target_language
        )
        return target_id

    async def deliver_spoken_response(
        self,
        target_connection_id: str,
        text: str,
        *,
        language: str | None = None,
    ) -> None:
        try:
            target = await self._registry.get(target_connection_id)
        except ConnectionNotFoundError as exc:
            # The target hung up between lookup and delivery.
            raise NoTargetParticipantError(
                f"Target {target_connection_id} is no longer connected."
            ) from exc

        voice, locale = self._voice_for(language)
        try:
            await self._telephony.speak(target, text, voice=voice, language=locale)
        except Exception as exc:
            raise DeliveryFailedError(
                f"Delivery to {target_connection_id} failed: {exc}"
            ) from exc

    def _voice_for(self, language: str | None) -> tuple[str, str | None]:
        if not language:
            return self._default_voice, None
        base = language.split("-")[0].lower()
        return self._voices.get(base, self._default_voice), self._locales.get(base)

"""Telephony control plane: makes a call leg speak a line of text."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from urllib.parse import urlencode
from xml.sax.saxutils import escape, quoteattr

import httpx

from config.settings import get_settings
from relay.registry import ConnectionEntry

LOGGER = logging.getLogger(__name__)


def twiml_say(*, text: str, voice: str, language: str | None, redirect_url: str | None = None) -> str:
    attrs = f"voice={quoteattr(voice)}"
    if language:
        attrs += f" language={quoteattr(language)}"
    redirect = f"<Redirect method=\"POST\">{escape(redirect_url)}</Redirect>" if redirect_url else ""
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say {attrs}>{escape(text)}</Say>"
        f"{redirect}"
        "</Response>"
    )


class TelephonyControlPlane(ABC):
    """Interface for delivering spoken responses into a live call leg."""

    @abstractmethod
    async def speak(
        self,
        entry: ConnectionEntry,
        text: str,
        *,
        voice: str,
        language: str | None,
    ) -> None:
        """Instruct the leg behind `entry` to say `text`."""


class WebhookTelephony(TelephonyControlPlane):
    """POSTs a <Say> TwiML document to the webhook associated with the leg."""

    def __init__(
        self,
        default_url: str | None = None,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._default_url = default_url
        self._timeout = timeout
        self._transport = transport

    async def speak(
        self,
        entry: ConnectionEntry,
        text: str,
        *,
        voice: str,
        language: str | None,
    ) -> None:
        url = entry.response_url or self._default_url
        if not url:
            raise ValueError(f"No response webhook configured for {entry.connection_id}")

        body = twiml_say(text=text, voice=voice, language=language)
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                url,
                content=body.encode("utf-8"),
                headers={"Content-Type": "text/xml"},
            )
        response.raise_for_status()
        LOGGER.info("TTS response sent to connection=%s via webhook", entry.connection_id)


class TwilioCallUpdateTelephony(TelephonyControlPlane):
    """Updates the live Twilio call with <Say> TwiML through the REST API.

    When `resume_url` is set the TwiML redirects back to it after speaking so
    the leg reconnects its media stream.
    """

    def __init__(self, twilio_client, *, resume_url: str | None = None) -> None:
        self._client = twilio_client
        self._resume_url = resume_url

    async def speak(
        self,
        entry: ConnectionEntry,
        text: str,
        *,
        voice: str,
        language: str | None,
    ) -> None:
        if not entry.call_sid:
            raise ValueError(f"Connection {entry.connection_id} has no call SID")

        twiml = twiml_say(
            text=text, voice=voice, language=language, redirect_url=self._redirect_url(entry)
        )
        # twilio's REST client is synchronous.
        await asyncio.to_thread(self._client.calls(entry.call_sid).update, twiml=twiml)
        LOGGER.info(
            "TTS response sent to connection=%s via call update (call=%s)",
            entry.connection_id,
            entry.call_sid,
        )

    def _redirect_url(self, entry: ConnectionEntry) -> str | None:
        if not self._resume_url:
            return None
        params = {"Role": entry.participant_role}
        if entry.room_id:
            params["Room"] = entry.room_id
        return f"{self._resume_url}?{urlencode(params)}"


def build_telephony() -> TelephonyControlPlane:
    """Factory returning the configured delivery mechanism."""

    settings = get_settings()
    if settings.delivery_mode == "webhook":
        return WebhookTelephony(settings.response_webhook_url)
    if settings.delivery_mode == "call_update":
        from integrations.twilio_client import build_twilio_client, get_twilio_config

        cfg = get_twilio_config()
        resume_url = None
        if cfg.public_base_url:
            resume_url = f"{cfg.public_base_url}/api/twilio/voice_stream"
        return TwilioCallUpdateTelephony(build_twilio_client(), resume_url=resume_url)
    raise ValueError(f"Unsupported delivery_mode: {settings.delivery_mode}")

"""Twilio Voice integration.

The voice webhook answers a call with TwiML that connects the call leg to the
relay stream endpoint. Translations come back through the telephony control
plane, not through this webhook.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import quoteattr

from fastapi import APIRouter, Request, Response

from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_stream(*, stream_url: str, parameters: dict[str, str]) -> str:
    # <Stream> urls take no query string; metadata travels as <Parameter> nouns
    # and shows up in the stream's "start" event.
    nouns = "".join(
        f"<Parameter name={quoteattr(name)} value={quoteattr(value)} />"
        for name, value in parameters.items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url={quoteattr(stream_url)}>{nouns}</Stream>"
        "</Connect>"
        "</Response>"
    )


def _field(form, request: Request, name: str) -> str:
    return str(form.get(name) or request.query_params.get(name) or "").strip()


@router.post("/voice_stream")
async def twilio_voice_stream_start(request: Request) -> Response:
    settings = get_settings()
    form = await request.form()

    call_sid = _field(form, request, "CallSid")
    parameters: dict[str, str] = {}
    if call_sid:
        # The relay adopts connectionId from the stream's "start" event.
        parameters["connectionId"] = call_sid
        parameters["callSid"] = call_sid
    room = _field(form, request, "Room")
    if room:
        parameters["room"] = room
    role = _field(form, request, "Role") or _field(form, request, "From")
    if role:
        parameters["role"] = role

    # WebSocket endpoint must be publicly reachable (wss:// recommended).
    if settings.public_base_url:
        base = settings.public_base_url.rstrip("/")
    else:
        # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
        base = str(request.base_url).rstrip("/")
    stream_url = _to_ws_url(f"{base}/api/relay/stream")

    LOGGER.info("Connecting call=%s to relay stream (room=%s)", call_sid or "unknown", room or "-")
    return _twiml_response(_twiml_stream(stream_url=stream_url, parameters=parameters))

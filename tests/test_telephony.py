from __future__ import annotations

import asyncio
from urllib.parse import parse_qs, urlsplit
from xml.etree import ElementTree

import httpx
import pytest

from integrations.telephony import TwilioCallUpdateTelephony, WebhookTelephony, twiml_say
from relay.registry import ConnectionEntry


def test_twiml_say_escapes_text():
    xml = twiml_say(text="Tom & Jerry <3", voice="Polly.Miguel", language="es-US")
    assert "<Say voice=\"Polly.Miguel\" language=\"es-US\">Tom &amp; Jerry &lt;3</Say>" in xml
    assert "<Redirect" not in xml


def test_twiml_say_quotes_attribute_values():
    voice = "Polly.\"Miguel\" & 'co'"
    xml = twiml_say(text="hola", voice=voice, language="es\"US")
    say = ElementTree.fromstring(xml.encode("utf-8")).find("Say")
    assert say is not None
    assert say.get("voice") == voice
    assert say.get("language") == "es\"US"
    assert say.text == "hola"


def test_webhook_posts_say_twiml_to_leg_url():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    telephony = WebhookTelephony("https://fallback.example/twiml", transport=httpx.MockTransport(handler))
    entry = ConnectionEntry(
        connection_id="en-1", participant_role="callee", response_url="https://leg.example/twiml"
    )
    asyncio.run(telephony.speak(entry, "hello", voice="Polly.Matthew", language="en-US"))

    assert len(seen) == 1
    assert str(seen[0].url) == "https://leg.example/twiml"
    assert seen[0].headers["content-type"] == "text/xml"
    assert b"<Say voice=\"Polly.Matthew\" language=\"en-US\">hello</Say>" in seen[0].content


def test_webhook_falls_back_to_default_url():
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200)

    telephony = WebhookTelephony("https://fallback.example/twiml", transport=httpx.MockTransport(handler))
    entry = ConnectionEntry(connection_id="en-1", participant_role="callee")
    asyncio.run(telephony.speak(entry, "hello", voice="Polly.Matthew", language=None))
    assert seen == ["https://fallback.example/twiml"]


def test_webhook_non_success_raises():
    telephony = WebhookTelephony(
        "https://fallback.example/twiml",
        transport=httpx.MockTransport(lambda request: httpx.Response(410)),
    )
    entry = ConnectionEntry(connection_id="en-1", participant_role="callee")
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(telephony.speak(entry, "hello", voice="Polly.Matthew", language=None))


def test_webhook_without_any_url_raises():
    entry = ConnectionEntry(connection_id="en-1", participant_role="callee")
    with pytest.raises(ValueError):
        asyncio.run(WebhookTelephony().speak(entry, "hello", voice="Polly.Matthew", language=None))


class FakeCallContext:
    def __init__(self, sid: str, log: list) -> None:
        self.sid = sid
        self.log = log

    def update(self, *, twiml: str):
        self.log.append((self.sid, twiml))
        return self


class FakeTwilioClient:
    def __init__(self) -> None:
        self.updates: list[tuple[str, str]] = []

    def calls(self, sid: str) -> FakeCallContext:
        return FakeCallContext(sid, self.updates)


def test_call_update_says_text_and_resumes_stream():
    client = FakeTwilioClient()
    telephony = TwilioCallUpdateTelephony(client, resume_url="https://relay.example/api/twilio/voice_stream")
    entry = ConnectionEntry(
        connection_id="en-1", participant_role="callee", room_id="room-7", call_sid="CA999"
    )
    asyncio.run(telephony.speak(entry, "hola", voice="Polly.Miguel", language="es-US"))

    assert len(client.updates) == 1
    sid, twiml = client.updates[0]
    assert sid == "CA999"
    assert "<Say voice=\"Polly.Miguel\" language=\"es-US\">hola</Say>" in twiml
    redirect = twiml.split("<Redirect method=\"POST\">", 1)[1].split("</Redirect>", 1)[0]
    query = parse_qs(urlsplit(redirect.replace("&amp;", "&")).query)
    assert query == {"Role": ["callee"], "Room": ["room-7"]}


def test_call_update_requires_call_sid():
    telephony = TwilioCallUpdateTelephony(FakeTwilioClient())
    entry = ConnectionEntry(connection_id="en-1", participant_role="callee")
    with pytest.raises(ValueError):
        asyncio.run(telephony.speak(entry, "hola", voice="Polly.Miguel", language=None))

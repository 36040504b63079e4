from __future__ import annotations

import time

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def harness(app, make_harness):
    import api.dependencies as deps

    harness = make_harness(threshold=100)
    app.dependency_overrides[deps.get_gateway] = lambda: harness.gateway
    yield harness
    app.dependency_overrides.clear()


def _connection_ids(client: TestClient) -> list[str]:
    return [c["connection_id"] for c in client.get("/api/relay/connections").json()]


def test_health(app):
    with TestClient(app) as client:
        resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_stream_registers_and_lists_connection(app, harness):
    with TestClient(app) as client:
        with client.websocket_connect("/api/relay/stream?connectionId=es-1&role=caller&room=r1"):
            listing = client.get("/api/relay/connections").json()
            assert len(listing) == 1
            assert listing[0]["connection_id"] == "es-1"
            assert listing[0]["participant_role"] == "caller"
            assert listing[0]["room_id"] == "r1"
            assert listing[0]["state"] == "open"
            assert listing[0]["buffered_bytes"] == 0

        assert _wait_for(lambda: _connection_ids(client) == [])


def test_stream_rejects_duplicate_connection_id(app, harness):
    with TestClient(app) as client:
        with client.websocket_connect("/api/relay/stream?connectionId=dup"):
            with pytest.raises(WebSocketDisconnect) as excinfo:
                with client.websocket_connect("/api/relay/stream?connectionId=dup"):
                    pass
            assert excinfo.value.code == 1008
            assert _connection_ids(client) == ["dup"]


def test_stream_relays_translation_to_other_leg(app, harness):
    with TestClient(app) as client:
        with client.websocket_connect("/api/relay/stream?connectionId=en-1&role=callee"):
            with client.websocket_connect("/api/relay/stream?connectionId=es-1&role=caller") as speaker:
                speaker.send_bytes(b"\x01" * 60)
                speaker.send_bytes(b"\x01" * 60)
                assert _wait_for(lambda: len(harness.telephony.spoken) == 1)

    assert harness.transcriber.calls == [("es-1", b"\x01" * 120)]
    assert harness.telephony.spoken[0]["connection_id"] == "en-1"
    assert harness.telephony.spoken[0]["text"] == "translated: hola desde es-1"


def test_voice_stream_webhook_connects_call_to_relay(app, monkeypatch):
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://relay.example.com/")
    from config.settings import get_settings

    get_settings.cache_clear()
    try:
        with TestClient(app) as client:
            resp = client.post(
                "/api/twilio/voice_stream?Room=call-42",
                data={"CallSid": "CA111", "From": "+34600000000"},
            )
    finally:
        get_settings.cache_clear()

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/xml")
    assert "<Stream url=\"wss://relay.example.com/api/relay/stream\">" in resp.text
    assert "<Parameter name=\"connectionId\" value=\"CA111\" />" in resp.text
    assert "<Parameter name=\"callSid\" value=\"CA111\" />" in resp.text
    assert "<Parameter name=\"room\" value=\"call-42\" />" in resp.text
    assert "<Parameter name=\"role\" value=\"+34600000000\" />" in resp.text


def test_voice_stream_webhook_falls_back_to_request_host(app):
    with TestClient(app) as client:
        resp = client.post("/api/twilio/voice_stream", data={"CallSid": "CA222"})

    assert resp.status_code == 200
    assert "<Stream url=\"ws://testserver/api/relay/stream\">" in resp.text
    assert "name=\"room\"" not in resp.text


def test_voice_stream_webhook_without_call_sid_sends_no_connection_id(app):
    with TestClient(app) as client:
        resp = client.post("/api/twilio/voice_stream", data={"Room": "r1"})

    assert resp.status_code == 200
    assert "connectionId" not in resp.text
    assert "<Parameter name=\"room\" value=\"r1\" />" in resp.text


def test_twilio_stream_is_listed_under_its_call_sid(app, harness):
    start = {
        "event": "start",
        "start": {"callSid": "CA777", "customParameters": {"connectionId": "CA777", "room": "r9"}},
    }
    with TestClient(app) as client:
        with client.websocket_connect("/api/relay/stream") as ws:
            ws.send_json(start)
            assert _wait_for(lambda: _connection_ids(client) == ["CA777"])
            listing = client.get("/api/relay/connections").json()
            assert listing[0]["room_id"] == "r9"

        assert _wait_for(lambda: _connection_ids(client) == [])

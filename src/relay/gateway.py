"""WebSocket gateway wiring call legs to the dispatch pipeline."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect, status

from relay.accumulator import AudioAccumulator
from relay.dispatcher import TranslationDispatcher
from relay.errors import DuplicateConnectionError, NoTargetParticipantError, RelayError
from relay.registry import ConnectionEntry, ConnectionRegistry, ConnectionState
from relay.router import ResponseRouter

LOGGER = logging.getLogger(__name__)

DEFAULT_ROLE = "participant"


def _first(params: Mapping[str, Any], *names: str) -> str | None:
    for name in names:
        value = params.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


@dataclass(frozen=True)
class ConnectionMetadata:
    """Participant identity carried in the WebSocket handshake query string.

    `generated_id` marks a random id that the stream's `start` event may
    replace with the call's own identity.
    """

    connection_id: str
    participant_role: str
    room_id: str | None = None
    call_sid: str | None = None
    response_url: str | None = None
    generated_id: bool = False

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> ConnectionMetadata:
        connection_id = _first(params, "connectionId", "connection_id")
        return cls(
            connection_id=connection_id or uuid4().hex,
            participant_role=_first(params, "role", "participant") or DEFAULT_ROLE,
            room_id=_first(params, "room", "roomId"),
            call_sid=_first(params, "callSid"),
            response_url=_first(params, "responseUrl"),
            generated_id=connection_id is None,
        )


def parse_twilio_ws_message(text: str) -> dict[str, Any]:
    message = json.loads(text)
    if not isinstance(message, dict):
        raise ValueError("Twilio stream message must be a JSON object")
    return message


class ConnectionGateway:
    """Runs the `connecting -> open -> closed` lifecycle of each call leg.

    Dispatches run as detached tasks, at most one per connection. Audio that
    crosses the threshold while a dispatch is running keeps accumulating and is
    picked up by that same task once it finishes.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        accumulator: AudioAccumulator,
        dispatcher: TranslationDispatcher,
        router: ResponseRouter,
        *,
        shutdown_grace_seconds: float = 10.0,
    ) -> None:
        self.registry = registry
        self._accumulator = accumulator
        self._dispatcher = dispatcher
        self._router = router
        self._grace = shutdown_grace_seconds
        self._tasks: set[asyncio.Task] = set()

    async def serve(self, websocket: WebSocket) -> None:
        metadata = ConnectionMetadata.from_query(websocket.query_params)
        try:
            entry = await self.registry.register(
                metadata.connection_id,
                metadata.participant_role,
                room_id=metadata.room_id,
                call_sid=metadata.call_sid,
                response_url=metadata.response_url,
            )
        except DuplicateConnectionError as exc:
            LOGGER.warning("Rejecting connection=%s: %s", metadata.connection_id, exc.detail)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=exc.detail)
            return

        try:
            await websocket.accept()
            entry.state = ConnectionState.OPEN
            LOGGER.info("WebSocket connection opened: connection=%s", entry.connection_id)
            await self._receive_loop(websocket, entry, adopt_stream_id=metadata.generated_id)
        except WebSocketDisconnect:
            pass
        finally:
            entry.state = ConnectionState.CLOSED
            await self.registry.remove(entry.connection_id)
            LOGGER.info("WebSocket connection closed: connection=%s", entry.connection_id)

    async def _receive_loop(
        self, websocket: WebSocket, entry: ConnectionEntry, *, adopt_stream_id: bool = False
    ) -> None:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                return

            data = message.get("bytes")
            if data is not None:
                await self.on_fragment(entry, data)
                continue

            text = message.get("text")
            if text is not None and not await self._handle_text(
                entry, text, adopt_stream_id=adopt_stream_id
            ):
                await websocket.close()
                return

    async def _handle_text(
        self, entry: ConnectionEntry, text: str, *, adopt_stream_id: bool = False
    ) -> bool:
        """Handle a Twilio Media Streams event; False means the stream stopped."""

        try:
            message = parse_twilio_ws_message(text)
        except ValueError:
            LOGGER.warning("Ignoring malformed text frame on connection=%s", entry.connection_id)
            return True

        event = str(message.get("event") or "")
        if event == "start":
            start = message.get("start")
            await self._apply_start_event(
                entry, start if isinstance(start, dict) else {}, adopt_stream_id=adopt_stream_id
            )
        elif event == "media":
            media = message.get("media")
            if not isinstance(media, dict):
                return True
            if media.get("track") and media.get("track") != "inbound":
                return True
            payload = media.get("payload")
            if isinstance(payload, str) and payload:
                try:
                    fragment = base64.b64decode(payload, validate=True)
                except binascii.Error:
                    LOGGER.warning("Ignoring undecodable media payload on connection=%s", entry.connection_id)
                    return True
                await self.on_fragment(entry, fragment)
        elif event == "stop":
            return False
        return True

    async def _apply_start_event(
        self, entry: ConnectionEntry, start: dict[str, Any], *, adopt_stream_id: bool = False
    ) -> None:
        custom = start.get("customParameters") or {}
        if not isinstance(custom, dict):
            custom = {}

        stream_id = _first(custom, "connectionId") or _first(start, "callSid")
        if adopt_stream_id and stream_id:
            previous_id = entry.connection_id
            try:
                await self.registry.rekey(previous_id, stream_id)
            except DuplicateConnectionError as exc:
                LOGGER.warning("Keeping connection=%s: %s", previous_id, exc.detail)

        await self.registry.update_metadata(
            entry.connection_id,
            participant_role=_first(custom, "role") if entry.participant_role == DEFAULT_ROLE else None,
            room_id=_first(custom, "room") if entry.room_id is None else None,
            call_sid=(_first(start, "callSid") or _first(custom, "callSid")) if not entry.call_sid else None,
        )
        LOGGER.info(
            "Stream started: connection=%s call=%s room=%s",
            entry.connection_id,
            entry.call_sid,
            entry.room_id,
        )

    async def on_fragment(self, entry: ConnectionEntry, fragment: bytes) -> None:
        await self._accumulator.append(entry, fragment)
        if entry.state is not ConnectionState.OPEN or entry.dispatch_in_flight:
            return

        segment = await self._accumulator.take_segment(entry)
        if segment is None:
            return

        task = asyncio.create_task(
            self._dispatch(entry, segment), name=f"dispatch:{entry.connection_id}"
        )
        entry.dispatch_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, entry: ConnectionEntry, segment: bytes | None) -> None:
        while segment:
            await self._process_segment(entry, segment)
            if entry.state is not ConnectionState.OPEN:
                return
            # Threshold crossings deferred while this dispatch was running.
            segment = await self._accumulator.take_segment(entry)

    async def _process_segment(self, entry: ConnectionEntry, segment: bytes) -> None:
        connection_id = entry.connection_id
        LOGGER.debug("Dispatching %d bytes for connection=%s", len(segment), connection_id)
        try:
            result = await self._dispatcher.translate(segment, connection_id)
            target_id = await self._router.route(result, room_id=entry.room_id)
        except NoTargetParticipantError as exc:
            LOGGER.warning("Dropping translation for connection=%s: %s", connection_id, exc.detail)
        except RelayError as exc:
            LOGGER.error("Dispatch failed for connection=%s: %s", connection_id, exc.detail)
        except Exception:
            LOGGER.exception("Unexpected dispatch failure for connection=%s", connection_id)
        else:
            LOGGER.info("Delivered translation from connection=%s to connection=%s", connection_id, target_id)

    async def wait_idle(self) -> None:
        """Wait until every dispatch scheduled so far has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        LOGGER.info("Waiting for %d in-flight dispatches", len(self._tasks))
        _done, pending = await asyncio.wait(list(self._tasks), timeout=self._grace)
        for task in pending:
            task.cancel()
        if pending:
            LOGGER.warning("Cancelled %d dispatches still running at shutdown", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

"""Process-wide registry of live call legs."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from relay.errors import ConnectionNotFoundError, DuplicateConnectionError

LOGGER = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(slots=True, eq=False)
class ConnectionEntry:
    """One call leg attached to the server.

    Only the accumulator touches `audio_buffer`, and only while holding `lock`.
    """

    connection_id: str
    participant_role: str
    room_id: str | None = None
    call_sid: str | None = None
    response_url: str | None = None
    audio_buffer: bytearray = field(default_factory=bytearray)
    state: ConnectionState = ConnectionState.CONNECTING
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    dispatch_task: asyncio.Task | None = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def dispatch_in_flight(self) -> bool:
        return self.dispatch_task is not None and not self.dispatch_task.done()


class ConnectionRegistry:
    """In-memory `connection_id -> ConnectionEntry` map.

    Note: This is a single-process store. The lock only guards the map itself;
    it is never held across a remote service call.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[str, ConnectionEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def register(
        self,
        connection_id: str,
        participant_role: str,
        *,
        room_id: str | None = None,
        call_sid: str | None = None,
        response_url: str | None = None,
    ) -> ConnectionEntry:
        async with self._lock:
            if connection_id in self._entries:
                raise DuplicateConnectionError(f"Connection {connection_id!r} already registered.")
            entry = ConnectionEntry(
                connection_id=connection_id,
                participant_role=participant_role,
                room_id=room_id,
                call_sid=call_sid,
                response_url=response_url,
            )
            self._entries[connection_id] = entry
        LOGGER.info(
            "Registered connection=%s role=%s room=%s", connection_id, participant_role, room_id
        )
        return entry

    async def get(self, connection_id: str) -> ConnectionEntry:
        async with self._lock:
            entry = self._entries.get(connection_id)
        if entry is None:
            raise ConnectionNotFoundError(f"Connection {connection_id!r} not found.")
        return entry

    async def remove(self, connection_id: str) -> None:
        async with self._lock:
            entry = self._entries.pop(connection_id, None)
        if entry is not None:
            LOGGER.info("Removed connection=%s", connection_id)

    async def update_metadata(
        self,
        connection_id: str,
        *,
        participant_role: str | None = None,
        room_id: str | None = None,
        call_sid: str | None = None,
    ) -> ConnectionEntry:
        """Fill in participant metadata that arrived after the handshake."""

        async with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                raise ConnectionNotFoundError(f"Connection {connection_id!r} not found.")
            if participant_role:
                entry.participant_role = participant_role
            if room_id:
                entry.room_id = room_id
            if call_sid:
                entry.call_sid = call_sid
        return entry

    async def rekey(self, connection_id: str, new_id: str) -> ConnectionEntry:
        """Move an entry to `new_id`, keeping its registration order."""

        async with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                raise ConnectionNotFoundError(f"Connection {connection_id!r} not found.")
            if new_id == connection_id:
                return entry
            if new_id in self._entries:
                raise DuplicateConnectionError(f"Connection {new_id!r} already registered.")
            self._entries = {
                (new_id if key == connection_id else key): value
                for key, value in self._entries.items()
            }
            entry.connection_id = new_id
        LOGGER.info("Renamed connection=%s to connection=%s", connection_id, new_id)
        return entry

    async def find_other(self, exclude_id: str, *, room_id: str | None = None) -> str | None:
        """Return the id of another participant in the same call, if any.

        Candidates share the pairing room of the speaker: `room_id` when given,
        otherwise the room of the `exclude_id` entry. Room-less legs only pair
        with other room-less legs. This models two-party calls; with several
        candidates the earliest registered one wins.
        """

        async with self._lock:
            if room_id is None:
                speaker = self._entries.get(exclude_id)
                room_id = speaker.room_id if speaker is not None else None
            for entry in self._entries.values():
                if entry.connection_id != exclude_id and entry.room_id == room_id:
                    return entry.connection_id
        return None

    async def list_entries(self) -> list[ConnectionEntry]:
        async with self._lock:
            return list(self._entries.values())

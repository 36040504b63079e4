from __future__ import annotations

from relay.registry import ConnectionEntry


class AudioAccumulator:
    """Buffers inbound audio per connection and decides when to dispatch.

    `threshold_bytes` approximates ~1.5-2 seconds of telephony audio. A buffer
    holding exactly `threshold_bytes` does not dispatch yet.
    """

    def __init__(self, threshold_bytes: int) -> None:
        if threshold_bytes <= 0:
            raise ValueError("threshold_bytes must be positive")
        self.threshold_bytes = threshold_bytes

    async def append(self, entry: ConnectionEntry, fragment: bytes) -> None:
        if not fragment:
            return
        async with entry.lock:
            entry.audio_buffer.extend(fragment)

    def should_dispatch(self, entry: ConnectionEntry) -> bool:
        return len(entry.audio_buffer) > self.threshold_bytes

    async def drain(self, entry: ConnectionEntry) -> bytes:
        async with entry.lock:
            return self._drain_locked(entry)

    async def take_segment(self, entry: ConnectionEntry) -> bytes | None:
        """Drain the buffer if it crossed the threshold, else return None."""

        async with entry.lock:
            if not self.should_dispatch(entry):
                return None
            return self._drain_locked(entry)

    @staticmethod
    def _drain_locked(entry: ConnectionEntry) -> bytes:
        segment = bytes(entry.audio_buffer)
        entry.audio_buffer.clear()
        return segment

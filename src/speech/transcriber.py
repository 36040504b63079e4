"""Remote speech-to-text via the OpenAI transcription endpoint."""

from __future__ import annotations

import asyncio
import logging
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from openai import AsyncOpenAI

from config.settings import get_settings
from llm.openai_client import build_async_openai

LOGGER = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


class BaseTranscriber(ABC):
    """Interface for all speech-to-text backends."""

    @abstractmethod
    async def transcribe(self, wav_bytes: bytes, *, connection_id: str) -> str:
        """Return the transcript of a WAV-encoded audio segment."""


class OpenAITranscriber(BaseTranscriber):
    """Uploads each segment to the transcription model (`whisper-1` by default).

    Segments are staged in a uniquely named temp file under `staging_dir` and
    the file is removed whatever the outcome of the upload.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        *,
        model: str | None = None,
        staging_dir: Path | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client or build_async_openai()
        self._model = model or settings.transcription_model
        self._staging_dir = staging_dir or settings.data_dir

    def _stage(self, wav_bytes: bytes, connection_id: str) -> Path:
        prefix = _UNSAFE_CHARS.sub("_", connection_id)[:32] + "-"
        staged = tempfile.NamedTemporaryFile(
            prefix=prefix, suffix=".wav", dir=self._staging_dir, delete=False
        )
        path = Path(staged.name)
        try:
            with staged:
                staged.write(wav_bytes)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return path

    async def transcribe(self, wav_bytes: bytes, *, connection_id: str) -> str:
        # Staging file I/O stays off the event loop.
        path = await asyncio.to_thread(self._stage, wav_bytes, connection_id)
        try:
            with path.open("rb") as audio_file:
                response = await self._client.audio.transcriptions.create(
                    model=self._model,
                    file=audio_file,
                    response_format="text",
                )
        finally:
            path.unlink(missing_ok=True)

        text = response if isinstance(response, str) else getattr(response, "text", "")
        LOGGER.debug("Transcribed %d bytes for connection=%s", len(wav_bytes), connection_id)
        return (text or "").strip()

"""Transcribe-then-translate orchestration for one audio segment."""

from __future__ import annotations

import logging

from relay.errors import EmptyAudioError, TranscriptionFailedError, TranslationFailedError
from relay.schemas import TranslationResult
from speech.audio import to_wav_container
from speech.transcriber import BaseTranscriber
from speech.translator import TextTranslator

LOGGER = logging.getLogger(__name__)


class TranslationDispatcher:
    """Boundary to the remote AI services.

    One attempt per segment: failures surface as relay errors and the segment
    is dropped by the caller.
    """

    def __init__(
        self,
        transcriber: BaseTranscriber,
        translator: TextTranslator,
        *,
        inbound_encoding: str = "mulaw",
        inbound_sample_rate: int = 8000,
        transcription_sample_rate: int = 16000,
    ) -> None:
        self._transcriber = transcriber
        self._translator = translator
        self._encoding = inbound_encoding
        self._src_rate = inbound_sample_rate
        self._dst_rate = transcription_sample_rate

    async def translate(self, audio_bytes: bytes, speaker_id: str) -> TranslationResult:
        if not audio_bytes:
            raise EmptyAudioError(f"Refusing to dispatch empty audio for {speaker_id}.")

        transcript = await self._transcribe(audio_bytes, speaker_id)
        LOGGER.info("Transcription connection=%s: %s", speaker_id, transcript)

        try:
            translation = await self._translator.translate(transcript)
        except Exception as exc:
            raise TranslationFailedError(f"Translation failed for {speaker_id}: {exc}") from exc
        if not translation.text:
            raise TranslationFailedError(f"Translation for {speaker_id} came back empty.")

        LOGGER.info(
            "Translated connection=%s (%s -> %s): %s",
            speaker_id,
            translation.source_language or "?",
            translation.target_language,
            translation.text,
        )
        return TranslationResult(
            speaker_id=speaker_id,
            transcript=transcript,
            translated_text=translation.text,
            source_language=translation.source_language,
            target_language=translation.target_language,
        )

    async def _transcribe(self, audio_bytes: bytes, speaker_id: str) -> str:
        try:
            wav_bytes = to_wav_container(
                audio_bytes,
                encoding=self._encoding,
                src_rate=self._src_rate,
                dst_rate=self._dst_rate,
            )
            transcript = await self._transcriber.transcribe(wav_bytes, connection_id=speaker_id)
        except Exception as exc:
            raise TranscriptionFailedError(f"Transcription failed for {speaker_id}: {exc}") from exc

        if not transcript.strip():
            raise TranscriptionFailedError(f"No speech recognised for {speaker_id}.")
        return transcript.strip()

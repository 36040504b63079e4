"""Pydantic schemas passed between relay stages."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class TranslationResult(BaseModel):
    """Outcome of one transcribe/translate pass for a speaker's segment."""

    speaker_id: str
    transcript: str
    translated_text: str
    source_language: str | None = None
    target_language: str


class ConnectionInfo(BaseModel):
    connection_id: str
    participant_role: str
    room_id: str | None = None
    state: str
    buffered_bytes: int = Field(ge=0)
    dispatch_in_flight: bool
    connected_at: datetime

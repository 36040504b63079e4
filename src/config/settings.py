"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # HTTP / WebSocket server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # OpenAI (transcription + translation)
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(
        default=None, description="Optional OpenAI-compatible endpoint."
    )
    transcription_model: str = Field(default="whisper-1")
    translation_model: str = Field(default="gpt-4")
    translation_temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    # Language policy
    translation_mode: Literal["bidirectional", "fixed"] = Field(
        default="bidirectional",
        description=(
            "fixed: always translate into target_language. "
            "bidirectional: speech already in target_language goes to return_language."
        ),
    )
    target_language: str = Field(default="es")
    return_language: str = Field(default="en")

    # Buffering
    dispatch_threshold_bytes: int = Field(
        default=15000,
        gt=0,
        description="Buffered bytes that trigger a transcribe/translate/deliver cycle.",
    )
    inbound_audio_encoding: Literal["mulaw", "pcm16", "wav"] = Field(default="mulaw")
    inbound_sample_rate: int = Field(default=8000, gt=0)
    transcription_sample_rate: int = Field(default=16000, gt=0)

    # Spoken response delivery
    delivery_mode: Literal["webhook", "call_update"] = Field(default="webhook")
    response_webhook_url: str | None = Field(
        default=None,
        description="Fallback webhook receiving <Say> TwiML when a leg has no responseUrl.",
    )
    say_voices: dict[str, str] = Field(
        default_factory=lambda: {"es": "Polly.Miguel", "en": "Polly.Matthew"}
    )
    say_locales: dict[str, str] = Field(
        default_factory=lambda: {"es": "es-US", "en": "en-US"}
    )
    default_say_voice: str = Field(default="Polly.Miguel")

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="How long shutdown waits for in-flight dispatches.",
    )

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()

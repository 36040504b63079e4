"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from relay.gateway import ConnectionGateway


@lru_cache(maxsize=1)
def _gateway_factory() -> ConnectionGateway:
    # Lazy import so route modules load without OpenAI/Twilio credentials.
    from config.settings import get_settings
    from integrations.telephony import build_telephony
    from llm.openai_client import OpenAIClient, build_async_openai
    from relay.accumulator import AudioAccumulator
    from relay.dispatcher import TranslationDispatcher
    from relay.gateway import ConnectionGateway
    from relay.registry import ConnectionRegistry
    from relay.router import ResponseRouter
    from speech.transcriber import OpenAITranscriber
    from speech.translator import TextTranslator

    settings = get_settings()
    openai_client = build_async_openai()
    registry = ConnectionRegistry()

    translator = TextTranslator(
        OpenAIClient(openai_client),
        mode=settings.translation_mode,
        target_language=settings.target_language,
        return_language=settings.return_language,
        temperature=settings.translation_temperature,
    )
    dispatcher = TranslationDispatcher(
        OpenAITranscriber(openai_client),
        translator,
        inbound_encoding=settings.inbound_audio_encoding,
        inbound_sample_rate=settings.inbound_sample_rate,
        transcription_sample_rate=settings.transcription_sample_rate,
    )
    router = ResponseRouter(
        registry,
        build_telephony(),
        voices=settings.say_voices,
        locales=settings.say_locales,
        default_voice=settings.default_say_voice,
    )
    return ConnectionGateway(
        registry,
        AudioAccumulator(settings.dispatch_threshold_bytes),
        dispatcher,
        router,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )


def get_gateway() -> ConnectionGateway:
    return _gateway_factory()


def started_gateway() -> ConnectionGateway | None:
    """Return the gateway if a request already built it, without building one."""

    if _gateway_factory.cache_info().currsize == 0:
        return None
    return _gateway_factory()

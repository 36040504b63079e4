"""OpenAI/Azure OpenAI client wrapper."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from openai import AsyncOpenAI

from config.settings import get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)


def build_async_openai() -> AsyncOpenAI:
    """Return an AsyncOpenAI client configured from settings."""

    settings = get_settings()
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY must be configured.")

    return AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url or None,
    )


class OpenAIClient(BaseLLMClient):
    """Wrapper for the OpenAI Chat Completion API."""

    def __init__(self, client: AsyncOpenAI | None = None, *, model: str | None = None) -> None:
        settings = get_settings()
        self._client = client or build_async_openai()
        self._model = model or settings.translation_model

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.1,
    ) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=list(messages),
            temperature=temperature,
            max_tokens=512,
        )
        return response.choices[0].message.content or ""

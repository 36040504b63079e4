"""LLM-backed translation with the call's two-language policy."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

from llm.base import BaseLLMClient
from prompts.loader import load_prompt

DetectorFactory.seed = 7  # deterministic language detection

LOGGER = logging.getLogger(__name__)

TRANSLATOR_SYSTEM_PROMPT = load_prompt("translator_system.txt")

LANGUAGE_NAMES = {
    "de": "German",
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "it": "Italian",
    "pt": "Portuguese",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code.split("-")[0].lower(), code)


def detect_language(text: str) -> str | None:
    """Best-effort ISO 639-1 code for `text`, or None when undecidable."""

    try:
        return detect(text).split("-")[0]
    except LangDetectException:
        LOGGER.debug("Language detection failed for text: %s", text)
    return None


@dataclass(frozen=True)
class TranslationPlan:
    instruction: str
    source_language: str | None
    target_language: str


@dataclass(frozen=True)
class Translation:
    text: str
    source_language: str | None
    target_language: str


class TextTranslator:
    """Translates transcripts between the two languages of a call.

    In `fixed` mode everything goes to `target_language`. In `bidirectional`
    mode speech already in `target_language` goes to `return_language`, so
    neither party has to declare which language they speak.
    """

    def __init__(
        self,
        llm_client: BaseLLMClient,
        *,
        mode: Literal["bidirectional", "fixed"] = "bidirectional",
        target_language: str = "es",
        return_language: str = "en",
        temperature: float = 0.2,
        detector: Callable[[str], str | None] = detect_language,
    ) -> None:
        self._llm = llm_client
        self._mode = mode
        self._target = target_language
        self._return = return_language
        self._temperature = temperature
        self._detect = detector

    def plan(self, text: str) -> TranslationPlan:
        target_name = language_name(self._target)
        if self._mode == "fixed":
            return TranslationPlan(
                instruction=f"Translate this to {target_name}: {text}",
                source_language=None,
                target_language=self._target,
            )

        detected = self._detect(text)
        if detected is None:
            return_name = language_name(self._return)
            return TranslationPlan(
                instruction=(
                    f"Translate this to {target_name} "
                    f"(or back to {return_name} if it's {target_name}): {text}"
                ),
                source_language=None,
                target_language=self._target,
            )

        target = self._return if detected == self._target else self._target
        return TranslationPlan(
            instruction=f"Translate this to {language_name(target)}: {text}",
            source_language=detected,
            target_language=target,
        )

    async def translate(self, text: str) -> Translation:
        plan = self.plan(text)
        messages = [
            {"role": "system", "content": TRANSLATOR_SYSTEM_PROMPT},
            {"role": "user", "content": plan.instruction},
        ]
        translated = await self._llm.chat(messages, temperature=self._temperature)
        return Translation(
            text=translated.strip(),
            source_language=plan.source_language,
            target_language=plan.target_language,
        )

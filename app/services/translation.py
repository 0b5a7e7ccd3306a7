# =============================================================================
# Translation — Language Detection and LLM Translation
# =============================================================================
#
# Q&A answers are generated in English and translated when the question
# was asked in another language.
#
# DESIGN DECISION: Detection by Unicode script, translation by the LLM.
# Questions in Indian languages are written in their own scripts, so a
# script check is exact for the languages we serve and costs nothing. The
# configured LLM already knows legal vocabulary, which a generic machine
# translation endpoint tends to mangle.
#
# DESIGN DECISION: A glossary pass after translation. Some terms have an
# established form in official Hindi/Tamil usage (e.g. GST → जीएसटी). If
# the model left the English term in place, it is replaced.
#
# Errors: translation failures raise TranslationError. Callers decide
# whether that aborts (Q&A does).
# =============================================================================

from __future__ import annotations

import logging
import re
from typing import Protocol

from app.exceptions import ModelError, TranslationError
from app.services.language import detect_script_language
from app.services.llm import LLMProvider

logger = logging.getLogger(__name__)

# Characters inspected when detecting the language of a text
DETECTION_SAMPLE_CHARS = 1000

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "hi": "Hindi",
    "ta": "Tamil",
    "bn": "Bengali",
    "te": "Telugu",
    "gu": "Gujarati",
    "kn": "Kannada",
    "ml": "Malayalam",
    "pa": "Punjabi",
    "mr": "Marathi",
}

LEGAL_GLOSSARY: dict[str, dict[str, str]] = {
    "hi": {
        "GST": "जीएसटी",
        "Reverse Charge Mechanism": "रिवर्स चार्ज मैकेनिज्म",
    },
    "ta": {
        "GST": "ஜி.எஸ்.டி",
    },
}

_SYSTEM_PROMPT = (
    "You are a professional legal translator for Indian contracts and "
    "statutes. Translate the user's text into {language}.\n\n"
    "Rules:\n"
    "- Preserve the meaning exactly; do not summarise or add commentary\n"
    "- Keep section numbers, Act names and citations intact\n"
    "- Keep markdown formatting and line breaks\n"
    "- Return ONLY the translated text"
)


class Translator(Protocol):
    async def detect_language(self, text: str) -> str: ...

    async def translate(self, text: str, target: str) -> str: ...

    async def translate_with_glossary(self, text: str, target: str) -> str: ...


def apply_glossary(text: str, target: str) -> str:
    """Replace English legal terms with their fixed `target` forms."""
    # Longest terms first, so "Reverse Charge Mechanism" is not split
    terms = sorted(LEGAL_GLOSSARY.get(target, {}).items(), key=lambda t: -len(t[0]))
    for english, localised in terms:
        text = re.sub(rf"\b{re.escape(english)}\b", localised, text, flags=re.IGNORECASE)
    return text


class LLMTranslator:
    """Translator using the configured LLM provider."""

    def __init__(
        self,
        llm: LLMProvider,
        default_language: str = "en",
        model: str | None = None,
    ) -> None:
        self._llm = llm
        self._default_language = default_language
        self._model = model

    @property
    def default_language(self) -> str:
        return self._default_language

    async def detect_language(self, text: str) -> str:
        return detect_script_language(
            text[:DETECTION_SAMPLE_CHARS], default=self._default_language,
        )

    async def translate(self, text: str, target: str) -> str:
        if not text or not target or target == self._default_language:
            return text

        language = LANGUAGE_NAMES.get(target, target)
        try:
            response = await self._llm.complete(
                messages=[{"role": "user", "content": text}],
                system=_SYSTEM_PROMPT.format(language=language),
                temperature=0.0,
                model=self._model,
            )
        except ModelError as exc:
            raise TranslationError(f"Translation to {language} failed: {exc.message}") from exc

        translated = response.content.strip()
        if not translated:
            raise TranslationError(f"Translation to {language} returned no text")

        logger.info(
            "Translated %d chars to %s (%d chars)", len(text), target, len(translated),
        )
        return translated

    async def translate_with_glossary(self, text: str, target: str) -> str:
        translated = await self.translate(text, target)
        if target == self._default_language:
            return translated
        return apply_glossary(translated, target)

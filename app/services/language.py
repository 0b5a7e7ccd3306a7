# =============================================================================
# Script-Based Language Detection
# =============================================================================
#
# Indian-language text is recognised by its Unicode script block. Latin
# script (and anything unrecognised) falls back to the default language.
# The first script found, in the order below, wins.
# =============================================================================

import re

_SCRIPTS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("hi", re.compile(r"[ऀ-ॿ]")),  # Devanagari
    ("ta", re.compile(r"[஀-௿]")),  # Tamil
    ("bn", re.compile(r"[ঀ-৿]")),  # Bengali
    ("te", re.compile(r"[ఀ-౿]")),  # Telugu
    ("gu", re.compile(r"[઀-૿]")),  # Gujarati
    ("kn", re.compile(r"[ಀ-೿]")),  # Kannada
    ("ml", re.compile(r"[ഀ-ൿ]")),  # Malayalam
    ("pa", re.compile(r"[਀-੿]")),  # Gurmukhi
)


def detect_script_language(text: str, default: str = "en") -> str:
    for language, pattern in _SCRIPTS:
        if pattern.search(text):
            return language
    return default

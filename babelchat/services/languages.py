# babelchat/services/languages.py
"""
Supported display languages and the offline language-detection heuristic.
"""
from __future__ import annotations

import re
from typing import Optional

SUPPORTED_LANGUAGES = [
    {"code": "en", "name": "English", "native_name": "English", "flag": "🇺🇸"},
    {"code": "es", "name": "Spanish", "native_name": "Español", "flag": "🇪🇸"},
    {"code": "fr", "name": "French", "native_name": "Français", "flag": "🇫🇷"},
    {"code": "de", "name": "German", "native_name": "Deutsch", "flag": "🇩🇪"},
    {"code": "ja", "name": "Japanese", "native_name": "日本語", "flag": "🇯🇵"},
    {"code": "hi", "name": "Hindi", "native_name": "हिन्दी", "flag": "🇮🇳"},
]

SUPPORTED_CODES = frozenset(lang["code"] for lang in SUPPORTED_LANGUAGES)

# Order matters: the first matching script wins. Kana is checked before CJK
# ideographs so Japanese mixing kanji and kana is not reported as "zh".
# Devanagari is always reported as "hi" (Marathi and Nepali share the script).
SCRIPT_PATTERNS = [
    ("ja", re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")),
    ("zh", re.compile(r"[\u4e00-\u9fa5]")),
    ("ar", re.compile(r"[\u0600-\u06ff]")),
    ("hi", re.compile(r"[\u0900-\u097f]")),
    ("ko", re.compile(r"[\uac00-\ud7af]")),
    ("es", re.compile(r"[áéíóúüñ¿¡]", re.IGNORECASE)),
    ("fr", re.compile(r"[àâäçèéêëîïôùûüœæ]", re.IGNORECASE)),
    ("de", re.compile(r"[äöüß]", re.IGNORECASE)),
]

FALLBACK_LANGUAGE = "en"


def get_language_by_code(code: str) -> Optional[dict]:
    for lang in SUPPORTED_LANGUAGES:
        if lang["code"] == code:
            return lang
    return None


def get_language_name(code: str) -> str:
    lang = get_language_by_code(code)
    return lang["name"] if lang else code


def get_language_flag(code: str) -> str:
    lang = get_language_by_code(code)
    return lang["flag"] if lang else ""


def normalize_language_code(code: Optional[str]) -> str:
    """
    Normalize a locale tag to a two-letter code.

    Args:
        code: Locale such as "en-US", "ES" or "pt_BR"

    Returns:
        Lowercase base language ("en", "es", "pt"), or "" when code is empty
    """
    if not isinstance(code, str) or not code.strip():
        return ""
    return re.split(r"[-_]", code.strip())[0].lower()


def is_supported(code: Optional[str]) -> bool:
    return normalize_language_code(code) in SUPPORTED_CODES


def detect_language_heuristic(text: str) -> str:
    """Guess a language from the Unicode scripts present in ``text``."""
    for code, pattern in SCRIPT_PATTERNS:
        if pattern.search(text):
            return code
    return FALLBACK_LANGUAGE

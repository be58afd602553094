# babelchat/services/translation_gateway.py
"""
Lingo.dev translation gateway.

Thin async client over the Lingo.dev localization engine. Translation is
best-effort: ``translate`` never raises and falls back to the original text,
``translate_or_raise`` lets callers find out that the service failed (the
per-message translator uses it so a failure is never cached).
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from babelchat.core.errors import TranslationUnavailable
from babelchat.services.languages import detect_language_heuristic, normalize_language_code
from babelchat.services.proxy_cache import ProxyCache

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://engine.lingo.dev"


class LingoTranslationGateway:
    """
    Client for the Lingo.dev engine.

    Endpoints used:
        POST {base_url}/i18n       {"params", "locale": {"source", "target"}, "data"}
        POST {base_url}/recognize  {"text"} -> {"locale"}

    Args:
        api_key: Lingo.dev API key; without one every call fails open
        base_url: Engine URL
        timeout: Upper bound in seconds for one call, connect included
        proxy_cache: Optional short-TTL cache of raw call results
        client: Pre-built httpx client (tests inject a MockTransport here)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        proxy_cache: Optional[ProxyCache] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.proxy_cache = proxy_cache
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        # Number of requests actually sent to the engine
        self.calls = 0

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise TranslationUnavailable("Translation API key not configured")

        self.calls += 1
        try:
            response = await asyncio.wait_for(
                self._client.post(
                    f"{self.base_url}{path}",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                ),
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except asyncio.TimeoutError as e:
            raise TranslationUnavailable(f"Lingo.dev call timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise TranslationUnavailable(f"Lingo.dev call failed: {e}") from e
        except ValueError as e:
            raise TranslationUnavailable("Lingo.dev returned invalid JSON") from e

        if not isinstance(body, dict):
            raise TranslationUnavailable("Lingo.dev returned an unexpected payload")
        return body

    async def localize(self, data: Dict[str, Any], source_lang: str, target_lang: str) -> Dict[str, Any]:
        """
        Translate every string value of ``data``, preserving its structure.

        Raises:
            TranslationUnavailable: on any network or service error
        """
        source_lang = normalize_language_code(source_lang) or source_lang
        target_lang = normalize_language_code(target_lang) or target_lang
        if source_lang == target_lang:
            return data

        key = None
        if self.proxy_cache is not None:
            key = ProxyCache.make_key("localize", data, source_lang, target_lang)
            cached = self.proxy_cache.get(key)
            if cached is not None:
                return cached

        result = await self._post(
            "/i18n",
            {
                "params": {"workflowId": f"babelchat-{int(time.time() * 1000)}", "fast": False},
                "locale": {"source": source_lang, "target": target_lang},
                "data": data,
            },
        )
        localized = result.get("data")
        if not isinstance(localized, dict):
            raise TranslationUnavailable("Lingo.dev response has no data")

        if key is not None:
            self.proxy_cache.set(key, localized)
        return localized

    async def translate_or_raise(self, text: str, source_lang: str, target_lang: str) -> str:
        if source_lang == target_lang or not text or not text.strip():
            return text

        localized = await self.localize({"text": text}, source_lang, target_lang)
        translated = localized.get("text")
        if not isinstance(translated, str):
            raise TranslationUnavailable("Lingo.dev response has no text")
        return translated

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        """Translate ``text``; on failure return it unchanged."""
        try:
            return await self.translate_or_raise(text, source_lang, target_lang)
        except TranslationUnavailable as e:
            logger.warning("Translation %s->%s failed open: %s", source_lang, target_lang, e.message)
            return text

    async def translate_many(self, texts: List[str], source_lang: str, target_lang: str) -> List[str]:
        return list(await asyncio.gather(*(self.translate(t, source_lang, target_lang) for t in texts)))

    async def detect_language(self, text: str) -> str:
        """
        Detect the language of ``text``.

        Uses the remote recognizer and falls back to script heuristics when
        the engine is unavailable or answers with nothing usable.
        """
        if not text or not text.strip():
            return detect_language_heuristic(text or "")

        try:
            result = await self._post("/recognize", {"text": text})
            locale = result.get("locale")
            if isinstance(locale, str) and normalize_language_code(locale):
                return normalize_language_code(locale)
            logger.info("Remote language detection gave no usable locale (%r), using heuristic", locale)
        except TranslationUnavailable as e:
            logger.info("Remote language detection unavailable (%s), using heuristic", e.message)

        return detect_language_heuristic(text)

    async def close(self) -> None:
        await self._client.aclose()
        if self.proxy_cache is not None:
            self.proxy_cache.clear()
        logger.info("Translation gateway closed")

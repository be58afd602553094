# babelchat/services/translator.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Literal

from babelchat.core.errors import TranslationUnavailable
from babelchat.models.models import Message
from babelchat.services.translation_cache import TranslationCache
from babelchat.services.translation_gateway import LingoTranslationGateway

logger = logging.getLogger(__name__)

Outcome = Literal["not_needed", "cached", "translated", "failed"]


@dataclass
class TranslationResult:
    message_id: str
    text: str
    outcome: Outcome

    @property
    def failed(self) -> bool:
        return self.outcome == "failed"


class MessageTranslator:
    """
    Cache-first translation of chat messages.

    Flow for one (message, target language):
        1. Same language -> original text, nothing else happens
        2. Cache hit -> cached text, no network call
        3. Miss -> gateway call; success is written back to the cache
        4. Gateway failure -> original text, nothing is cached

    The outcome is kept on the result so callers can tell a failed
    translation apart from one that was not needed, even though both show
    the original text.
    """

    def __init__(self, cache: TranslationCache, gateway: LingoTranslationGateway) -> None:
        self.cache = cache
        self.gateway = gateway

    async def translate_message(self, message: Message, target_language: str) -> TranslationResult:
        if message.source_language == target_language:
            return TranslationResult(message.id, message.content, "not_needed")

        cached = await self.cache.get(message.id, target_language)
        if cached is not None:
            return TranslationResult(message.id, cached, "cached")

        return await self.translate_uncached(message, target_language)

    async def translate_messages(
        self, messages: List[Message], target_language: str
    ) -> Dict[str, TranslationResult]:
        """
        Translate a batch, reading the cache once for all of them.

        Returns:
            message_id -> TranslationResult for every message given
        """
        results: Dict[str, TranslationResult] = {}
        pending: List[Message] = []

        needing = [m for m in messages if m.source_language != target_language]
        cached = await self.cache.get_many([m.id for m in needing], target_language)

        for message in messages:
            if message.source_language == target_language:
                results[message.id] = TranslationResult(message.id, message.content, "not_needed")
            elif message.id in cached:
                results[message.id] = TranslationResult(message.id, cached[message.id], "cached")
            else:
                pending.append(message)

        translated = await asyncio.gather(*(self.translate_uncached(m, target_language) for m in pending))
        for result in translated:
            results[result.message_id] = result
        return results

    async def translate_uncached(self, message: Message, target_language: str) -> TranslationResult:
        """Gateway call plus cache write-back, skipping the cache lookup."""
        try:
            text = await self.gateway.translate_or_raise(
                message.content, message.source_language, target_language
            )
        except TranslationUnavailable as e:
            logger.warning(
                "Showing original for message %s (%s->%s): %s",
                message.id, message.source_language, target_language, e.message,
            )
            return TranslationResult(message.id, message.content, "failed")

        await self.cache.put(message.id, target_language, text)
        return TranslationResult(message.id, text, "translated")

# babelchat/services/translation_cache.py

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from babelchat.core.keys import TRANSLATION_KEY
from babelchat.models.models import MessageTranslation

logger = logging.getLogger(__name__)


class TranslationCache:
    """
    Permanent per-message translation cache.

    One entry per (message_id, target_language), written once and never
    invalidated: messages are immutable, so a translation stays valid forever.
    No TTL is set on the keys.

    Storage Format:
        translation:{message_id}:{target_language} -> MessageTranslation JSON

    Failure policy:
        - Lookups that hit a store error behave as a miss
        - A write that hits a store error is logged and reported as not written
    """

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @staticmethod
    def _key(message_id: str, target_language: str) -> str:
        return TRANSLATION_KEY.format(message_id=message_id, target_language=target_language)

    @staticmethod
    def _parse(raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        try:
            return MessageTranslation.model_validate_json(raw).translated_content
        except ValidationError:
            logger.warning("Ignoring malformed translation cache entry")
            return None

    async def get(self, message_id: str, target_language: str) -> Optional[str]:
        """
        Look up a cached translation.

        Returns:
            The translated text, or None on a miss or store failure
        """
        try:
            raw = await self.client.get(self._key(message_id, target_language))
        except RedisError as e:
            logger.warning("Translation cache GET failed for %s/%s: %s", message_id, target_language, e)
            return None

        return self._parse(raw)

    async def get_many(self, message_ids: Iterable[str], target_language: str) -> Dict[str, str]:
        """Batch lookup. Missing ids are simply absent from the result."""
        ids = list(message_ids)
        if not ids:
            return {}

        try:
            values = await self.client.mget([self._key(mid, target_language) for mid in ids])
        except RedisError as e:
            logger.warning("Translation cache MGET failed for %d messages: %s", len(ids), e)
            return {}

        found: Dict[str, str] = {}
        for mid, raw in zip(ids, values):
            text = self._parse(raw)
            if text is not None:
                found[mid] = text
        return found

    async def put(self, message_id: str, target_language: str, text: str) -> bool:
        """
        Idempotent insert.

        The first writer for a pair wins; a later insert for the same pair is
        a benign conflict and leaves the stored entry untouched.

        Returns:
            True if this call created the entry, False on conflict or store failure
        """
        entry = MessageTranslation(
            message_id=message_id,
            target_language=target_language,
            translated_content=text,
        )
        try:
            created = await self.client.set(
                self._key(message_id, target_language), entry.model_dump_json(), nx=True
            )
        except RedisError as e:
            logger.warning("Translation cache SET failed for %s/%s: %s", message_id, target_language, e)
            return False

        if not created:
            logger.debug("Translation for %s/%s already cached - ignoring", message_id, target_language)
        return bool(created)

# babelchat/services/profiles.py

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

import redis.asyncio as redis

from babelchat.core.keys import PROFILE_KEY
from babelchat.models.models import Profile
from babelchat.services.languages import is_supported, normalize_language_code

logger = logging.getLogger(__name__)


class ProfileStore:
    """User profiles (display name, preferred language, avatar) keyed by user id."""

    def __init__(self, client: redis.Redis, default_language: str = "en") -> None:
        self.client = client
        self.default_language = default_language

    def _language_or_default(self, code: Optional[str]) -> str:
        return normalize_language_code(code) if is_supported(code) else self.default_language

    async def get(self, user_id: str) -> Optional[Profile]:
        raw = await self.client.get(PROFILE_KEY.format(user_id=user_id))
        return Profile.model_validate_json(raw) if raw else None

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = list(user_ids)
        if not ids:
            return {}
        values = await self.client.mget([PROFILE_KEY.format(user_id=uid) for uid in ids])
        return {uid: Profile.model_validate_json(raw) for uid, raw in zip(ids, values) if raw}

    async def get_or_create(
        self, user_id: str, display_name: str, preferred_language: Optional[str] = None
    ) -> Profile:
        """Return the stored profile, creating it on the user's first visit."""
        profile = Profile(
            id=user_id,
            display_name=display_name.strip() or "Anonymous",
            preferred_language=self._language_or_default(preferred_language),
        )
        created = await self.client.set(
            PROFILE_KEY.format(user_id=user_id), profile.model_dump_json(), nx=True
        )
        if created:
            logger.info("✓ Created profile for %s (%s)", user_id, profile.preferred_language)
            return profile
        return await self.get(user_id) or profile

    async def update(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        preferred_language: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Profile:
        """
        Update the mutable profile fields.

        Raises:
            KeyError: if the profile does not exist
            ValueError: on an empty display name or unsupported language
        """
        profile = await self.get(user_id)
        if profile is None:
            raise KeyError(user_id)

        if display_name is not None:
            if not display_name.strip():
                raise ValueError("Display name cannot be empty")
            profile.display_name = display_name.strip()
        if preferred_language is not None:
            if not is_supported(preferred_language):
                raise ValueError(f"Unsupported language: {preferred_language}")
            profile.preferred_language = normalize_language_code(preferred_language)
        if avatar_url is not None:
            profile.avatar_url = avatar_url or None

        await self.client.set(PROFILE_KEY.format(user_id=user_id), profile.model_dump_json())
        return profile

# babelchat/services/proxy_cache.py
"""
Short-lived cache for raw translation calls.

Collapses duplicate outbound requests for the same (content, source, target)
during bursts. Unrelated to the permanent per-message cache: entries here
expire, the oldest are evicted once ``maxsize`` is reached, and the whole
cache is cleared on shutdown.
"""
from __future__ import annotations

import json
import time
from typing import Any, Callable, Optional

from cachetools import TTLCache

DEFAULT_TTL_SECONDS = 15 * 60
DEFAULT_MAXSIZE = 1000


class ProxyCache:
    """
    Bounded TTL map over ``cachetools.TTLCache``.

    Attributes:
        ttl: Time to live in seconds
        maxsize: Maximum number of live entries
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        maxsize: int = DEFAULT_MAXSIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=clock)

    @property
    def ttl(self) -> float:
        return self._cache.ttl

    @property
    def maxsize(self) -> int:
        return int(self._cache.maxsize)

    @staticmethod
    def make_key(*parts: Any) -> str:
        """Build a cache key; dict/list parts are serialized deterministically."""
        return ":".join(
            json.dumps(p, sort_keys=True, ensure_ascii=False) if isinstance(p, (dict, list)) else str(p)
            for p in parts
        )

    def get(self, key: str) -> Optional[Any]:
        return self._cache.get(key)

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = value

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        # TTLCache drops expired entries before counting
        return len(self._cache)

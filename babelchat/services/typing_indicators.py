# babelchat/services/typing_indicators.py

from __future__ import annotations

import time
from typing import Callable, Dict, List, Tuple

DEFAULT_TYPING_TIMEOUT = 3.0


class TypingIndicators:
    """
    Who is typing in a room, as an expiring-entry map.

    Each signal from a user (re)sets that user's expiry to now + timeout.
    There is no "stopped typing" signal: entries simply expire. Expired
    entries are swept lazily on every read, and by ``sweep`` on a tick.
    """

    def __init__(self, timeout: float = DEFAULT_TYPING_TIMEOUT, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        # user_id -> (display_name, expires_at)
        self._entries: Dict[str, Tuple[str, float]] = {}

    def touch(self, user_id: str, display_name: str) -> None:
        self._entries[user_id] = (display_name, self._clock() + self.timeout)

    def sweep(self) -> bool:
        """Drop expired entries. Returns True if anything was removed."""
        now = self._clock()
        expired = [uid for uid, (_, expires_at) in self._entries.items() if expires_at <= now]
        for uid in expired:
            del self._entries[uid]
        return bool(expired)

    def active(self) -> Dict[str, str]:
        """user_id -> display_name for everyone still typing."""
        self.sweep()
        return {uid: name for uid, (name, _) in self._entries.items()}

    def names(self) -> List[str]:
        return list(self.active().values())

    def clear(self) -> None:
        self._entries.clear()

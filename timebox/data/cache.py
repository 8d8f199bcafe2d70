"""
Timebox — Cache Layer.

A time-bounded key -> value store holding the latest known sheet list,
individual sheets and user settings. Entries expire lazily: staleness is
only checked on read, there is no background sweeper.

Not thread-safe. All access happens on the event loop thread.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

# (user_id, kind, entity id or None)
CacheKey = tuple[str, str, str | None]

SHEET_LIST = "sheets"
SHEET = "sheet"
SETTINGS = "settings"


def list_key(user_id: str) -> CacheKey:
    return (user_id, SHEET_LIST, None)


def sheet_key(user_id: str, sheet_id: str) -> CacheKey:
    return (user_id, SHEET, sheet_id)


def settings_key(user_id: str) -> CacheKey:
    return (user_id, SETTINGS, None)


@dataclass
class CacheEntry:
    data: Any
    timestamp: float


@dataclass
class CacheStats:
    size: int
    keys: list[CacheKey]


class TTLCache:
    """In-process cache with a fixed time-to-live per entry."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds is None:
            from timebox.config import settings
            ttl_seconds = settings.CACHE_TTL_SECONDS

        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: CacheKey) -> Any | None:
        """Return the cached value if younger than the TTL, else evict and return None."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp < self._ttl:
            logger.debug("Cache hit: %s", key)
            return entry.data
        del self._entries[key]
        logger.debug("Cache expired: %s", key)
        return None

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = CacheEntry(data=value, timestamp=self._clock())

    def invalidate(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def invalidate_user(self, user_id: str) -> None:
        """Drop every entry belonging to one user."""
        for key in [k for k in self._entries if k[0] == user_id]:
            del self._entries[key]

    def invalidate_all(self) -> None:
        self._entries.clear()
        logger.info("Cache cleared")

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), keys=list(self._entries))

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

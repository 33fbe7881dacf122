"""In-memory feed cache keyed by feed URL.

Entries are whole immutable snapshots swapped in under a lock, so a reader
never sees a partial entry. Reads past the TTL are misses; expired keys are
swept lazily once per check period. No network I/O happens under the lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from cachetools import TTLCache

from feedgenie.config import Settings, get_settings
from feedgenie.feeds.models import ResolvedFeed, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    feed: ResolvedFeed
    inserted_at: float
    cached_at: datetime
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.inserted_at + self.ttl


class FeedCache:
    def __init__(
        self,
        ttl: float = 3600,
        check_period: float = 600,
        maxsize: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.check_period = check_period
        self._timer = timer
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl, timer=timer)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._last_sweep = timer()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FeedCache":
        settings = settings or get_settings()
        return cls(
            ttl=settings.cache_ttl,
            check_period=settings.cache_check_period,
            maxsize=settings.cache_max_entries,
        )

    def _sweep_if_due(self) -> None:
        now = self._timer()
        if now - self._last_sweep >= self.check_period:
            expired = self._entries.expire()
            self._last_sweep = now
            if expired:
                logger.debug("feed cache sweep evicted %d entries", len(expired))

    def get(self, key: str) -> Optional[ResolvedFeed]:
        """Cached feed annotated as a hit, or None on miss/expiry."""
        with self._lock:
            self._sweep_if_due()
            entry: Optional[CacheEntry] = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
        return entry.feed.as_cache_hit(entry.cached_at)

    def set(self, key: str, feed: ResolvedFeed) -> None:
        snapshot = replace(feed, from_cache=False, cached_at=None)
        entry = CacheEntry(feed=snapshot, inserted_at=self._timer(), cached_at=utcnow(), ttl=self.ttl)
        with self._lock:
            self._sweep_if_due()
            self._entries[key] = entry

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_all(self) -> int:
        with self._lock:
            self._entries.expire()
            count = len(self._entries)
            self._entries.clear()
        return count

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def ttl_remaining(self, key: str) -> Optional[float]:
        """Seconds until `key` expires, None when not cached."""
        with self._lock:
            entry: Optional[CacheEntry] = self._entries.get(key)
        if entry is None:
            return None
        return max(0.0, entry.expires_at - self._timer())

    def stats(self) -> Dict[str, Union[int, float]]:
        with self._lock:
            self._entries.expire()
            keys = len(self._entries)
            hits, misses = self._hits, self._misses
        total = hits + misses
        return {
            "keys": keys,
            "hits": hits,
            "misses": misses,
            "hit_rate": (hits / total) if total else 0.0,
        }


_default_cache: Optional[FeedCache] = None
_default_lock = threading.Lock()


def get_default_cache() -> FeedCache:
    """Process-wide cache used when callers don't inject one."""
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            _default_cache = FeedCache.from_settings()
        return _default_cache


def invalidate_feed_cache(feed_url: str) -> bool:
    return get_default_cache().invalidate(feed_url)


def invalidate_all_feed_cache() -> int:
    return get_default_cache().invalidate_all()


def get_feed_cache_stats() -> Dict[str, Union[int, float]]:
    return get_default_cache().stats()


def is_feed_cached(feed_url: str) -> bool:
    return get_default_cache().contains(feed_url)


def get_feed_cache_ttl(feed_url: str) -> Optional[float]:
    return get_default_cache().ttl_remaining(feed_url)

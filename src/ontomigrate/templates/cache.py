"""
Time-bounded cache of template discovery scores.

Scores are keyed by template type key and a digest of the first 100
characters of the narrative. The cache is owned by one classifier
instance and lives until cleared; entries expire after the TTL.
"""

from __future__ import annotations

import asyncio
import hashlib
import time
from collections.abc import Callable
from dataclasses import dataclass

NARRATIVE_PREFIX_CHARS = 100


@dataclass(frozen=True)
class CacheStats:
    entries: int
    hits: int
    misses: int


def score_cache_key(type_key: str, narrative: str) -> str:
    """
    Cache key for one template and narrative.

    Example:
        >>> score_cache_key("task.base", "Write chapter")[:10]
        'task.base:'
    """
    digest = hashlib.sha256(narrative[:NARRATIVE_PREFIX_CHARS].encode("utf-8")).hexdigest()
    return f"{type_key}:{digest[:16]}"


class ScoreCache:
    """
    Process-local score cache with a time-based TTL.

    Example:
        >>> cache = ScoreCache(ttl_seconds=3600)
        >>> await cache.set("task.base", narrative, 0.82)
        >>> await cache.get("task.base", narrative)
        0.82
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, float]] = {}
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, type_key: str, narrative: str) -> float | None:
        """Cached score, or None when absent or expired."""
        key = score_cache_key(type_key, narrative)
        async with self._lock:
            cached = self._cache.get(key)
            if cached is None:
                self._misses += 1
                return None

            score, cached_at = cached
            if self._clock() - cached_at >= self._ttl:
                del self._cache[key]
                self._misses += 1
                return None

            self._hits += 1
            return score

    async def set(self, type_key: str, narrative: str, score: float) -> None:
        async with self._lock:
            self._cache[score_cache_key(type_key, narrative)] = (score, self._clock())

    async def clear(self) -> None:
        """Drop every entry and reset hit counters."""
        async with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> CacheStats:
        return CacheStats(entries=len(self._cache), hits=self._hits, misses=self._misses)


__all__ = [
    "CacheStats",
    "ScoreCache",
    "score_cache_key",
    "NARRATIVE_PREFIX_CHARS",
]

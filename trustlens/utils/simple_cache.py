"""In-memory TTL cache used to avoid repeated vision model calls.

Real-time scanning sends several frames per second of what is usually the
same scene, so a short-lived cache absorbs most duplicate work. The cache is
thread-safe and keeps the same interface a Redis-backed version would need.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Callable, Literal

logger = logging.getLogger(__name__)


FingerprintStrategy = Literal["content_hash", "prefix"]


@dataclass
class CacheItem:
    """Container for cached values with the time they were stored."""

    value: dict[str, Any]
    stored_at: float


class SimpleTTLCache:
    """Thread-safe, in-memory TTL cache with opportunistic sweeping.

    Stale entries are ignored (and dropped) on lookup. Each write has a
    ``sweep_probability`` chance of also removing every entry older than twice
    the TTL, which bounds growth without a background task.

    Attributes:
        ttl_seconds: Time-to-live applied to all entries.
        max_entries: Maximum number of cached items (None for unlimited).
    """

    def __init__(
        self,
        ttl_seconds: float = 10.0,
        max_entries: int | None = None,
        *,
        sweep_probability: float = 0.1,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if not 0.0 <= sweep_probability <= 1.0:
            raise ValueError("sweep_probability must be between 0 and 1")

        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._sweep_probability = sweep_probability
        self._clock = clock
        self._rng = rng
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> dict[str, Any] | None:
        """Retrieve a cached value if it exists and is younger than the TTL.

        Args:
            key: Cache key (scan fingerprint).

        Returns:
            Cached value or None if not found/stale.
        """

        with self._lock:
            item = self._store.get(key)
            if not item:
                self._misses += 1
                logger.debug(
                    "cache.miss",
                    extra={"cache_key": key[:16], "reason": "not_found"},
                )
                return None

            if self._is_stale(item):
                self._evict_single(key)
                self._misses += 1
                logger.debug(
                    "cache.miss",
                    extra={"cache_key": key[:16], "reason": "expired"},
                )
                return None

            self._hits += 1
            self._store.move_to_end(key)
            logger.debug("cache.hit", extra={"cache_key": key[:16]})
            return item.value

    def set(self, key: str, value: dict[str, Any]) -> None:
        """Store a value stamped with the current time, sweeping as needed.

        Args:
            key: Cache key (scan fingerprint).
            value: Serialized scan result.
        """

        with self._lock:
            self._store[key] = CacheItem(value=value, stored_at=self._clock())
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()

            if self._rng() < self._sweep_probability:
                self._sweep_locked()

            logger.debug(
                "cache.set",
                extra={
                    "cache_key": key[:16],
                    "size": len(self._store),
                    "ttl_s": self._ttl,
                },
            )

    def clear(self) -> None:
        """Drop every entry and zero the counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | float | None]:
        """Counters and size; cached values are not included."""

        with self._lock:
            return {
                "ttl_seconds": self._ttl,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if key in self._store:
            self._store.pop(key, None)
            self._evictions += 1

    def _sweep_locked(self) -> None:
        now = self._clock()
        horizon = self._ttl * 2
        expired_keys = [k for k, item in self._store.items() if now - item.stored_at > horizon]
        for key in expired_keys:
            self._evict_single(key)
        if expired_keys:
            logger.debug(
                "cache.sweep",
                extra={"removed": len(expired_keys), "size": len(self._store)},
            )

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            self._store.popitem(last=False)
            self._evictions += 1

    def _is_stale(self, item: CacheItem) -> bool:
        return self._clock() - item.stored_at >= self._ttl


def build_fingerprint(
    image_data: str,
    mode: str,
    *,
    strategy: FingerprintStrategy = "content_hash",
    prefix_chars: int = 50,
) -> str:
    """Build the cache key for a scan request.

    Args:
        image_data: Base64 image payload (without any data URL prefix).
        mode: Scan mode the result was produced for.
        strategy: ``content_hash`` digests the whole payload. ``prefix`` keeps
            the first ``prefix_chars`` characters, which makes any two images
            sharing that prefix (same encoder header, same camera) collide.
        prefix_chars: Prefix length for the ``prefix`` strategy.

    Returns:
        Cache key string.
    """

    if strategy == "prefix":
        return image_data[:prefix_chars] + mode

    hasher = sha256()
    hasher.update(mode.encode())
    hasher.update(b"::")
    hasher.update(image_data.encode())
    return f"{mode}:{hasher.hexdigest()}"

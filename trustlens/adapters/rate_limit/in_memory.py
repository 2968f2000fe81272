"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Windows are never dropped for idle clients; memory grows with the number
  of distinct keys seen during the life of the process.
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from trustlens.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter tracking request timestamps per key over a rolling window.

    A key may issue at most ``limit`` requests within any ``window_seconds``
    span. Timestamps that have aged out of the window are purged lazily the
    next time the key is checked.

    When ``block_seconds`` is set, a rejected key is locked out for that long
    even if older requests leave the window in the meantime.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        block_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of requests per rolling window.
            window_seconds: Size of the rolling window in seconds.
            block_seconds: Optional lockout after a rejection.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If limit, window_seconds or block_seconds are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if block_seconds is not None and block_seconds <= 0:
            raise ValueError("block_seconds must be > 0")

        self._limit = limit
        self._window_ms = int(window_seconds * 1000)
        self._block_ms = int(block_seconds * 1000) if block_seconds else None
        self._clock = clock
        self._lock = threading.RLock()
        self._timestamps_by_key: dict[str, list[int]] = {}
        self._blocked_until: dict[str, int] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _recent(self, key: str, now_ms: int) -> list[int]:
        """Return timestamps for key still inside the window, purging the rest."""
        timestamps = self._timestamps_by_key.get(key, [])
        recent = [ts for ts in timestamps if now_ms - ts < self._window_ms]
        if len(recent) != len(timestamps):
            self._timestamps_by_key[key] = recent
        return recent

    def _active_block(self, key: str, now_ms: int) -> int | None:
        """Return the lockout expiry for key, dropping it once it has passed."""
        blocked_until = self._blocked_until.get(key)
        if blocked_until is None:
            return None
        if now_ms >= blocked_until:
            del self._blocked_until[key]
            return None
        return blocked_until

    def _reset_at(self, recent: list[int], now_ms: int) -> int:
        oldest = min(recent) if recent else now_ms
        return int(math.ceil((oldest + self._window_ms) / 1000))

    def _build_allowed_result(self, *, recent: list[int], now_ms: int) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=self._limit,
            remaining=max(0, self._limit - len(recent)),
            reset_at=self._reset_at(recent, now_ms),
            retry_after_seconds=None,
        )

    def _build_blocked_result(
        self, *, recent: list[int], now_ms: int, wait_ms: int
    ) -> RateLimitResult:
        wait_ms = max(0, wait_ms)
        return RateLimitResult(
            allowed=False,
            limit=self._limit,
            remaining=0,
            reset_at=int(math.ceil((now_ms + wait_ms) / 1000)),
            retry_after_seconds=int(math.ceil(wait_ms / 1000)),
            wait_time_ms=wait_ms,
        )

    def consume(self, key: str) -> RateLimitResult:
        """Check the rolling window for key and record the request if allowed.

        Args:
            key: Client identifier.

        Returns:
            RateLimitResult with allowance decision and metadata. When blocked,
            ``wait_time_ms`` is the time until the oldest request in the window
            expires (or until the lockout ends).

        Raises:
            ValueError: If key is empty.
        """
        if not key:
            raise ValueError("key must be a non-empty string")

        with self._lock:
            now_ms = self._now_ms()
            recent = self._recent(key, now_ms)

            blocked_until = self._active_block(key, now_ms)
            if blocked_until is not None:
                return self._build_blocked_result(
                    recent=recent, now_ms=now_ms, wait_ms=blocked_until - now_ms
                )

            if len(recent) >= self._limit:
                if self._block_ms is not None:
                    self._blocked_until[key] = now_ms + self._block_ms
                    wait_ms = self._block_ms
                else:
                    wait_ms = self._window_ms - (now_ms - min(recent))
                return self._build_blocked_result(
                    recent=recent, now_ms=now_ms, wait_ms=wait_ms
                )

            recent.append(now_ms)
            self._timestamps_by_key[key] = recent
            return self._build_allowed_result(recent=recent, now_ms=now_ms)

    def status(self, key: str) -> RateLimitResult:
        """Report the current standing of key without recording a request."""
        with self._lock:
            now_ms = self._now_ms()
            recent = self._recent(key, now_ms)

            blocked_until = self._active_block(key, now_ms)
            if blocked_until is not None:
                return self._build_blocked_result(
                    recent=recent, now_ms=now_ms, wait_ms=blocked_until - now_ms
                )
            if len(recent) >= self._limit:
                return self._build_blocked_result(
                    recent=recent,
                    now_ms=now_ms,
                    wait_ms=self._window_ms - (now_ms - min(recent)),
                )
            return self._build_allowed_result(recent=recent, now_ms=now_ms)

    def reset(self, key: str) -> None:
        with self._lock:
            self._timestamps_by_key.pop(key, None)
            self._blocked_until.pop(key, None)

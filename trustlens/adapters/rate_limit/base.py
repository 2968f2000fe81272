"""Interface shared by scan rate limiters and the decision they return."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of checking one client against its rolling window.

    Attributes:
        allowed: True if the request may proceed.
        limit: Requests permitted per window.
        remaining: Requests left in the window after this one (0 when blocked).
        reset_at: UNIX epoch seconds when the oldest tracked request leaves the window.
        retry_after_seconds: Suggested wait time in whole seconds when blocked.
        wait_time_ms: Exact wait time in milliseconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    wait_time_ms: int | None = None


class AbstractRateLimiter(ABC):
    """Per-key request budget over a rolling time window."""

    @abstractmethod
    def consume(self, key: str) -> RateLimitResult:
        """Record a request for ``key`` if it fits in the budget.

        Args:
            key: Client identifier (e.g., forwarded IP address).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def status(self, key: str) -> RateLimitResult:
        """Report whether the next request for ``key`` would be allowed.

        Does not record a request.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget all history (and any lockout) for ``key``."""
        raise NotImplementedError

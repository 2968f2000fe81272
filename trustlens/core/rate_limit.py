"""Per-client scan throttling for the real-time scan route.

Routes only see ``enforce_rate_limit``; the limiter behind it implements
``AbstractRateLimiter`` so a shared store could replace the in-memory one.

Policy:
- Rolling 60-second window per client (15 scans by default).
- Client identity is best effort: first X-Forwarded-For hop, then
  X-Real-IP, then a shared "default-client" bucket. Neither header is
  authenticated, so a caller can spoof its way into a fresh bucket.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request

from trustlens.adapters.rate_limit.base import AbstractRateLimiter
from trustlens.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from trustlens.core.config import settings
from trustlens.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_KEY = "default-client"

_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[int, int, int | None] | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return the limiter shared by all requests in this process.

    A new (empty) limiter replaces the old one whenever the limit, window or
    block settings differ from those it was built with.
    """

    global _limiter, _limiter_config

    config = (
        settings.app.rate_limit_requests,
        settings.app.rate_limit_window_seconds,
        settings.app.rate_limit_block_seconds,
    )

    if _limiter is None or _limiter_config != config:
        _limiter = InMemorySlidingWindowRateLimiter(
            limit=settings.app.rate_limit_requests,
            window_seconds=settings.app.rate_limit_window_seconds,
            block_seconds=settings.app.rate_limit_block_seconds,
        )
        _limiter_config = config

    return _limiter


def build_client_key(request: Request) -> str:
    """Derive the caller identity used for rate limiting.

    Args:
        request: FastAPI request.

    Returns:
        str: Client key (an IP address string in practice).
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return DEFAULT_CLIENT_KEY


def _hash_client_key(key: str) -> str:
    """Hash the client key for logging without exposing addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def enforce_rate_limit(request: Request) -> None:
    """Charge one scan against the caller's budget.

    The scan route calls this after rejecting empty frames, so only
    well-formed requests are counted. It also works as a FastAPI dependency.

    When enabled, records one request against the caller's window. If the
    caller is over budget, raises RateLimitAppError (rendered as HTTP 429).

    Args:
        request: FastAPI request.

    Raises:
        RateLimitAppError: When the rolling-window limit is exceeded.
    """

    if not settings.app.rate_limit_enabled:
        return

    limiter = get_rate_limiter()
    key = build_client_key(request)
    key_hash = _hash_client_key(key)

    result = limiter.consume(key)
    if result.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_s": settings.app.rate_limit_window_seconds,
            },
        )
        return

    wait_time_ms = result.wait_time_ms or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_hash": key_hash,
            "limit": result.limit,
            "window_s": settings.app.rate_limit_window_seconds,
            "wait_time_ms": wait_time_ms,
        },
    )

    raise RateLimitAppError(
        code="rate_limit_exceeded",
        message=f"Rate limit exceeded. Please wait {result.retry_after_seconds or 0} seconds.",
        details={
            "wait_time_ms": wait_time_ms,
            "retry_after": result.retry_after_seconds or 0,
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_at": result.reset_at,
        },
    )

"""Domain exceptions raised by services and adapters.

Each subclass maps to one HTTP status in ``exception_handlers``; routes that
want a different envelope (the scan endpoint's 400, the barcode fallback)
catch them locally instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Optional machine-readable context attached to an ``AppError``."""

    hint: str
    http_status: int
    retry_after: int
    wait_time_ms: int
    limit: int
    remaining: int
    reset_at: int
    provider: str
    model: str
    barcode: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Root of all TrustLens errors.

    Attributes:
        code: Short snake_case identifier, stable across releases.
        message: Text safe to show to the caller.
        details: Extra fields for clients and logs.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Bad input or missing configuration."""


class LLMAppError(AppError):
    """Vision provider call failed or returned nothing usable."""


class BarcodeAppError(AppError):
    """Barcode Lookup API call failed."""


class RateLimitAppError(AppError):
    """Client spent its scan budget for the current window."""


class ScanUnavailableAppError(LLMAppError):
    """Scanning cannot run at all, e.g. no provider key is configured."""

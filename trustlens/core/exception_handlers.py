"""FastAPI exception handlers.

``AppError`` subclasses become ``{"error": {code, message, request_id}}``
with a status picked from the subclass. ``RateLimitAppError`` and
``ScanUnavailableAppError`` are rendered in the scan envelope the camera
client already understands (``{success, error, waitTime}``) instead.
Anything else is a 500 that never echoes the original message.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from trustlens.core.config import settings
from trustlens.core.errors import (
    AppError,
    BarcodeAppError,
    LLMAppError,
    RateLimitAppError,
    ScanUnavailableAppError,
)
from trustlens.core.logging import get_request_id
from trustlens.schemas.scan import ScanErrorResponse

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (LLMAppError, 500),
    (BarcodeAppError, 502),
)


def _status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with the status its type implies."""
    status_code = _status_for(exc)
    request_id = get_request_id()

    logger.warning(
        "http.app_error",
        extra={
            "error_code": exc.code,
            "error_msg": exc.message,
            "status_code": status_code,
            "path": request.url.path,
        },
    )

    error: dict = {"code": exc.code, "message": exc.message, "request_id": request_id}
    if exc.details:
        error["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error})


async def rate_limit_error_handler(request: Request, exc: RateLimitAppError) -> JSONResponse:
    """Render a rate-limit rejection as 429 with ``waitTime`` in milliseconds."""
    details = exc.details or {}
    body = ScanErrorResponse(error=exc.message, wait_time=details.get("wait_time_ms", 0))

    headers: dict[str, str] | None = None
    if settings.app.rate_limit_include_headers:
        headers = {
            "Retry-After": str(details.get("retry_after", 0)),
            "X-RateLimit-Limit": str(details.get("limit", "")),
            "X-RateLimit-Remaining": str(details.get("remaining", 0)),
            "X-RateLimit-Reset": str(details.get("reset_at", "")),
        }

    return JSONResponse(status_code=429, content=body.model_dump(by_alias=True), headers=headers)


async def scan_unavailable_error_handler(
    request: Request, exc: ScanUnavailableAppError
) -> JSONResponse:
    """Render an unconfigured scanner as 500 in the scan envelope."""
    logger.error(
        "http.scan_unavailable",
        extra={"error_code": exc.code, "error_msg": exc.message, "path": request.url.path},
    )
    body = ScanErrorResponse(error=exc.message)
    return JSONResponse(status_code=500, content=body.model_dump(by_alias=True, exclude_none=True))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort 500; details go to the log only."""
    request_id = get_request_id()
    logger.error(
        "http.unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "path": request.url.path,
            "method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": request_id,
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers on ``app``.

    Starlette picks the handler for the most specific class in the MRO, so
    ``RateLimitAppError`` and ``ScanUnavailableAppError`` do not fall through
    to the ``AppError`` handler.
    """
    app.add_exception_handler(RateLimitAppError, rate_limit_error_handler)
    app.add_exception_handler(ScanUnavailableAppError, scan_unavailable_error_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from trustlens.adapters.llm.base import AbstractVisionClient
from trustlens.adapters.llm.factory import create_vision_client
from trustlens.core.config import settings
from trustlens.core.errors import ScanUnavailableAppError, ValidationAppError
from trustlens.core.rate_limit import enforce_rate_limit
from trustlens.schemas.scan import (
    RealtimeScanRequest,
    RealtimeScanResponse,
    ScanErrorResponse,
)
from trustlens.services.scan_service import ScanService, strip_data_url
from trustlens.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scan"])

_scan_service: ScanService | None = None
_scan_service_config: tuple | None = None


def _build_vision_client() -> AbstractVisionClient | None:
    """Create the configured vision client, or None for the sample key.

    Raises:
        ScanUnavailableAppError: If no provider key is set at all.
        ValidationAppError: For other configuration problems.
    """
    try:
        return create_vision_client()
    except ValidationAppError as exc:
        if exc.code == "llm_missing_api_key":
            raise ScanUnavailableAppError(
                code="llm_not_configured",
                message="API key not configured",
                details=exc.details,
            ) from exc
        if exc.code != "llm_placeholder_api_key":
            raise
        logger.warning("scan.heuristic_mode", extra={"error_code": exc.code})
        return None


def get_scan_service() -> ScanService:
    """Return the process-wide scan service, rebuilding it if settings changed.

    The vision client is created lazily so the status endpoint and the app
    itself start even before a provider key is configured. With the sample
    key left in place the service runs without a model and answers with
    local fallbacks.
    """
    global _scan_service, _scan_service_config

    config = (
        settings.llm.provider,
        settings.llm.model,
        settings.llm.api_key,
        settings.app.cache_ttl_seconds,
        settings.app.cache_max_entries,
        settings.app.cache_sweep_probability,
        settings.app.fingerprint_strategy,
        settings.app.fingerprint_prefix_chars,
    )

    if _scan_service is None or _scan_service_config != config:
        llm = _build_vision_client()
        cache = SimpleTTLCache(
            ttl_seconds=settings.app.cache_ttl_seconds,
            max_entries=settings.app.cache_max_entries,
            sweep_probability=settings.app.cache_sweep_probability,
        )
        _scan_service = ScanService(
            llm=llm,
            cache=cache,
            fingerprint_strategy=settings.app.fingerprint_strategy,
            fingerprint_prefix_chars=settings.app.fingerprint_prefix_chars,
        )
        _scan_service_config = config

    return _scan_service


def _error_response(status_code: int, message: str) -> JSONResponse:
    body = ScanErrorResponse(error=message)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@router.post(
    "/realtime-scan",
    response_model=RealtimeScanResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ScanErrorResponse}, 500: {"model": ScanErrorResponse}},
)
async def realtime_scan(
    payload: RealtimeScanRequest,
    request: Request,
    service: ScanService = Depends(get_scan_service),
) -> RealtimeScanResponse | JSONResponse:
    """Analyze one camera frame in product or eco mode.

    An empty frame is rejected with 400 before the caller's rolling-window
    budget is charged. An over-budget caller gets 429 with ``waitTime`` in
    milliseconds. Provider failures degrade to a fallback result
    (``fallback: true``) rather than an error status.

    Args:
        payload: Frame data, scan mode and frame counter.
        request: Incoming request, used to identify the client.
        service: Scan service dependency.

    Returns:
        RealtimeScanResponse, or a 400 error envelope when the frame is empty.
    """
    if not payload.image_data or not strip_data_url(payload.image_data):
        return _error_response(400, "No image data provided")

    await enforce_rate_limit(request)

    try:
        return await service.scan(
            image_data=payload.image_data,
            mode=payload.mode,
            frame_count=payload.frame_count,
        )
    except ValidationAppError as exc:
        return _error_response(400, exc.message)


@router.get("/realtime-scan")
def realtime_scan_status() -> dict:
    """Report scanner availability, configured model and supported modes."""

    return {
        "status": "Realtime Scanner API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "models": [settings.llm.model],
        "modes": ["product", "eco"],
        "capabilities": {
            "realTimeEcoAnalysis": True,
            "sustainabilityScoring": True,
            "carbonImpactAssessment": True,
        },
        "rateLimit": {
            "enabled": settings.app.rate_limit_enabled,
            "requests": settings.app.rate_limit_requests,
            "windowSeconds": settings.app.rate_limit_window_seconds,
        },
    }

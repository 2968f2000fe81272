from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from trustlens.core.config import settings
from trustlens.core.errors import BarcodeAppError, ValidationAppError
from trustlens.schemas.barcode import BarcodeLookupResponse
from trustlens.services.barcode_service import BarcodeLookupClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Barcode"])


def get_barcode_client() -> BarcodeLookupClient:
    return BarcodeLookupClient(
        api_key=settings.barcode.api_key,
        base_url=settings.barcode.base_url,
        timeout_seconds=settings.barcode.timeout_seconds,
    )


@router.get(
    "/barcode-lookup",
    response_model=BarcodeLookupResponse,
    response_model_exclude_none=True,
)
async def barcode_lookup(
    barcode: str | None = Query(default=None, description="EAN/UPC digits (7 to 14)"),
    client: BarcodeLookupClient = Depends(get_barcode_client),
) -> BarcodeLookupResponse | JSONResponse:
    """Look up a scanned barcode.

    Unknown or malformed codes yield a placeholder product flagged
    ``isUnknown``. Upstream failures (bad key, throttling, timeouts) also
    yield a placeholder so the scanner never dead-ends.
    """
    if not barcode:
        return JSONResponse(status_code=400, content={"error": "Barcode parameter is required"})

    try:
        product = await client.lookup(barcode)
    except (BarcodeAppError, ValidationAppError) as exc:
        logger.warning(
            "barcode.fallback",
            extra={"barcode": barcode, "error_code": exc.code, "error_msg": exc.message},
        )
        return BarcodeLookupResponse(product=client.fallback_product(barcode))

    if product is None:
        product = client.mock_product(barcode)

    return BarcodeLookupResponse(product=product)

from __future__ import annotations

from trustlens.api.routes.barcode import router as barcode_router
from trustlens.api.routes.health import router as health_router
from trustlens.api.routes.scan import router as scan_router

__all__ = ["barcode_router", "health_router", "scan_router"]

from __future__ import annotations

"""Application factory for the TrustLens scan API.

Builds the FastAPI app (metadata, middleware, handlers, routers) in one
place so tests can create fresh instances.
"""

from fastapi import FastAPI

from trustlens.api.routes import barcode_router, health_router, scan_router
from trustlens.core.config import settings
from trustlens.core.exception_handlers import setup_exception_handlers
from trustlens.core.logging import configure_logging
from trustlens.core.middleware import request_id_middleware
from trustlens.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    configure_logging(settings.log)

    app = FastAPI(
        title="TrustLens Scan API",
        description=(
            "Real-time product and eco scanning for the TrustLens camera. "
            "Frames are analysed by a vision model, results are cached for a "
            "few seconds per frame, and each client is limited to a rolling "
            "budget of scans per minute. Also exposes barcode product lookup."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(scan_router, prefix="/v1")
    app.include_router(barcode_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app

"""OpenAPI schema customization.

Adds tag descriptions and documents the 429 rate-limit response on the
scan endpoint, keeping documentation concerns out of the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {
        "name": "Scan",
        "description": "Real-time camera frame analysis (product and eco modes).",
    },
    {
        "name": "Barcode",
        "description": "Product lookup by barcode with offline fallback.",
    },
    {
        "name": "Health",
        "description": "Liveness check.",
    },
]

RATE_LIMIT_RESPONSE = {
    "description": "Too many scans from this client in the rolling window.",
    "headers": {
        "Retry-After": {
            "description": "Seconds until the next scan is accepted.",
            "schema": {"type": "integer"},
        },
    },
    "content": {
        "application/json": {
            "example": {
                "success": False,
                "error": "Rate limit exceeded. Please wait 42 seconds.",
                "waitTime": 41250,
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Wrap FastAPI's schema generation with TrustLens metadata."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        known = {t.get("name") for t in tags}
        tags.extend(tag for tag in TAGS_METADATA if tag["name"] not in known)

        for path, methods in schema.get("paths", {}).items():
            if not path.endswith("/realtime-scan"):
                continue
            post = methods.get("post")
            if isinstance(post, dict):
                post.setdefault("responses", {}).setdefault("429", RATE_LIMIT_RESPONSE)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]

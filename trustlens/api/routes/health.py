from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe; always ``{"status": "ok"}`` while the process serves."""

    return {"status": "ok"}

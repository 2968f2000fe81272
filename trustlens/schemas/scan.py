"""Pydantic schemas for real-time scan requests and responses.

Field names are snake_case in Python and camelCase on the wire, matching
what the camera client sends and renders.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


ScanMode = Literal["product", "eco"]

ScanAction = Literal["scan_more", "capture", "adjust_angle", "move_closer", "add_light"]
EcoCategory = Literal["donate", "recycle", "waste", "reuse", "hazardous", "unknown"]
EcoCondition = Literal["excellent", "good", "fair", "poor", "hazardous", "unclear"]
CarbonImpact = Literal["low", "medium", "high"]
ActionRequired = Literal["immediate", "plan", "research", "none"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuickScanResult(CamelModel):
    """Product-mode verdict on a single camera frame."""

    detected: bool = Field(
        ...,
        description="Whether a product is clearly visible in the frame.",
    )
    product_name: str | None = Field(
        default=None,
        description="Product name or brand if legible.",
    )
    category: str | None = Field(
        default=None,
        description="Product category if recognizable.",
    )
    confidence: float = Field(
        default=0,
        ge=0,
        le=100,
        description="Detection confidence from 0 to 100.",
    )
    is_product: bool = False
    is_barcode: bool = False
    is_text: bool = False
    suggestions: list[str] = Field(
        default_factory=list,
        description="Short tips for getting a better frame.",
    )
    action: ScanAction = Field(
        default="scan_more",
        description="What the user should do next.",
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return max(0, min(100, value))
        return value


class RealTimeEcoResult(CamelModel):
    """Eco-mode disposal guidance for a single camera frame."""

    item_name: str = Field(..., description="Brief name of the detected item.")
    category: EcoCategory = Field(
        default="unknown",
        description="Recommended disposal route.",
    )
    condition: EcoCondition = Field(
        default="unclear",
        description="Apparent condition of the item.",
    )
    confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Classification confidence from 0.0 to 1.0.",
    )
    quick_analysis: str = Field(default="", description="One sentence summary.")
    sustainability_score: float = Field(default=50, ge=0, le=100)
    carbon_impact: CarbonImpact = "medium"
    quick_tips: list[str] = Field(default_factory=list, max_length=3)
    action_required: ActionRequired | None = "research"


class RealtimeScanRequest(CamelModel):
    """Body of ``POST /v1/realtime-scan``."""

    image_data: str | None = Field(
        default=None,
        description="Base64 image payload, optionally as a data URL.",
    )
    mode: ScanMode = Field(default="product", description="Scan mode.")
    frame_count: int = Field(
        default=0,
        ge=0,
        description="Client-side frame counter, echoed back.",
    )


class RealtimeScanResponse(CamelModel):
    """Successful scan envelope."""

    success: bool = True
    result: QuickScanResult | RealTimeEcoResult
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    mode: ScanMode
    frame_count: int = 0
    cached: bool = Field(
        default=False,
        description="True if the result was served from the short-lived scan cache.",
    )
    model: str | None = Field(
        default=None,
        description="Model that produced the result (absent for cached results).",
    )
    fallback: bool = Field(
        default=False,
        description="True if the result is a local default because analysis failed.",
    )


class ScanErrorResponse(CamelModel):
    """Error envelope for the scan endpoint (400 and 429)."""

    success: bool = False
    error: str
    wait_time: int | None = Field(
        default=None,
        description="Milliseconds until the client may scan again (429 only).",
    )

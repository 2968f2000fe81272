"""Real-time scan service orchestrating vision calls, caching, and fallbacks.

This service turns a single camera frame into a structured verdict. It handles:
- Data URL stripping and fingerprinting for the short-lived result cache
- Mode-specific prompts (product detection, eco disposal guidance)
- Tolerant parsing of model output (code fences, prose, out-of-range values)
- Local fallback results when the provider fails, so the camera UI always
  has something to render
"""

from __future__ import annotations

import json
import logging
import random
import re
from typing import Any

from pydantic import ValidationError

from trustlens.adapters.llm.base import AbstractVisionClient, is_rate_limit_error
from trustlens.core.errors import LLMAppError, ValidationAppError
from trustlens.schemas.scan import (
    QuickScanResult,
    RealTimeEcoResult,
    RealtimeScanResponse,
    ScanMode,
)
from trustlens.utils.simple_cache import FingerprintStrategy, SimpleTTLCache, build_fingerprint

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:[^,]*,", re.IGNORECASE)
_CODE_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")

ECO_CATEGORIES = {"donate", "recycle", "waste", "reuse", "hazardous", "unknown"}
ECO_CONDITIONS = {"excellent", "good", "fair", "poor", "hazardous", "unclear"}
CARBON_IMPACTS = {"low", "medium", "high"}
ACTIONS_REQUIRED = {"immediate", "plan", "research", "none"}

ECO_FALLBACK_TIPS = (
    "Check if item has recycling symbols",
    "Consider if it can be donated",
    "Look for hazardous material warnings",
    "See if it can be repaired or repurposed",
    "Research local disposal guidelines",
)

HEURISTIC_LARGE_PAYLOAD_CHARS = 50_000

PRODUCT_PROMPT = """
Analyze this image quickly for product scanning. Respond in JSON format:
{
  "detected": boolean,
  "productName": "string or null",
  "category": "string or null",
  "confidence": number (0-100),
  "isProduct": boolean,
  "isBarcode": boolean,
  "isText": boolean,
  "suggestions": ["array of scanning tips"],
  "action": "scan_more|capture|adjust_angle|move_closer|add_light"
}

Focus on:
- Is there a clear product visible?
- Can you read product name/brand?
- Is there a barcode visible?
- Is the image quality good enough for detailed analysis?
- What should the user do next?

Be quick and decisive. If unsure, suggest improvements.
""".strip()

ECO_PROMPT = """
You are an eco-analysis AI. Analyze this image quickly.

Identify the item and classify it:
- "donate": Good condition items for reuse
- "recycle": Materials for processing (plastic, metal, paper)
- "reuse": Items for repurposing
- "waste": Regular disposal needed
- "hazardous": Special disposal (batteries, chemicals)
- "unknown": Cannot determine

Return JSON:
{
  "itemName": "brief name",
  "category": "category",
  "condition": "excellent|good|fair|poor|hazardous|unclear",
  "confidence": 0.0-1.0,
  "quickAnalysis": "1 sentence summary",
  "sustainabilityScore": 0-100,
  "carbonImpact": "low|medium|high",
  "quickTips": ["max 3 tips"],
  "actionRequired": "immediate|plan|research|none"
}
""".strip()


def strip_data_url(image_data: str) -> str:
    """Remove a ``data:<mime>;base64,`` prefix if present."""
    return _DATA_URL_RE.sub("", image_data.strip(), count=1)


def parse_json_text(text: str) -> dict[str, Any]:
    """Decode model output that should be a JSON object.

    Markdown code fences are removed first.

    Raises:
        ValueError: If the text is not a JSON object.
    """
    cleaned = _CODE_FENCE_RE.sub("", text).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(low, min(high, value))


def _choice(value: Any, allowed: set[str], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def normalize_eco_result(data: dict[str, Any]) -> RealTimeEcoResult:
    """Fill defaults and clamp ranges on a decoded eco answer.

    A zero ``confidence`` or ``sustainabilityScore`` counts as missing, and
    fractional scores are kept as sent.
    """
    tips = data.get("quickTips")
    if isinstance(tips, list):
        quick_tips = [str(tip) for tip in tips][:3]
    else:
        quick_tips = ["Consider sustainable disposal"]

    action = data.get("actionRequired")
    return RealTimeEcoResult(
        item_name=str(data.get("itemName") or "Unknown Item"),
        category=_choice(data.get("category"), ECO_CATEGORIES, "unknown"),
        condition=_choice(data.get("condition"), ECO_CONDITIONS, "unclear"),
        confidence=_clamp(data.get("confidence") or 0.5, 0.0, 1.0, 0.5),
        quick_analysis=str(data.get("quickAnalysis") or "Item detected, analysis in progress..."),
        sustainability_score=_clamp(data.get("sustainabilityScore") or 50, 0, 100, 50),
        carbon_impact=_choice(data.get("carbonImpact"), CARBON_IMPACTS, "medium"),
        quick_tips=quick_tips,
        action_required=_choice(action, ACTIONS_REQUIRED, "research"),
    )


def parse_eco_text(text: str) -> RealTimeEcoResult:
    """Derive a rough eco verdict from a prose (non-JSON) model answer."""
    lower = text.lower()

    category = "unknown"
    if "recycle" in lower:
        category = "recycle"
    elif "donate" in lower or "donation" in lower:
        category = "donate"
    elif "reuse" in lower or "repurpose" in lower:
        category = "reuse"
    elif "hazard" in lower or "toxic" in lower:
        category = "hazardous"
    elif "trash" in lower or "waste" in lower:
        category = "waste"

    condition = "unclear"
    if "excellent" in lower or "perfect" in lower:
        condition = "excellent"
    elif "good" in lower or "fine" in lower:
        condition = "good"
    elif "fair" in lower or "okay" in lower:
        condition = "fair"
    elif "poor" in lower or "bad" in lower:
        condition = "poor"
    elif "hazard" in lower or "dangerous" in lower:
        condition = "hazardous"

    score = {"recycle": 70, "donate": 85}.get(category, 50)

    return RealTimeEcoResult(
        item_name="Detected Item",
        category=category,
        condition=condition,
        confidence=0.6,
        quick_analysis=text[:150] + "...",
        sustainability_score=score,
        carbon_impact="high" if category == "hazardous" else "medium",
        quick_tips=[
            "Check item condition",
            "Consider sustainable options",
            "Research local facilities",
        ],
        action_required="research",
    )


def product_fallback(suggestions: list[str] | None = None) -> QuickScanResult:
    return QuickScanResult(
        detected=False,
        confidence=0,
        is_product=False,
        is_barcode=False,
        is_text=False,
        suggestions=suggestions
        or ["Try adjusting camera angle", "Ensure good lighting", "Move closer to object"],
        action="scan_more",
    )


def eco_quota_fallback() -> RealTimeEcoResult:
    """Eco result used while the provider is throttling us."""
    return RealTimeEcoResult(
        item_name="Item Analysis Ready",
        category="unknown",
        condition="unclear",
        confidence=0.8,
        quick_analysis="Smart analysis available. Try uploading for detailed eco-guidance.",
        sustainability_score=75,
        carbon_impact="medium",
        quick_tips=[
            "Use the detailed scanner for full analysis",
            "Check for visible recycling symbols",
            "Consider the item's condition and usability",
        ],
        action_required="plan",
    )


def eco_fallback(rng: random.Random) -> RealTimeEcoResult:
    return RealTimeEcoResult(
        item_name="Item Ready for Analysis",
        category="unknown",
        condition="unclear",
        confidence=0.7,
        quick_analysis="Item detected in frame. Position clearly for detailed analysis.",
        sustainability_score=60,
        carbon_impact="medium",
        quick_tips=rng.sample(ECO_FALLBACK_TIPS, 3),
        action_required="research",
    )


def analyze_image_heuristically(image_data: str) -> RealTimeEcoResult:
    """Eco guidance without a vision model, based only on payload size.

    Payloads over ``HEURISTIC_LARGE_PAYLOAD_CHARS`` get a higher score and
    tips that assume the item is legible.
    """
    score = 60
    tips = [
        "Position item clearly in good lighting",
        "Fill camera frame with the item",
        "Try the detailed scanner",
    ]
    if len(image_data) > HEURISTIC_LARGE_PAYLOAD_CHARS:
        score = 70
        tips = [
            "Item appears clear - check for recycling symbols",
            "Look for brand markings or material labels",
            "Consider if item is still functional",
        ]

    return RealTimeEcoResult(
        item_name="Item Ready for Analysis",
        category="unknown",
        condition="unclear",
        confidence=0.75,
        quick_analysis="Smart eco-guidance available. Point camera at item and ensure good lighting.",
        sustainability_score=score,
        carbon_impact="medium",
        quick_tips=tips,
        action_required="research",
    )


class ScanService:
    """Service for classifying camera frames with a vision model.

    Attributes:
        llm: Vision client used for analysis. When None, product scans
            return the default fallback and eco scans use
            ``analyze_image_heuristically``.
        cache: Short-TTL cache of recent results keyed by frame fingerprint.
    """

    def __init__(
        self,
        llm: AbstractVisionClient | None,
        cache: SimpleTTLCache,
        *,
        fingerprint_strategy: FingerprintStrategy = "content_hash",
        fingerprint_prefix_chars: int = 50,
        rng: random.Random | None = None,
    ) -> None:
        self.llm = llm
        self.cache = cache
        self.fingerprint_strategy = fingerprint_strategy
        self.fingerprint_prefix_chars = fingerprint_prefix_chars
        self._rng = rng or random.Random()

    def fingerprint(self, image_data: str, mode: ScanMode) -> str:
        return build_fingerprint(
            image_data,
            mode,
            strategy=self.fingerprint_strategy,
            prefix_chars=self.fingerprint_prefix_chars,
        )

    def _get_from_cache(
        self, cache_key: str, mode: ScanMode
    ) -> QuickScanResult | RealTimeEcoResult | None:
        cached = self.cache.get(cache_key)
        if not cached:
            return None
        if mode == "eco":
            return RealTimeEcoResult.model_validate(cached)
        return QuickScanResult.model_validate(cached)

    async def _analyze_product(self, image_data: str) -> tuple[QuickScanResult, bool]:
        """Run product detection.

        Returns:
            Tuple of (result, is_fallback).
        """
        if self.llm is None:
            logger.warning("scan.fallback", extra={"mode": "product", "reason": "llm_not_configured"})
            return product_fallback(), True

        try:
            text = await self.llm.generate_text(PRODUCT_PROMPT, image_data=image_data)
        except LLMAppError as exc:
            logger.warning(
                "scan.fallback",
                extra={"mode": "product", "reason": exc.code, "error_msg": exc.message},
            )
            return product_fallback(["Connection error - please try again"]), True

        try:
            return QuickScanResult.model_validate(parse_json_text(text)), False
        except (ValueError, ValidationError) as exc:
            logger.warning(
                "scan.fallback",
                extra={"mode": "product", "reason": "unparseable_response", "error_msg": str(exc)},
            )
            return product_fallback(), True

    async def _analyze_eco(self, image_data: str) -> tuple[RealTimeEcoResult, bool]:
        """Run eco disposal classification.

        Returns:
            Tuple of (result, is_fallback).
        """
        if self.llm is None:
            logger.warning("scan.fallback", extra={"mode": "eco", "reason": "llm_not_configured"})
            return analyze_image_heuristically(image_data), True

        try:
            text = await self.llm.generate_text(ECO_PROMPT, image_data=image_data)
        except LLMAppError as exc:
            rate_limited = is_rate_limit_error(exc)
            logger.warning(
                "scan.fallback",
                extra={
                    "mode": "eco",
                    "reason": "provider_rate_limited" if rate_limited else exc.code,
                    "error_msg": exc.message,
                },
            )
            if rate_limited:
                return eco_quota_fallback(), True
            return eco_fallback(self._rng), True

        try:
            return normalize_eco_result(parse_json_text(text)), False
        except ValueError:
            logger.warning(
                "scan.fallback",
                extra={"mode": "eco", "reason": "prose_response", "response_chars": len(text)},
            )
            return parse_eco_text(text), True

    async def scan(
        self,
        image_data: str | None,
        mode: ScanMode = "product",
        frame_count: int = 0,
    ) -> RealtimeScanResponse:
        """Analyze one camera frame and return the response envelope.

        Args:
            image_data: Base64 image, optionally as a data URL.
            mode: ``product`` or ``eco``.
            frame_count: Client frame counter, echoed back.

        Returns:
            RealtimeScanResponse, flagged ``cached`` or ``fallback`` as appropriate.

        Raises:
            ValidationAppError: If no image payload was provided.
        """
        payload = strip_data_url(image_data) if image_data else ""
        if not payload:
            raise ValidationAppError(
                code="missing_image_data",
                message="No image data provided",
            )

        cache_key = self.fingerprint(payload, mode)
        cached = self._get_from_cache(cache_key, mode)
        if cached is not None:
            logger.info(
                "scan.cache_hit",
                extra={"mode": mode, "cache_key": cache_key[:16], "frame_count": frame_count},
            )
            return RealtimeScanResponse(
                result=cached,
                mode=mode,
                frame_count=frame_count,
                cached=True,
            )

        if mode == "eco":
            result, fallback = await self._analyze_eco(payload)
        else:
            result, fallback = await self._analyze_product(payload)

        if not fallback:
            self.cache.set(cache_key, result.model_dump())

        logger.info(
            "scan.completed",
            extra={
                "mode": mode,
                "fallback": fallback,
                "frame_count": frame_count,
                "payload_chars": len(payload),
            },
        )

        return RealtimeScanResponse(
            result=result,
            mode=mode,
            frame_count=frame_count,
            model=None if fallback else self.llm.model,
            fallback=fallback,
        )

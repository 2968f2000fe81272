"""Tests for the real-time scan API routes.

The vision client is replaced with an AsyncMock through FastAPI's
dependency overrides; rate limiting runs for real against the in-memory
limiter (reset per test by the autouse fixture in conftest.py).
"""

import json
import random
from typing import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from trustlens.api.routes.scan import get_scan_service
from trustlens.core import rate_limit
from trustlens.core.config import LLMSettings, settings
from trustlens.main import app
from trustlens.services.scan_service import ScanService
from trustlens.utils.simple_cache import SimpleTTLCache

PRODUCT_JSON = {
    "detected": True,
    "productName": "Sparkling Water",
    "category": "Beverages",
    "confidence": 87,
    "isProduct": True,
    "isBarcode": True,
    "isText": False,
    "suggestions": [],
    "action": "capture",
}


@pytest.fixture
def llm() -> MagicMock:
    mock = MagicMock()
    mock.model = "gemini-1.5-flash"
    mock.generate_text = AsyncMock(return_value=json.dumps(PRODUCT_JSON))
    return mock


@pytest.fixture
def client(llm: MagicMock) -> Iterator[TestClient]:
    """Test client whose scan service talks to the mocked vision client."""
    service = ScanService(
        llm=llm,
        cache=SimpleTTLCache(ttl_seconds=10, rng=lambda: 1.0),
        rng=random.Random(0),
    )
    app.dependency_overrides[get_scan_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.pop(get_scan_service, None)


def _frame(i: int) -> str:
    return f"data:image/jpeg;base64,RlJBTUUt{i:04d}"


class TestRealtimeScan:
    """POST /v1/realtime-scan."""

    def test_product_scan_success(self, client: TestClient) -> None:
        response = client.post(
            "/v1/realtime-scan",
            json={"imageData": _frame(1), "mode": "product", "frameCount": 12},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["mode"] == "product"
        assert data["frameCount"] == 12
        assert data["cached"] is False
        assert data["fallback"] is False
        assert data["model"] == "gemini-1.5-flash"
        assert data["result"]["productName"] == "Sparkling Water"
        assert data["result"]["isBarcode"] is True
        assert "timestamp" in data

    def test_repeated_frame_is_cached(self, client: TestClient, llm: MagicMock) -> None:
        body = {"imageData": _frame(7), "mode": "product"}

        first = client.post("/v1/realtime-scan", json=body).json()
        second = client.post("/v1/realtime-scan", json=body).json()

        assert first["cached"] is False
        assert second["cached"] is True
        assert "model" not in second
        assert llm.generate_text.await_count == 1

    def test_eco_scan_success(self, client: TestClient, llm: MagicMock) -> None:
        llm.generate_text = AsyncMock(
            return_value=json.dumps(
                {
                    "itemName": "Cardboard box",
                    "category": "recycle",
                    "condition": "fair",
                    "confidence": 0.8,
                    "quickAnalysis": "Flatten and recycle.",
                    "sustainabilityScore": 70,
                    "carbonImpact": "low",
                    "quickTips": ["Flatten it"],
                    "actionRequired": "plan",
                }
            )
        )

        response = client.post("/v1/realtime-scan", json={"imageData": _frame(2), "mode": "eco"})

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["itemName"] == "Cardboard box"
        assert result["sustainabilityScore"] == 70
        assert result["quickTips"] == ["Flatten it"]

    def test_missing_image_returns_400(self, client: TestClient) -> None:
        response = client.post("/v1/realtime-scan", json={"mode": "product"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "No image data provided"}

    def test_unknown_mode_is_rejected(self, client: TestClient) -> None:
        response = client.post("/v1/realtime-scan", json={"imageData": _frame(3), "mode": "food"})

        assert response.status_code == 422

    def test_provider_failure_returns_fallback_with_200(
        self, client: TestClient, llm: MagicMock
    ) -> None:
        from trustlens.core.errors import LLMAppError

        llm.generate_text = AsyncMock(side_effect=LLMAppError(code="llm_call_failed", message="down"))

        response = client.post("/v1/realtime-scan", json={"imageData": _frame(4)})

        assert response.status_code == 200
        data = response.json()
        assert data["fallback"] is True
        assert data["result"]["detected"] is False


class TestRealtimeScanRateLimit:
    """Per-client rolling-window budget on the scan endpoint."""

    def test_fifteen_scans_then_429(self, client: TestClient) -> None:
        headers = {"X-Forwarded-For": "1.2.3.4"}

        for i in range(15):
            response = client.post(
                "/v1/realtime-scan",
                json={"imageData": _frame(i), "mode": "product"},
                headers=headers,
            )
            assert response.status_code == 200, i

        response = client.post(
            "/v1/realtime-scan",
            json={"imageData": _frame(99), "mode": "product"},
            headers=headers,
        )

        assert response.status_code == 429
        data = response.json()
        assert data["success"] is False
        assert data["error"].startswith("Rate limit exceeded. Please wait ")
        assert 0 < data["waitTime"] <= 60_000
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Limit"] == "15"
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_clients_are_isolated(self, client: TestClient) -> None:
        for i in range(15):
            client.post(
                "/v1/realtime-scan",
                json={"imageData": _frame(i)},
                headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.1"},
            )

        blocked = client.post(
            "/v1/realtime-scan",
            json={"imageData": _frame(50)},
            headers={"X-Forwarded-For": "1.2.3.4"},
        )
        other = client.post(
            "/v1/realtime-scan",
            json={"imageData": _frame(51)},
            headers={"X-Real-IP": "5.6.7.8"},
        )

        assert blocked.status_code == 429
        assert other.status_code == 200

    def test_empty_frames_do_not_spend_budget(self, client: TestClient) -> None:
        headers = {"X-Forwarded-For": "1.2.3.4"}

        for _ in range(20):
            response = client.post("/v1/realtime-scan", json={"imageData": ""}, headers=headers)
            assert response.status_code == 400

        response = client.post(
            "/v1/realtime-scan",
            json={"imageData": _frame(1)},
            headers=headers,
        )

        assert response.status_code == 200
        assert rate_limit.get_rate_limiter().status("1.2.3.4").remaining == 14

    def test_rejected_before_analysis(self, client: TestClient, llm: MagicMock) -> None:
        for i in range(15):
            client.post("/v1/realtime-scan", json={"imageData": _frame(i)})
        calls_before = llm.generate_text.await_count

        response = client.post("/v1/realtime-scan", json={"imageData": _frame(200)})

        assert response.status_code == 429
        assert llm.generate_text.await_count == calls_before

    def test_headers_can_be_disabled(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_requests", 1)
        monkeypatch.setattr(settings.app, "rate_limit_include_headers", False)

        client.post("/v1/realtime-scan", json={"imageData": _frame(1)})
        response = client.post("/v1/realtime-scan", json={"imageData": _frame(2)})

        assert response.status_code == 429
        assert "Retry-After" not in response.headers

    def test_rate_limit_can_be_disabled(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_enabled", False)

        for i in range(20):
            response = client.post("/v1/realtime-scan", json={"imageData": _frame(i)})
            assert response.status_code == 200


class TestUnconfiguredProvider:
    """POST /v1/realtime-scan without a usable provider key."""

    @pytest.fixture
    def fresh_service(self, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
        from trustlens.api.routes import scan as scan_routes

        monkeypatch.setattr(scan_routes, "_scan_service", None)
        monkeypatch.setattr(scan_routes, "_scan_service_config", None)
        yield TestClient(app)

    def test_missing_key_returns_500_envelope(
        self, fresh_service: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "llm", LLMSettings(provider="gemini", api_key=None))

        response = fresh_service.post(
            "/v1/realtime-scan",
            json={"imageData": _frame(1), "mode": "eco"},
            headers={"X-Forwarded-For": "7.7.7.7"},
        )

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "API key not configured"}
        assert rate_limit.get_rate_limiter().status("7.7.7.7").remaining == 15

    def test_sample_key_eco_scan_uses_heuristic(
        self, fresh_service: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            settings, "llm", LLMSettings(provider="gemini", api_key="your_gemini_api_key_here")
        )

        small = fresh_service.post("/v1/realtime-scan", json={"imageData": _frame(1), "mode": "eco"})
        large = fresh_service.post(
            "/v1/realtime-scan",
            json={"imageData": "A" * 60_000, "mode": "eco"},
        )

        assert small.status_code == 200
        data = small.json()
        assert data["success"] is True
        assert data["fallback"] is True
        assert "model" not in data
        assert data["result"]["itemName"] == "Item Ready for Analysis"
        assert data["result"]["sustainabilityScore"] == 60
        assert large.json()["result"]["sustainabilityScore"] == 70
        assert large.json()["result"]["quickTips"][0].startswith("Item appears clear")

    def test_sample_key_product_scan_returns_fallback(
        self, fresh_service: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            settings, "llm", LLMSettings(provider="gemini", api_key="your_gemini_api_key_here")
        )

        response = fresh_service.post("/v1/realtime-scan", json={"imageData": _frame(2)})

        assert response.status_code == 200
        assert response.json()["fallback"] is True
        assert response.json()["result"]["detected"] is False


class TestRealtimeScanStatus:
    """GET /v1/realtime-scan."""

    def test_status_lists_modes_and_model(self) -> None:
        response = TestClient(app).get("/v1/realtime-scan")

        assert response.status_code == 200
        data = response.json()
        assert data["modes"] == ["product", "eco"]
        assert data["models"] == [settings.llm.model]
        assert data["capabilities"]["realTimeEcoAnalysis"] is True
        assert data["rateLimit"]["requests"] == settings.app.rate_limit_requests


class TestScanServiceDependency:
    """get_scan_service wiring."""

    def test_service_is_reused_until_settings_change(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from trustlens.api.routes import scan as scan_routes

        monkeypatch.setattr(scan_routes, "_scan_service", None)
        monkeypatch.setattr(scan_routes, "_scan_service_config", None)
        monkeypatch.setattr(scan_routes, "create_vision_client", MagicMock(return_value=MagicMock()))

        first = get_scan_service()
        assert get_scan_service() is first

        monkeypatch.setattr(settings.app, "cache_ttl_seconds", 30.0)
        rebuilt = get_scan_service()

        assert rebuilt is not first
        assert rebuilt.cache.stats()["ttl_seconds"] == 30.0
        assert rebuilt.cache.stats()["max_entries"] == settings.app.cache_max_entries
        assert scan_routes.create_vision_client.call_count == 2


def test_health_check() -> None:
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_cache_size_comes_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    from trustlens.api.routes import scan as scan_routes

    monkeypatch.setattr(scan_routes, "_scan_service", None)
    monkeypatch.setattr(scan_routes, "_scan_service_config", None)
    monkeypatch.setattr(scan_routes, "create_vision_client", MagicMock(return_value=MagicMock()))
    monkeypatch.setattr(settings.app, "cache_max_entries", 8)

    assert get_scan_service().cache.stats()["max_entries"] == 8

"""Barcode Lookup API client and product reshaping.

Wraps the Barcode Lookup v3 REST API (https://www.barcodelookup.com/api)
and converts its product records into the ``ProcessedProduct`` shape the
scanner UI renders. The API carries no community data, so social proof
numbers are generated locally.
"""

from __future__ import annotations

import logging
import random
import re
from typing import Any, Literal

import httpx

from trustlens.core.errors import BarcodeAppError, ValidationAppError
from trustlens.schemas.barcode import ProcessedProduct, SocialProof, StoreOffer

logger = logging.getLogger(__name__)

BARCODE_RE = re.compile(r"^[0-9]{7,14}$")
PLACEHOLDER_IMAGE = "/placeholder.svg?height=200&width=200"

SearchType = Literal["title", "brand", "search"]

MOCK_PRODUCT_NAMES = (
    "Unknown Product",
    "Scanned Item",
    "Store Brand Item",
    "Generic Product",
    "Unidentified Item",
)


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def process_product(product: dict[str, Any], rng: random.Random | None = None) -> ProcessedProduct:
    """Reshape one raw API product into a ``ProcessedProduct``.

    Args:
        product: Element of the API's ``products`` array.
        rng: Random source for the generated social proof.

    Returns:
        ProcessedProduct with best price, average rating and store offers.
    """
    rng = rng or random.Random()

    ratings = [
        r for r in (_to_float(review.get("rating")) for review in product.get("reviews") or [])
        if r is not None
    ]
    rating = round(sum(ratings) / len(ratings), 1) if ratings else None

    raw_stores = product.get("stores") or []
    best_store: dict[str, Any] | None = None
    best_price = float("inf")
    for store in raw_stores:
        amount = _to_float(store.get("sale_price") or store.get("price"))
        if amount is not None and amount < best_price:
            best_price, best_store = amount, store
    if best_store is None and raw_stores:
        best_store = raw_stores[0]

    if best_store is not None:
        price = f"{best_store.get('currency_symbol', '')}{best_store.get('sale_price') or best_store.get('price')}"
    else:
        price = "Price not available"

    stores = [
        StoreOffer(
            name=store.get("name", ""),
            price=f"{store.get('currency_symbol', '')}{store.get('sale_price') or store.get('price', '')}",
            currency=store.get("currency"),
            availability=store.get("availability"),
            link=store.get("link"),
        )
        for store in raw_stores
    ] or None

    images = product.get("images") or []
    reviews = product.get("reviews")

    return ProcessedProduct(
        id=product.get("barcode_number", ""),
        name=product.get("title") or "Unknown Product",
        price=price,
        rating=rating,
        reviews=len(reviews) if reviews is not None else None,
        image=images[0] if images else PLACEHOLDER_IMAGE,
        barcode=product.get("barcode_number", ""),
        brand=product.get("brand"),
        manufacturer=product.get("manufacturer"),
        category=product.get("category"),
        description=product.get("description"),
        features=product.get("features"),
        stores=stores,
        social_proof=SocialProof(
            friends_purchased=rng.randrange(0, 5),
            friends_recommend=rng.randrange(70, 100),
            location_popularity=rng.randrange(60, 100),
            trending_score=rng.randrange(50, 100),
            recent_activity="Recently scanned by community",
        ),
    )


def generate_mock_product(barcode: str, rng: random.Random | None = None) -> ProcessedProduct:
    """Placeholder product for a barcode the database does not know."""
    rng = rng or random.Random()
    name = rng.choice(MOCK_PRODUCT_NAMES)
    return ProcessedProduct(
        id=f"unknown_{barcode}",
        name=f"{name} ({barcode[-6:]})",
        price=f"${rng.uniform(2, 22):.2f}",
        rating=round(rng.uniform(3.5, 5.0), 1),
        reviews=rng.randrange(100, 5100),
        image=PLACEHOLDER_IMAGE,
        barcode=barcode,
        is_unknown=True,
        social_proof=SocialProof(
            friends_purchased=rng.randrange(0, 3),
            friends_recommend=rng.randrange(60, 100),
            location_popularity=rng.randrange(50, 80),
            trending_score=rng.randrange(30, 80),
            recent_activity="No community data available",
        ),
    )


def generate_fallback_product(barcode: str, rng: random.Random | None = None) -> ProcessedProduct:
    """Placeholder product used when the lookup itself failed."""
    rng = rng or random.Random()
    return ProcessedProduct(
        id=f"error_{barcode}",
        name=f"Scanned Product {barcode[-6:]}",
        price=f"${rng.uniform(2, 22):.2f}",
        rating=4.0,
        reviews=rng.randrange(50, 1050),
        image=PLACEHOLDER_IMAGE,
        barcode=barcode,
        brand="Unknown",
        category="General",
        description="Unable to retrieve product information",
        is_unknown=True,
        social_proof=SocialProof(
            friends_purchased=rng.randrange(0, 3),
            friends_recommend=rng.randrange(50, 80),
            location_popularity=rng.randrange(40, 65),
            trending_score=rng.randrange(20, 60),
        ),
    )


class BarcodeLookupClient:
    """Async client for the Barcode Lookup API.

    Attributes:
        base_url: API root, e.g. ``https://api.barcodelookup.com/v3``.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        base_url: str = "https://api.barcodelookup.com/v3",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._rng = rng or random.Random()

    def _require_key(self) -> str:
        if not self.api_key:
            raise ValidationAppError(
                code="barcode_missing_api_key",
                message="Barcode lookup requires BARCODE_API_KEY environment variable",
            )
        return self.api_key

    async def _get(self, path: str, params: dict[str, str]) -> httpx.Response:
        params = {**params, "formatted": "y", "key": self._require_key()}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
                headers={"Accept": "application/json"},
            ) as client:
                return await client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise BarcodeAppError(
                code="barcode_timeout",
                message="Barcode API request timed out",
                details={"http_status": 504},
            ) from exc
        except httpx.HTTPError as exc:
            raise BarcodeAppError(
                code="barcode_request_failed",
                message=f"Barcode API request failed: {exc}",
            ) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status == 403:
            raise BarcodeAppError(
                code="barcode_invalid_api_key",
                message="Invalid API key",
                details={"http_status": status},
            )
        if status == 429:
            raise BarcodeAppError(
                code="barcode_rate_limited",
                message="Rate limit exceeded",
                details={"http_status": status},
            )
        if response.is_error:
            raise BarcodeAppError(
                code="barcode_request_failed",
                message=f"API request failed: {status}",
                details={"http_status": status},
            )

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise BarcodeAppError(
                code="barcode_invalid_response",
                message="Barcode API returned a non-JSON body",
                details={"http_status": response.status_code},
            ) from exc
        if not isinstance(data, dict):
            raise BarcodeAppError(
                code="barcode_invalid_response",
                message=f"Barcode API returned {type(data).__name__}, expected an object",
                details={"http_status": response.status_code},
            )
        return data

    async def lookup(self, barcode: str) -> ProcessedProduct | None:
        """Look up a product by barcode.

        Returns:
            The processed product, or None when the code is malformed or unknown.

        Raises:
            ValidationAppError: If no API key is configured.
            BarcodeAppError: On invalid key, upstream throttling, or other failures.
        """
        self._require_key()
        if not BARCODE_RE.match(barcode):
            logger.warning("barcode.invalid_format", extra={"barcode": barcode})
            return None

        response = await self._get("/products", {"barcode": barcode})
        if response.status_code == 404:
            logger.info("barcode.lookup", extra={"barcode": barcode, "found": False})
            return None
        self._raise_for_status(response)

        products = self._json(response).get("products") or []
        logger.info("barcode.lookup", extra={"barcode": barcode, "found": bool(products)})
        if not products:
            return None
        return process_product(products[0], self._rng)

    async def search_products(
        self, query: str, search_type: SearchType = "search"
    ) -> list[ProcessedProduct]:
        """Search the catalogue by title, brand or free text."""
        if search_type not in ("title", "brand", "search"):
            raise ValidationAppError(
                code="barcode_invalid_search_type",
                message=f"Unsupported search type: {search_type}",
            )

        response = await self._get("/products", {search_type: query})
        self._raise_for_status(response)
        products = self._json(response).get("products") or []
        logger.info(
            "barcode.search",
            extra={"search_type": search_type, "results": len(products)},
        )
        return [process_product(p, self._rng) for p in products]

    async def get_rate_limits(self) -> dict[str, Any]:
        """Return the account's quota information as sent by the API."""
        response = await self._get("/rate-limits", {})
        self._raise_for_status(response)
        return self._json(response)

    def mock_product(self, barcode: str) -> ProcessedProduct:
        return generate_mock_product(barcode, self._rng)

    def fallback_product(self, barcode: str) -> ProcessedProduct:
        return generate_fallback_product(barcode, self._rng)

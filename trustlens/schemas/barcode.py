"""Pydantic schemas for barcode lookup responses."""

from __future__ import annotations

from pydantic import Field

from trustlens.schemas.scan import CamelModel


class StoreOffer(CamelModel):
    """A single retailer listing for a product."""

    name: str
    price: str
    currency: str | None = None
    availability: str | None = None
    link: str | None = None


class SocialProof(CamelModel):
    """Community signals shown next to a product.

    The lookup API provides no such data, so these values are generated.
    """

    friends_purchased: int = 0
    friends_recommend: int = 0
    location_popularity: int = 0
    trending_score: int = 0
    recent_activity: str | None = None


class ProcessedProduct(CamelModel):
    """Product reshaped from the Barcode Lookup API into the app's format."""

    id: str
    name: str
    price: str = Field(..., description="Best available price with currency symbol.")
    rating: float | None = Field(default=None, description="Average review rating.")
    reviews: int | None = Field(default=None, description="Number of reviews.")
    image: str | None = None
    barcode: str
    brand: str | None = None
    manufacturer: str | None = None
    category: str | None = None
    description: str | None = None
    features: list[str] | None = None
    stores: list[StoreOffer] | None = None
    social_proof: SocialProof | None = None
    is_unknown: bool = Field(
        default=False,
        description="True when the product is a placeholder for an unrecognized barcode.",
    )


class BarcodeLookupResponse(CamelModel):
    """Body of ``GET /v1/barcode-lookup``."""

    product: ProcessedProduct

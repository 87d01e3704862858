"""Produce listing models.

Prices are stored in paise (integer) to avoid floating point issues.
Rs 10.50 = 1050 paise.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl

from core.models.user import Location, SupportedLanguage


class ListingStatus(str, Enum):
    ACTIVE = "active"
    SOLD = "sold"
    EXPIRED = "expired"
    DRAFT = "draft"


class Quantity(BaseModel):
    amount: float = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=20)  # kg, quintal, dozen


class Price(BaseModel):
    amount_paise: int = Field(..., ge=0)
    currency: str = Field(default="INR", pattern=r"^INR$")
    unit: str = Field(..., min_length=1, max_length=20)  # per kg, per quintal

    @property
    def amount_rupees(self) -> float:
        return self.amount_paise / 100


class ListingCreate(BaseModel):
    """Data a seller provides to list produce."""

    product_name: str = Field(..., min_length=2, max_length=200)
    category_id: UUID
    description: str | None = Field(None, max_length=1000)
    quantity: Quantity
    asking_price: Price
    location: Location
    images: list[HttpUrl] = Field(default_factory=list, max_length=10)
    language: SupportedLanguage
    status: ListingStatus = ListingStatus.ACTIVE
    expires_at: datetime | None = None


class ListingUpdate(BaseModel):
    """Data that can be updated on a listing. All fields optional."""

    product_name: str | None = Field(None, min_length=2, max_length=200)
    category_id: UUID | None = None
    description: str | None = Field(None, max_length=1000)
    quantity: Quantity | None = None
    asking_price: Price | None = None
    location: Location | None = None
    images: list[HttpUrl] | None = Field(None, max_length=10)
    status: ListingStatus | None = None
    expires_at: datetime | None = None


class Listing(BaseModel):
    """Full listing as stored."""

    id: UUID
    seller_id: UUID
    product_name: str
    category_id: UUID
    description: str | None
    quantity: Quantity
    asking_price: Price
    location: Location
    images: list[str]
    language: SupportedLanguage
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    model_config = {"from_attributes": True}

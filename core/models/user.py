"""User account domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class SupportedLanguage(str, Enum):
    """Languages a user can pick for the interface and listings."""

    ENGLISH = "en"
    ASSAMESE = "as"
    BENGALI = "bn"
    BODO = "brx"
    DOGRI = "doi"
    GUJARATI = "gu"
    HINDI = "hi"
    KANNADA = "kn"
    KASHMIRI = "ks"
    KONKANI = "gom"
    MAITHILI = "mai"
    MALAYALAM = "ml"
    MANIPURI = "mni"
    MARATHI = "mr"
    NEPALI = "ne"
    ODIA = "or"
    PUNJABI = "pa"
    SANSKRIT = "sa"
    SANTALI = "sat"
    SINDHI = "sd"
    TAMIL = "ta"
    TELUGU = "te"
    URDU = "ur"


class UserType(str, Enum):
    """Marketplace role."""

    BUYER = "buyer"
    SELLER = "seller"
    BOTH = "both"


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Location(BaseModel):
    """Where a user or listing is. Stored as JSONB."""

    state: str = Field(..., min_length=1, max_length=100)
    district: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=r"^\d{6}$")
    coordinates: Coordinates | None = None


class UserRegistration(BaseModel):
    """Data required to register a user."""

    name: str = Field(..., min_length=2, max_length=100)
    phone_number: str
    location: Location
    preferred_language: SupportedLanguage
    user_type: UserType


class UserUpdate(BaseModel):
    """Profile fields a user can change. All optional; phone changes go through auth."""

    name: str | None = Field(None, min_length=2, max_length=100)
    location: Location | None = None
    preferred_language: SupportedLanguage | None = None
    user_type: UserType | None = None


class UserProfile(BaseModel):
    """Full user account as stored."""

    id: UUID
    name: str
    phone_number: str
    location: Location
    preferred_language: SupportedLanguage
    user_type: UserType
    reputation_score: float = Field(..., ge=0, le=5)
    is_verified: bool
    created_at: datetime
    updated_at: datetime
    last_active: datetime

    model_config = {"from_attributes": True}

"""Core domain models."""

from core.models.user import (
    Coordinates,
    Location,
    SupportedLanguage,
    UserProfile,
    UserRegistration,
    UserType,
    UserUpdate,
)
from core.models.category import Category, CategoryCreate, CategoryUpdate
from core.models.listing import (
    Listing,
    ListingCreate,
    ListingStatus,
    ListingUpdate,
    Price,
    Quantity,
)

__all__ = [
    # User
    "Coordinates", "Location", "SupportedLanguage", "UserProfile",
    "UserRegistration", "UserType", "UserUpdate",
    # Category
    "Category", "CategoryCreate", "CategoryUpdate",
    # Listing
    "Listing", "ListingCreate", "ListingStatus", "ListingUpdate", "Price", "Quantity",
]

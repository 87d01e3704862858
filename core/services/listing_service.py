"""
Listing service for produce listings.

Sellers create, edit and withdraw their own listings. Listings expire after
a default period and are swept to status "expired" by the cleanup job.
Search and ranking are not provided here.
"""

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.models import (
    Listing,
    ListingCreate,
    ListingStatus,
    ListingUpdate,
    Location,
    Price,
    Quantity,
    UserType,
)
from core.services.category_service import CategoryService
from core.services.user_service import UserService
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_DAYS = 30

_JSON_COLUMNS = {"quantity", "asking_price", "location", "images"}
_UPDATABLE_COLUMNS = {
    "product_name", "category_id", "description", "quantity",
    "asking_price", "location", "images", "status", "expires_at",
}


def listing_from_row(row: dict[str, Any]) -> Listing:
    """Map a listings row to Listing. Raises KeyError on a missing column."""
    return Listing(
        id=row["id"],
        seller_id=row["seller_id"],
        product_name=row["product_name"],
        category_id=row["category_id"],
        description=row["description"],
        quantity=Quantity.model_validate(row["quantity"]),
        asking_price=Price.model_validate(row["asking_price"]),
        location=Location.model_validate(row["location"]),
        images=list(row["images"] or []),
        language=row["language"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        expires_at=row["expires_at"],
    )


class ListingService:
    """Service for listing operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        user_service: UserService,
        category_service: CategoryService,
    ):
        self.postgres = postgres
        self.user_service = user_service
        self.category_service = category_service

    def create(self, seller_id: UUID, data: ListingCreate) -> Listing:
        """
        Create a listing for a seller.

        Raises:
            ValueError: Seller or category not found
            PermissionError: User is registered as a buyer only
        """
        seller = self.user_service.get_by_id(seller_id)
        if seller is None:
            raise ValueError(f"Seller {seller_id} not found")
        if seller.user_type == UserType.BUYER:
            raise PermissionError("Only sellers can create listings")

        if self.category_service.get_by_id(data.category_id) is None:
            raise ValueError(f"Category {data.category_id} not found")

        now = now_utc()
        expires_at = data.expires_at or now + timedelta(days=DEFAULT_EXPIRY_DAYS)
        fields = data.model_dump(mode="json")

        row = self.postgres.execute_returning(
            """
            INSERT INTO listings (
                id, seller_id, product_name, category_id, description,
                quantity, asking_price, location, images, language,
                status, created_at, updated_at, expires_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), seller_id, data.product_name, data.category_id, data.description,
                Json(fields["quantity"]), Json(fields["asking_price"]),
                Json(fields["location"]), Json(fields["images"]), data.language.value,
                data.status.value, now, now, expires_at,
            ),
        )[0]

        listing = listing_from_row(row)
        logger.info(f"Seller {seller_id} created listing {listing.id}")
        return listing

    def get_by_id(self, listing_id: UUID) -> Listing | None:
        row = self.postgres.execute_single(
            "SELECT * FROM listings WHERE id = %s",
            (listing_id,),
        )
        return listing_from_row(row) if row else None

    def list_for_seller(
        self,
        seller_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Listing]:
        """All of a seller's listings, newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM listings
            WHERE seller_id = %s
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            (seller_id, limit, offset),
        )
        return [listing_from_row(row) for row in rows]

    def list_active(
        self,
        category_id: UUID | None = None,
        state: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Listing]:
        """Active, unexpired listings, newest first, with optional filters."""
        conditions = ["status = %s", "expires_at > %s"]
        params: list[Any] = [ListingStatus.ACTIVE.value, now_utc()]

        if category_id is not None:
            conditions.append("category_id = %s")
            params.append(category_id)

        if state:
            conditions.append("location->>'state' = %s")
            params.append(state)

        params.extend([limit, offset])
        rows = self.postgres.execute(
            f"""
            SELECT * FROM listings
            WHERE {' AND '.join(conditions)}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params),
        )
        return [listing_from_row(row) for row in rows]

    def _owned(self, listing_id: UUID, seller_id: UUID) -> Listing:
        listing = self.get_by_id(listing_id)
        if listing is None:
            raise ValueError(f"Listing {listing_id} not found")
        if listing.seller_id != seller_id:
            raise PermissionError("Only the seller can modify this listing")
        return listing

    def update(self, listing_id: UUID, seller_id: UUID, data: ListingUpdate) -> Listing:
        """
        Update a listing owned by the seller.

        Raises:
            ValueError: Listing or new category not found
            PermissionError: Caller is not the listing's seller
        """
        current = self._owned(listing_id, seller_id)

        updates = {
            k: v for k, v in data.model_dump(mode="json", exclude_none=True).items()
            if k in _UPDATABLE_COLUMNS
        }
        if not updates:
            return current

        if "category_id" in updates and self.category_service.get_by_id(data.category_id) is None:
            raise ValueError(f"Category {data.category_id} not found")

        set_parts = []
        params = []
        for field, value in updates.items():
            set_parts.append(f"{field} = %s")
            params.append(Json(value) if field in _JSON_COLUMNS else value)

        set_parts.append("updated_at = %s")
        params.append(now_utc())
        params.append(listing_id)

        row = self.postgres.execute_returning(
            f"""
            UPDATE listings
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params),
        )[0]

        return listing_from_row(row)

    def delete(self, listing_id: UUID, seller_id: UUID) -> bool:
        """
        Delete a listing owned by the seller.

        Returns:
            True if deleted, False if not found

        Raises:
            PermissionError: Caller is not the listing's seller
        """
        try:
            self._owned(listing_id, seller_id)
        except ValueError:
            return False

        self.postgres.execute_returning(
            "DELETE FROM listings WHERE id = %s RETURNING id",
            (listing_id,),
        )
        return True

    def expire_old_listings(self) -> int:
        """Mark active listings past expires_at as expired. Returns count."""
        rows = self.postgres.execute_returning(
            """
            UPDATE listings
            SET status = %s, updated_at = %s
            WHERE status = %s AND expires_at < %s
            RETURNING id
            """,
            (ListingStatus.EXPIRED.value, now_utc(), ListingStatus.ACTIVE.value, now_utc()),
        )
        if rows:
            logger.info(f"Expired {len(rows)} listings")
        return len(rows)

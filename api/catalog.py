"""Category tree and listing routes.

GET routes are public; mutations require authentication.
"""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response, ErrorCodes
from api.errors import error_json
from core.models import CategoryCreate, CategoryUpdate, ListingCreate, ListingUpdate
from core.services.category_service import CategoryInUseError


def create_catalog_router(services: dict) -> APIRouter:
    router = APIRouter(tags=["catalog"])

    category_svc = services["category"]
    listing_svc = services["listing"]

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @router.get("/categories")
    async def list_categories(request: Request):
        categories = category_svc.list_all()
        return success_response(categories, request=request).model_dump(mode="json")

    # Registered before /categories/{category_id} so "hierarchy" is not parsed as an id
    @router.get("/categories/hierarchy")
    async def category_hierarchy(request: Request):
        tree = category_svc.get_hierarchy()
        return success_response(tree, request=request).model_dump(mode="json")

    @router.get("/categories/{category_id}")
    async def get_category(request: Request, category_id: UUID):
        category = category_svc.get_by_id(category_id)
        if category is None:
            raise ValueError(f"Category {category_id} not found")
        return success_response(category, request=request).model_dump(mode="json")

    @router.post("/categories")
    async def create_category(request: Request, body: CategoryCreate):
        category = category_svc.create(body)
        return success_response(category, request=request).model_dump(mode="json")

    @router.patch("/categories/{category_id}")
    async def update_category(request: Request, category_id: UUID, body: CategoryUpdate):
        category = category_svc.update(category_id, body)
        return success_response(category, request=request).model_dump(mode="json")

    @router.delete("/categories/{category_id}")
    async def delete_category(request: Request, category_id: UUID):
        try:
            deleted = category_svc.delete(category_id)
        except CategoryInUseError as e:
            return error_json(ErrorCodes.CATEGORY_IN_USE, str(e), request)
        if not deleted:
            raise ValueError(f"Category {category_id} not found")
        return success_response({"deleted": True}, request=request).model_dump(mode="json")

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    @router.get("/listings")
    async def list_active_listings(
        request: Request,
        category_id: UUID | None = Query(None),
        state: str | None = Query(None),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        listings = listing_svc.list_active(category_id, state, limit, offset)
        return success_response(listings, request=request).model_dump(mode="json")

    @router.get("/listings/{listing_id}")
    async def get_listing(request: Request, listing_id: UUID):
        listing = listing_svc.get_by_id(listing_id)
        if listing is None:
            raise ValueError(f"Listing {listing_id} not found")
        return success_response(listing, request=request).model_dump(mode="json")

    @router.post("/listings")
    async def create_listing(request: Request, body: ListingCreate):
        listing = listing_svc.create(request.state.user_id, body)
        return success_response(listing, request=request).model_dump(mode="json")

    @router.patch("/listings/{listing_id}")
    async def update_listing(request: Request, listing_id: UUID, body: ListingUpdate):
        listing = listing_svc.update(listing_id, request.state.user_id, body)
        return success_response(listing, request=request).model_dump(mode="json")

    @router.delete("/listings/{listing_id}")
    async def delete_listing(request: Request, listing_id: UUID):
        deleted = listing_svc.delete(listing_id, request.state.user_id)
        if not deleted:
            raise ValueError(f"Listing {listing_id} not found")
        return success_response({"deleted": True}, request=request).model_dump(mode="json")

    return router

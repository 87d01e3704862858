"""User profile routes. All require authentication."""

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.models import UserUpdate


def create_users_router(services: dict) -> APIRouter:
    router = APIRouter(tags=["users"])

    user_svc = services["user"]
    listing_svc = services["listing"]

    @router.get("/users/me")
    async def get_me(request: Request):
        user = user_svc.get_by_id(request.state.user_id)
        if user is None:
            raise ValueError("User not found")
        return success_response(user, request=request).model_dump(mode="json")

    @router.patch("/users/me")
    async def update_me(request: Request, body: UserUpdate):
        user = user_svc.update(request.state.user_id, body)
        return success_response(
            user, "Profile updated", request=request
        ).model_dump(mode="json")

    @router.get("/users/me/listings")
    async def my_listings(
        request: Request,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        listings = listing_svc.list_for_seller(request.state.user_id, limit, offset)
        return success_response(listings, request=request).model_dump(mode="json")

    return router

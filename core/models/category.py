"""Produce category tree models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    parent_id: UUID | None = None


class CategoryUpdate(BaseModel):
    """All fields optional. parent_id=None leaves the parent unchanged."""

    name: str | None = Field(None, min_length=1, max_length=100)
    parent_id: UUID | None = None


class Category(BaseModel):
    """A category with its (possibly empty) subtree."""

    id: UUID
    name: str
    parent_id: UUID | None = None
    created_at: datetime
    subcategories: list["Category"] = Field(default_factory=list)

    model_config = {"from_attributes": True}

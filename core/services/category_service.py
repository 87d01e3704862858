"""
Category service for the produce category tree.

Categories form a forest: root categories have no parent, and any category
can have subcategories to arbitrary depth. Moves that would create a cycle
are rejected, and a category in use cannot be deleted.
"""

import logging
from typing import Any
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.models import Category, CategoryCreate, CategoryUpdate
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CategoryInUseError(ValueError):
    """Category still has subcategories or listings."""


def category_from_row(row: dict[str, Any]) -> Category:
    """Map a categories row to Category (without subcategories)."""
    return Category(
        id=row["id"],
        name=row["name"],
        parent_id=row["parent_id"],
        created_at=row["created_at"],
    )


class CategoryService:
    """Service for category tree operations."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create(self, data: CategoryCreate) -> Category:
        """
        Create a category, optionally under a parent.

        Raises:
            ValueError: If the parent does not exist
        """
        if data.parent_id is not None and self._get_row(data.parent_id) is None:
            raise ValueError(f"Parent category {data.parent_id} not found")

        row = self.postgres.execute_returning(
            """
            INSERT INTO categories (id, name, parent_id, created_at)
            VALUES (%s, %s, %s, %s)
            RETURNING *
            """,
            (uuid4(), data.name, data.parent_id, now_utc()),
        )[0]

        category = category_from_row(row)
        logger.info(f"Created category {category.id} ({category.name})")
        return category

    def _get_row(self, category_id: UUID) -> dict[str, Any] | None:
        return self.postgres.execute_single(
            "SELECT * FROM categories WHERE id = %s",
            (category_id,),
        )

    def get_by_id(self, category_id: UUID) -> Category | None:
        """Category with its direct subcategories, or None."""
        row = self._get_row(category_id)
        if row is None:
            return None

        category = category_from_row(row)
        children = self.postgres.execute(
            "SELECT * FROM categories WHERE parent_id = %s ORDER BY name ASC",
            (category_id,),
        )
        category.subcategories = [category_from_row(child) for child in children]
        return category

    def list_all(self) -> list[Category]:
        """Every category, flat, ordered by name."""
        rows = self.postgres.execute("SELECT * FROM categories ORDER BY name ASC")
        return [category_from_row(row) for row in rows]

    def get_hierarchy(self) -> list[Category]:
        """
        Full tree from one query.

        Returns:
            Root categories, each with nested subcategories, ordered by name
            at every level.
        """
        categories = self.list_all()
        by_id = {category.id: category for category in categories}

        roots = []
        for category in categories:
            parent = by_id.get(category.parent_id) if category.parent_id else None
            if parent is None:
                roots.append(category)
            else:
                parent.subcategories.append(category)
        return roots

    def _is_descendant(self, candidate_id: UUID, ancestor_id: UUID) -> bool:
        """True if ancestor_id appears on candidate_id's path to the root."""
        seen = set()
        current = candidate_id
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            row = self._get_row(current)
            current = row["parent_id"] if row else None
        return False

    def update(self, category_id: UUID, data: CategoryUpdate) -> Category:
        """
        Rename or move a category.

        Raises:
            ValueError: Category or new parent not found, or the move would
                make the category its own ancestor
        """
        current = self._get_row(category_id)
        if current is None:
            raise ValueError(f"Category {category_id} not found")

        updates = data.model_dump(exclude_none=True)
        if not updates:
            return category_from_row(current)

        if "parent_id" in updates:
            parent_id = updates["parent_id"]
            if parent_id == category_id:
                raise ValueError("Category cannot be its own parent")
            if self._get_row(parent_id) is None:
                raise ValueError(f"Parent category {parent_id} not found")
            if self._is_descendant(parent_id, category_id):
                raise ValueError("Category cannot be moved under its own subcategory")

        set_parts = [f"{field} = %s" for field in updates]
        params = list(updates.values()) + [category_id]

        row = self.postgres.execute_returning(
            f"""
            UPDATE categories
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params),
        )[0]

        return category_from_row(row)

    def delete(self, category_id: UUID) -> bool:
        """
        Delete a category.

        Returns:
            True if deleted, False if not found

        Raises:
            CategoryInUseError: Category has subcategories or listings
        """
        if self._get_row(category_id) is None:
            return False

        children = self.postgres.execute_scalar(
            "SELECT count(*) FROM categories WHERE parent_id = %s",
            (category_id,),
        )
        if children:
            raise CategoryInUseError("Cannot delete a category that has subcategories")

        listings = self.postgres.execute_scalar(
            "SELECT count(*) FROM listings WHERE category_id = %s",
            (category_id,),
        )
        if listings:
            raise CategoryInUseError("Cannot delete a category that has listings")

        self.postgres.execute_returning(
            "DELETE FROM categories WHERE id = %s RETURNING id",
            (category_id,),
        )
        logger.info(f"Deleted category {category_id}")
        return True

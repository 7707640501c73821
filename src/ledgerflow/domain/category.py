"""Category domain service."""

from decimal import Decimal
from typing import Any, Optional
from ledgerflow.database.base import Database
from ledgerflow.domain.entities import Category as CategoryEntity
from ledgerflow.domain.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    category_not_found,
    category_path_not_found,
)


class CategoryService:
    """Service for managing envelope categories."""

    def __init__(self, db: Database):
        """Initialize category service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_category(
        self,
        name: str,
        parent_path: Optional[str] = None,
        initial_balance: Decimal = Decimal("0"),
    ) -> int:
        """Create a category.

        Args:
            name: Category name
            parent_path: Optional parent category path (e.g., "Food & Dining")
            initial_balance: Opening envelope balance

        Returns:
            Category ID

        Raises:
            NotFoundError: If parent category doesn't exist
            ConflictError: If a sibling already has this name
        """
        parent_id = None
        if parent_path is not None:
            parent = self.db.get_category_by_path(parent_path)
            if parent is None:
                raise NotFoundError(f"Parent category '{parent_path}' not found")
            parent_id = parent.id

        for sibling in self.db.list_categories(parent_id=parent_id):
            if sibling.name == name:
                raise ConflictError(f"Category '{name}' already exists here")

        return self.db.create_category(name=name, parent_id=parent_id, initial_balance=initial_balance)

    def get_category(self, category_id: int) -> Optional[CategoryEntity]:
        """Get category by ID."""
        return self.db.get_category(category_id)

    def get_category_by_path(self, path: str) -> Optional[CategoryEntity]:
        """Get category by path.

        Args:
            path: Category path (e.g., "Food & Dining > Groceries")

        Returns:
            Category or None if not found
        """
        return self.db.get_category_by_path(path)

    def resolve_category(self, ref: str | int) -> CategoryEntity:
        """Resolve a category ID or path.

        Raises:
            NotFoundError: If nothing matches
        """
        if isinstance(ref, int) or str(ref).isdigit():
            category = self.db.get_category(int(ref))
            if category is None:
                raise NotFoundError(category_not_found(int(ref)))
            return category
        category = self.db.get_category_by_path(str(ref))
        if category is None:
            raise NotFoundError(category_path_not_found(str(ref)))
        return category

    def list_categories(self, parent_id: Optional[int] = None) -> list[CategoryEntity]:
        """List categories.

        Args:
            parent_id: Optional parent category ID to filter by

        Returns:
            List of categories (root categories when parent_id is None)
        """
        return self.db.list_categories(parent_id=parent_id)

    def get_category_tree(self) -> list[dict[str, Any]]:
        """Get full category tree.

        Returns:
            List of root categories with nested children
        """
        return self.db.get_category_tree()

    def format_category_path(self, category_id: int) -> str:
        """Get full path for a category.

        Args:
            category_id: Category ID

        Returns:
            Full category path (e.g., "Food & Dining > Groceries")
        """
        cat = self.get_category(category_id)
        if cat is None:
            return ""

        path_parts = [cat.name]
        current_parent_id = cat.parent_id

        while current_parent_id is not None:
            parent = self.get_category(current_parent_id)
            if parent is None:
                break
            path_parts.append(parent.name)
            current_parent_id = parent.parent_id

        return " > ".join(reversed(path_parts))

    def delete_category(self, category_id: int) -> None:
        """Delete a category without children or splits.

        Raises:
            NotFoundError: If category not found
            DependencyError: If subcategories or transaction splits reference it
        """
        if self.db.get_category(category_id) is None:
            raise NotFoundError(category_not_found(category_id))
        children = self.db.list_categories(parent_id=category_id)
        if children:
            raise DependencyError(
                f"Cannot delete category {category_id}: it has {len(children)} subcategor"
                f"{'ies' if len(children) != 1 else 'y'}"
            )
        split_count = self.db.get_category_split_count(category_id)
        if split_count:
            raise DependencyError(
                f"Cannot delete category {category_id}: it has {split_count} "
                f"transaction split{'s' if split_count != 1 else ''}"
            )
        self.db.delete_category(category_id)

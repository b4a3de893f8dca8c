"""
Category management.
"""
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth.policy import Action, Collection, policy
from core.exceptions import NotFound, ValidationFailure
from core.logger import logger
from database.models import Category, Resource
import config

UNCATEGORIZED = "Uncategorized"


class CategoryService:
    """Categories are readable by any signed-in principal and managed by teachers and admins."""

    @staticmethod
    def list_categories(db: Session, principal_id: Optional[str]) -> List[Category]:
        policy.enforce(db, principal_id, Collection.CATEGORY, Action.SELECT)
        return db.query(Category).order_by(Category.name).all()

    @staticmethod
    def get_category(db: Session, principal_id: Optional[str], category_id: str) -> Category:
        policy.enforce(db, principal_id, Collection.CATEGORY, Action.SELECT)
        category = db.get(Category, category_id)
        if category is None:
            raise NotFound("Category not found")
        return category

    @staticmethod
    def _check_name_free(db: Session, name: str, exclude_id: Optional[str] = None):
        if name.lower() == UNCATEGORIZED.lower():
            raise ValidationFailure(f"'{UNCATEGORIZED}' is reserved for resources without a category")
        query = db.query(Category).filter(func.lower(Category.name) == name.lower())
        if exclude_id:
            query = query.filter(Category.id != exclude_id)
        if query.first():
            raise ValidationFailure(f"Category '{name}' already exists")

    @staticmethod
    def _commit_name(db: Session, name: str):
        try:
            db.commit()
        except IntegrityError:
            # A concurrent create or rename took the name after the check
            db.rollback()
            raise ValidationFailure(f"Category '{name}' already exists")

    @staticmethod
    def create_category(
        db: Session,
        principal_id: Optional[str],
        name: str,
        description: Optional[str] = None
    ) -> Category:
        policy.enforce(db, principal_id, Collection.CATEGORY, Action.INSERT)
        name = (name or "").strip()
        if not name:
            raise ValidationFailure("Category name is required")
        CategoryService._check_name_free(db, name)

        category = Category(name=name, description=description)
        db.add(category)
        CategoryService._commit_name(db, name)
        db.refresh(category)
        logger.info(f"Created category: {name} (by {principal_id})")
        return category

    @staticmethod
    def update_category(
        db: Session,
        principal_id: Optional[str],
        category_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Category:
        category = CategoryService.get_category(db, principal_id, category_id)
        policy.enforce(db, principal_id, Collection.CATEGORY, Action.UPDATE, row=category)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationFailure("Category name is required")
            CategoryService._check_name_free(db, name, exclude_id=category.id)
            category.name = name
        if description is not None:
            category.description = description
        CategoryService._commit_name(db, category.name)
        db.refresh(category)
        return category

    @staticmethod
    def delete_category(db: Session, principal_id: Optional[str], category_id: str) -> int:
        """
        Delete a category. Its resources stay in the catalog with no category.

        Returns:
            Number of resources that became uncategorized
        """
        category = CategoryService.get_category(db, principal_id, category_id)
        policy.enforce(db, principal_id, Collection.CATEGORY, Action.DELETE, row=category)

        affected = db.query(func.count(Resource.id)).filter(
            Resource.category_id == category.id
        ).scalar() or 0
        # Null out explicitly so backends without FK enforcement behave the same
        db.query(Resource).filter(Resource.category_id == category.id).update(
            {Resource.category_id: None}, synchronize_session=False
        )
        db.delete(category)
        db.commit()
        logger.info(f"Deleted category {category_id}; {affected} resource(s) now {UNCATEGORIZED}")
        return affected

    @staticmethod
    def seed_default_categories(db: Session) -> int:
        """Insert the configured default categories that are missing. Startup only."""
        existing = {name.lower() for (name,) in db.query(Category.name).all()}
        created = 0
        for name, description in config.DEFAULT_CATEGORIES:
            if name.lower() in existing:
                continue
            db.add(Category(name=name, description=description))
            created += 1
        if created:
            db.commit()
            logger.info(f"Seeded {created} default categories")
        return created

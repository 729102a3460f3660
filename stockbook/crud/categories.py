from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..core.errors import DuplicateError, FieldValidationError
from ..models.category import Category
from ..models.product import Product

logger = logging.getLogger(__name__)


def normalize_name(name: str | None) -> str:
    return (name or "").strip().lower()


def list_categories(db: Session) -> list[Category]:
    return db.execute(select(Category).order_by(Category.name)).scalars().all()


def get_category(db: Session, category_id: str) -> Category | None:
    return db.get(Category, category_id)


def get_category_by_name(db: Session, name: str) -> Category | None:
    stmt = select(Category).where(Category.name == normalize_name(name))
    return db.execute(stmt).scalars().first()


def _validated(db: Session, name: str | None, current_id: str | None = None) -> str:
    cleaned = normalize_name(name)
    if not cleaned:
        raise FieldValidationError({"name": "Category name is required"})
    existing = get_category_by_name(db, cleaned)
    if existing is not None and existing.id != current_id:
        raise DuplicateError(f"Category {cleaned!r} already exists")
    return cleaned


def create_category(db: Session, name: str) -> Category:
    category = Category(name=_validated(db, name))
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def rename_category(db: Session, category: Category, name: str) -> Category:
    category.name = _validated(db, name, category.id)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category: Category) -> None:
    """Drop the category; its products keep their display name but lose the link."""

    category_id = category.id
    db.execute(update(Product).where(Product.category_id == category_id).values(category_id=None))
    db.delete(category)
    db.commit()
    logger.info("category.deleted", extra={"extra_data": {"category_id": category_id}})

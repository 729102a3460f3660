"""Product CRUD helpers.

Payloads are plain dicts (what ``model_dump`` returns) so the importer and
the API share one code path. Stock only moves through ``restock_product``,
the client ledger, or an explicit manual correction in ``update_product``.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import settings
from ..core.errors import ConcurrentUpdateError, DuplicateError, FieldValidationError
from ..models.category import Category
from ..models.client import Client
from ..models.product import Product

logger = logging.getLogger(__name__)

STOCK_FILTERS = ("all", "in-stock", "low-stock", "out-of-stock")
PRICE_FIELDS = ("purchase_price", "selling_price", "rent_price")
COUNTER_FIELDS = ("stock_actuel", "hardware_total")


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _check_numbers(payload: dict[str, Any], errors: dict[str, str]) -> None:
    for field in PRICE_FIELDS:
        value = payload.get(field)
        if value is None:
            continue
        try:
            amount = float(value)
        except (TypeError, ValueError):
            errors[field] = "Must be a number"
            continue
        if amount < 0:
            errors[field] = "Must be a non-negative number"
    for field in COUNTER_FIELDS:
        value = payload.get(field)
        if value is None:
            continue
        try:
            count = int(value)
        except (TypeError, ValueError):
            errors[field] = "Must be a whole number"
            continue
        if count < 0:
            errors[field] = "Cannot be negative"


def _check_version(product: Product, expected_version: int | None) -> None:
    if expected_version is not None and int(expected_version) != product.version:
        raise ConcurrentUpdateError(f"Product {product.id} was modified by someone else")


def _resolve_category(db: Session, payload: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return ``(category_id, display name)`` for the payload's category fields."""

    category_id = _clean_text(payload.get("category_id"))
    display = _clean_text(payload.get("category"))
    if category_id:
        category = db.get(Category, category_id)
        if category is None:
            raise FieldValidationError({"category_id": "Unknown category"})
        return category.id, display or category.name
    if display:
        match = db.execute(select(Category).where(Category.name == display.lower())).scalars().first()
        if match is not None:
            return match.id, display
    return None, display


def _commit(db: Session, product: Product) -> Product:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateError(f"Product code {product.code!r} already exists") from exc
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentUpdateError(f"Product {product.id} was modified by someone else") from exc
    db.refresh(product)
    return product


def get_product(db: Session, product_id: str) -> Product | None:
    return db.get(Product, product_id)


def get_product_by_code(db: Session, code: str) -> Product | None:
    stmt = select(Product).where(Product.code == code.strip())
    return db.execute(stmt).scalars().first()


def find_product_by_name(db: Session, name: str) -> Product | None:
    """Case-insensitive exact name match, used by the client importer."""

    stmt = select(Product).where(func.lower(Product.name) == name.strip().lower()).order_by(Product.created_at)
    return db.execute(stmt).scalars().first()


def list_products(
    db: Session,
    *,
    search: str | None = None,
    stock_filter: str = "all",
    category_id: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[Product]:
    if stock_filter not in STOCK_FILTERS:
        raise FieldValidationError({"stock_filter": f"Must be one of {', '.join(STOCK_FILTERS)}"})

    stmt = select(Product)
    term = _clean_text(search)
    if term:
        like = f"%{term.lower()}%"
        stmt = stmt.where(or_(func.lower(Product.code).like(like), func.lower(Product.name).like(like)))
    if category_id:
        stmt = stmt.where(Product.category_id == category_id)

    threshold = settings.LOW_STOCK_THRESHOLD
    if stock_filter == "in-stock":
        stmt = stmt.where(Product.stock_actuel > 0)
    elif stock_filter == "low-stock":
        stmt = stmt.where(Product.stock_actuel > 0, Product.stock_actuel < threshold)
    elif stock_filter == "out-of-stock":
        stmt = stmt.where(Product.stock_actuel <= 0)

    stmt = stmt.order_by(Product.name, Product.code).offset(offset)
    if limit:
        stmt = stmt.limit(limit)
    return db.execute(stmt).scalars().all()


def create_product(db: Session, payload: dict[str, Any]) -> Product:
    errors: dict[str, str] = {}
    code = _clean_text(payload.get("code"))
    name = _clean_text(payload.get("name"))
    if not code:
        errors["code"] = "Product code is required"
    if not name:
        errors["name"] = "Product name is required"
    _check_numbers(payload, errors)
    if errors:
        raise FieldValidationError(errors)
    if get_product_by_code(db, code) is not None:
        raise DuplicateError(f"Product code {code!r} already exists")

    category_id, category = _resolve_category(db, payload)
    product = Product(
        code=code,
        name=name,
        category_id=category_id,
        category=category or settings.DEFAULT_CATEGORY,
        purchase_price=float(payload.get("purchase_price") or 0),
        selling_price=float(payload.get("selling_price") or 0),
        rent_price=float(payload.get("rent_price") or 0),
        stock_actuel=int(payload.get("stock_actuel") or 0),
        hardware_total=int(payload.get("hardware_total") or 0),
    )
    db.add(product)
    _commit(db, product)
    logger.info(
        "product.created",
        extra={"extra_data": {"product_id": product.id, "code": product.code, "stock_actuel": product.stock_actuel}},
    )
    return product


def update_product(db: Session, product: Product, payload: dict[str, Any]) -> Product:
    """Apply a partial update. Client assignment price snapshots are left alone."""

    _check_version(product, payload.get("expected_version"))
    errors: dict[str, str] = {}
    if "code" in payload and payload["code"] is not None and not _clean_text(payload["code"]):
        errors["code"] = "Product code is required"
    if "name" in payload and payload["name"] is not None and not _clean_text(payload["name"]):
        errors["name"] = "Product name is required"
    _check_numbers(payload, errors)
    if errors:
        raise FieldValidationError(errors)

    code = _clean_text(payload.get("code"))
    if code and code != product.code:
        existing = get_product_by_code(db, code)
        if existing is not None and existing.id != product.id:
            raise DuplicateError(f"Product code {code!r} already exists")
        product.code = code
    name = _clean_text(payload.get("name"))
    if name:
        product.name = name
    if "category_id" in payload or "category" in payload:
        category_id, category = _resolve_category(db, payload)
        product.category_id = category_id
        product.category = category or settings.DEFAULT_CATEGORY
    for field in PRICE_FIELDS:
        if payload.get(field) is not None:
            setattr(product, field, float(payload[field]))

    corrections = {field: int(payload[field]) for field in COUNTER_FIELDS if payload.get(field) is not None}
    for field, value in corrections.items():
        setattr(product, field, value)
    _commit(db, product)
    if corrections:
        logger.info(
            "product.corrected",
            extra={"extra_data": {"product_id": product.id, **corrections}},
        )
    return product


def restock_product(db: Session, product: Product, quantity: int, expected_version: int | None = None) -> Product:
    """Add received units to the shelf."""

    if int(quantity) <= 0:
        raise FieldValidationError({"quantity": "Quantity must be a positive number"})
    _check_version(product, expected_version)
    product.stock_actuel = int(product.stock_actuel or 0) + int(quantity)
    _commit(db, product)
    logger.info(
        "product.restocked",
        extra={"extra_data": {"product_id": product.id, "quantity": int(quantity), "stock_actuel": product.stock_actuel}},
    )
    return product


def clients_holding(db: Session, product_id: str) -> list[Client]:
    holders = []
    for client in db.execute(select(Client)).scalars():
        if any(str(item.get("productId")) == product_id for item in client.assignments):
            holders.append(client)
    return holders


def delete_product(db: Session, product: Product) -> None:
    holders = clients_holding(db, product.id)
    if holders:
        names = ", ".join(sorted(client.client_name for client in holders))
        raise FieldValidationError({"product": f"Product is still assigned to: {names}"})
    details = {"product_id": product.id, "code": product.code}
    db.delete(product)
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentUpdateError(f"Product {details['product_id']} was modified by someone else") from exc
    except Exception:
        db.rollback()
        raise
    logger.info("product.deleted", extra={"extra_data": details})


__all__ = [
    "STOCK_FILTERS",
    "clients_holding",
    "create_product",
    "delete_product",
    "find_product_by_name",
    "get_product",
    "get_product_by_code",
    "list_products",
    "restock_product",
    "update_product",
]

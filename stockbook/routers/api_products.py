from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..core.errors import as_http_error
from ..crud.products import (
    create_product,
    delete_product,
    get_product,
    list_products,
    restock_product,
    update_product,
)
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.product import ProductCreate, ProductOut, ProductRestock, ProductUpdate, StockFilter

router = APIRouter(prefix="/api/v1/products", tags=["products"], dependencies=[Depends(require_api_access)])


def _load(db: Session, product_id: str):
    product = get_product(db, product_id)
    if not product:
        raise HTTPException(404, "Not found")
    return product


@router.get("", response_model=list[ProductOut])
def api_list(
    search: Optional[str] = None,
    stock: StockFilter = Query(default="all"),
    category_id: Optional[str] = None,
    limit: int = Query(default=0, ge=0),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return list_products(db, search=search, stock_filter=stock, category_id=category_id, limit=limit, offset=offset)


@router.get("/{product_id}", response_model=ProductOut)
def api_get(product_id: str, db: Session = Depends(get_db)):
    return _load(db, product_id)


@router.post("", response_model=ProductOut, status_code=201)
def api_create(payload: ProductCreate, db: Session = Depends(get_db)):
    try:
        return create_product(db, payload.model_dump())
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.patch("/{product_id}", response_model=ProductOut)
def api_update(product_id: str, payload: ProductUpdate, db: Session = Depends(get_db)):
    product = _load(db, product_id)
    data = payload.model_dump(exclude_unset=True)
    if not data:
        return product
    try:
        return update_product(db, product, data)
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.post("/{product_id}/restock", response_model=ProductOut)
def api_restock(product_id: str, payload: ProductRestock, db: Session = Depends(get_db)):
    product = _load(db, product_id)
    try:
        return restock_product(db, product, payload.quantity, payload.expected_version)
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.delete("/{product_id}")
def api_delete(product_id: str, db: Session = Depends(get_db)):
    product = _load(db, product_id)
    try:
        delete_product(db, product)
    except ValueError as exc:
        raise as_http_error(exc) from exc
    return {"status": "deleted"}

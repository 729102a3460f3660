from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.errors import as_http_error
from ..crud.categories import create_category, delete_category, get_category, list_categories, rename_category
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.category import CategoryIn, CategoryOut

router = APIRouter(prefix="/api/v1/categories", tags=["categories"], dependencies=[Depends(require_api_access)])


@router.get("", response_model=list[CategoryOut])
def api_list(db: Session = Depends(get_db)):
    return list_categories(db)


@router.post("", response_model=CategoryOut, status_code=201)
def api_create(payload: CategoryIn, db: Session = Depends(get_db)):
    try:
        return create_category(db, payload.name)
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.patch("/{category_id}", response_model=CategoryOut)
def api_rename(category_id: str, payload: CategoryIn, db: Session = Depends(get_db)):
    category = get_category(db, category_id)
    if not category:
        raise HTTPException(404, "Not found")
    try:
        return rename_category(db, category, payload.name)
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.delete("/{category_id}")
def api_delete(category_id: str, db: Session = Depends(get_db)):
    category = get_category(db, category_id)
    if not category:
        raise HTTPException(404, "Not found")
    delete_category(db, category)
    return {"status": "deleted"}

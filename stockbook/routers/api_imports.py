from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ..core.errors import as_http_error
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.imports import ImportReport
from ..services.file_import import import_clients, import_products, parse_clients_file, parse_products_file

router = APIRouter(prefix="/api/v1/imports", tags=["imports"], dependencies=[Depends(require_api_access)])


def _report(parsed, outcome) -> dict:
    report = outcome.as_dict()
    report["row_errors"] = parsed.errors
    report["failed"] += len(parsed.errors)
    return report


@router.post("/products", response_model=ImportReport)
async def api_import_products(file: UploadFile = File(...), db: Session = Depends(get_db)):
    content = await file.read()
    try:
        parsed = parse_products_file(file.filename or "", content)
    except ValueError as exc:
        raise as_http_error(exc) from exc
    return _report(parsed, import_products(db, parsed.items))


@router.post("/clients", response_model=ImportReport)
async def api_import_clients(file: UploadFile = File(...), db: Session = Depends(get_db)):
    content = await file.read()
    try:
        parsed = parse_clients_file(file.filename or "", content)
    except ValueError as exc:
        raise as_http_error(exc) from exc
    return _report(parsed, import_clients(db, parsed.items))

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ..deps.auth import require_api_access
from ..services.templates import XLSX_MEDIA_TYPE, client_template, product_template, template_filename

router = APIRouter(prefix="/api/v1/templates", tags=["imports"], dependencies=[Depends(require_api_access)])


def _download(buffer, kind: str) -> StreamingResponse:
    headers = {"Content-Disposition": f'attachment; filename="{template_filename(kind)}"'}
    return StreamingResponse(buffer, media_type=XLSX_MEDIA_TYPE, headers=headers)


@router.get("/products.xlsx")
def api_product_template():
    return _download(product_template(), "products")


@router.get("/clients.xlsx")
def api_client_template():
    return _download(client_template(), "clients")

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.errors import as_http_error
from ..crud.clients import (
    client_metrics,
    create_client,
    delete_client,
    get_client,
    list_clients,
    preview_client,
    update_client,
)
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.client import (
    ClientCreate,
    ClientMetricsOut,
    ClientOut,
    ClientPreviewOut,
    ClientPreviewRequest,
    ClientStatus,
    ClientUpdate,
)

router = APIRouter(prefix="/api/v1/clients", tags=["clients"], dependencies=[Depends(require_api_access)])


def _load(db: Session, client_id: str):
    client = get_client(db, client_id)
    if not client:
        raise HTTPException(404, "Not found")
    return client


def _payload(model) -> dict:
    # Assignment lines keep their snake_case keys; crud accepts both spellings.
    return model.model_dump(exclude_unset=True)


@router.get("", response_model=list[ClientOut])
def api_list(status: Optional[ClientStatus] = None, search: Optional[str] = None, db: Session = Depends(get_db)):
    return list_clients(db, status=status, search=search)


@router.post("/preview", response_model=ClientPreviewOut)
def api_preview(payload: ClientPreviewRequest, db: Session = Depends(get_db)):
    data = _payload(payload)
    client_id = data.pop("client_id", None)
    client = _load(db, client_id) if client_id else None
    if client is None:
        data.setdefault("products", [])
    try:
        plan = preview_client(db, data, client)
    except ValueError as exc:
        raise as_http_error(exc) from exc
    return {
        "installation_amount": plan.totals.installation_amount,
        "total_monthly_fee": plan.totals.total_monthly_fee,
        "total_product_quantity": plan.totals.total_product_quantity,
        "hardware_price": plan.values["hardware_price"],
        "total_sold_amount": plan.values["total_sold_amount"],
        "monthly_fee": plan.values["monthly_fee"],
        "profit_one_shot": plan.payoff.profit_one_shot,
        "net_month1": plan.payoff.net_month1,
        "months_left": plan.values["months_left"],
        "stock_changes": [asdict(change) for change in plan.stock_changes],
    }


@router.get("/{client_id}", response_model=ClientOut)
def api_get(client_id: str, db: Session = Depends(get_db)):
    return _load(db, client_id)


@router.get("/{client_id}/metrics", response_model=ClientMetricsOut)
def api_metrics(client_id: str, today: Optional[date] = None, db: Session = Depends(get_db)):
    client = _load(db, client_id)
    metrics = client_metrics(client, today=today)
    return {"client_id": client.id, "client_name": client.client_name, **metrics.as_dict()}


@router.post("", response_model=ClientOut, status_code=201)
def api_create(payload: ClientCreate, db: Session = Depends(get_db)):
    data = _payload(payload)
    data.setdefault("products", [])
    try:
        return create_client(db, data)
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.patch("/{client_id}", response_model=ClientOut)
def api_update(client_id: str, payload: ClientUpdate, db: Session = Depends(get_db)):
    client = _load(db, client_id)
    data = _payload(payload)
    if not data:
        return client
    try:
        return update_client(db, client, data)
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.delete("/{client_id}")
def api_delete(client_id: str, db: Session = Depends(get_db)):
    client = _load(db, client_id)
    try:
        delete_client(db, client)
    except ValueError as exc:
        raise as_http_error(exc) from exc
    return {"status": "deleted"}

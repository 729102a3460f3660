from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.errors import as_http_error
from ..crud.commissions import (
    create_commission,
    delete_commission,
    get_commission,
    list_commissions,
    total_commissions,
    update_commission,
)
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.commission import CommissionIn, CommissionList, CommissionOut

router = APIRouter(prefix="/api/v1/commissions", tags=["commissions"], dependencies=[Depends(require_api_access)])


@router.get("", response_model=CommissionList)
def api_list(db: Session = Depends(get_db)):
    return {"commissions": list_commissions(db), "total": total_commissions(db)}


@router.post("", response_model=CommissionOut, status_code=201)
def api_create(payload: CommissionIn, db: Session = Depends(get_db)):
    try:
        return create_commission(db, payload.model_dump())
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.put("/{commission_id}", response_model=CommissionOut)
def api_update(commission_id: str, payload: CommissionIn, db: Session = Depends(get_db)):
    commission = get_commission(db, commission_id)
    if not commission:
        raise HTTPException(404, "Not found")
    try:
        return update_commission(db, commission, payload.model_dump())
    except ValueError as exc:
        raise as_http_error(exc) from exc


@router.delete("/{commission_id}")
def api_delete(commission_id: str, db: Session = Depends(get_db)):
    commission = get_commission(db, commission_id)
    if not commission:
        raise HTTPException(404, "Not found")
    delete_commission(db, commission)
    return {"status": "deleted"}

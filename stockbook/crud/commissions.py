from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.errors import FieldValidationError
from ..models.commission import Commission
from ..services.financials import parse_date


def _month(value: Any) -> str:
    parsed = parse_date(value)
    if parsed is None:
        raise FieldValidationError({"month": "Must be an ISO date"})
    return date(parsed.year, parsed.month, 1).isoformat()


def _amount(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise FieldValidationError({"amount": "Must be a number"}) from None
    if amount < 0:
        raise FieldValidationError({"amount": "Must be a non-negative number"})
    return amount


def list_commissions(db: Session) -> list[Commission]:
    stmt = select(Commission).order_by(Commission.month.desc(), Commission.created_at.desc())
    return db.execute(stmt).scalars().all()


def get_commission(db: Session, commission_id: str) -> Commission | None:
    return db.get(Commission, commission_id)


def total_commissions(db: Session) -> float:
    return float(db.execute(select(func.coalesce(func.sum(Commission.amount), 0))).scalar() or 0)


def create_commission(db: Session, payload: dict[str, Any]) -> Commission:
    commission = Commission(month=_month(payload.get("month")), amount=_amount(payload.get("amount")))
    db.add(commission)
    db.commit()
    db.refresh(commission)
    return commission


def update_commission(db: Session, commission: Commission, payload: dict[str, Any]) -> Commission:
    if payload.get("month") is not None:
        commission.month = _month(payload["month"])
    if payload.get("amount") is not None:
        commission.amount = _amount(payload["amount"])
    db.commit()
    db.refresh(commission)
    return commission


def delete_commission(db: Session, commission: Commission) -> None:
    db.delete(commission)
    db.commit()

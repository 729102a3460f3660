from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.product import StockFilter
from ..services.reporting import client_analytics, dashboard_counts, hardware_summary, stock_summary

router = APIRouter(prefix="/api/v1/reports", tags=["reports"], dependencies=[Depends(require_api_access)])


@router.get("/dashboard")
def api_dashboard(db: Session = Depends(get_db)):
    return dashboard_counts(db)


@router.get("/stock")
def api_stock(stock: StockFilter = Query(default="all"), search: Optional[str] = None, db: Session = Depends(get_db)):
    return stock_summary(db, stock_filter=stock, search=search)


@router.get("/hardware")
def api_hardware(db: Session = Depends(get_db)):
    return hardware_summary(db)


@router.get("/clients")
def api_clients(today: Optional[date] = None, db: Session = Depends(get_db)):
    return client_analytics(db, today=today)

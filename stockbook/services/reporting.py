"""Read-only aggregates for the dashboard, stock and analytics pages.

Calculations run on raw floats from ``services.financials``; currency is
converted to ``Decimal`` and quantized to cents only here, at the edge.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.commissions import total_commissions
from ..crud.products import list_products
from ..models.client import Client
from ..models.product import Product
from .financials import calculate_client_metrics

TWOPLACES = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    """Best-effort conversion of stored amounts to Decimal for currency math."""

    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal("0")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            return Decimal("0")
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return Decimal("0")
    return Decimal("0")


def _quantize_currency(value: Any) -> Decimal:
    amount = _to_decimal(value)
    return amount.quantize(TWOPLACES, rounding=ROUND_HALF_UP) if amount else Decimal("0.00")


def stock_status(stock: int, threshold: int | None = None) -> str:
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
    if stock <= 0:
        return "out-of-stock"
    if stock < threshold:
        return "low-stock"
    return "in-stock"


def dashboard_counts(db: Session) -> Dict[str, Any]:
    product_count = db.execute(select(func.count()).select_from(Product)).scalar() or 0
    client_count = db.execute(select(func.count()).select_from(Client)).scalar() or 0
    available = db.execute(select(func.count()).select_from(Product).where(Product.stock_actuel > 0)).scalar() or 0

    total_value = Decimal("0")
    for stock, price in db.execute(select(Product.stock_actuel, Product.purchase_price)).all():
        total_value += Decimal(int(stock or 0)) * _to_decimal(price)

    return {
        "product_count": int(product_count),
        "client_count": int(client_count),
        "available_stock_count": int(available),
        "total_value": _quantize_currency(total_value),
    }


def stock_summary(db: Session, stock_filter: str = "all", search: str | None = None) -> Dict[str, Any]:
    products = list_products(db, search=search, stock_filter=stock_filter)
    items = []
    total_units = 0
    total_value = Decimal("0")
    counts = {"in-stock": 0, "low-stock": 0, "out-of-stock": 0}
    for product in products:
        stock = int(product.stock_actuel or 0)
        value = Decimal(stock) * _to_decimal(product.purchase_price)
        status = stock_status(stock)
        counts[status] += 1
        total_units += stock
        total_value += value
        items.append(
            {
                "id": product.id,
                "code": product.code,
                "name": product.name,
                "category": product.category,
                "stock_actuel": stock,
                "purchase_price": _quantize_currency(product.purchase_price),
                "total_value": _quantize_currency(value),
                "status": status,
            }
        )
    return {
        "items": items,
        "total_units": total_units,
        "total_value": _quantize_currency(total_value),
        "in_stock_count": counts["in-stock"],
        "low_stock_count": counts["low-stock"],
        "out_of_stock_count": counts["out-of-stock"],
    }


def hardware_summary(db: Session) -> Dict[str, Any]:
    """Units ever sold per product next to what is still on the shelf."""

    items = []
    units_issued = 0
    investment = Decimal("0")
    for product in db.execute(select(Product).order_by(Product.hardware_total.desc(), Product.name)).scalars():
        value = Decimal(int(product.stock_actuel or 0)) * _to_decimal(product.purchase_price)
        units_issued += int(product.hardware_total or 0)
        investment += value
        items.append(
            {
                "id": product.id,
                "code": product.code,
                "name": product.name,
                "hardware_total": int(product.hardware_total or 0),
                "stock_actuel": int(product.stock_actuel or 0),
                "total_value": _quantize_currency(value),
            }
        )
    return {
        "items": items,
        "units_issued": units_issued,
        "total_investment": _quantize_currency(investment),
    }


def client_analytics(db: Session, today: date | None = None) -> Dict[str, Any]:
    today = today or date.today()
    rows = []
    profitable = 0
    covering = 0
    active = 0
    recurring = Decimal("0")
    installed = Decimal("0")
    cash_flow = Decimal("0")

    for client in db.execute(select(Client).order_by(Client.client_name)).scalars():
        metrics = calculate_client_metrics(client, today=today)
        if metrics.is_profitable:
            profitable += 1
        else:
            covering += 1
        if client.status == "active":
            active += 1
            recurring += _to_decimal(metrics.monthly_fee)
        installed += _to_decimal(metrics.installation_amount)
        cash_flow += _to_decimal(metrics.net_cash_flow)

        row = metrics.as_dict()
        for key in ("installation_amount", "monthly_fee", "profit_one_shot", "net_month1", "net_cash_flow"):
            row[key] = _quantize_currency(row[key])
        row.update({"client_id": client.id, "client_name": client.client_name, "client_status": client.status})
        rows.append(row)

    return {
        "clients": rows,
        "client_count": len(rows),
        "active_count": active,
        "profitable_count": profitable,
        "covering_count": covering,
        "monthly_recurring_revenue": _quantize_currency(recurring),
        "total_installation": _quantize_currency(installed),
        "net_cash_flow": _quantize_currency(cash_flow),
        "total_commissions": _quantize_currency(total_commissions(db)),
    }


__all__ = [
    "client_analytics",
    "dashboard_counts",
    "hardware_summary",
    "stock_status",
    "stock_summary",
]

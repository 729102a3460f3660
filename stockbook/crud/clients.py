"""Client CRUD with the stock side effects of assignments.

A client write, and the product stock/hardware movements it causes, commit
together or not at all. Every path goes through ``plan_client`` first, which
validates the request and works out the totals, ``months_left`` and the stock
plan without touching the database; ``preview_client`` stops there.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.errors import ConcurrentUpdateError, FieldValidationError
from ..models._common import utcnow_iso
from ..models.client import Client
from ..models.product import Product
from ..services.financials import (
    ASSIGNMENT_TYPES,
    BUY,
    RENT,
    ClientMetrics,
    Payoff,
    ProductTotals,
    aggregate_products,
    assignment_details,
    calculate_client_metrics,
    calculate_payoff,
    parse_date,
)
from ..services.stock_ledger import StockChange, apply_stock_changes, plan_stock_changes

logger = logging.getLogger(__name__)

CLIENT_STATUSES = ("active", "inactive")
OVERRIDE_FIELDS = ("total_sold_amount", "monthly_fee", "hardware_price")


@dataclass
class ClientPlan:
    """Everything a create/update would write, computed up front."""

    values: dict[str, Any]
    assignments: list[dict[str, Any]]
    totals: ProductTotals
    payoff: Payoff
    stock_changes: list[StockChange] = field(default_factory=list)
    products: dict[str, Product] = field(default_factory=dict)


def _pick(item: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def _number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _whole(value: Any) -> int | None:
    """``0`` for a missing quantity, ``None`` when it is not a whole number."""

    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return None
    number = _number(value)
    if number is None or not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def _load_products(db: Session, ids: Iterable[str]) -> dict[str, Product]:
    wanted = {str(pid) for pid in ids if pid}
    if not wanted:
        return {}
    rows = db.execute(select(Product).where(Product.id.in_(wanted))).scalars().all()
    return {product.id: product for product in rows}


def _build_assignments(
    items: Iterable[Mapping[str, Any]],
    products: Mapping[str, Product],
    existing: Mapping[str, Mapping[str, Any]],
    errors: dict[str, str],
) -> list[dict[str, Any]]:
    """Turn requested lines into stored assignments with price snapshots.

    Lines the client already had keep their ``addedAt`` and purchase price
    snapshot; new lines copy the product's current prices.
    """

    now = utcnow_iso()
    built: list[dict[str, Any]] = []
    seen: set[str] = set()
    for index, item in enumerate(items):
        product_id = _pick(item, "product_id", "productId")
        if not product_id:
            errors[f"products.{index}"] = "Product is required"
            continue
        product_id = str(product_id)
        key = f"products.{product_id}"
        if product_id in seen:
            errors[key] = "Product is assigned more than once"
            continue
        seen.add(product_id)

        kind = _pick(item, "type") or BUY
        if kind not in ASSIGNMENT_TYPES:
            errors[key] = 'Type must be "buy" or "rent"'
            continue
        quantity = _whole(_pick(item, "quantity"))
        if quantity is None:
            errors[key] = "Quantity must be a whole number"
            continue
        if quantity <= 0:
            errors[key] = "Quantity must be a positive number"
            continue
        product = products.get(product_id)
        if product is None:
            errors[key] = "Unknown product"
            continue

        requested_fee = _number(_pick(item, "monthly_fee", "monthlyFee"))
        requested_price = _number(_pick(item, "client_price", "clientPrice"))
        if (requested_fee is not None and requested_fee < 0) or (requested_price is not None and requested_price < 0):
            errors[key] = "Prices must be non-negative"
            continue

        previous = existing.get(product_id)
        same_type = previous is not None and previous.get("type") == kind
        purchase_price = (
            float(previous.get("purchasePrice") or 0) if previous is not None else float(product.purchase_price or 0)
        )

        if kind == RENT:
            if requested_fee is not None:
                monthly_fee = requested_fee
            elif same_type:
                monthly_fee = float(previous.get("monthlyFee") or 0)
            else:
                monthly_fee = float(product.rent_price or 0)
            client_price = monthly_fee
        else:
            monthly_fee = 0.0
            if requested_price is not None:
                client_price = requested_price
            elif same_type:
                client_price = float(previous.get("clientPrice") or 0)
            else:
                client_price = purchase_price

        built.append(
            {
                "productId": product_id,
                "name": product.name,
                "quantity": quantity,
                "type": kind,
                "monthlyFee": monthly_fee,
                "purchasePrice": purchase_price,
                "clientPrice": client_price,
                "addedAt": previous.get("addedAt") if previous is not None and previous.get("addedAt") else now,
            }
        )
    return built


def _check_scalars(payload: Mapping[str, Any], errors: dict[str, str], *, creating: bool) -> None:
    if creating or payload.get("client_name") is not None:
        if not str(payload.get("client_name") or "").strip():
            errors["client_name"] = "Client name is required"
    for name in OVERRIDE_FIELDS + ("starter_pack_price",):
        value = payload.get(name)
        if value is None:
            continue
        amount = _number(value)
        if amount is None or amount < 0:
            errors[name] = "Must be a non-negative number"
    status = payload.get("status")
    if status is not None and status not in CLIENT_STATUSES:
        errors["status"] = 'Status must be "active" or "inactive"'
    start = payload.get("contract_start_date")
    if start not in (None, "") and parse_date(start) is None:
        errors["contract_start_date"] = "Must be an ISO date"


def plan_client(db: Session, payload: Mapping[str, Any], client: Client | None = None) -> ClientPlan:
    """Validate ``payload`` and compute what saving it would do.

    ``client`` is the stored row when editing. Raises ``FieldValidationError``
    (or ``InsufficientStockError``) with every problem found.
    """

    errors: dict[str, str] = {}
    _check_scalars(payload, errors, creating=client is None)

    original = client.assignments if client is not None else []
    items = payload.get("products")
    replacing = items is not None or client is None
    requested_items = list(items or [])

    ids = [str(item.get("productId")) for item in original]
    ids += [str(_pick(item, "product_id", "productId")) for item in requested_items if _pick(item, "product_id", "productId")]
    products = _load_products(db, ids)

    if replacing:
        existing = {str(item.get("productId")): item for item in original}
        assignments = _build_assignments(requested_items, products, existing, errors)
    else:
        assignments = original

    if errors:
        raise FieldValidationError(errors)

    stock_changes = plan_stock_changes(products, original, assignments) if replacing else []

    def current(name: str) -> Any:
        if payload.get(name) is not None:
            return payload[name]
        return getattr(client, name) if client is not None else None

    totals = aggregate_products(assignment_details(assignments))
    financial_edit = replacing or any(
        payload.get(name) is not None for name in OVERRIDE_FIELDS + ("starter_pack_price",)
    )

    def derived(name: str, computed: float) -> float:
        if payload.get(name) is not None:
            return float(payload[name])
        if replacing:
            return computed
        return float(getattr(client, name) or 0)

    total_sold = derived("total_sold_amount", totals.installation_amount)
    monthly_fee = derived("monthly_fee", totals.total_monthly_fee)
    hardware_price = derived("hardware_price", totals.hardware_price)
    starter = float(current("starter_pack_price") or 0)
    payoff = calculate_payoff(total_sold, monthly_fee, starter, hardware_price)

    requested_months = payload.get("months_left")
    if requested_months is not None:
        try:
            months_left = int(requested_months)
        except (TypeError, ValueError):
            raise FieldValidationError({"months_left": "Must be a whole number"}) from None
        if monthly_fee > 0 and months_left < 1:
            raise FieldValidationError({"months_left": "Months left must be at least 1"})
        if months_left < 0:
            raise FieldValidationError({"months_left": "Months left cannot be negative"})
    elif financial_edit:
        months_left = payoff.months_left
    else:
        months_left = int(client.months_left or 0)

    start = current("contract_start_date")
    start_date = parse_date(start)
    values = {
        "client_name": str(current("client_name") or "").strip(),
        "total_sold_amount": total_sold,
        "monthly_fee": monthly_fee,
        "hardware_price": hardware_price,
        "starter_pack_price": starter,
        "product_quantity": totals.total_product_quantity if replacing else int(client.product_quantity or 0),
        "months_left": months_left,
        "contract_start_date": start_date.isoformat() if start_date else None,
        "status": current("status") or "active",
        "product_id": current("product_id"),
    }
    return ClientPlan(
        values=values,
        assignments=assignments,
        totals=totals,
        payoff=payoff,
        stock_changes=stock_changes,
        products=products,
    )


def _check_version(client: Client, expected_version: Any) -> None:
    if expected_version is not None and int(expected_version) != client.version:
        raise ConcurrentUpdateError(f"Client {client.id} was modified by someone else")


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrentUpdateError(f"{what} was modified by someone else") from exc
    except Exception:
        db.rollback()
        raise


def _write(db: Session, client: Client, plan: ClientPlan) -> None:
    try:
        apply_stock_changes(plan.products, plan.stock_changes)
        for name, value in plan.values.items():
            setattr(client, name, value)
        client.products = [dict(item) for item in plan.assignments]
    except Exception:
        db.rollback()
        raise


def get_client(db: Session, client_id: str) -> Client | None:
    return db.get(Client, client_id)


def list_clients(db: Session, *, status: str | None = None, search: str | None = None) -> list[Client]:
    stmt = select(Client)
    if status:
        if status not in CLIENT_STATUSES:
            raise FieldValidationError({"status": 'Status must be "active" or "inactive"'})
        stmt = stmt.where(Client.status == status)
    if search and search.strip():
        stmt = stmt.where(Client.client_name.ilike(f"%{search.strip()}%"))
    return db.execute(stmt.order_by(Client.created_at.desc(), Client.client_name)).scalars().all()


def preview_client(db: Session, payload: Mapping[str, Any], client: Client | None = None) -> ClientPlan:
    """Run the full calculation without writing anything."""

    return plan_client(db, payload, client)


def create_client(db: Session, payload: Mapping[str, Any]) -> Client:
    plan = plan_client(db, payload)
    client = Client()
    db.add(client)
    _write(db, client, plan)
    _commit(db, "An assigned product")
    db.refresh(client)
    logger.info(
        "client.created",
        extra={
            "extra_data": {
                "client_id": client.id,
                "assignments": len(plan.assignments),
                "months_left": client.months_left,
            }
        },
    )
    return client


def update_client(db: Session, client: Client, payload: Mapping[str, Any]) -> Client:
    _check_version(client, payload.get("expected_version"))
    plan = plan_client(db, payload, client)
    _write(db, client, plan)
    _commit(db, f"Client {client.id}")
    db.refresh(client)
    logger.info(
        "client.updated",
        extra={
            "extra_data": {
                "client_id": client.id,
                "stock_changes": sum(1 for change in plan.stock_changes if not change.is_noop),
                "months_left": client.months_left,
            }
        },
    )
    return client


def delete_client(db: Session, client: Client) -> None:
    """Give every held unit back to stock, then remove the client."""

    original = client.assignments
    products = _load_products(db, [item.get("productId") for item in original])
    changes = plan_stock_changes(products, original, [])
    client_id = client.id
    try:
        apply_stock_changes(products, changes)
        db.delete(client)
    except Exception:
        db.rollback()
        raise
    _commit(db, f"Client {client_id}")
    logger.info(
        "client.deleted",
        extra={"extra_data": {"client_id": client_id, "released": sum(change.stock_delta for change in changes)}},
    )


def client_metrics(client: Client, today: date | None = None) -> ClientMetrics:
    return calculate_client_metrics(client, today=today)


__all__ = [
    "CLIENT_STATUSES",
    "ClientPlan",
    "client_metrics",
    "create_client",
    "delete_client",
    "get_client",
    "list_clients",
    "plan_client",
    "preview_client",
    "update_client",
]

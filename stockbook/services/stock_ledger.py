"""Stock bookkeeping for client/product assignments.

Each (product, client) pair is in one of three states: unassigned, buy or
rent. Moving between them changes the product's shelf stock by the signed
quantity difference and, for sales, bumps the cumulative ``hardware_total``.
``TRANSITIONS`` spells out all nine moves so each one can be looked up and
tested on its own.

Planning is pure. ``plan_stock_changes`` checks every product before it
returns anything, so a rejected request never leaves half-applied deltas;
``apply_stock_changes`` then mutates the ORM rows inside the caller's
transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from ..core.errors import InsufficientStockError
from .financials import BUY, RENT

logger = logging.getLogger(__name__)

UNASSIGNED = "unassigned"
STATES = (UNASSIGNED, BUY, RENT)

Delta = Callable[[int, int], "tuple[int, int]"]


def _release(old: int, new: int) -> tuple[int, int]:
    return old, 0


def _take(old: int, new: int) -> tuple[int, int]:
    return -(new - old), 0


def _sell_new(old: int, new: int) -> tuple[int, int]:
    return -new, new


def _resize_sale(old: int, new: int) -> tuple[int, int]:
    # hardware_total is a high-water counter: growth counts, shrinking does not.
    delta = new - old
    return -delta, max(delta, 0)


def _rent_to_sale(old: int, new: int) -> tuple[int, int]:
    return -(new - old), new


# (previous state, next state) -> f(original quantity, new quantity)
#   -> (stock_actuel delta, hardware_total delta)
TRANSITIONS: dict[tuple[str, str], Delta] = {
    (UNASSIGNED, UNASSIGNED): lambda old, new: (0, 0),
    (UNASSIGNED, BUY): _sell_new,
    (UNASSIGNED, RENT): _take,
    (BUY, UNASSIGNED): _release,
    (BUY, BUY): _resize_sale,
    (BUY, RENT): _take,
    (RENT, UNASSIGNED): _release,
    (RENT, BUY): _rent_to_sale,
    (RENT, RENT): _take,
}


@dataclass(frozen=True)
class StockChange:
    product_id: str
    previous_state: str
    next_state: str
    original_quantity: int
    new_quantity: int
    stock_delta: int
    hardware_delta: int

    @property
    def is_noop(self) -> bool:
        return self.stock_delta == 0 and self.hardware_delta == 0


def transition(previous_state: str, next_state: str, original_quantity: int, new_quantity: int) -> tuple[int, int]:
    """Look up one move in ``TRANSITIONS``. Quantities of an unassigned side are 0."""

    try:
        rule = TRANSITIONS[(previous_state, next_state)]
    except KeyError as exc:
        raise ValueError(f"Unknown assignment transition {previous_state!r} -> {next_state!r}") from exc
    old = original_quantity if previous_state != UNASSIGNED else 0
    new = new_quantity if next_state != UNASSIGNED else 0
    return rule(old, new)


def _index(assignments: Iterable[Mapping[str, Any]] | None) -> dict[str, tuple[str, int]]:
    indexed: dict[str, tuple[str, int]] = {}
    for item in assignments or []:
        product_id = str(item.get("productId"))
        kind = item.get("type") or BUY
        if kind not in (BUY, RENT):
            raise ValueError(f"Unknown assignment type {kind!r}")
        indexed[product_id] = (kind, int(item.get("quantity") or 0))
    return indexed


def _stock_of(product: Any) -> int:
    if isinstance(product, Mapping):
        return int(product.get("stock_actuel") or 0)
    return int(getattr(product, "stock_actuel", 0) or 0)


def plan_stock_changes(
    products: Mapping[str, Any],
    original: Iterable[Mapping[str, Any]] | None,
    requested: Iterable[Mapping[str, Any]] | None,
) -> list[StockChange]:
    """Work out the stock movement for replacing ``original`` with ``requested``.

    ``products`` maps product id to a ``Product`` (or a mapping with
    ``stock_actuel``) for every id on either side. A requested quantity is
    allowed up to the current stock plus what this client already holds of
    that product. All shortages are collected and raised together.
    """

    before = _index(original)
    after = _index(requested)

    errors: dict[str, str] = {}
    changes: list[StockChange] = []
    for product_id in list(before) + [pid for pid in after if pid not in before]:
        previous_state, original_quantity = before.get(product_id, (UNASSIGNED, 0))
        next_state, new_quantity = after.get(product_id, (UNASSIGNED, 0))

        product = products.get(product_id)
        if product is None:
            if next_state == UNASSIGNED:
                # Product row is gone; nothing left to give stock back to.
                continue
            errors[f"products.{product_id}"] = "Unknown product"
            continue

        if next_state != UNASSIGNED:
            available = _stock_of(product) + (original_quantity if previous_state != UNASSIGNED else 0)
            if new_quantity > available:
                errors[f"products.{product_id}"] = (
                    f"Requested quantity {new_quantity} exceeds available stock {available}"
                )
                continue

        stock_delta, hardware_delta = transition(previous_state, next_state, original_quantity, new_quantity)
        changes.append(
            StockChange(
                product_id=product_id,
                previous_state=previous_state,
                next_state=next_state,
                original_quantity=original_quantity,
                new_quantity=new_quantity,
                stock_delta=stock_delta,
                hardware_delta=hardware_delta,
            )
        )

    if errors:
        raise InsufficientStockError(errors)
    return changes


def apply_stock_changes(products: Mapping[str, Any], changes: Iterable[StockChange]) -> None:
    """Apply planned deltas to product rows. The caller owns the commit."""

    for change in changes:
        if change.is_noop:
            continue
        product = products[change.product_id]
        new_stock = int(product.stock_actuel or 0) + change.stock_delta
        if new_stock < 0:
            # plan_stock_changes rules this out unless the rows moved since planning.
            raise InsufficientStockError({f"products.{change.product_id}": "Stock would become negative"})
        product.stock_actuel = new_stock
        product.hardware_total = int(product.hardware_total or 0) + change.hardware_delta
        logger.info(
            "stock.adjusted",
            extra={
                "extra_data": {
                    "product_id": change.product_id,
                    "transition": f"{change.previous_state}->{change.next_state}",
                    "stock_delta": change.stock_delta,
                    "hardware_delta": change.hardware_delta,
                    "stock_actuel": product.stock_actuel,
                    "hardware_total": product.hardware_total,
                }
            },
        )


__all__ = [
    "STATES",
    "TRANSITIONS",
    "UNASSIGNED",
    "StockChange",
    "apply_stock_changes",
    "plan_stock_changes",
    "transition",
]

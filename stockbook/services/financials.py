"""Client cash-flow arithmetic.

Pure functions only: no database access, no rounding. Money is plain
``float``; the single integer-producing step is the ``ceil`` that turns the
balance still owed after month 1 into a month count, and it rounds up so a
client is never reported as covered a month early. Presentation code
quantizes to two decimals (see ``services.reporting``).
"""

from __future__ import annotations

import calendar
import math
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping

BUY = "buy"
RENT = "rent"
ASSIGNMENT_TYPES = (BUY, RENT)

STATUS_PROFITABLE = "profitable"
STATUS_COVERING = "covering_investment"


# ---- Dates ----


def month_diff(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``; day of month is ignored.

    Negative when ``end`` falls in an earlier month than ``start``.
    """

    return (end.year - start.year) * 12 + (end.month - start.month)


def add_months(value: date, months: int) -> date:
    """Shift ``value`` by ``months`` calendar months, clamping to the month's last day."""

    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_date(value: Any) -> date | None:
    """Accept a ``date``, ``datetime`` or ISO string; anything else is ``None``."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


# ---- ProductAggregator ----


@dataclass(frozen=True)
class ProductTotals:
    installation_amount: float = 0.0
    total_monthly_fee: float = 0.0
    total_product_quantity: int = 0
    hardware_price: float = 0.0


def _amount(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def unit_sale_price(purchase_price: Any, selling_price: Any) -> float:
    """A custom resale price wins when set; otherwise the unit goes at cost."""

    selling = _amount(selling_price)
    return selling if selling > 0 else _amount(purchase_price)


def aggregate_products(details: Mapping[str, Mapping[str, Any]] | Iterable[Mapping[str, Any]]) -> ProductTotals:
    """Reduce a client's assignments into installation, fee and hardware totals.

    ``details`` maps product id to a dict with ``quantity``, ``type``,
    ``monthlyFee``, ``purchasePrice`` and ``sellingPrice``; a plain iterable of
    such dicts is accepted too. The monthly fee is charged once per
    assignment, never multiplied by the quantity.
    """

    rows = details.values() if isinstance(details, Mapping) else details
    installation = 0.0
    hardware = 0.0
    monthly = 0.0
    quantity_total = 0
    for row in rows:
        quantity = int(row.get("quantity") or 0)
        quantity_total += quantity
        monthly += _amount(row.get("monthlyFee"))
        if (row.get("type") or BUY) == BUY:
            line = unit_sale_price(row.get("purchasePrice"), row.get("sellingPrice")) * quantity
            installation += line
            hardware += line
    return ProductTotals(
        installation_amount=installation,
        total_monthly_fee=monthly,
        total_product_quantity=quantity_total,
        hardware_price=hardware,
    )


def assignment_details(assignments: Iterable[Mapping[str, Any]]) -> dict[str, dict[str, Any]]:
    """Key stored client assignments by product id in the aggregator's input shape.

    The ``clientPrice`` snapshot of a buy assignment is its resale price.
    """

    details: dict[str, dict[str, Any]] = {}
    for item in assignments:
        kind = item.get("type") or BUY
        details[str(item.get("productId"))] = {
            "quantity": int(item.get("quantity") or 0),
            "type": kind,
            "monthlyFee": _amount(item.get("monthlyFee")) if kind == RENT else 0.0,
            "purchasePrice": _amount(item.get("purchasePrice")),
            "sellingPrice": _amount(item.get("clientPrice")) if kind == BUY else 0.0,
        }
    return details


# ---- PayoffCalculator ----


@dataclass(frozen=True)
class Payoff:
    profit_one_shot: float
    net_month1: float
    months_left: int


def calculate_payoff(
    installation_amount: float,
    monthly_fee: float,
    starter_pack_price: float = 0.0,
    hardware_price: float = 0.0,
) -> Payoff:
    """Months of operation needed before revenue offsets the installation cost.

    One-shot profit is the starter pack plus the hardware sale; the first
    month's fee is added on top of it to get the month-1 net. A zero result
    means "covered in the first month", and also stands for "no recurring
    revenue to count with" when the fee is not positive.
    """

    installation = _amount(installation_amount)
    fee = _amount(monthly_fee)
    profit_one_shot = _amount(starter_pack_price) + _amount(hardware_price)
    net_month1 = profit_one_shot + fee - installation

    if fee <= 0 or net_month1 >= 0:
        months_left = 0
    else:
        months_left = 1 + math.ceil(-net_month1 / fee)
    return Payoff(profit_one_shot=profit_one_shot, net_month1=net_month1, months_left=months_left)


def calculate_months_left(
    installation_amount: float,
    monthly_fee: float,
    starter_pack_price: float = 0.0,
    hardware_price: float = 0.0,
) -> int:
    return calculate_payoff(installation_amount, monthly_fee, starter_pack_price, hardware_price).months_left


# ---- Dashboard metrics ----


@dataclass(frozen=True)
class ClientMetrics:
    months_to_cover: int
    months_elapsed: int
    months_billed: int
    months_remaining: int
    installation_amount: float
    monthly_fee: float
    profit_one_shot: float
    net_month1: float
    net_cash_flow: float
    contract_start_date: date
    profitability_date: date
    is_profitable: bool
    status: str

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _field(client: Any, name: str) -> Any:
    if isinstance(client, Mapping):
        return client.get(name)
    return getattr(client, name, None)


def calculate_client_metrics(client: Any, today: date | None = None) -> ClientMetrics:
    """Coverage milestone and running cash position for one client.

    ``client`` is a ``Client`` row or a mapping with the same field names.
    Month 1 starts on the contract start date, or today when none is
    recorded. Every month from the start up to and including the current one
    has been billed; a contract starting in a later month has billed nothing.
    """

    today = today or date.today()
    start = parse_date(_field(client, "contract_start_date")) or today

    installation = _amount(_field(client, "total_sold_amount"))
    fee = _amount(_field(client, "monthly_fee"))
    payoff = calculate_payoff(
        installation,
        fee,
        _amount(_field(client, "starter_pack_price")),
        _amount(_field(client, "hardware_price")),
    )

    months_to_cover = payoff.months_left
    profitability_date = add_months(start, months_to_cover - 1) if months_to_cover > 1 else start

    months_elapsed = month_diff(start, today)
    months_billed = max(months_elapsed + 1, 0)
    net_cash_flow = payoff.profit_one_shot + fee * months_billed - installation
    is_profitable = net_cash_flow >= 0

    return ClientMetrics(
        months_to_cover=months_to_cover,
        months_elapsed=months_elapsed,
        months_billed=months_billed,
        months_remaining=max(months_to_cover - months_billed, 0),
        installation_amount=installation,
        monthly_fee=fee,
        profit_one_shot=payoff.profit_one_shot,
        net_month1=payoff.net_month1,
        net_cash_flow=net_cash_flow,
        contract_start_date=start,
        profitability_date=profitability_date,
        is_profitable=is_profitable,
        status=STATUS_PROFITABLE if is_profitable else STATUS_COVERING,
    )


__all__ = [
    "ASSIGNMENT_TYPES",
    "BUY",
    "RENT",
    "ClientMetrics",
    "Payoff",
    "ProductTotals",
    "add_months",
    "aggregate_products",
    "assignment_details",
    "calculate_client_metrics",
    "calculate_months_left",
    "calculate_payoff",
    "month_diff",
    "parse_date",
    "unit_sale_price",
]

"""Bulk import of products and clients from spreadsheets or CSV.

Files follow a fixed column order (see ``services.templates``). Excel sheets
are read positionally with the header row skipped; CSV headers are matched
loosely so hand-made exports still line up. Row numbers in errors are the
spreadsheet row, the header being row 1.

Parsing never touches the database. ``import_products`` / ``import_clients``
then create the valid items one by one and report the failures instead of
aborting the batch.
"""

from __future__ import annotations

import csv
import io
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Iterator, Sequence
from uuid import uuid4

from openpyxl import load_workbook
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import ConcurrentUpdateError, DuplicateError, FieldValidationError
from ..crud import categories as categories_crud
from ..crud import clients as clients_crud
from ..crud import products as products_crud
from .financials import ASSIGNMENT_TYPES

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS: list[str] = [
    "Product Code",
    "Product Name",
    "Quantity",
    "Buying Price",
    "Selling Price",
    "Rent Price",
    "Category",
]
CLIENT_COLUMNS: list[str] = ["Client Name", "Product Name", "Quantity", "Type"]

EXCEL_SUFFIXES = (".xlsx", ".xlsm")
CSV_SUFFIXES = (".csv",)

_NOT_NUMERIC = re.compile(r"[^\d.\-]")


@dataclass
class ParsedProduct:
    name: str
    quantity: int
    row: int
    code: str | None = None
    purchase_price: float | None = None
    selling_price: float | None = None
    rent_price: float | None = None
    category: str | None = None


@dataclass
class ParsedClientLine:
    product_name: str
    quantity: int
    type: str
    row: int


@dataclass
class ParsedClient:
    client_name: str
    lines: list[ParsedClientLine] = field(default_factory=list)


@dataclass
class ParseResult:
    items: list[Any] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ImportOutcome:
    created: int = 0
    failed: int = 0
    row_errors: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "failed": self.failed,
            "row_errors": list(self.row_errors),
            "errors": list(self.errors),
        }


# ---- Reading ----


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_blank(row: Sequence[Any]) -> bool:
    return all(value is None or str(value).strip() == "" for value in row)


def _excel_rows(content: bytes, width: int) -> Iterator[tuple[int, list[Any]]]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise FieldValidationError({"file": f"Failed to parse Excel file: {exc}"}) from exc
    try:
        sheet = workbook.worksheets[0]
        for row_number, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
            values = list(row[:width]) + [None] * max(width - len(row), 0)
            if _is_blank(values):
                continue
            yield row_number, values
    finally:
        workbook.close()


def _csv_rows(content: bytes, columns: list[str], rename) -> Iterator[tuple[int, list[Any]]]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")
    reader = csv.reader(io.StringIO(text))
    header = next(reader, None)
    if not header:
        return
    names = [rename(column) for column in header]
    for row_number, row in enumerate(reader, start=2):
        if _is_blank(row):
            continue
        record = dict(zip(names, row))
        yield row_number, [record.get(column) for column in columns]


def _rows(filename: str, content: bytes, columns: list[str], rename) -> Iterator[tuple[int, list[Any]]]:
    suffix = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if suffix in EXCEL_SUFFIXES:
        return _excel_rows(content, len(columns))
    if suffix in CSV_SUFFIXES:
        return _csv_rows(content, columns, rename)
    raise FieldValidationError({"file": "Unsupported file type; upload .xlsx or .csv"})


def product_header(header: str) -> str:
    normalized = header.strip()
    lower = normalized.lower()
    if "code" in lower:
        return "Product Code"
    if "name" in lower:
        return "Product Name"
    if lower in ("quantity", "qty"):
        return "Quantity"
    if "buying" in lower or "purchase" in lower or "buy price" in lower:
        return "Buying Price"
    if "selling" in lower or "sell price" in lower:
        return "Selling Price"
    if "rent" in lower:
        return "Rent Price"
    if lower == "category":
        return "Category"
    return normalized


def client_header(header: str) -> str:
    normalized = header.strip()
    lower = normalized.lower()
    if "client" in lower:
        return "Client Name"
    if "product" in lower:
        return "Product Name"
    if "name" in lower:
        return "Client Name"
    if lower in ("quantity", "qty"):
        return "Quantity"
    if lower == "type":
        return "Type"
    return normalized


# ---- Cell values ----


def _quantity(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except (TypeError, ValueError):
            return None
    if not math.isfinite(number) or number <= 0:
        return None
    return math.floor(number)


def _price(value: Any) -> tuple[bool, float | None]:
    """Return ``(ok, amount)``; an empty cell is ok with no amount."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return True, None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        amount = float(value)
    else:
        try:
            amount = float(_NOT_NUMERIC.sub("", str(value)))
        except ValueError:
            return False, None
    if not math.isfinite(amount) or amount < 0:
        return False, None
    return True, amount


# ---- Parsing ----


def parse_products_file(filename: str, content: bytes) -> ParseResult:
    result = ParseResult()
    for row_number, cells in _rows(filename, content, PRODUCT_COLUMNS, product_header):
        code, name, quantity, buying, selling, rent, category = cells
        name = _text(name)
        if not name:
            result.errors.append({"row": row_number, "message": "Product Name is required"})
            continue
        qty = _quantity(quantity)
        if qty is None:
            result.errors.append({"row": row_number, "message": "Quantity must be a positive number"})
            continue
        prices: dict[str, float | None] = {}
        failed = False
        for label, key, raw in (
            ("Buying Price", "purchase_price", buying),
            ("Selling Price", "selling_price", selling),
            ("Rent Price", "rent_price", rent),
        ):
            ok, amount = _price(raw)
            if not ok:
                result.errors.append({"row": row_number, "message": f"{label} must be a non-negative number"})
                failed = True
                break
            prices[key] = amount
        if failed:
            continue
        result.items.append(
            ParsedProduct(
                name=name,
                quantity=qty,
                row=row_number,
                code=_text(code),
                category=_text(category),
                **prices,
            )
        )
    return result


def parse_clients_file(filename: str, content: bytes) -> ParseResult:
    """Parse client lines and group them by client name, first appearance first."""

    result = ParseResult()
    grouped: dict[str, ParsedClient] = {}
    for row_number, cells in _rows(filename, content, CLIENT_COLUMNS, client_header):
        client_name, product_name, quantity, kind = cells
        client_name = _text(client_name)
        product_name = _text(product_name)
        if not client_name:
            result.errors.append({"row": row_number, "message": "Client Name is required"})
            continue
        if not product_name:
            result.errors.append({"row": row_number, "message": "Product Name is required"})
            continue
        qty = _quantity(quantity)
        if qty is None:
            result.errors.append({"row": row_number, "message": "Quantity must be a positive number"})
            continue
        kind = (_text(kind) or "").lower()
        if kind not in ASSIGNMENT_TYPES:
            result.errors.append({"row": row_number, "message": 'Type must be "buy" or "rent"'})
            continue
        client = grouped.setdefault(client_name, ParsedClient(client_name=client_name))
        client.lines.append(ParsedClientLine(product_name=product_name, quantity=qty, type=kind, row=row_number))
    result.items = list(grouped.values())
    return result


# ---- Applying ----


def _generated_code(name: str) -> str:
    stem = re.sub(r"[^A-Z0-9]", "", name.upper())[:10] or "ITEM"
    return f"{stem}-{uuid4().hex[:4].upper()}"


def _category_id(db: Session, item: ParsedProduct, existing) -> str | None:
    if item.category:
        match = categories_crud.get_category_by_name(db, item.category)
        if match is not None:
            return match.id
    if existing is not None and existing.category_id:
        return existing.category_id
    first = categories_crud.list_categories(db)
    return first[0].id if first else None


def import_products(db: Session, parsed: Iterable[ParsedProduct]) -> ImportOutcome:
    """Create every parsed product; price gaps fall back to a same-name product's prices."""

    outcome = ImportOutcome()
    for item in parsed:
        existing = None
        if item.code:
            existing = products_crud.get_product_by_code(db, item.code)
        if existing is None:
            existing = products_crud.find_product_by_name(db, item.name)

        def fallback(value: float | None, attr: str) -> float:
            if value is not None:
                return value
            return float(getattr(existing, attr, 0) or 0) if existing is not None else 0.0

        payload = {
            "code": item.code or (existing.code if existing is not None else None) or _generated_code(item.name),
            "name": item.name,
            "stock_actuel": item.quantity,
            "purchase_price": fallback(item.purchase_price, "purchase_price"),
            "selling_price": fallback(item.selling_price, "selling_price"),
            "rent_price": fallback(item.rent_price, "rent_price"),
            "category_id": _category_id(db, item, existing),
            "category": item.category or settings.DEFAULT_CATEGORY,
        }
        try:
            products_crud.create_product(db, payload)
        except (FieldValidationError, DuplicateError) as exc:
            outcome.failed += 1
            details = exc.errors if isinstance(exc, FieldValidationError) else None
            outcome.errors.append({"name": item.name, "message": str(exc), "details": details})
            continue
        outcome.created += 1

    logger.info(
        "import.products",
        extra={"extra_data": {"created": outcome.created, "failed": outcome.failed}},
    )
    return outcome


def import_clients(db: Session, parsed: Iterable[ParsedClient], today: date | None = None) -> ImportOutcome:
    """Create one client per group. Unmatched products or short stock skip that client only."""

    today = today or date.today()
    outcome = ImportOutcome()
    for group in parsed:
        lines: dict[str, dict[str, Any]] = {}
        problems: dict[str, str] = {}
        for line in group.lines:
            product = products_crud.find_product_by_name(db, line.product_name)
            if product is None:
                problems[f"row.{line.row}"] = f"Product not found: {line.product_name}"
                continue
            current = lines.get(product.id)
            if current is None:
                lines[product.id] = {"product_id": product.id, "quantity": line.quantity, "type": line.type}
            elif current["type"] == line.type:
                current["quantity"] += line.quantity
            else:
                problems[f"row.{line.row}"] = f"{line.product_name} is listed as both buy and rent"

        if problems:
            outcome.failed += 1
            outcome.errors.append(
                {"name": group.client_name, "message": "Client skipped: product lines could not be matched", "details": problems}
            )
            continue

        payload = {
            "client_name": group.client_name,
            "products": list(lines.values()),
            "starter_pack_price": 0,
            "contract_start_date": today,
            "status": "active",
        }
        try:
            clients_crud.create_client(db, payload)
        except (FieldValidationError, DuplicateError, ConcurrentUpdateError) as exc:
            outcome.failed += 1
            details = exc.errors if isinstance(exc, FieldValidationError) else None
            outcome.errors.append({"name": group.client_name, "message": str(exc), "details": details})
            continue
        outcome.created += 1

    logger.info(
        "import.clients",
        extra={"extra_data": {"created": outcome.created, "failed": outcome.failed}},
    )
    return outcome


__all__ = [
    "CLIENT_COLUMNS",
    "ImportOutcome",
    "PRODUCT_COLUMNS",
    "ParseResult",
    "ParsedClient",
    "ParsedClientLine",
    "ParsedProduct",
    "import_clients",
    "import_products",
    "parse_clients_file",
    "parse_products_file",
]

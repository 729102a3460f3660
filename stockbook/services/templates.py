"""Downloadable import templates (xlsx) with example rows and instructions."""

from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Any, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font

from .file_import import CLIENT_COLUMNS, PRODUCT_COLUMNS

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

PRODUCT_EXAMPLES: list[list[Any]] = [
    ["KIO-001", "Kiosk 21.5", 5, 500.00, 1699.99, 0, "Kiosks"],
    ["PRT-001", "Printer", 3, 300.00, 0, 50.00, "Printers"],
    ["SCN-001", "Scanner", 2, 200.00, 450.00, 0, "Scanners"],
]
PRODUCT_WIDTHS = [15, 25, 12, 15, 15, 15, 15]
PRODUCT_INSTRUCTIONS = [
    "PRODUCT IMPORT TEMPLATE - INSTRUCTIONS",
    "",
    "This template is used to import products into the system.",
    "",
    "COLUMNS:",
    "- Product Code: Unique product code/identifier (generated when empty)",
    "- Product Name: Product name (required)",
    "- Quantity: Number of items (required, must be > 0)",
    "- Buying Price: Purchase price in euros (must be >= 0)",
    "- Selling Price: Selling price in euros (must be >= 0)",
    "- Rent Price: Rental price per month in euros (must be >= 0)",
    "- Category: Product category name (optional)",
    "",
    "IMPORTANT NOTES:",
    "- Do not modify the header row (row 1)",
    "- Replace the example rows with your own products",
    "- All prices must be numbers (use . for decimals, e.g., 500.00)",
    "- Quantity must be a positive integer",
    '- Category will be matched to existing categories or set to "Other"',
]

CLIENT_EXAMPLES: list[list[Any]] = [
    ["TechStore Paris", "Kiosk 21.5", 3, "buy"],
    ["TechStore Paris", "Printer", 2, "rent"],
    ["TechStore Paris", "Scanner", 5, "buy"],
    ["ElectroShop Lyon", "Scanner", 2, "buy"],
    ["ElectroShop Lyon", "Printer", 1, "rent"],
]
CLIENT_WIDTHS = [20, 30, 12, 12]
CLIENT_INSTRUCTIONS = [
    "CLIENT IMPORT TEMPLATE - INSTRUCTIONS",
    "",
    "This template is used to import clients with their product requests.",
    "",
    "COLUMNS:",
    "- Client Name: Name of the client (required)",
    "- Product Name: Name of the product (must match an existing product)",
    "- Quantity: Number of units (required, must be > 0)",
    '- Type: Either "buy" or "rent" (required)',
    "",
    "IMPORTANT NOTES:",
    "- Do not modify the header row (row 1)",
    "- Multiple rows with the same Client Name = one client with multiple products",
    "- Quantity must be a positive integer",
    "",
    "AUTOMATIC CALCULATIONS:",
    '- Installation Amount and Hardware Price: buying price x quantity for "buy" products',
    '- Monthly Fees: rent price of each "rent" product (once per product, not per unit)',
    "- Starter Pack: can be added manually after import",
]


def _build(
    title: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    widths: Sequence[int],
    instructions: Sequence[str],
) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append(list(columns))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(list(row))
    for col_idx, width in enumerate(widths, start=1):
        ws.column_dimensions[ws.cell(row=1, column=col_idx).column_letter].width = width

    notes = wb.create_sheet("Instructions")
    for line in instructions:
        notes.append([line])
    notes["A1"].font = Font(bold=True)
    notes.column_dimensions["A"].width = 90

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def product_template() -> BytesIO:
    return _build("Products", PRODUCT_COLUMNS, PRODUCT_EXAMPLES, PRODUCT_WIDTHS, PRODUCT_INSTRUCTIONS)


def client_template() -> BytesIO:
    return _build("Clients", CLIENT_COLUMNS, CLIENT_EXAMPLES, CLIENT_WIDTHS, CLIENT_INSTRUCTIONS)


def template_filename(kind: str, today: date | None = None) -> str:
    prefix = {"products": "Product", "clients": "Client"}[kind]
    return f"{prefix}_Import_Template_{(today or date.today()).isoformat()}.xlsx"

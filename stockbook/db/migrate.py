"""Small idempotent schema upgrades for databases created by older releases.

Only additive changes: missing columns are added and back-filled. Tables that
do not exist yet are left to ``Base.metadata.create_all``.
"""

from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS: dict[str, str] = {
    "category_id": "VARCHAR(36)",
    "category": "TEXT",
    "rent_price": "FLOAT DEFAULT 0 NOT NULL",
    "stock_actuel": "INTEGER DEFAULT 0 NOT NULL",
    "hardware_total": "INTEGER DEFAULT 0 NOT NULL",
    "version": "INTEGER DEFAULT 1 NOT NULL",
}

CLIENT_COLUMNS: dict[str, str] = {
    "products": "TEXT",
    "starter_pack_price": "FLOAT",
    "hardware_price": "FLOAT",
    "contract_start_date": "TEXT",
    "status": "TEXT DEFAULT 'active' NOT NULL",
    "product_id": "VARCHAR(36)",
    "version": "INTEGER DEFAULT 1 NOT NULL",
}


def _column_names(engine: Engine, table: str) -> set[str]:
    inspector = inspect(engine)
    if not inspector.has_table(table):
        return set()
    return {column["name"] for column in inspector.get_columns(table)}


def _add_column(engine: Engine, table: str, name: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {col_def}"))
    logger.info("schema.column_added", extra={"extra_data": {"table": table, "column": name}})


def _add_missing(engine: Engine, table: str, wanted: dict[str, str]) -> set[str]:
    existing = _column_names(engine, table)
    if not existing:
        return set()
    added = set()
    for name, col_def in wanted.items():
        if name not in existing:
            _add_column(engine, table, name, col_def)
            added.add(name)
    return existing | added


def run_migrations(engine: Engine) -> None:
    """Bring an existing schema up to what the models expect."""

    product_cols = _add_missing(engine, "products", PRODUCT_COLUMNS)
    # Early releases only tracked ``quantity``; it was the available stock.
    if "quantity" in product_cols:
        with engine.begin() as conn:
            conn.execute(
                text(
                    "UPDATE products SET stock_actuel = quantity "
                    "WHERE (stock_actuel IS NULL OR stock_actuel = 0) AND quantity > 0"
                )
            )

    client_cols = _add_missing(engine, "clients", CLIENT_COLUMNS)
    if client_cols:
        with engine.begin() as conn:
            conn.execute(text("UPDATE clients SET products = '[]' WHERE products IS NULL"))

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from stockbook.core.errors import ConcurrentUpdateError, DuplicateError, FieldValidationError
from stockbook.crud.categories import create_category, delete_category
from stockbook.crud.clients import create_client, delete_client
from stockbook.crud.products import (
    create_product,
    delete_product,
    get_product,
    list_products,
    restock_product,
    update_product,
)
from stockbook.db.session import Base

# Ensure models are imported so metadata is populated
from stockbook import models  # noqa: F401


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _make(db, code, name, stock=0, **extra):
    return create_product(db, {"code": code, "name": name, "stock_actuel": stock, **extra})


def test_create_product_defaults(db_session):
    product = _make(db_session, " KIO-001 ", " Kiosk 21.5 ", stock=5, purchase_price=500, selling_price=1699.99)

    assert product.code == "KIO-001"
    assert product.name == "Kiosk 21.5"
    assert product.stock_actuel == 5
    assert product.hardware_total == 0
    assert product.category == "Other"
    assert product.profit == pytest.approx(1199.99)
    assert product.total_value == pytest.approx(2500)
    assert product.version == 1


def test_create_product_validation(db_session):
    with pytest.raises(FieldValidationError) as exc_info:
        create_product(db_session, {"code": "", "name": " ", "purchase_price": -1, "stock_actuel": -2})

    assert set(exc_info.value.errors) == {"code", "name", "purchase_price", "stock_actuel"}
    assert list_products(db_session) == []


def test_duplicate_code_is_rejected(db_session):
    _make(db_session, "PRT-001", "Printer")

    with pytest.raises(DuplicateError):
        _make(db_session, "PRT-001", "Another printer")


def test_stock_filters_and_search(db_session):
    _make(db_session, "A-1", "Alpha", stock=0)
    _make(db_session, "B-1", "Bravo", stock=3)
    _make(db_session, "C-1", "Charlie", stock=10)

    def names(**kwargs):
        return [p.name for p in list_products(db_session, **kwargs)]

    assert names() == ["Alpha", "Bravo", "Charlie"]
    assert names(stock_filter="in-stock") == ["Bravo", "Charlie"]
    assert names(stock_filter="low-stock") == ["Bravo"]
    assert names(stock_filter="out-of-stock") == ["Alpha"]
    assert names(search="char") == ["Charlie"]
    assert names(search="b-1") == ["Bravo"]

    with pytest.raises(FieldValidationError):
        list_products(db_session, stock_filter="plenty")


def test_category_matched_by_name(db_session):
    category = create_category(db_session, "  Kiosks ")
    product = _make(db_session, "KIO-002", "Kiosk 15", category="Kiosks")

    assert category.name == "kiosks"
    assert product.category_id == category.id
    assert product.category == "Kiosks"

    delete_category(db_session, category)
    db_session.refresh(product)
    assert product.category_id is None
    assert product.category == "Kiosks"


def test_restock_adds_units(db_session):
    product = _make(db_session, "SCN-001", "Scanner", stock=2)

    restock_product(db_session, product, 5)
    assert product.stock_actuel == 7

    with pytest.raises(FieldValidationError):
        restock_product(db_session, product, 0)


def test_manual_correction_and_version_check(db_session):
    product = _make(db_session, "SCN-002", "Scanner XL", stock=2)

    update_product(db_session, product, {"stock_actuel": 9, "hardware_total": 3, "expected_version": 1})
    assert (product.stock_actuel, product.hardware_total, product.version) == (9, 3, 2)

    with pytest.raises(ConcurrentUpdateError):
        update_product(db_session, product, {"name": "Stale", "expected_version": 1})

    with pytest.raises(FieldValidationError):
        update_product(db_session, product, {"stock_actuel": -1})


def test_price_edit_leaves_client_snapshot(db_session):
    product = _make(db_session, "KIO-003", "Kiosk 32", stock=4, purchase_price=400)
    client = create_client(
        db_session,
        {"client_name": "TechStore", "products": [{"product_id": product.id, "quantity": 1, "type": "buy"}]},
    )

    update_product(db_session, product, {"purchase_price": 650})

    db_session.refresh(client)
    assert client.products[0]["purchasePrice"] == pytest.approx(400)
    assert client.total_sold_amount == pytest.approx(400)


def test_delete_refused_while_assigned(db_session):
    product = _make(db_session, "PRT-002", "Label printer", stock=3)
    client = create_client(
        db_session,
        {"client_name": "ElectroShop", "products": [{"product_id": product.id, "quantity": 1, "type": "rent"}]},
    )

    with pytest.raises(FieldValidationError) as exc_info:
        delete_product(db_session, product)
    assert "ElectroShop" in exc_info.value.errors["product"]

    delete_client(db_session, client)
    product_id = product.id
    delete_product(db_session, product)
    assert get_product(db_session, product_id) is None


def test_delete_of_a_changed_row_is_a_conflict(db_session):
    product = _make(db_session, "SCN-001", "Scanner", stock=2)
    product_id = product.id
    db_session.execute(text("UPDATE products SET version = version + 1 WHERE id = :id"), {"id": product_id})

    with pytest.raises(ConcurrentUpdateError):
        delete_product(db_session, product)

    db_session.expire_all()
    assert get_product(db_session, product_id) is not None

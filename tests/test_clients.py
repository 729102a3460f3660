import os
import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from stockbook.core.errors import ConcurrentUpdateError, FieldValidationError, InsufficientStockError
from stockbook.crud import clients as clients_crud
from stockbook.crud.clients import (
    client_metrics,
    create_client,
    delete_client,
    list_clients,
    preview_client,
    update_client,
)
from stockbook.crud.products import create_product
from stockbook.db.session import Base
from stockbook.models.client import Client

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


@pytest.fixture()
def kiosk(db_session):
    return create_product(
        db_session,
        {"code": "KIO-001", "name": "Kiosk", "stock_actuel": 10, "purchase_price": 100, "rent_price": 30},
    )


@pytest.fixture()
def printer(db_session):
    return create_product(
        db_session,
        {"code": "PRT-001", "name": "Printer", "stock_actuel": 5, "purchase_price": 300, "rent_price": 50},
    )


def _line(product, quantity, kind="buy", **extra):
    return {"product_id": product.id, "quantity": quantity, "type": kind, **extra}


def _client_count(db):
    return len(db.execute(select(Client)).scalars().all())


def test_create_buy_client_moves_stock(db_session, kiosk):
    client = create_client(db_session, {"client_name": "TechStore Paris", "products": [_line(kiosk, 4)]})

    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 6
    assert kiosk.hardware_total == 4
    assert client.total_sold_amount == pytest.approx(400)
    assert client.hardware_price == pytest.approx(400)
    assert client.monthly_fee == 0
    assert client.product_quantity == 4
    assert client.months_left == 0
    assert client.status == "active"

    line = client.products[0]
    assert line["productId"] == kiosk.id
    assert line["name"] == "Kiosk"
    assert line["purchasePrice"] == pytest.approx(100)
    assert line["clientPrice"] == pytest.approx(100)
    assert line["monthlyFee"] == 0
    assert line["addedAt"]


def test_rent_fee_is_per_assignment(db_session, printer):
    client = create_client(db_session, {"client_name": "ElectroShop Lyon", "products": [_line(printer, 3, "rent")]})

    db_session.refresh(printer)
    assert printer.stock_actuel == 2
    assert printer.hardware_total == 0
    assert client.monthly_fee == pytest.approx(50)
    assert client.total_sold_amount == 0
    assert client.products[0]["clientPrice"] == pytest.approx(50)


def test_months_left_from_overrides(db_session, kiosk, printer):
    client = create_client(
        db_session,
        {
            "client_name": "Cafe Nord",
            "products": [_line(kiosk, 10, client_price=100), _line(printer, 1, "rent", monthly_fee=100)],
            "hardware_price": 0,
        },
    )

    assert client.total_sold_amount == pytest.approx(1000)
    assert client.monthly_fee == pytest.approx(100)
    assert client.hardware_price == 0
    assert client.months_left == 10


def test_requested_months_left_must_be_positive_with_a_fee(db_session, printer):
    with pytest.raises(FieldValidationError) as exc_info:
        create_client(
            db_session,
            {"client_name": "Cafe Sud", "products": [_line(printer, 1, "rent")], "months_left": 0},
        )
    assert "months_left" in exc_info.value.errors

    client = create_client(
        db_session,
        {"client_name": "Cafe Sud", "products": [_line(printer, 1, "rent")], "months_left": 6},
    )
    assert client.months_left == 6


def test_validation_collects_field_errors(db_session, kiosk):
    with pytest.raises(FieldValidationError) as exc_info:
        create_client(
            db_session,
            {
                "client_name": " ",
                "products": [_line(kiosk, 0), {"product_id": "missing", "quantity": 1, "type": "buy"}],
            },
        )

    errors = exc_info.value.errors
    assert errors["client_name"] == "Client name is required"
    assert errors[f"products.{kiosk.id}"] == "Quantity must be a positive number"
    assert errors["products.missing"] == "Unknown product"


def test_fractional_quantity_is_rejected(db_session, kiosk, printer):
    with pytest.raises(FieldValidationError) as exc_info:
        create_client(
            db_session,
            {"client_name": "Halves", "products": [_line(kiosk, 2.7), _line(printer, "1.5", "rent")]},
        )

    assert exc_info.value.errors == {
        f"products.{kiosk.id}": "Quantity must be a whole number",
        f"products.{printer.id}": "Quantity must be a whole number",
    }
    assert _client_count(db_session) == 0
    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 10

    client = create_client(db_session, {"client_name": "Wholes", "products": [_line(kiosk, 2.0)]})
    assert client.products[0]["quantity"] == 2


def test_same_product_twice_is_rejected(db_session, kiosk):
    with pytest.raises(FieldValidationError) as exc_info:
        create_client(db_session, {"client_name": "Dup", "products": [_line(kiosk, 1), _line(kiosk, 2, "rent")]})
    assert exc_info.value.errors[f"products.{kiosk.id}"] == "Product is assigned more than once"


def test_shortage_writes_nothing(db_session, kiosk, printer):
    with pytest.raises(InsufficientStockError) as exc_info:
        create_client(
            db_session,
            {"client_name": "Too Big", "products": [_line(kiosk, 2), _line(printer, 6, "rent")]},
        )

    assert set(exc_info.value.errors) == {f"products.{printer.id}"}
    db_session.refresh(kiosk)
    db_session.refresh(printer)
    assert kiosk.stock_actuel == 10
    assert printer.stock_actuel == 5
    assert _client_count(db_session) == 0


def test_failure_mid_write_rolls_back(db_session, kiosk, monkeypatch):
    def exploding_apply(products, changes):
        for change in changes:
            products[change.product_id].stock_actuel += change.stock_delta
        raise RuntimeError("disk full")

    monkeypatch.setattr(clients_crud, "apply_stock_changes", exploding_apply)

    with pytest.raises(RuntimeError):
        create_client(db_session, {"client_name": "Unlucky", "products": [_line(kiosk, 3)]})

    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 10
    assert _client_count(db_session) == 0


def test_edit_shrinks_and_restores_stock(db_session, kiosk):
    client = create_client(db_session, {"client_name": "TechStore", "products": [_line(kiosk, 4)]})
    added_at = client.products[0]["addedAt"]

    client = update_client(db_session, client, {"products": [_line(kiosk, 2)]})

    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 8
    assert kiosk.hardware_total == 4
    assert client.products[0]["addedAt"] == added_at
    assert client.total_sold_amount == pytest.approx(200)
    assert client.product_quantity == 2


def test_edit_can_reuse_held_units(db_session, kiosk):
    client = create_client(db_session, {"client_name": "TechStore", "products": [_line(kiosk, 4)]})

    update_client(db_session, client, {"products": [_line(kiosk, 10)]})
    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 0

    with pytest.raises(InsufficientStockError):
        update_client(db_session, client, {"products": [_line(kiosk, 11)]})
    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 0


def test_type_switch_bookkeeping(db_session, kiosk):
    client = create_client(db_session, {"client_name": "Switcher", "products": [_line(kiosk, 3, "rent")]})
    db_session.refresh(kiosk)
    assert (kiosk.stock_actuel, kiosk.hardware_total) == (7, 0)
    assert client.monthly_fee == pytest.approx(30)

    client = update_client(db_session, client, {"products": [_line(kiosk, 3, "buy")]})
    db_session.refresh(kiosk)
    assert (kiosk.stock_actuel, kiosk.hardware_total) == (7, 3)
    assert client.monthly_fee == 0
    assert client.total_sold_amount == pytest.approx(300)

    update_client(db_session, client, {"products": [_line(kiosk, 2, "rent")]})
    db_session.refresh(kiosk)
    assert (kiosk.stock_actuel, kiosk.hardware_total) == (8, 3)


def test_removing_a_line_gives_stock_back(db_session, kiosk, printer):
    client = create_client(
        db_session,
        {"client_name": "Two Lines", "products": [_line(kiosk, 2), _line(printer, 1, "rent")]},
    )

    client = update_client(db_session, client, {"products": [_line(kiosk, 2)]})

    db_session.refresh(printer)
    assert printer.stock_actuel == 5
    assert [line["productId"] for line in client.products] == [kiosk.id]
    assert client.monthly_fee == 0


def test_edit_without_products_keeps_assignments_and_totals(db_session, kiosk):
    client = create_client(
        db_session,
        {"client_name": "Steady", "products": [_line(kiosk, 2)], "total_sold_amount": 999},
    )

    client = update_client(db_session, client, {"status": "inactive", "client_name": "Steady SA"})

    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 8
    assert client.status == "inactive"
    assert client.client_name == "Steady SA"
    assert client.total_sold_amount == pytest.approx(999)
    assert len(client.products) == 1


def test_stale_version_is_refused(db_session, kiosk):
    client = create_client(db_session, {"client_name": "Racer", "products": [_line(kiosk, 1)]})

    with pytest.raises(ConcurrentUpdateError):
        update_client(db_session, client, {"client_name": "Racer 2", "expected_version": client.version + 1})


def test_delete_restores_stock_but_not_hardware_total(db_session, kiosk, printer):
    client = create_client(
        db_session,
        {"client_name": "Leaving", "products": [_line(kiosk, 4), _line(printer, 2, "rent")]},
    )

    delete_client(db_session, client)

    db_session.refresh(kiosk)
    db_session.refresh(printer)
    assert (kiosk.stock_actuel, kiosk.hardware_total) == (10, 4)
    assert printer.stock_actuel == 5
    assert _client_count(db_session) == 0


def test_stock_is_conserved_across_a_sequence(db_session, kiosk):
    first = create_client(db_session, {"client_name": "One", "products": [_line(kiosk, 3)]})
    second = create_client(db_session, {"client_name": "Two", "products": [_line(kiosk, 2, "rent")]})
    first = update_client(db_session, first, {"products": [_line(kiosk, 5, "rent")]})
    second = update_client(db_session, second, {"products": [_line(kiosk, 1)]})
    delete_client(db_session, first)

    held = sum(line["quantity"] for c in list_clients(db_session) for line in c.products)
    db_session.refresh(kiosk)
    assert kiosk.stock_actuel + held == 10


def test_preview_does_not_persist(db_session, kiosk):
    plan = preview_client(
        db_session,
        {"client_name": "Maybe", "products": [_line(kiosk, 4)], "hardware_price": 0, "monthly_fee": 100},
    )

    assert plan.totals.installation_amount == pytest.approx(400)
    assert plan.values["months_left"] == 4
    assert [(c.stock_delta, c.hardware_delta) for c in plan.stock_changes] == [(-4, 4)]
    db_session.refresh(kiosk)
    assert kiosk.stock_actuel == 10
    assert _client_count(db_session) == 0


def test_list_filter_and_metrics(db_session, kiosk):
    create_client(db_session, {"client_name": "Active", "products": [_line(kiosk, 1)]})
    create_client(
        db_session,
        {
            "client_name": "Dormant",
            "status": "inactive",
            "total_sold_amount": 1000,
            "monthly_fee": 100,
            "hardware_price": 0,
            "contract_start_date": date(2024, 1, 15),
        },
    )

    assert [c.client_name for c in list_clients(db_session, status="inactive")] == ["Dormant"]

    dormant = list_clients(db_session, status="inactive")[0]
    assert dormant.contract_start_date == "2024-01-15"
    assert dormant.months_left == 10
    metrics = client_metrics(dormant, today=date(2024, 3, 1))
    assert metrics.months_to_cover == 10
    assert metrics.profitability_date == date(2024, 10, 15)
    assert metrics.status == "covering_investment"

import os
import sys
from datetime import date
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from stockbook.services.financials import (
    add_months,
    aggregate_products,
    assignment_details,
    calculate_client_metrics,
    calculate_months_left,
    calculate_payoff,
    month_diff,
    unit_sale_price,
)


def test_month_diff_ignores_day_of_month():
    assert month_diff(date(2024, 1, 31), date(2024, 2, 1)) == 1
    assert month_diff(date(2024, 1, 1), date(2024, 1, 31)) == 0
    assert month_diff(date(2023, 11, 20), date(2025, 2, 3)) == 15
    assert month_diff(date(2024, 3, 15), date(2023, 12, 1)) == -3


def test_add_months_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)
    assert add_months(date(2024, 3, 15), 0) == date(2024, 3, 15)


def test_rent_fee_counts_once_regardless_of_quantity():
    totals = aggregate_products(
        {
            "printer": {"quantity": 5, "type": "rent", "monthlyFee": 40, "purchasePrice": 300, "sellingPrice": 0},
        }
    )

    assert totals.total_monthly_fee == pytest.approx(40)
    assert totals.installation_amount == 0
    assert totals.hardware_price == 0
    assert totals.total_product_quantity == 5


def test_buy_lines_use_custom_price_else_cost():
    totals = aggregate_products(
        [
            {"quantity": 3, "type": "buy", "monthlyFee": 0, "purchasePrice": 100, "sellingPrice": 0},
            {"quantity": 2, "type": "buy", "monthlyFee": 0, "purchasePrice": 100, "sellingPrice": 150},
            {"quantity": 1, "type": "rent", "monthlyFee": 25, "purchasePrice": 999, "sellingPrice": 999},
        ]
    )

    assert totals.installation_amount == pytest.approx(3 * 100 + 2 * 150)
    assert totals.hardware_price == pytest.approx(600)
    assert totals.total_monthly_fee == pytest.approx(25)
    assert totals.total_product_quantity == 6


def test_unit_sale_price_fallback():
    assert unit_sale_price(80, 0) == 80
    assert unit_sale_price(80, None) == 80
    assert unit_sale_price(80, 120) == 120


def test_assignment_details_reads_stored_snapshots():
    details = assignment_details(
        [
            {"productId": "a", "quantity": 2, "type": "buy", "monthlyFee": 10, "purchasePrice": 50, "clientPrice": 70},
            {"productId": "b", "quantity": 1, "type": "rent", "monthlyFee": 30, "purchasePrice": 50, "clientPrice": 30},
        ]
    )

    assert details["a"]["monthlyFee"] == 0
    assert details["a"]["sellingPrice"] == 70
    assert details["b"]["monthlyFee"] == 30
    assert details["b"]["sellingPrice"] == 0
    assert aggregate_products(details).installation_amount == pytest.approx(140)


def test_payoff_needs_ten_months_for_uncovered_installation():
    payoff = calculate_payoff(1000, 100, 0, 0)

    assert payoff.profit_one_shot == 0
    assert payoff.net_month1 == pytest.approx(-900)
    assert payoff.months_left == 10


def test_payoff_covered_in_first_month():
    payoff = calculate_payoff(500, 200, starter_pack_price=100, hardware_price=500)

    assert payoff.profit_one_shot == pytest.approx(600)
    assert payoff.net_month1 == pytest.approx(300)
    assert payoff.months_left == 0


@pytest.mark.parametrize("installation", [0, 10, 5000])
def test_no_recurring_fee_means_zero_months(installation):
    assert calculate_months_left(installation, 0) == 0
    assert calculate_months_left(installation, -5) == 0


def test_net_month1_exactly_zero_is_covered():
    payoff = calculate_payoff(300, 100, starter_pack_price=200)

    assert payoff.net_month1 == 0
    assert payoff.months_left == 0


@pytest.mark.parametrize(
    "installation,fee,starter,hardware",
    [
        (1000, 100, 0, 0),
        (1000, 300, 50, 0),
        (1000, 333.33, 0, 0),
        (250, 100, 0, 0),
        (7200, 180, 400, 1200),
    ],
)
def test_months_left_is_the_first_month_that_covers(installation, fee, starter, hardware):
    payoff = calculate_payoff(installation, fee, starter, hardware)
    months = payoff.months_left

    assert payoff.net_month1 < 0
    assert payoff.profit_one_shot + months * fee - installation >= 0
    assert payoff.profit_one_shot + (months - 1) * fee - installation < 0


def test_metrics_while_still_covering():
    client = {
        "total_sold_amount": 1000,
        "monthly_fee": 100,
        "starter_pack_price": 0,
        "hardware_price": 0,
        "contract_start_date": "2024-01-15",
    }

    metrics = calculate_client_metrics(client, today=date(2024, 3, 10))

    assert metrics.months_to_cover == 10
    assert metrics.profitability_date == date(2024, 10, 15)
    assert metrics.months_elapsed == 2
    assert metrics.months_billed == 3
    assert metrics.months_remaining == 7
    assert metrics.net_cash_flow == pytest.approx(-700)
    assert metrics.is_profitable is False
    assert metrics.status == "covering_investment"


def test_metrics_keep_accumulating_after_coverage():
    client = {"total_sold_amount": 1000, "monthly_fee": 100, "contract_start_date": "2024-01-15"}

    metrics = calculate_client_metrics(client, today=date(2024, 12, 1))

    assert metrics.months_billed == 12
    assert metrics.net_cash_flow == pytest.approx(200)
    assert metrics.months_remaining == 0
    assert metrics.is_profitable is True
    assert metrics.status == "profitable"


def test_metrics_without_start_date_use_today():
    today = date(2024, 6, 5)

    metrics = calculate_client_metrics({"total_sold_amount": 0, "monthly_fee": 0}, today=today)

    assert metrics.contract_start_date == today
    assert metrics.profitability_date == today
    assert metrics.months_to_cover == 0
    assert metrics.months_billed == 1


def test_metrics_future_contract_has_billed_nothing():
    client = {"total_sold_amount": 500, "monthly_fee": 100, "contract_start_date": "2025-01-01"}

    metrics = calculate_client_metrics(client, today=date(2024, 12, 1))

    assert metrics.months_elapsed == -1
    assert metrics.months_billed == 0
    assert metrics.net_cash_flow == pytest.approx(-500)

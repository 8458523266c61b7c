"""Customer analytics built on the repository layer."""

from datetime import timedelta
from decimal import Decimal

import pytest

from common.exceptions import InvalidArgument
from common.helpers import now_utc
from modules.customer.service import CustomerService
from modules.repository.unit_of_work import UnitOfWork


@pytest.fixture
def service(seeded):
    with UnitOfWork(seeded) as unit:
        yield CustomerService(unit)


def test_city_statistics(service):
    seattle = service.get_city_statistics("Seattle")
    assert seattle == {
        "city": "Seattle",
        "total_customers": 2,
        "customers_with_orders": 2,
        "total_orders": 2,
        "average_orders_per_customer": 1.0,
    }

    nowhere = service.get_city_statistics("Nowhere")
    assert nowhere["total_customers"] == 0
    assert nowhere["average_orders_per_customer"] == 0.0


def test_active_customers_with_recent_orders(service):
    active = service.get_active_customers_with_recent_orders()
    assert [c["name"] for c in active] == ["Alice Johnson", "Bob Smith", "Charlie Brown"]
    assert all(c["recent_order_count"] == 1 for c in active)

    last_week = service.get_active_customers_with_recent_orders(days=7)
    assert [c["name"] for c in last_week] == ["Charlie Brown"]

    with pytest.raises(InvalidArgument):
        service.get_active_customers_with_recent_orders(days=0)


def test_customer_dashboard(service):
    alice = service.get_customer_dashboard(1)
    assert alice["customer_name"] == "Alice Johnson"
    assert alice["total_orders"] == 1
    assert alice["total_order_items"] == 3
    assert alice["total_spent"] == Decimal("1509.97")
    assert alice["average_order_value"] == Decimal("1509.97")
    assert alice["first_order_date"] == alice["last_order_date"]


def test_dashboard_for_customer_without_orders(service):
    diana = service.get_customer_dashboard(4)
    assert diana["total_orders"] == 0
    assert diana["total_spent"] == Decimal("0")
    assert diana["first_order_date"] is None


def test_dashboard_for_unknown_customer(service):
    assert service.get_customer_dashboard(999) is None


def test_analyze_customer_behavior(service):
    now = now_utc()
    report = service.analyze_customer_behavior("Seattle", now - timedelta(days=20), now)
    assert report["total_customers_in_city"] == 2
    assert report["active_customers_in_period"] == 2
    assert report["activity_rate"] == pytest.approx(100.0)
    assert report["total_orders_in_period"] == 2
    assert report["total_revenue_in_period"] == Decimal("2559.94")
    assert [t["name"] for t in report["top_customers"]] == ["Alice Johnson", "Charlie Brown"]

    last_week = service.analyze_customer_behavior("seattle", now - timedelta(days=7), now)
    assert last_week["active_customers_in_period"] == 1
    assert last_week["activity_rate"] == pytest.approx(50.0)
    assert [t["name"] for t in last_week["top_customers"]] == ["Charlie Brown"]


def test_analysis_rejects_inverted_window(service):
    now = now_utc()
    with pytest.raises(InvalidArgument):
        service.analyze_customer_behavior("Seattle", now, now - timedelta(days=1))

"""Baseline dataset seeding."""

from datetime import timedelta

from common.helpers import as_utc, now_utc
from modules.customer.models import Customer
from modules.order.models import OrderItem
from modules.repository.unit_of_work import UnitOfWork
from modules.seed.service import seed_database


def test_seed_populates_empty_database(session_factory):
    with UnitOfWork(session_factory) as unit:
        assert seed_database(unit) is True

    with UnitOfWork(session_factory) as unit:
        assert unit.products.count() == 8
        assert unit.customers.count() == 5
        assert unit.orders.count() == 3
        assert unit.repository(OrderItem).count() == 8


def test_seed_runs_only_once(session_factory):
    with UnitOfWork(session_factory) as unit:
        seed_database(unit)
    with UnitOfWork(session_factory) as unit:
        assert seed_database(unit) is False
        assert unit.products.count() == 8


def test_seeded_orders_are_spread_over_recent_days(seeded):
    now = now_utc()
    with UnitOfWork(seeded) as unit:
        orders = unit.orders.get_ordered_by_date(ascending=True).all()
    ages = [(now - as_utc(o.order_date)) for o in orders]
    for age, days in zip(ages, (15, 10, 5)):
        assert timedelta(days=days) - timedelta(minutes=5) < age <= timedelta(days=days) + timedelta(minutes=5)


def test_seed_skips_when_only_customers_exist(session_factory):
    with UnitOfWork(session_factory) as unit:
        unit.customers.add(Customer(name="Walk-in", city="Boston"))
        unit.save()
        assert seed_database(unit) is False

    with UnitOfWork(session_factory) as unit:
        assert unit.products.count() == 0
        assert unit.customers.count() == 1

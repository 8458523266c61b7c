"""EntityQuery composition: filters, ordering, windows, projection, tracking."""

from decimal import Decimal

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import InvalidRequestError

from common.exceptions import InvalidArgument
from modules.catalog.models import Product
from modules.customer.models import Customer
from modules.repository.unit_of_work import UnitOfWork


@pytest.fixture
def unit(seeded):
    with UnitOfWork(seeded) as u:
        yield u


def names(entities):
    return [e.name for e in entities]


def test_builders_return_new_queries(unit):
    base = unit.products.get_all()
    cheap = base.where(Product.price < 200)
    assert base.count() == 8
    assert cheap.count() == 2


def test_order_by_descending_and_then_by(unit):
    by_price = unit.products.get_all().order_by("Price", ascending=False).all()
    assert by_price[0].name == "Laptop Pro 15\""
    assert by_price[-1].name == "Gaming Mouse"

    by_city_then_name = unit.customers.get_all().order_by("city").then_by("name", ascending=False).all()
    assert names(by_city_then_name)[:3] == ["Edward Norton", "Bob Smith", "Diana Prince"]
    assert names(by_city_then_name)[3:] == ["Charlie Brown", "Alice Johnson"]


def test_skip_then_take(unit):
    page = unit.products.get_all().order_by(Product.price).skip(2).take(3).all()
    assert names(page) == ["Wireless Headphones", "Smart Watch", "Desktop Monitor 27\""]


def test_take_then_skip_shrinks_the_window(unit):
    page = unit.products.get_all().order_by(Product.price).take(5).skip(2).all()
    assert names(page) == ["Wireless Headphones", "Smart Watch", "Desktop Monitor 27\""]


def test_where_after_window_filters_within_it(unit):
    cheapest_three = unit.products.get_all().order_by(Product.price).take(3)
    narrowed = cheapest_three.where(Product.price > 100)
    assert names(narrowed.all()) == ["Mechanical Keyboard", "Wireless Headphones"]
    assert narrowed.count() == 2


def test_count_respects_window(unit):
    assert unit.products.get_all().order_by(Product.price).skip(6).count() == 2
    assert unit.products.get_all().take(3).count() == 3


def test_exists(unit):
    assert unit.products.get_all().exists()
    assert not unit.products.get_where(Product.price > 5000).exists()


def test_select_projects_columns(unit):
    row = unit.products.get_all().order_by("id").select("name", "price").first()
    assert row == {"name": "Laptop Pro 15\"", "price": Decimal("1299.99")}


def test_invalid_arguments(unit):
    query = unit.products.get_all()
    with pytest.raises(InvalidArgument):
        query.order_by("colour")
    with pytest.raises(InvalidArgument):
        query.skip(-1)
    with pytest.raises(InvalidArgument):
        query.take(0)
    with pytest.raises(InvalidArgument):
        query.where(None)
    with pytest.raises(InvalidArgument):
        unit.customers.get_all().include("invoices")


def test_results_are_detached_unless_tracking(unit):
    product = unit.products.get_all().first()
    assert inspect(product).detached

    tracked = unit.products.get_all().as_tracking().first()
    assert inspect(tracked).persistent


def test_relations_load_only_when_included(unit):
    customer = unit.customers.get_all().order_by(Customer.id).first()
    with pytest.raises(InvalidRequestError):
        customer.orders

    loaded = unit.customers.get_with_related("orders/order_items").order_by(Customer.id).first()
    assert len(loaded.orders) == 1
    assert len(loaded.orders[0].order_items) == 3

"""Unit of Work: lifecycle, atomic save, explicit transactions, optimistic concurrency."""

from datetime import timedelta
from decimal import Decimal

import pytest

from common.exceptions import ConcurrencyConflict, InvalidArgument, InvalidOperation, PersistenceError
from common.helpers import now_utc
from modules.catalog.models import Product
from modules.order.models import Order
from modules.repository.unit_of_work import UnitOfWork, UnitOfWorkState


def product_count(session_factory) -> int:
    with UnitOfWork(session_factory) as unit:
        return unit.products.count()


def test_lifecycle_states(session_factory):
    unit = UnitOfWork(session_factory)
    assert unit.state == UnitOfWorkState.CREATED
    assert unit.change_tracker_summary() == "No tracked entities."

    unit.products.count()
    assert unit.state == UnitOfWorkState.ACTIVE

    unit.close()
    unit.close()
    assert unit.state == UnitOfWorkState.DISPOSED
    with pytest.raises(InvalidOperation):
        unit.products
    with pytest.raises(InvalidOperation):
        unit.save()
    with pytest.raises(InvalidOperation):
        unit.begin_transaction()


def test_repositories_are_cached_per_unit(uow):
    assert uow.repository(Product) is uow.repository(Product)
    assert uow.products is uow.products
    assert uow.products.entities is uow.repository(Product)
    with pytest.raises(InvalidArgument):
        uow.repository(None)


def test_save_returns_number_of_written_entities(uow):
    assert uow.save() == 0
    uow.products.add_range([
        Product(name="Cable", price=Decimal("9.99")),
        Product(name="Charger", price=Decimal("19.99")),
    ])
    assert uow.has_changes()
    assert uow.save() == 2
    assert not uow.has_changes()


def test_failed_save_writes_nothing(seeded):
    with UnitOfWork(seeded) as unit:
        unit.products.add(Product(name="Cable", price=Decimal("9.99")))
        # Bypasses the customer check so the foreign key fails at the store
        unit.repository(Order).add(Order(customer_id=999, order_date=now_utc()))
        with pytest.raises(PersistenceError):
            unit.save()

    assert product_count(seeded) == 8


def test_explicit_transaction_rollback(seeded):
    with UnitOfWork(seeded) as unit:
        tx = unit.begin_transaction()
        unit.products.add(Product(name="Cable", price=Decimal("9.99")))
        unit.save()
        assert unit.products.count() == 9
        tx.rollback()
        assert not tx.is_active

    assert product_count(seeded) == 8


def test_transaction_context_manager_commits_and_rolls_back(seeded):
    with UnitOfWork(seeded) as unit:
        with unit.begin_transaction():
            unit.products.add(Product(name="Cable", price=Decimal("9.99")))
            unit.save()
            unit.products.add(Product(name="Charger", price=Decimal("19.99")))
            unit.save()

        with pytest.raises(RuntimeError):
            with unit.begin_transaction():
                unit.products.add(Product(name="Adapter", price=Decimal("4.99")))
                unit.save()
                raise RuntimeError("boom")

    assert product_count(seeded) == 10


def test_nested_transaction_is_rejected(uow):
    tx = uow.begin_transaction()
    with pytest.raises(InvalidOperation):
        uow.begin_transaction()
    tx.commit()
    with pytest.raises(InvalidOperation):
        tx.commit()


def test_run_in_transaction(seeded):
    with UnitOfWork(seeded) as unit:
        def add_one():
            unit.products.add(Product(name="Cable", price=Decimal("9.99")))
            unit.save()
            return "done"

        assert unit.run_in_transaction(add_one) == "done"

        def fail():
            unit.products.add(Product(name="Charger", price=Decimal("19.99")))
            unit.save()
            raise ValueError("nope")

        with pytest.raises(ValueError):
            unit.run_in_transaction(fail)

    assert product_count(seeded) == 9


def test_transaction_with_isolation_level(seeded):
    with UnitOfWork(seeded) as unit:
        unit.products.count()
        with unit.begin_transaction("SERIALIZABLE") as tx:
            assert tx.isolation_level == "SERIALIZABLE"
            unit.products.add(Product(name="Cable", price=Decimal("9.99")))
            unit.save()

    assert product_count(seeded) == 9


def test_detach_all_discards_staged_changes(seeded):
    with UnitOfWork(seeded) as unit:
        unit.products.add(Product(name="Cable", price=Decimal("9.99")))
        tracked = unit.products.get_all().as_tracking().order_by("id").first()
        tracked.name = "Laptop Pro 16\""
        assert unit.has_changes()

        unit.detach_all()
        assert not unit.has_changes()
        assert unit.save() == 0

    with UnitOfWork(seeded) as unit:
        assert unit.products.get_by_id(1).name == "Laptop Pro 15\""
        assert unit.products.count() == 8


def test_change_tracker_summary(seeded):
    with UnitOfWork(seeded) as unit:
        tracked = unit.products.get_all().as_tracking().order_by("id").first()
        tracked.name = "Laptop Pro 16\""
        unit.products.add(Product(name="Cable", price=Decimal("9.99")))

        summary = unit.change_tracker_summary()
        assert "Added: 1" in summary
        assert "Modified: 1" in summary
        assert "Deleted" not in summary


def test_concurrent_update_raises_conflict(seeded):
    first = UnitOfWork(seeded)
    second = UnitOfWork(seeded)
    try:
        mine = first.products.get_by_id(1)
        theirs = second.products.get_by_id(1)

        mine.price = Decimal("1199.99")
        first.products.update(mine)
        first.save()

        theirs.price = Decimal("999.99")
        second.products.update(theirs)
        with pytest.raises(ConcurrencyConflict):
            second.save()
    finally:
        first.close()
        second.close()

    with UnitOfWork(seeded) as unit:
        assert unit.products.get_by_id(1).price == Decimal("1199.99")


def test_concurrent_delete_raises_conflict(seeded):
    first = UnitOfWork(seeded)
    second = UnitOfWork(seeded)
    try:
        mine = first.products.get_by_id(3)
        theirs = second.products.get_by_id(3)

        mine.name = "Tablet Air 2"
        first.products.update(mine)
        first.save()

        second.products.delete(theirs)
        with pytest.raises(ConcurrencyConflict):
            second.save()
    finally:
        first.close()
        second.close()


def test_order_dates_in_the_past_survive_round_trip(seeded):
    with UnitOfWork(seeded) as unit:
        oldest = unit.orders.get_ordered_by_date(ascending=True).first()
        assert oldest.customer_id == 1
        age = now_utc().replace(tzinfo=None) - oldest.order_date.replace(tzinfo=None)
        assert timedelta(days=14) < age < timedelta(days=16)

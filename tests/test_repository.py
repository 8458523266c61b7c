"""Generic repository: staged CRUD, audit stamping, paging."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from common.exceptions import InvalidArgument
from modules.catalog.models import Product
from modules.customer.models import Customer
from modules.repository.base import Repository
from modules.repository.unit_of_work import UnitOfWork


def products(unit) -> Repository:
    return unit.repository(Product)


def test_add_assigns_identity_audit_fields_and_version(uow):
    product = products(uow).add(Product(name="Cable", price=Decimal("9.99")))
    assert product.id is None
    assert uow.save() == 1

    assert product.id is not None
    assert product.version == 1
    assert product.created_at == product.updated_at


def test_add_discards_client_supplied_id(seeded):
    with UnitOfWork(seeded) as unit:
        product = products(unit).add(Product(id=999, name="Cable", price=Decimal("9.99")))
        unit.save()
        assert product.id != 999
        assert products(unit).get_by_id(999) is None


def test_add_rejects_persisted_entity(seeded):
    with UnitOfWork(seeded) as unit:
        product = products(unit).get_all().as_tracking().first()
        with pytest.raises(InvalidArgument):
            products(unit).add(product)


def test_get_by_id_absent_returns_none(seeded):
    with UnitOfWork(seeded) as unit:
        assert products(unit).get_by_id(12345) is None
        assert products(unit).get_by_id(None) is None


def test_update_detached_entity_bumps_version_and_updated_at(seeded):
    with UnitOfWork(seeded) as unit:
        product = products(unit).get_by_id(1)
        original_created = product.created_at
        product.price = Decimal("1199.99")
        products(unit).update(product)
        assert unit.has_changes()
        assert unit.save() == 1

    with UnitOfWork(seeded) as unit:
        reloaded = products(unit).get_by_id(1)
        assert reloaded.price == Decimal("1199.99")
        assert reloaded.version == 2
        assert reloaded.created_at == original_created
        assert reloaded.updated_at >= reloaded.created_at


def test_created_at_cannot_be_overwritten(seeded):
    with UnitOfWork(seeded) as unit:
        original = products(unit).get_by_id(2).created_at

    with UnitOfWork(seeded) as unit:
        product = products(unit).get_by_id(2)
        product.created_at = datetime(2000, 1, 1, tzinfo=timezone.utc)
        product.name = "Smartphone XI"
        products(unit).update(product)
        unit.save()

    with UnitOfWork(seeded) as unit:
        reloaded = products(unit).get_by_id(2)
        assert reloaded.name == "Smartphone XI"
        assert reloaded.created_at == original


def test_update_of_missing_or_unidentified_entity_is_rejected(seeded):
    with UnitOfWork(seeded) as unit:
        with pytest.raises(InvalidArgument):
            products(unit).update(Product(id=999, name="Ghost", price=Decimal("1.00")))
        with pytest.raises(InvalidArgument):
            products(unit).update(Product(name="Ghost", price=Decimal("1.00")))
        assert not unit.has_changes()


def test_delete_by_id(seeded):
    with UnitOfWork(seeded) as unit:
        assert products(unit).delete_by_id(999) is False
        assert not unit.has_changes()

        assert products(unit).delete_by_id(8) is True
        unit.save()

    with UnitOfWork(seeded) as unit:
        assert products(unit).get_by_id(8) is None
        assert products(unit).count() == 7


def test_delete_of_pending_entity_drops_the_insert(uow):
    product = products(uow).add(Product(name="Cable", price=Decimal("9.99")))
    products(uow).delete(product)
    assert not uow.has_changes()
    assert uow.save() == 0


def test_delete_detached_entity(seeded):
    with UnitOfWork(seeded) as unit:
        product = products(unit).get_by_id(7)
        products(unit).delete(product)
        unit.save()
        assert not products(unit).exists(Product.id == 7)


def test_get_paged(seeded):
    with UnitOfWork(seeded) as unit:
        page = products(unit).get_paged(2, 3, "price")
        assert [p.name for p in page] == ["Smart Watch", "Desktop Monitor 27\"", "Tablet Air"]

        last = products(unit).get_paged(3, 3, Product.price)
        assert len(last) == 2

        with pytest.raises(InvalidArgument):
            products(unit).get_paged(0, 3, "price")
        with pytest.raises(InvalidArgument):
            products(unit).get_paged(1, 0, "price")


@pytest.mark.parametrize("page_size", [1, 3, 5, 8])
def test_pages_are_stable_and_cover_the_ordered_set(seeded, page_size):
    with UnitOfWork(seeded) as unit:
        repo = products(unit)
        ordered = [p.id for p in repo.get_advanced(order_key="price").all()]

        first = [p.id for p in repo.get_paged(1, page_size, "price")]
        assert first == [p.id for p in repo.get_paged(1, page_size, "price")]

        pages = (len(ordered) + page_size - 1) // page_size
        joined = []
        for number in range(1, pages + 1):
            joined.extend(p.id for p in repo.get_paged(number, page_size, "price"))
        assert joined == ordered
        assert repo.get_paged(pages + 1, page_size, "price") == []


def test_count_and_exists_with_predicate(seeded):
    with UnitOfWork(seeded) as unit:
        assert products(unit).count(Product.price > 500) == 2
        assert products(unit).exists(Product.name == "Tablet Air")
        assert not products(unit).exists(Product.name == "Tablet Mini")


def test_get_advanced_and_ordered_page(seeded):
    with UnitOfWork(seeded) as unit:
        customers = unit.repository(Customer)
        query = customers.get_advanced(
            predicate=Customer.city == "Seattle",
            order_key="name",
            ascending=False,
            take=1,
            include=("orders",),
        )
        [charlie] = query.all()
        assert charlie.name == "Charlie Brown"
        assert len(charlie.orders) == 1

        page = customers.ordered_page("name", True, 1, 2, "orders").all()
        assert [c.name for c in page] == ["Bob Smith", "Charlie Brown"]
        assert all(len(c.orders) == 1 for c in page)


def test_validators_reject_bad_values():
    with pytest.raises(InvalidArgument):
        Product(name="  ", price=Decimal("1.00"))
    with pytest.raises(InvalidArgument):
        Product(name="Cable", price=Decimal("0"))
    with pytest.raises(InvalidArgument):
        Product(name="Cable", price=Decimal("1.999"))
    with pytest.raises(InvalidArgument):
        Customer(name="Zed", city="")

"""
Customer Module - Customer Repository
=======================================
Named customer queries and the delete-restrict rule: a customer that
still owns orders is never removed.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List

from sqlalchemy import and_, func, select

from common.exceptions import InvalidArgument
from common.helpers import as_utc
from modules.customer.models import Customer
from modules.order.models import Order, OrderItem
from modules.repository.base import SpecializedRepository, delete_guard
from modules.repository.query import EntityQuery, contains_text

logger = logging.getLogger("shop.customer")


@delete_guard(Customer)
def _refuse_customer_with_orders(session, customer_id: int) -> None:
    """Runs for every Customer delete, through any repository."""
    owns_orders = session.scalar(select(Order.id).where(Order.customer_id == customer_id).limit(1))
    if owns_orders is not None:
        raise InvalidArgument(f"Customer {customer_id} has orders and cannot be deleted")


class CustomerRepository(SpecializedRepository):
    model = Customer

    # ==========================================
    # Named queries
    # ==========================================

    def get_by_city(self, city: str) -> EntityQuery[Customer]:
        """Case-insensitive exact match on city."""
        if not city or not city.strip():
            raise InvalidArgument("City is required")
        logger.debug(f"Customers in city={city}")
        return self.entities.get_where(func.lower(Customer.city) == city.lower())

    def get_with_orders(self) -> EntityQuery[Customer]:
        return self.entities.get_with_related("orders")

    def get_by_name_pattern(self, pattern: str) -> EntityQuery[Customer]:
        if not pattern or not pattern.strip():
            raise InvalidArgument("Name pattern is required")
        return self.entities.get_where(contains_text(self.entities.session, Customer.name, pattern))

    def get_with_order_statistics(self) -> EntityQuery[Customer]:
        """Customers with orders and their items loaded."""
        return self.entities.get_with_related("orders.order_items")

    def get_by_order_date_range(self, from_date: datetime, to_date: datetime) -> EntityQuery[Customer]:
        """Customers with at least one order dated within [from_date, to_date]."""
        if from_date is None or to_date is None:
            raise InvalidArgument("from_date and to_date are required")
        from_date, to_date = as_utc(from_date), as_utc(to_date)
        if from_date > to_date:
            raise InvalidArgument("from_date must not be after to_date")
        in_range = Customer.orders.any(and_(Order.order_date >= from_date, Order.order_date <= to_date))
        return self.entities.get_where_with_related(in_range, "orders")

    def get_order_totals(self) -> List[Dict[str, Any]]:
        """Per-customer aggregate: order count, item count and total spent."""
        stmt = (
            select(
                Customer.id,
                Customer.name,
                Customer.city,
                func.count(func.distinct(Order.id)).label("order_count"),
                func.count(OrderItem.id).label("item_count"),
                func.coalesce(func.sum(OrderItem.price), 0).label("total_spent"),
            )
            .outerjoin(Order, Order.customer_id == Customer.id)
            .outerjoin(OrderItem, OrderItem.order_id == Order.id)
            .group_by(Customer.id, Customer.name, Customer.city)
            .order_by(Customer.id)
        )
        return [dict(row._mapping) for row in self.entities.session.execute(stmt)]

    def has_orders(self, customer_id: int) -> bool:
        return self._uow.repository(Order).exists(Order.customer_id == customer_id)


"""
Order Module - Order Repository
=================================
Named order queries, aggregate summaries, and the customer-exists
check that runs before an order is staged.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy import and_, func, select

from common.exceptions import InvalidArgument
from common.helpers import as_utc, now_utc
from modules.customer.models import Customer
from modules.order.models import Order, OrderItem
from modules.repository.base import SpecializedRepository
from modules.repository.query import EntityQuery

logger = logging.getLogger("shop.order")


class OrderRepository(SpecializedRepository):
    model = Order

    def add(self, order: Order) -> Order:
        """Stage a new order with its items. The customer must already exist."""
        if order is None:
            raise InvalidArgument("order is required")
        if order.customer_id is None:
            raise InvalidArgument("customer_id is required")
        if not self._uow.repository(Customer).exists(Customer.id == order.customer_id):
            logger.warning(f"Customer with ID {order.customer_id} not found")
            raise InvalidArgument(f"Customer with ID {order.customer_id} not found")

        items = self._uow.repository(OrderItem)
        for item in order.order_items:
            items.reset_identity(item)
        return self.entities.add(order)

    # ==========================================
    # Named queries
    # ==========================================

    def get_with_full_details(self) -> EntityQuery[Order]:
        return self.entities.get_with_related("customer", "order_items")

    def get_by_customer_id(self, customer_id: int) -> EntityQuery[Order]:
        return self.entities.get_where(Order.customer_id == customer_id)

    def get_by_date_range(self, from_date: datetime, to_date: datetime) -> EntityQuery[Order]:
        """Inclusive on both ends."""
        if from_date is None or to_date is None:
            raise InvalidArgument("from_date and to_date are required")
        from_date, to_date = as_utc(from_date), as_utc(to_date)
        if from_date > to_date:
            raise InvalidArgument("from_date must not be after to_date")
        return self.entities.get_where(and_(Order.order_date >= from_date, Order.order_date <= to_date))

    def get_with_totals(self) -> EntityQuery[Order]:
        """Orders with items loaded, so total_value/item_count are available."""
        return self.entities.get_with_related("order_items", "customer")

    def get_recent_orders(self, days: int) -> EntityQuery[Order]:
        if days is None or days <= 0:
            raise InvalidArgument("Days must be greater than 0")
        cutoff = now_utc() - timedelta(days=days)
        logger.debug(f"Orders since {cutoff.isoformat()}")
        return self.entities.get_where(Order.order_date >= cutoff)

    def get_ordered_by_date(self, ascending: bool = False) -> EntityQuery[Order]:
        return self.entities.get_all().order_by(Order.order_date, ascending)

    def get_order_summaries(self) -> List[Dict[str, Any]]:
        """One row per order: customer name, item count, total and average item price."""
        stmt = (
            select(
                Order.id,
                Order.order_date,
                Order.customer_id,
                Customer.name.label("customer_name"),
                func.count(OrderItem.id).label("item_count"),
                func.coalesce(func.sum(OrderItem.price), 0).label("total_value"),
                func.coalesce(func.avg(OrderItem.price), 0).label("average_item_price"),
            )
            .join(Customer, Customer.id == Order.customer_id)
            .outerjoin(OrderItem, OrderItem.order_id == Order.id)
            .group_by(Order.id, Order.order_date, Order.customer_id, Customer.name)
            .order_by(Order.id)
        )
        return [dict(row._mapping) for row in self.entities.session.execute(stmt)]

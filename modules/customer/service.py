"""
Customer Module - Analytics Service
=====================================
Read-only business reports built on CustomerRepository named queries.
All results are plain dicts, ready to be returned from a route.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func

from common.exceptions import InvalidArgument
from common.helpers import as_utc, now_utc
from modules.customer.models import Customer
from modules.order.models import Order

logger = logging.getLogger("shop.customer")

TOP_CUSTOMERS = 5


def _in_window(order: Order, from_date: datetime, to_date: datetime) -> bool:
    placed = as_utc(order.order_date)
    return from_date <= placed <= to_date


class CustomerService:

    def __init__(self, uow):
        if uow is None:
            raise InvalidArgument("Unit of work is required")
        self.uow = uow

    def get_city_statistics(self, city: str) -> Dict[str, Any]:
        logger.info(f"City statistics requested for {city}")
        customers = self.uow.customers.get_by_city(city).include("orders").all()
        total_orders = sum(len(c.orders) for c in customers)
        return {
            "city": city,
            "total_customers": len(customers),
            "customers_with_orders": sum(1 for c in customers if c.orders),
            "total_orders": total_orders,
            "average_orders_per_customer": total_orders / len(customers) if customers else 0.0,
        }

    def get_active_customers_with_recent_orders(self, days: int = 30) -> List[Dict[str, Any]]:
        """Customers with at least one order in the last `days` days."""
        if days is None or days <= 0:
            raise InvalidArgument("Days must be greater than 0")
        until = now_utc()
        since = until - timedelta(days=days)
        customers = self.uow.customers.get_by_order_date_range(since, until).order_by(Customer.id).all()

        result = []
        for c in customers:
            recent = [o for o in c.orders if _in_window(o, since, until)]
            result.append({
                "id": c.id,
                "name": c.name,
                "city": c.city,
                "recent_order_count": len(recent),
                "last_order_date": max(as_utc(o.order_date) for o in c.orders),
            })
        return result

    def get_customer_dashboard(self, customer_id: int) -> Optional[Dict[str, Any]]:
        """Lifetime totals for one customer. None when the customer does not exist."""
        customer = (
            self.uow.customers.get_with_order_statistics()
            .where(Customer.id == customer_id)
            .first()
        )
        if customer is None:
            return None

        orders = customer.orders
        total_spent = sum((o.total_value for o in orders), Decimal("0"))
        dates = [as_utc(o.order_date) for o in orders]
        return {
            "customer_id": customer.id,
            "customer_name": customer.name,
            "city": customer.city,
            "total_orders": len(orders),
            "total_order_items": sum(o.item_count for o in orders),
            "total_spent": total_spent,
            "average_order_value": (total_spent / len(orders)).quantize(Decimal("0.01")) if orders else Decimal("0"),
            "first_order_date": min(dates) if dates else None,
            "last_order_date": max(dates) if dates else None,
        }

    def analyze_customer_behavior(self, city: str, from_date: datetime, to_date: datetime) -> Dict[str, Any]:
        """Activity of one city's customers within an inclusive date window."""
        if from_date is None or to_date is None:
            raise InvalidArgument("from_date and to_date are required")
        from_date, to_date = as_utc(from_date), as_utc(to_date)
        if from_date > to_date:
            raise InvalidArgument("from_date must not be after to_date")

        total_in_city = self.uow.customers.get_by_city(city).count()
        in_city = func.lower(Customer.city) == city.lower()
        active = (
            self.uow.customers.get_by_order_date_range(from_date, to_date)
            .where(in_city)
            .count()
        )
        detailed = (
            self.uow.customers.get_with_order_statistics()
            .where(in_city)
            .where(Customer.orders.any(and_(Order.order_date >= from_date, Order.order_date <= to_date)))
            .all()
        )

        period_orders = []
        top = []
        for c in detailed:
            mine = [o for o in c.orders if _in_window(o, from_date, to_date)]
            period_orders.extend(mine)
            top.append({
                "name": c.name,
                "order_count": len(mine),
                "total_spent": sum((o.total_value for o in mine), Decimal("0")),
            })
        top.sort(key=lambda t: t["total_spent"], reverse=True)

        return {
            "city": city,
            "analysis_period": f"{from_date:%Y-%m-%d} to {to_date:%Y-%m-%d}",
            "total_customers_in_city": total_in_city,
            "active_customers_in_period": active,
            "activity_rate": active / total_in_city * 100 if total_in_city else 0.0,
            "total_orders_in_period": len(period_orders),
            "total_revenue_in_period": sum((o.total_value for o in period_orders), Decimal("0")),
            "top_customers": top[:TOP_CUSTOMERS],
        }

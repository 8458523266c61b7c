"""
Customer Module - REST Routes
===============================
JSON CRUD, named queries and analytics for Customers.

Endpoints:
  GET    /api/customers
  GET    /api/customers/recent-activity        - customers with orders in the last N days
  GET    /api/customers/city/{city}
  GET    /api/customers/city/{city}/statistics
  GET    /api/customers/city/{city}/analysis   - from_date/to_date window
  GET    /api/customers/{id}                   - optional include_orders
  GET    /api/customers/{id}/orders            - 404 for an unknown customer
  GET    /api/customers/{id}/dashboard
  POST   /api/customers
  PUT    /api/customers/{id}
  DELETE /api/customers/{id}                   - 400 when the customer owns orders
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from common.exceptions import ConcurrencyConflict
from common.helpers import now_utc
from config.database import get_uow
from modules.customer.models import Customer
from modules.customer.service import CustomerService
from modules.order.models import Order
from modules.odata.serializer import entities_to_list, entity_to_dict
from modules.repository.unit_of_work import UnitOfWork

router = APIRouter(prefix="/api/customers", tags=["customers"])


# ==========================================
# Schemas
# ==========================================

class CustomerIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)


class CustomerUpdate(CustomerIn):
    version: Optional[int] = None


def _not_found(customer_id: int):
    return HTTPException(status_code=404, detail=f"Customer {customer_id} not found")


# ==========================================
# Queries
# ==========================================

@router.get("")
def list_customers(uow: UnitOfWork = Depends(get_uow)):
    return entities_to_list(uow.customers.get_all().order_by(Customer.id).all())


@router.get("/recent-activity")
def recent_activity(days: int = 30, uow: UnitOfWork = Depends(get_uow)):
    return CustomerService(uow).get_active_customers_with_recent_orders(days)


@router.get("/city/{city}")
def customers_in_city(city: str, uow: UnitOfWork = Depends(get_uow)):
    return entities_to_list(uow.customers.get_by_city(city).order_by(Customer.name).all())


@router.get("/city/{city}/statistics")
def city_statistics(city: str, uow: UnitOfWork = Depends(get_uow)):
    return CustomerService(uow).get_city_statistics(city)


@router.get("/city/{city}/analysis")
def city_analysis(
    city: str,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    uow: UnitOfWork = Depends(get_uow),
):
    """Defaults to the last 30 days."""
    to_date = to_date or now_utc()
    from_date = from_date or to_date - timedelta(days=30)
    return CustomerService(uow).analyze_customer_behavior(city, from_date, to_date)


@router.get("/{customer_id}")
def get_customer(customer_id: int, include_orders: bool = False, uow: UnitOfWork = Depends(get_uow)):
    if include_orders:
        customer = uow.customers.get_by_id(customer_id, "orders.order_items")
    else:
        customer = uow.customers.get_by_id(customer_id)
    if customer is None:
        raise _not_found(customer_id)
    expand = {"orders": {"order_items": {}}} if include_orders else None
    return entity_to_dict(customer, expand)


@router.get("/{customer_id}/orders")
def customer_orders(customer_id: int, uow: UnitOfWork = Depends(get_uow)):
    if uow.customers.get_by_id(customer_id) is None:
        raise _not_found(customer_id)
    orders = uow.orders.get_by_customer_id(customer_id).include("order_items").order_by(Order.order_date).all()
    return entities_to_list(orders, {"order_items": {}})


@router.get("/{customer_id}/dashboard")
def customer_dashboard(customer_id: int, uow: UnitOfWork = Depends(get_uow)):
    dashboard = CustomerService(uow).get_customer_dashboard(customer_id)
    if dashboard is None:
        raise _not_found(customer_id)
    return dashboard


# ==========================================
# Commands
# ==========================================

@router.post("", status_code=201)
def create_customer(body: CustomerIn, uow: UnitOfWork = Depends(get_uow)):
    customer = uow.customers.add(Customer(name=body.name, city=body.city))
    uow.save()
    return entity_to_dict(customer)


@router.put("/{customer_id}")
def update_customer(customer_id: int, body: CustomerUpdate, uow: UnitOfWork = Depends(get_uow)):
    customer = uow.customers.get_by_id(customer_id)
    if customer is None:
        raise _not_found(customer_id)
    if body.version is not None and body.version != customer.version:
        raise ConcurrencyConflict()

    customer.name = body.name
    customer.city = body.city
    customer = uow.customers.update(customer)
    uow.save()
    return entity_to_dict(customer)


@router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: int, uow: UnitOfWork = Depends(get_uow)):
    if not uow.customers.delete_by_id(customer_id):
        raise _not_found(customer_id)
    uow.save()
    return Response(status_code=204)

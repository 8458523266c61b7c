"""
Order Module - REST Routes
============================
Orders are created with their items in one request and are never
edited afterwards; they can only be deleted (items cascade).

Endpoints:
  GET    /api/orders             - full details (customer + items)
  GET    /api/orders/recent      - placed within the last N days
  GET    /api/orders/summaries   - aggregate row per order
  GET    /api/orders/{id}
  POST   /api/orders
  DELETE /api/orders/{id}
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from common.exceptions import InvalidArgument
from common.helpers import as_utc, now_utc
from config.database import get_uow
from config.settings import RECENT_ORDERS_MAX_DAYS
from modules.order.models import Order, OrderItem
from modules.odata.serializer import entities_to_list, entity_to_dict
from modules.repository.unit_of_work import UnitOfWork

router = APIRouter(prefix="/api/orders", tags=["orders"])

FULL_DETAILS = {"customer": {}, "order_items": {}}


# ==========================================
# Schemas
# ==========================================

class OrderItemIn(BaseModel):
    product_name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., gt=0)


class OrderIn(BaseModel):
    customer_id: int
    order_date: Optional[datetime] = None
    items: List[OrderItemIn] = Field(default_factory=list)


# ==========================================
# Queries
# ==========================================

@router.get("")
def list_orders(uow: UnitOfWork = Depends(get_uow)):
    orders = uow.orders.get_with_full_details().order_by(Order.id).all()
    return entities_to_list(orders, FULL_DETAILS)


@router.get("/recent")
def recent_orders(days: int = 7, uow: UnitOfWork = Depends(get_uow)):
    if days > RECENT_ORDERS_MAX_DAYS:
        raise InvalidArgument(f"Days must not exceed {RECENT_ORDERS_MAX_DAYS}")
    orders = (
        uow.orders.get_recent_orders(days)
        .include("customer", "order_items")
        .order_by(Order.order_date, ascending=False)
        .all()
    )
    return entities_to_list(orders, FULL_DETAILS)


@router.get("/summaries")
def order_summaries(uow: UnitOfWork = Depends(get_uow)):
    rows = uow.orders.get_order_summaries()
    for row in rows:
        row["order_date"] = as_utc(row["order_date"])
    return rows


@router.get("/{order_id}")
def get_order(order_id: int, uow: UnitOfWork = Depends(get_uow)):
    order = uow.orders.get_by_id(order_id, "customer", "order_items")
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return entity_to_dict(order, FULL_DETAILS)


# ==========================================
# Commands
# ==========================================

@router.post("", status_code=201)
def create_order(body: OrderIn, uow: UnitOfWork = Depends(get_uow)):
    order = Order(
        customer_id=body.customer_id,
        order_date=as_utc(body.order_date) if body.order_date else now_utc(),
        order_items=[OrderItem(product_name=i.product_name, price=i.price) for i in body.items],
    )
    uow.orders.add(order)
    uow.save()

    created = uow.orders.get_by_id(order.id, "customer", "order_items")
    return entity_to_dict(created, FULL_DETAILS)


@router.delete("/{order_id}", status_code=204)
def delete_order(order_id: int, uow: UnitOfWork = Depends(get_uow)):
    if not uow.orders.delete_by_id(order_id):
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    uow.save()
    return Response(status_code=204)

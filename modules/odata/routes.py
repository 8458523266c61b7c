"""
OData Module - Routes
=======================
Query-string driven endpoints over every entity set.

Endpoints:
  GET    /odata/{Set}                        - $filter $orderby $select $expand $top $skip $count
  GET    /odata/{Set}({key})                 - single entity, $select $expand
  GET    /odata/Customers/GetByCity          - ?city=, plus query options
  GET    /odata/Products/GetByPriceRange     - ?minPrice=&maxPrice=, plus query options
  POST   /odata/Customers | Products | Orders
  PUT    /odata/Customers({key}) | Products({key})
  DELETE /odata/Customers({key}) | Products({key}) | Orders({key})

Request and response bodies use PascalCase property names.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from common.exceptions import ConcurrencyConflict
from common.helpers import as_utc, now_utc
from config.database import get_uow
from modules.catalog.models import Product
from modules.customer.models import Customer
from modules.order.models import Order, OrderItem
from modules.odata.options import apply_query_options, parse_query_options
from modules.odata.serializer import entities_to_list, entity_to_dict, pascal_case
from modules.repository.query import EntityQuery
from modules.repository.unit_of_work import UnitOfWork

logger = logging.getLogger("shop.odata")

router = APIRouter(prefix="/odata", tags=["odata"])

ENTITY_SETS = {
    "Products": Product,
    "Customers": Customer,
    "Orders": Order,
    "OrderItems": OrderItem,
}


# ==========================================
# Schemas (PascalCase on the wire)
# ==========================================

class _PascalBody(BaseModel):
    model_config = ConfigDict(alias_generator=pascal_case, populate_by_name=True)


class CustomerBody(_PascalBody):
    name: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    version: Optional[int] = None


class ProductBody(_PascalBody):
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., gt=0)
    version: Optional[int] = None


class OrderItemBody(_PascalBody):
    product_name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., gt=0)


class OrderBody(_PascalBody):
    customer_id: int
    order_date: Optional[datetime] = None
    order_items: List[OrderItemBody] = Field(default_factory=list)


# ==========================================
# Helpers
# ==========================================

def _context(request: Request, fragment: str) -> str:
    return f"{request.base_url}odata/$metadata#{fragment}"


def _collection_body(request: Request, entity_set: str, query: EntityQuery, model, uow: UnitOfWork):
    options = parse_query_options(model, request.query_params, session=uow.session)
    entities, total = apply_query_options(query, options)

    body = {"@odata.context": _context(request, entity_set)}
    if total is not None:
        body["@odata.count"] = total
    body["value"] = entities_to_list(entities, options.expand, options.select, pascal=True)
    return body


def _entity_body(request: Request, entity_set: str, entity, expand=None, select=None):
    body = {"@odata.context": _context(request, f"{entity_set}/$entity")}
    body.update(entity_to_dict(entity, expand, select, pascal=True))
    return body


def _not_found(model, key: int):
    return HTTPException(status_code=404, detail=f"{model.__name__} {key} not found")


def _created(request: Request, entity_set: str, entity, expand=None):
    response_body = _entity_body(request, entity_set, entity, expand)
    location = f"{request.base_url}odata/{entity_set}({entity.id})"
    logger.info(f"Created {entity_set}({entity.id})")
    return response_body, location


# ==========================================
# Reads: every entity set
# ==========================================

def _collection_endpoint(entity_set: str, model):
    def list_entities(request: Request, uow: UnitOfWork = Depends(get_uow)):
        return _collection_body(request, entity_set, uow.repository(model).get_all(), model, uow)

    list_entities.__name__ = f"odata_list_{entity_set.lower()}"
    return list_entities


def _entity_endpoint(entity_set: str, model):
    def get_entity(key: int, request: Request, uow: UnitOfWork = Depends(get_uow)):
        options = parse_query_options(model, request.query_params, session=uow.session)
        entity = uow.repository(model).get_by_id(key, *options.relation_paths)
        if entity is None:
            raise _not_found(model, key)
        return _entity_body(request, entity_set, entity, options.expand, options.select)

    get_entity.__name__ = f"odata_get_{entity_set.lower()}"
    return get_entity


# ==========================================
# Functions (query options still apply)
# ==========================================

@router.get("/Customers/GetByCity")
def customers_by_city(request: Request, city: str = "", uow: UnitOfWork = Depends(get_uow)):
    return _collection_body(request, "Customers", uow.customers.get_by_city(city), Customer, uow)


@router.get("/Products/GetByPriceRange")
def products_by_price_range(
    request: Request,
    min_price: Decimal = Query(..., alias="minPrice"),
    max_price: Decimal = Query(..., alias="maxPrice"),
    uow: UnitOfWork = Depends(get_uow),
):
    query = uow.products.get_by_price_range(min_price, max_price)
    return _collection_body(request, "Products", query, Product, uow)


# ==========================================
# Writes
# ==========================================

@router.post("/Customers", status_code=201)
def create_customer(body: CustomerBody, request: Request, response: Response, uow: UnitOfWork = Depends(get_uow)):
    customer = uow.customers.add(Customer(name=body.name, city=body.city))
    uow.save()
    payload, location = _created(request, "Customers", customer)
    response.headers["Location"] = location
    return payload


@router.put("/Customers({key})")
def update_customer(key: int, body: CustomerBody, request: Request, uow: UnitOfWork = Depends(get_uow)):
    customer = uow.customers.get_by_id(key)
    if customer is None:
        raise _not_found(Customer, key)
    if body.version is not None and body.version != customer.version:
        raise ConcurrencyConflict()

    customer.name = body.name
    customer.city = body.city
    customer = uow.customers.update(customer)
    uow.save()
    return _entity_body(request, "Customers", customer)


@router.post("/Products", status_code=201)
def create_product(body: ProductBody, request: Request, response: Response, uow: UnitOfWork = Depends(get_uow)):
    product = uow.products.add(Product(name=body.name, price=body.price))
    uow.save()
    payload, location = _created(request, "Products", product)
    response.headers["Location"] = location
    return payload


@router.put("/Products({key})")
def update_product(key: int, body: ProductBody, request: Request, uow: UnitOfWork = Depends(get_uow)):
    product = uow.products.get_by_id(key)
    if product is None:
        raise _not_found(Product, key)
    if body.version is not None and body.version != product.version:
        raise ConcurrencyConflict()

    product.name = body.name
    product.price = body.price
    product = uow.products.update(product)
    uow.save()
    return _entity_body(request, "Products", product)


@router.post("/Orders", status_code=201)
def create_order(body: OrderBody, request: Request, response: Response, uow: UnitOfWork = Depends(get_uow)):
    order = Order(
        customer_id=body.customer_id,
        order_date=as_utc(body.order_date) if body.order_date else now_utc(),
        order_items=[OrderItem(product_name=i.product_name, price=i.price) for i in body.order_items],
    )
    uow.orders.add(order)
    uow.save()

    created = uow.orders.get_by_id(order.id, "order_items")
    payload, location = _created(request, "Orders", created, {"order_items": {}})
    response.headers["Location"] = location
    return payload


def _delete_endpoint(entity_set: str, model):
    def delete_entity(key: int, uow: UnitOfWork = Depends(get_uow)):
        if not uow.repository(model).delete_by_id(key):
            raise _not_found(model, key)
        uow.save()
        logger.info(f"Deleted {entity_set}({key})")
        return Response(status_code=204)

    delete_entity.__name__ = f"odata_delete_{entity_set.lower()}"
    return delete_entity


for _name, _model in ENTITY_SETS.items():
    router.add_api_route(f"/{_name}", _collection_endpoint(_name, _model), methods=["GET"])
    router.add_api_route(f"/{_name}({{key}})", _entity_endpoint(_name, _model), methods=["GET"])

for _name in ("Customers", "Products", "Orders"):
    router.add_api_route(
        f"/{_name}({{key}})", _delete_endpoint(_name, ENTITY_SETS[_name]), methods=["DELETE"], status_code=204,
    )

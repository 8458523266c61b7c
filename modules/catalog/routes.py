"""
Catalog Module - REST Routes
==============================
JSON CRUD + named queries for Products.

Endpoints:
  GET    /api/products              - list (optional min_price/max_price)
  GET    /api/products/search       - name contains (case-sensitive)
  GET    /api/products/expensive    - top-N by price
  GET    /api/products/paged        - page/page_size/order_by/descending
  GET    /api/products/{id}
  POST   /api/products
  PUT    /api/products/{id}
  DELETE /api/products/{id}
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from common.exceptions import ConcurrencyConflict
from config.database import get_uow
from modules.catalog.models import Product
from modules.odata.serializer import entities_to_list, entity_to_dict
from modules.repository.unit_of_work import UnitOfWork

router = APIRouter(prefix="/api/products", tags=["products"])


# ==========================================
# Schemas
# ==========================================

class ProductIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., gt=0)


class ProductUpdate(ProductIn):
    version: Optional[int] = None


# ==========================================
# Queries
# ==========================================

@router.get("")
def list_products(
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    uow: UnitOfWork = Depends(get_uow),
):
    if min_price is not None and max_price is not None:
        query = uow.products.get_by_price_range(min_price, max_price)
    elif min_price is not None:
        query = uow.products.get_where(Product.price >= min_price)
    elif max_price is not None:
        query = uow.products.get_where(Product.price <= max_price)
    else:
        query = uow.products.get_all()
    return entities_to_list(query.order_by(Product.id).all())


@router.get("/search")
def search_products(name: str, uow: UnitOfWork = Depends(get_uow)):
    return entities_to_list(uow.products.get_by_name_pattern(name).order_by(Product.name).all())


@router.get("/expensive")
def most_expensive(count: int = 5, uow: UnitOfWork = Depends(get_uow)):
    return entities_to_list(uow.products.get_most_expensive(count))


@router.get("/paged")
def paged_products(
    page: int = 1,
    page_size: int = 10,
    order_by: str = "name",
    descending: bool = False,
    uow: UnitOfWork = Depends(get_uow),
):
    items = uow.products.get_paged(page, page_size, order_by, not descending)
    total = uow.products.count()
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": (total + page_size - 1) // page_size,
        "items": entities_to_list(items),
    }


@router.get("/{product_id}")
def get_product(product_id: int, uow: UnitOfWork = Depends(get_uow)):
    product = uow.products.get_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return entity_to_dict(product)


# ==========================================
# Commands
# ==========================================

@router.post("", status_code=201)
def create_product(body: ProductIn, uow: UnitOfWork = Depends(get_uow)):
    product = uow.products.add(Product(name=body.name, price=body.price))
    uow.save()
    return entity_to_dict(product)


@router.put("/{product_id}")
def update_product(product_id: int, body: ProductUpdate, uow: UnitOfWork = Depends(get_uow)):
    product = uow.products.get_by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    if body.version is not None and body.version != product.version:
        raise ConcurrencyConflict()

    product.name = body.name
    product.price = body.price
    product = uow.products.update(product)
    uow.save()
    return entity_to_dict(product)


@router.delete("/{product_id}", status_code=204)
def delete_product(product_id: int, uow: UnitOfWork = Depends(get_uow)):
    if not uow.products.delete_by_id(product_id):
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    uow.save()
    return Response(status_code=204)

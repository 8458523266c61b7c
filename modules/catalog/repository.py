"""
Catalog Module - Product Repository
=====================================
Named product queries: price range, name pattern, most expensive.
"""

import logging
from typing import List

from sqlalchemy import and_

from common.exceptions import InvalidArgument
from common.helpers import safe_decimal
from modules.catalog.models import Product
from modules.repository.base import SpecializedRepository
from modules.repository.query import EntityQuery, contains_text

logger = logging.getLogger("shop.catalog")


class ProductRepository(SpecializedRepository):
    model = Product

    def get_by_price_range(self, min_price, max_price) -> EntityQuery[Product]:
        """Inclusive on both ends."""
        low, high = safe_decimal(min_price), safe_decimal(max_price)
        if low is None or high is None:
            raise InvalidArgument("min_price and max_price are required numbers")
        if low > high:
            raise InvalidArgument("min_price must not exceed max_price")
        logger.debug(f"Products priced {low}..{high}")
        return self.entities.get_where(and_(Product.price >= low, Product.price <= high))

    def get_by_name_pattern(self, pattern: str) -> EntityQuery[Product]:
        if not pattern or not pattern.strip():
            raise InvalidArgument("Name pattern is required")
        return self.entities.get_where(contains_text(self.entities.session, Product.name, pattern))

    def get_most_expensive(self, count: int) -> List[Product]:
        if count is None or count <= 0:
            raise InvalidArgument("Count must be greater than 0")
        return self.entities.get_advanced(order_key=Product.price, ascending=False, take=count).all()

    def get_ordered_by_price(self, ascending: bool = True) -> EntityQuery[Product]:
        return self.entities.get_all().order_by(Product.price, ascending)

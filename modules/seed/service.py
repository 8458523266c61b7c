"""
Seed Module - Baseline Dataset
================================
Populates an empty database with a small catalog, a handful of
customers, and three orders. Runs once: a database that already holds
any product, customer or order is left untouched.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from common.helpers import now_utc
from modules.catalog.models import Product
from modules.customer.models import Customer
from modules.order.models import Order, OrderItem

logger = logging.getLogger("shop.seed")

PRODUCTS = [
    ("Laptop Pro 15\"", "1299.99"),
    ("Smartphone X", "699.99"),
    ("Tablet Air", "399.99"),
    ("Wireless Headphones", "249.99"),
    ("Smart Watch", "299.99"),
    ("Desktop Monitor 27\"", "349.99"),
    ("Mechanical Keyboard", "129.99"),
    ("Gaming Mouse", "79.99"),
]

CUSTOMERS = [
    ("Alice Johnson", "Seattle"),
    ("Bob Smith", "Portland"),
    ("Charlie Brown", "Seattle"),
    ("Diana Prince", "San Francisco"),
    ("Edward Norton", "Los Angeles"),
]

# (customer index, days ago, product indexes)
ORDERS = [
    (0, 15, (0, 6, 7)),
    (1, 10, (1, 3)),
    (2, 5, (2, 4, 5)),
]


def seed_database(uow) -> bool:
    """Seed inside one transaction. Returns False when data already exists."""
    if any(repo.get_all().exists() for repo in (uow.products, uow.customers, uow.orders)):
        logger.info("Database already contains data. Skipping seeding.")
        return False

    def _seed():
        products = uow.products.add_range(Product(name=n, price=Decimal(p)) for n, p in PRODUCTS)
        customers = uow.customers.add_range(Customer(name=n, city=c) for n, c in CUSTOMERS)
        uow.save()
        logger.info(f"Seeded {len(products)} products and {len(customers)} customers")

        now = now_utc()
        for customer_idx, days_ago, product_idxs in ORDERS:
            uow.orders.add(Order(
                customer_id=customers[customer_idx].id,
                order_date=now - timedelta(days=days_ago),
                order_items=[
                    OrderItem(product_name=products[i].name, price=products[i].price)
                    for i in product_idxs
                ],
            ))
        uow.save()
        logger.info(f"Seeded {len(ORDERS)} orders with order items")

    try:
        uow.run_in_transaction(_seed)
    except Exception:
        logger.error("An error occurred while seeding the database", exc_info=True)
        raise
    logger.info("Database seeding completed successfully.")
    return True

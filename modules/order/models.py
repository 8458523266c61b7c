"""
Order Module - Models
======================
Order belongs to one Customer and owns its OrderItems (cascade delete).
OrderItem keeps a snapshot of product name and price, not a product FK.
"""

from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime
from sqlalchemy.orm import relationship, validates

from common.exceptions import InvalidArgument
from common.helpers import as_utc, now_utc
from config.database import Base
from modules.repository.audit import AuditMixin, required_text, positive_price


class Order(AuditMixin, Base):
    __tablename__ = "orders"

    order_date = Column(DateTime(timezone=True), nullable=False, index=True, default=now_utc)
    customer_id = Column(
        Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    version = Column(Integer, nullable=False)

    # Relationships
    customer = relationship(
        "Customer",
        back_populates="orders",
        lazy="raise",
        cascade="save-update, merge, expunge",
    )
    order_items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="raise",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("order_date")
    def _validate_order_date(self, key, value):
        if value is None:
            raise InvalidArgument("order_date is required")
        return as_utc(value)

    @property
    def total_value(self) -> Decimal:
        """Sum of item prices. Requires order_items to be loaded."""
        return sum((item.price for item in self.order_items), Decimal("0.00"))

    @property
    def item_count(self) -> int:
        return len(self.order_items)

    def __repr__(self):
        return f"<Order {self.id} customer={self.customer_id}>"


class OrderItem(AuditMixin, Base):
    __tablename__ = "order_items"

    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    # Snapshot at time of purchase
    product_name = Column(String(255), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    version = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="order_items", lazy="raise")

    __mapper_args__ = {"version_id_col": version}

    @validates("product_name")
    def _validate_product_name(self, key, value):
        return required_text("product_name", value, 255)

    @validates("price")
    def _validate_price(self, key, value):
        return positive_price("price", value)

    def __repr__(self):
        return f"<OrderItem {self.id} {self.product_name}>"

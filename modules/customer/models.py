"""
Customer Module - Models
=========================
Customer: a buyer who owns zero or more orders.

NOTE on Relationships:
    Customer.orders is RESTRICT on delete. A customer that still owns
    orders cannot be removed; CustomerRepository rejects it up front and
    the foreign key rejects it at the database.
"""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship, validates

from config.database import Base
from modules.repository.audit import AuditMixin, required_text


class Customer(AuditMixin, Base):
    __tablename__ = "customers"

    name = Column(String(255), nullable=False, index=True)
    city = Column(String(100), nullable=False, index=True)
    version = Column(Integer, nullable=False)

    # passive_deletes="all": never null out orders.customer_id behind the caller's back
    orders = relationship(
        "Order",
        back_populates="customer",
        lazy="raise",
        passive_deletes="all",
        cascade="save-update, merge, expunge",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("name")
    def _validate_name(self, key, value):
        return required_text("name", value, 255)

    @validates("city")
    def _validate_city(self, key, value):
        return required_text("city", value, 100)

    def __repr__(self):
        return f"<Customer {self.id} {self.name}>"

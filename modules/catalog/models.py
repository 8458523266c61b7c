"""
Catalog Module - Models
========================
Product: a sellable item with a fixed-point price.
"""

from sqlalchemy import Column, Integer, String, Numeric
from sqlalchemy.orm import validates

from config.database import Base
from modules.repository.audit import AuditMixin, required_text, positive_price


class Product(AuditMixin, Base):
    __tablename__ = "products"

    name = Column(String(255), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("name")
    def _validate_name(self, key, value):
        return required_text("name", value, 255)

    @validates("price")
    def _validate_price(self, key, value):
        return positive_price("price", value)

    def __repr__(self):
        return f"<Product {self.id} {self.name}>"

"""
Repository Module - Audit Fields & Model Invariants
=====================================================
AuditMixin gives every entity its surrogate id and created/updated
timestamps. A before_flush hook stamps them so no caller has to.
"""

from decimal import Decimal

from sqlalchemy import Column, Integer, DateTime, event, inspect
from sqlalchemy.orm import Session

from common.exceptions import InvalidArgument
from common.helpers import now_utc, safe_decimal

_CENTS = Decimal("0.01")


class AuditMixin:
    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


@event.listens_for(Session, "before_flush")
def _stamp_audit_fields(session, flush_context, instances):
    """createdAt is written once; updatedAt on every insert and real modification."""
    now = now_utc()
    for obj in session.new:
        if isinstance(obj, AuditMixin):
            obj.created_at = now
            obj.updated_at = now

    for obj in session.dirty:
        if not isinstance(obj, AuditMixin) or not session.is_modified(obj, include_collections=False):
            continue
        created = inspect(obj).attrs.created_at.history
        if created.deleted and created.deleted[0] is not None:
            obj.created_at = created.deleted[0]
        obj.updated_at = now


# ==========================================
# Validators (used from @validates hooks)
# ==========================================

def required_text(field: str, value, max_length: int) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgument(f"{field} is required")
    value = str(value).strip()
    if len(value) > max_length:
        raise InvalidArgument(f"{field} must be at most {max_length} characters")
    return value


def positive_price(field: str, value) -> Decimal:
    price = safe_decimal(value)
    if price is None or not price.is_finite():
        raise InvalidArgument(f"{field} must be a number")
    if price <= 0:
        raise InvalidArgument(f"{field} must be greater than 0")
    if price != price.quantize(_CENTS):
        raise InvalidArgument(f"{field} must have at most 2 decimal places")
    return price.quantize(_CENTS)

"""
OData Shop - Shared Helpers
=============================
Pure utility functions with NO database or module dependencies.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation as DecimalError
from typing import Optional


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def safe_int(value: Optional[str]) -> Optional[int]:
    """Safely convert a string to int. Returns None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


def safe_decimal(value, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Convert int/float/str to Decimal via its string form. Returns default on failure."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (DecimalError, ValueError, TypeError):
        return default


_NON_ALNUM = re.compile(r"[^0-9a-z]")


def normalize_name(name: str) -> str:
    """'OrderDate', 'order_date' and 'orderdate' all normalize to 'orderdate'."""
    return _NON_ALNUM.sub("", (name or "").lower())

"""Conversions between Python values and BSON document values."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from bson import ObjectId
from bson.decimal128 import Decimal128
from bson.errors import InvalidId


def to_decimal(value) -> Decimal:
    """
    Read a stored amount as Decimal.

    Accepts Decimal128 as written by this service, plus plain numbers
    left behind by older writers. Missing values read as 0.
    """
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal128):
        return value.to_decimal()
    return Decimal(str(value))


def to_storage(fields: dict) -> dict:
    """Convert Decimal and date values to BSON-encodable ones."""
    doc = {}
    for key, value in fields.items():
        if isinstance(value, Decimal):
            value = Decimal128(value)
        elif isinstance(value, date) and not isinstance(value, datetime):
            value = datetime.combine(value, datetime.min.time())
        doc[key] = value
    return doc


def parse_object_id(value: str) -> Optional[ObjectId]:
    """Return the ObjectId for a string, or None if it is malformed."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None

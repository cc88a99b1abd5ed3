"""Price list model definitions."""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class PriceItem(BaseModel):
    """A billable line-item type with its rates."""

    id: str = Field(alias="_id", serialization_alias="id")
    name: str
    hourly_rate: Decimal = Decimal(0)
    daily_rate: Decimal = Decimal(0)
    ordernum: int = 0

    model_config = {"populate_by_name": True}


class RateTable(BaseModel):
    """
    Ordered price list.

    ``customer_id`` is None for the global default table.
    """

    customer_id: Optional[str] = None
    items: list[PriceItem] = []

    def find(self, price_item_id: str) -> Optional[PriceItem]:
        """Return the price item with the given ID, if listed."""
        for item in self.items:
            if item.id == price_item_id:
                return item
        return None


class RateLookup(BaseModel):
    """Rate lookup result that tells "not listed" apart from "zero rate"."""

    rate: Decimal
    found: bool

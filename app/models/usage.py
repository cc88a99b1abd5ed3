"""Budget usage and hours breakdown models."""
from decimal import Decimal

from pydantic import BaseModel


class UsageResult(BaseModel):
    """Accumulated effort value compared against a budget."""

    total_value: Decimal
    budget: Decimal
    percentage: Decimal
    is_over_budget: bool


class PriceItemHours(BaseModel):
    """Hours and value booked on one price item."""

    price_item_id: str
    price_item_name: str
    hourly_rate: Decimal
    hours: Decimal = Decimal(0)
    value: Decimal = Decimal(0)
    user_hours: dict[str, Decimal] = {}
    user_values: dict[str, Decimal] = {}


class UserHours(BaseModel):
    """Hours and value booked by one user."""

    user_id: str
    hours: Decimal = Decimal(0)
    value: Decimal = Decimal(0)
    price_item_hours: dict[str, Decimal] = {}


class HoursBreakdown(BaseModel):
    """Project hours grouped by price item and by user."""

    by_price_item: list[PriceItemHours]
    by_user: list[UserHours]
    total_hours: Decimal
    total_value: Decimal


class DaySummary(BaseModel):
    """Hours logged on one day and in its ISO week."""

    day_hours: Decimal
    week_hours: Decimal
    day_display: str
    week_display: str

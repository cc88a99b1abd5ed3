"""Project reference model."""
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class Project(BaseModel):
    """
    Read-only view of a project.

    Projects are maintained elsewhere; valuation only needs the owning
    customer (for the price list) and the budget.
    """

    id: str = Field(alias="_id", serialization_alias="id")
    name: str = ""
    customer_id: Optional[str] = None
    total_budget: Decimal = Decimal(0)

    model_config = {"populate_by_name": True}

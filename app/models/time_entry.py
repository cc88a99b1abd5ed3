"""Time entry model definitions."""
from datetime import date as Date, datetime
from decimal import Decimal
from typing import Annotated, Optional, Union

from pydantic import BaseModel, Field

from app.utils.duration import MAX_HOURS


class TimeEntryBase(BaseModel):
    """Base time entry fields."""

    project_id: str
    task_id: str = ""
    price_item_id: str = ""
    note: str = ""
    date: Date
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0)


class TimeEntryCreate(TimeEntryBase):
    """
    Manual time entry creation model.

    Hours may be given as a number or as free text ("1:30", "1,5"); either
    way they are rounded up to the quantization grid before storage.
    """

    hours: Union[Annotated[Decimal, Field(le=MAX_HOURS)], str] = Decimal(0)


class TimerEntryCreate(TimeEntryBase):
    """Draft for an entry that is created with its timer already running."""

    date: Date = Field(default_factory=Date.today)


class TimeEntryUpdate(BaseModel):
    """Inline edit model - all fields optional."""

    project_id: Optional[str] = None
    task_id: Optional[str] = None
    price_item_id: Optional[str] = None
    note: Optional[str] = None
    date: Optional[Date] = None
    hours: Optional[str] = None


class TimeEntry(TimeEntryBase):
    """Full time entry model with database fields."""

    id: str = Field(alias="_id", serialization_alias="id")
    user_id: str
    hours: Decimal = Field(default=Decimal(0), ge=0)
    is_active: bool = False
    timer_started_at: Optional[datetime] = None
    timer_seconds: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    model_config = {"populate_by_name": True}

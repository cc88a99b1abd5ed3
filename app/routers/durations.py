"""Duration endpoints - parse and quantize time input."""
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.config import settings
from app.routers.deps import get_current_user_id
from app.utils.duration import format_for_display, parse_duration, round_up_to_grid


router = APIRouter(prefix="/durations", tags=["durations"])


class ParsedDuration(BaseModel):
    """Parsed and quantized time input."""

    text: str
    hours: Decimal
    rounded_hours: Decimal
    display: str


@router.get("/parse", response_model=ParsedDuration)
async def parse(
    text: str = Query(""),
    user_id: str = Depends(get_current_user_id),
):
    """
    Preview how time input will be booked.

    Accepts "H:MM", "1.5" or "1,5". Unparseable input reads as 0.
    """
    hours = parse_duration(text)
    rounded = round_up_to_grid(hours, settings.quantization_grid_minutes)
    return ParsedDuration(
        text=text,
        hours=hours,
        rounded_hours=rounded,
        display=format_for_display(rounded),
    )

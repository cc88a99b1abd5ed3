"""Timer endpoints - stopwatch and time entry operations."""
import re
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from app.models.time_entry import TimeEntry, TimeEntryCreate, TimeEntryUpdate, TimerEntryCreate
from app.models.usage import DaySummary
from app.routers.deps import get_current_user_id, get_timer_service
from app.services.timer_service import TimerService, TimerState
from app.utils.duration import format_for_display, parse_duration


router = APIRouter(prefix="/timers", tags=["timers"])

# An explicit zero needs at least one digit: "0", "0:00", "0,0"
_ZERO_DURATION = re.compile(r"^[\s:.,]*0[\s0:.,]*$")


class CurrentTimer(BaseModel):
    """Running entry with its live display value."""

    entry: TimeEntry
    live_hours: Decimal
    display: str


class TimerStatus(BaseModel):
    """Whether the user has a running timer."""

    state: TimerState
    is_timer_active: bool
    active_entry_id: Optional[str] = None


def _check_duration_text(text: Optional[str]) -> None:
    """Reject non-empty hours text that does not parse to a duration."""
    if text is None or not text.strip() or _ZERO_DURATION.match(text):
        return
    if parse_duration(text) == 0:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid duration: {text!r}",
        )


@router.post("/start", response_model=TimeEntry)
async def create_and_start_timer(
    draft: TimerEntryCreate,
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Create a new entry with a running timer.

    - Requires authentication
    - Any running timer of the user is stopped first
    """
    return await service.create_and_start(user_id=user_id, draft=draft)


@router.post("/{entry_id}/start", response_model=TimeEntry)
async def start_timer(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Start the timer on an existing entry.

    - Requires authentication
    - Any other running timer of the user is stopped first
    """
    try:
        return await service.start(user_id=user_id, entry_id=entry_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{entry_id}/stop", response_model=TimeEntry)
async def stop_timer(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Stop a running timer and book its time, rounded up to the grid.

    - Requires authentication
    - Stopping an idle entry returns it unchanged
    """
    entry = await service.stop(user_id=user_id, entry_id=entry_id)

    if entry is None:
        raise HTTPException(status_code=404, detail="Time entry not found")

    return entry


@router.get("/current", response_model=CurrentTimer)
async def get_current_timer(
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Get the running entry with its live elapsed time.

    - Requires authentication
    - Returns 404 if no timer is running
    """
    entry = await service.get_active_timer(user_id=user_id)

    if not entry:
        raise HTTPException(status_code=404, detail="No timer running")

    live = service.get_live_display_value(entry)
    return CurrentTimer(entry=entry, live_hours=live, display=format_for_display(live))


@router.get("/status", response_model=TimerStatus)
async def get_timer_status(
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """Whether the authenticated user has a running timer."""
    machine = await service.get_machine(user_id=user_id)
    return TimerStatus(
        state=machine.state,
        is_timer_active=machine.is_timer_active,
        active_entry_id=machine.active_entry_id,
    )


@router.get("/summary", response_model=DaySummary)
async def get_summary(
    day: Optional[date] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """Hours booked on a day and in its Monday-to-Sunday week."""
    return await service.summarize(user_id=user_id, day=day or date.today())


@router.get("/entries", response_model=list[TimeEntry])
async def list_entries(
    day: Optional[date] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    List time entries for the authenticated user.

    - Requires authentication
    - Optional filter: day
    - Results sorted by billing day descending
    """
    return await service.list_entries(user_id=user_id, day=day)


@router.post("/entries", response_model=TimeEntry, status_code=status.HTTP_201_CREATED)
async def create_entry(
    entry_create: TimeEntryCreate,
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Create a manual time entry.

    - Requires authentication
    - Hours are rounded up to the quantization grid
    """
    if isinstance(entry_create.hours, str):
        _check_duration_text(entry_create.hours)
    return await service.create_entry(user_id=user_id, entry_create=entry_create)


@router.patch("/entries/{entry_id}", response_model=TimeEntry)
async def update_entry(
    entry_id: str,
    entry_update: TimeEntryUpdate,
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Apply an inline edit to a time entry.

    - Requires authentication
    - User must own the entry
    - Hours text is parsed and rounded up to the quantization grid
    """
    _check_duration_text(entry_update.hours)
    try:
        return await service.update_entry(
            user_id=user_id,
            entry_id=entry_id,
            entry_update=entry_update,
        )
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/entries/{entry_id}/duplicate", response_model=TimeEntry, status_code=status.HTTP_201_CREATED)
async def duplicate_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Copy a time entry into a new, stopped entry.

    - Requires authentication
    - User must own the entry
    """
    try:
        return await service.duplicate_entry(user_id=user_id, entry_id=entry_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/entries/{entry_id}")
async def delete_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    service: TimerService = Depends(get_timer_service),
):
    """
    Delete a time entry.

    - Requires authentication
    - User must own the entry
    - Hard delete (permanent)
    """
    try:
        return await service.delete_entry(user_id=user_id, entry_id=entry_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

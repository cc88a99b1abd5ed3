"""Valuation endpoints - project budget usage and hours."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.models.usage import HoursBreakdown, UsageResult
from app.routers.deps import get_current_user_id, get_valuation_service
from app.services.valuation_service import ValuationService


router = APIRouter(prefix="/projects", tags=["valuation"])


@router.get("/{project_id}/usage", response_model=UsageResult)
async def get_project_usage(
    project_id: str,
    task_id: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    service: ValuationService = Depends(get_valuation_service),
):
    """
    Value the effort booked on a project against its budget.

    - Requires authentication
    - Optional filter: task_id
    - Running timers contribute their elapsed time
    - Unknown projects value at the default price list with a zero budget
    """
    return await service.project_usage(project_id=project_id, task_id=task_id)


@router.get("/{project_id}/hours", response_model=HoursBreakdown)
async def get_project_hours(
    project_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ValuationService = Depends(get_valuation_service),
):
    """
    Hours and value of a project grouped by price item and by user.

    - Requires authentication
    """
    return await service.project_hours(project_id=project_id)

"""Dashboard endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from trackcer.api.dependencies import CurrentUser, get_dashboard_service
from trackcer.application.services import DashboardService

router = APIRouter()

DashboardDep = Annotated[DashboardService, Depends(get_dashboard_service)]


@router.get("/stats")
async def dashboard_stats(
    user: CurrentUser,
    dashboard: DashboardDep,
    range_name: Annotated[str, Query(alias="range")] = "week",
) -> dict[str, Any]:
    """Stats for range=today|week|month|year|all (unknown values mean week)."""
    return await dashboard.get_stats(user.id, range_name)


@router.get("/top-producer-today")
async def top_producer_today(user: CurrentUser, dashboard: DashboardDep) -> dict[str, Any]:
    return await dashboard.top_producer_today(user.id)

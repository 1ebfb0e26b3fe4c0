from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.database import get_db
from herdit.core.rbac import Principal, get_current_principal
from herdit.schemas.dashboard import DashboardStats, ReportResponse
from herdit.services.dashboard_service import get_dashboard_stats, get_reports
from herdit.services.request_service import RequestFilters

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await get_dashboard_stats(db, principal)


@router.get("/reports", response_model=ReportResponse)
async def dashboard_reports(
    group: list[str] = Query([]),
    request_type: str | None = Query(None, alias="type"),
    search: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    filters = RequestFilters(group_ids=group, type_name=request_type, search=search, status=status_filter)
    return await get_reports(db, principal, filters)

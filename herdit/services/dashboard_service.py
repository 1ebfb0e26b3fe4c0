from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.config import settings
from herdit.core.rbac import Principal
from herdit.models.request import Request, RequestStatus
from herdit.models.user import Group
from herdit.services.request_service import RequestFilters, list_visible_requests


def _latest_approval_status(request: Request) -> str | None:
    if not request.approvals:
        return None
    latest = max(request.approvals, key=lambda a: a.updated_at)
    return latest.status


def _summary(request: Request) -> dict:
    group = request.request_type.group
    return {
        "id": request.id,
        "title": request.title,
        "status": request.status,
        "type": request.request_type.name,
        "group": group.name if group else None,
        "created_by": request.user.name if request.user else None,
        "created_at": request.created_at,
    }


async def get_dashboard_stats(db: AsyncSession, principal: Principal, recent_limit: int | None = None) -> dict:
    """Status counts and the most recent requests, within the caller's visibility."""
    recent_limit = settings.recent_requests_limit if recent_limit is None else recent_limit
    requests = await list_visible_requests(db, principal)

    return {
        "pending_requests": sum(1 for r in requests if r.status == RequestStatus.PENDING),
        "approved_requests": sum(1 for r in requests if r.status == RequestStatus.APPROVED),
        "rejected_requests": sum(1 for r in requests if r.status == RequestStatus.REJECTED),
        "total_requests": len(requests),
        "recent_requests": [_summary(r) for r in requests[:recent_limit]],
    }


async def get_reports(db: AsyncSession, principal: Principal, filters: RequestFilters | None = None) -> dict:
    requests = await list_visible_requests(db, principal, filters)
    rows = [
        {
            "id": r.id,
            "type": r.request_type.name,
            "title": r.title,
            "status": r.status,
            "created_by": r.user.name if r.user else None,
            "created_at": r.created_at,
            "group_name": r.request_type.group.name if r.request_type.group else None,
            "approval_status": _latest_approval_status(r),
        }
        for r in requests
    ]

    groups_result = await db.execute(select(Group).order_by(Group.name))
    available_groups = [{"id": g.id, "name": g.name} for g in groups_result.scalars().all()]
    return {"data": rows, "available_groups": available_groups}

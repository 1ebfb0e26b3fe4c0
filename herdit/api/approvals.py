from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.database import get_db
from herdit.core.rbac import Principal, Tier, get_current_principal, require_tier
from herdit.schemas.request import RequestRead
from herdit.schemas.workflow import ApprovalDecision, ApprovalInboxItem, AuditLogRead
from herdit.services import request_service
from herdit.workflow.engine import workflow_engine

router = APIRouter(tags=["workflow"])


# ── Approvals ──────────────────────────────────────────────────────────


@router.get("/approvals", response_model=list[ApprovalInboxItem])
async def approval_inbox(
    state: str = Query("pending", pattern="^(pending|completed)$"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    approvals = await request_service.list_approvals(db, principal, state)
    return [
        ApprovalInboxItem(
            id=a.id,
            status=a.status,
            created_at=a.created_at,
            request_id=a.request_id,
            title=a.request.title,
            request_type=a.request.request_type.name,
            requested_by=a.request.user.name if a.request.user else "",
            approver_id=a.approver_id,
        )
        for a in approvals
    ]


@router.patch("/approvals/{approval_id}", response_model=RequestRead)
async def decide_approval(
    approval_id: str,
    body: ApprovalDecision,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await workflow_engine.decide_approval(db, principal, approval_id, body.status, body.notes)


@router.delete("/approvals/{approval_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_approval(
    approval_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    await workflow_engine.delete_approval(db, principal, approval_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Audit Log ──────────────────────────────────────────────────────────


@router.get("/audit-log", response_model=list[AuditLogRead])
async def list_audit_logs(
    request_id: str | None = Query(None),
    user_id: str | None = Query(None),
    action: str | None = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    _=Depends(require_tier(Tier.ADMIN)),
):
    return await request_service.list_audit_logs(db, request_id, user_id, action, limit)

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.database import get_db
from herdit.core.rbac import Principal, get_current_principal
from herdit.schemas.request import (
    AttachmentsAdd,
    RequestCreate,
    RequestDecision,
    RequestListItem,
    RequestRead,
    RequestTypeRead,
)
from herdit.schemas.workflow import AuditLogRead
from herdit.services import request_service
from herdit.services.request_service import RequestFilters
from herdit.workflow.engine import workflow_engine

router = APIRouter(tags=["requests"])


@router.get("/request-types", response_model=list[RequestTypeRead])
async def list_request_types(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await request_service.list_request_types(db, principal)


@router.post("/requests", response_model=RequestRead, status_code=status.HTTP_201_CREATED)
async def submit_request(
    body: RequestCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await workflow_engine.submit_request(db, principal, body)


@router.get("/requests", response_model=list[RequestListItem])
async def list_requests(
    group: list[str] = Query([]),
    request_type: str | None = Query(None, alias="type"),
    search: str | None = Query(None),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    filters = RequestFilters(group_ids=group, type_name=request_type, search=search, status=status_filter)
    return await request_service.list_visible_requests(db, principal, filters)


@router.get("/requests/{request_id}", response_model=RequestRead)
async def get_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await request_service.get_visible_request(db, principal, request_id)


@router.post("/requests/{request_id}/attachments", response_model=RequestRead, status_code=status.HTTP_201_CREATED)
async def add_attachments(
    request_id: str,
    body: AttachmentsAdd,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await request_service.add_attachments(db, principal, request_id, body.attachments)


@router.post("/requests/{request_id}/decision", response_model=RequestRead)
async def decide_request(
    request_id: str,
    body: RequestDecision,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await workflow_engine.decide_request(db, principal, request_id, body.status, body.notes)


@router.get("/requests/{request_id}/audit-log", response_model=list[AuditLogRead])
async def request_audit_log(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    await request_service.get_visible_request(db, principal, request_id)
    return await request_service.list_audit_logs(db, request_id=request_id)

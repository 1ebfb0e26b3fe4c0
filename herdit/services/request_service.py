"""Request reads: visibility scoping, filtering, attachments and request types."""

from dataclasses import dataclass, field

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from herdit.core.errors import Forbidden, NotFound
from herdit.core.rbac import Principal
from herdit.models.approval import Approval
from herdit.models.audit import AuditLog
from herdit.models.base import utcnow
from herdit.models.request import Attachment, Request, RequestStatus, RequestType
from herdit.schemas.request import AttachmentCreate
from herdit.utils.logging import get_logger

logger = get_logger(__name__)

REQUEST_LOAD_OPTIONS = (
    selectinload(Request.approvals),
    selectinload(Request.attachments),
    selectinload(Request.request_type),
    selectinload(Request.user),
)


@dataclass
class RequestFilters:
    group_ids: list[str] = field(default_factory=list)
    type_name: str | None = None
    search: str | None = None
    status: str | None = None


def matches_filters(request: Request, filters: RequestFilters | None) -> bool:
    """Post-query predicate applied after visibility scoping. Never widens the result."""
    if filters is None:
        return True
    if filters.group_ids:
        if request.request_type.group_id is None or request.request_type.group_id not in filters.group_ids:
            return False
    if filters.type_name:
        if request.request_type.name.lower() != filters.type_name.lower():
            return False
    if filters.search:
        if filters.search.lower() not in request.title.lower():
            return False
    if filters.status:
        if request.status != filters.status:
            return False
    return True


def is_visible(principal: Principal, request: Request) -> bool:
    if principal.is_admin:
        return True
    if principal.is_manager:
        if principal.in_group(request.request_type.group_id):
            return True
        return any(a.approver_id == principal.id for a in request.approvals)
    return request.user_id == principal.id


def can_submit(principal: Principal, request_type: RequestType) -> bool:
    # Types without an owning group are open to everyone.
    if principal.is_admin or request_type.group_id is None:
        return True
    return principal.in_group(request_type.group_id)


def _visible_requests_stmt(principal: Principal):
    stmt = (
        select(Request)
        .join(RequestType, Request.request_type_id == RequestType.id)
        .options(*REQUEST_LOAD_OPTIONS)
        .order_by(Request.created_at.desc())
    )
    if principal.is_admin:
        return stmt
    if principal.is_manager:
        named_approver = exists().where(Approval.request_id == Request.id, Approval.approver_id == principal.id)
        conditions = [named_approver]
        if principal.group_ids:
            conditions.append(RequestType.group_id.in_(sorted(principal.group_ids)))
        return stmt.where(or_(*conditions))
    return stmt.where(Request.user_id == principal.id)


async def get_request(db: AsyncSession, request_id: str) -> Request | None:
    result = await db.execute(
        select(Request)
        .options(*REQUEST_LOAD_OPTIONS)
        .where(Request.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_visible_request(db: AsyncSession, principal: Principal, request_id: str) -> Request:
    request = await get_request(db, request_id)
    # Invisible requests are reported as missing.
    if request is None or not is_visible(principal, request):
        raise NotFound("Request not found")
    return request


async def list_visible_requests(
    db: AsyncSession,
    principal: Principal,
    filters: RequestFilters | None = None,
) -> list[Request]:
    result = await db.execute(_visible_requests_stmt(principal))
    requests = list(result.scalars().unique().all())
    return [r for r in requests if matches_filters(r, filters)]


async def get_attachable_request(db: AsyncSession, principal: Principal, request_id: str) -> Request:
    request = await get_visible_request(db, principal, request_id)
    if request.user_id != principal.id and not principal.is_admin:
        raise Forbidden("Only the requester or an admin can add attachments")
    return request


async def add_attachments(
    db: AsyncSession,
    principal: Principal,
    request_id: str,
    attachments: list[AttachmentCreate],
) -> Request:
    request = await get_attachable_request(db, principal, request_id)

    for attachment in attachments:
        db.add(Attachment(request_id=request.id, **attachment.model_dump()))
    request.updated_at = utcnow()
    await db.flush()
    logger.info("[REQUESTS] %d attachment(s) added to %s", len(attachments), request.id)
    return await get_request(db, request.id)


async def get_request_type(db: AsyncSession, request_type_id: str) -> RequestType | None:
    result = await db.execute(select(RequestType).where(RequestType.id == request_type_id))
    return result.scalar_one_or_none()


async def list_request_types(db: AsyncSession, principal: Principal) -> list[RequestType]:
    result = await db.execute(select(RequestType).order_by(RequestType.name))
    return [rt for rt in result.scalars().all() if can_submit(principal, rt)]


async def list_approvals(db: AsyncSession, principal: Principal, state: str = "pending") -> list[Approval]:
    """Approval inbox for approvers. ``state`` is ``pending`` or ``completed``."""
    stmt = (
        select(Approval)
        .join(Request, Approval.request_id == Request.id)
        .join(RequestType, Request.request_type_id == RequestType.id)
        .options(
            selectinload(Approval.request).selectinload(Request.user),
            selectinload(Approval.request).selectinload(Request.request_type),
        )
        .order_by(Approval.created_at.desc())
    )
    if state == "completed":
        stmt = stmt.where(Approval.status.in_([RequestStatus.APPROVED, RequestStatus.REJECTED]))
    else:
        stmt = stmt.where(Approval.status == RequestStatus.PENDING)

    if principal.is_manager:
        conditions = [Approval.approver_id == principal.id]
        if principal.group_ids:
            conditions.append(RequestType.group_id.in_(sorted(principal.group_ids)))
        stmt = stmt.where(or_(*conditions))
    elif not principal.is_admin:
        stmt = stmt.where(Approval.approver_id == principal.id)

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_audit_logs(
    db: AsyncSession,
    request_id: str | None = None,
    user_id: str | None = None,
    action: str | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.timestamp.desc()).limit(limit)
    if request_id:
        stmt = stmt.where(AuditLog.request_id == request_id)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    result = await db.execute(stmt)
    return list(result.scalars().all())

"""Approval workflow engine: submission, decisions and request status aggregation.

Aggregation rule:
  - any approval rejected         -> request rejected
  - every approval approved       -> request approved
  - otherwise                     -> request pending

Every mutation runs inside the caller's session transaction. Decisions lock the
request row first so concurrent decisions on sibling approvals serialize per
request and the aggregation step always sees the other writers' results.
"""

from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from herdit.core.errors import Conflict, Forbidden, NoApproverAssigned, NotFound, ValidationError
from herdit.core.rbac import Principal, Tier
from herdit.models.approval import Approval
from herdit.models.audit import AuditLog
from herdit.models.base import utcnow
from herdit.models.request import Attachment, Request, RequestKind, RequestStatus, RequestType
from herdit.models.user import Role, User, user_groups, user_roles
from herdit.schemas.request import RequestCreate, request_data_adapter
from herdit.services import request_service
from herdit.utils.logging import get_logger

logger = get_logger(__name__)

DECISIONS = (RequestStatus.APPROVED, RequestStatus.REJECTED)


def resolve_request_status(statuses: Iterable[str]) -> str:
    statuses = list(statuses)
    if any(s == RequestStatus.REJECTED for s in statuses):
        return RequestStatus.REJECTED
    if statuses and all(s == RequestStatus.APPROVED for s in statuses):
        return RequestStatus.APPROVED
    return RequestStatus.PENDING


def validate_request_data(kind: str, data: dict[str, Any]) -> dict[str, Any]:
    """Validate a raw payload against the typed model selected by the request type's kind."""
    try:
        parsed = request_data_adapter.validate_python({**data, "kind": kind})
    except PydanticValidationError as exc:
        raise ValidationError(exc.errors(include_url=False, include_context=False, include_input=False)) from exc
    return parsed.model_dump(mode="json")


class WorkflowEngine:
    async def submit_request(self, db: AsyncSession, creator: Principal, payload: RequestCreate) -> Request:
        """Create a pending request with its single pending approval and any pre-uploaded attachments."""
        request_type = await request_service.get_request_type(db, payload.request_type_id)
        if request_type is None:
            raise NotFound("Request type not found")
        if not request_service.can_submit(creator, request_type):
            raise Forbidden(
                f"Submitting '{request_type.name}' is restricted to members of its group and administrators"
            )

        data = validate_request_data(request_type.kind, payload.data)
        approver_id = await self.resolve_approver(db, creator, request_type)

        request = Request(
            title=payload.title,
            description=payload.description,
            user_id=creator.id,
            request_type_id=request_type.id,
            data=data,
            status=RequestStatus.PENDING,
        )
        db.add(request)
        await db.flush()

        db.add(Approval(request_id=request.id, approver_id=approver_id, status=RequestStatus.PENDING))
        for attachment in payload.attachments:
            db.add(Attachment(request_id=request.id, **attachment.model_dump()))
        await db.flush()

        await self._log_audit(db, request.id, creator.id, "request_submitted", {
            "request_type": request_type.name,
            "approver_id": approver_id,
            "attachments": len(payload.attachments),
        })
        logger.info("[WORKFLOW] request %s (%s) submitted by %s, approver %s",
                    request.id, request_type.name, creator.id, approver_id)
        return await request_service.get_request(db, request.id)

    async def resolve_approver(self, db: AsyncSession, creator: Principal, request_type: RequestType) -> str:
        result = await db.execute(select(User.approver_id).where(User.id == creator.id))
        row = result.first()
        approver_id = row[0] if row is not None else creator.approver_id

        if approver_id:
            return approver_id
        if request_type.kind == RequestKind.CHANGE:
            raise NoApproverAssigned()

        if request_type.group_id is not None:
            stmt = (
                select(User.id)
                .join(user_groups, user_groups.c.user_id == User.id)
                .join(user_roles, user_roles.c.user_id == User.id)
                .join(Role, Role.id == user_roles.c.role_id)
                .where(
                    user_groups.c.group_id == request_type.group_id,
                    func.lower(Role.name) == Tier.MANAGER.value,
                    User.id != creator.id,
                    User.is_active.is_(True),
                )
                .order_by(User.email)
                .limit(1)
            )
            group_manager = (await db.execute(stmt)).scalar_one_or_none()
            if group_manager is not None:
                return group_manager
        raise NoApproverAssigned(f"No approver available for '{request_type.name}'")

    def can_decide(self, actor: Principal, approval: Approval, request_type: RequestType) -> bool:
        if actor.is_admin:
            return True
        if not actor.is_manager:
            return False
        # The named approver keeps the right to decide even outside the owning group.
        return actor.in_group(request_type.group_id) or approval.approver_id == actor.id

    async def decide_approval(
        self,
        db: AsyncSession,
        actor: Principal,
        approval_id: str,
        decision: str,
        notes: str | None = None,
    ) -> Request:
        if not actor.can_approve:
            raise Forbidden("You don't have permission to approve requests")
        if decision not in DECISIONS:
            raise ValidationError("Status must be 'approved' or 'rejected'")

        approval = await self._get_approval(db, approval_id)
        if approval is None:
            raise NotFound("Approval not found")

        request = await self._lock_request(db, approval.request_id)
        # Re-read under the lock so a concurrent decision is visible.
        approval = await self._get_approval(db, approval_id)
        if approval is None:
            raise NotFound("Approval not found")

        if not self.can_decide(actor, approval, request.request_type):
            raise Forbidden("You don't have permission to approve this request")
        if approval.status != RequestStatus.PENDING:
            raise Conflict(f"Approval already {approval.status}")

        if approval.approver_id != actor.id:
            logger.info("[WORKFLOW] approval %s reassigned from %s to %s", approval.id, approval.approver_id, actor.id)
            await self._log_audit(db, request.id, actor.id, "approval_reassigned", {
                "approval_id": approval.id,
                "from": approval.approver_id,
                "to": actor.id,
            })
            approval.approver_id = actor.id

        approval.status = decision
        approval.notes = notes or None
        approval.updated_at = utcnow()
        await db.flush()

        await self._log_audit(db, request.id, actor.id, f"approval_{decision}", {
            "approval_id": approval.id,
            "notes": approval.notes,
        })

        if decision == RequestStatus.REJECTED:
            new_status = RequestStatus.REJECTED
        else:
            new_status = resolve_request_status(await self._approval_statuses(db, request.id))
        await self._transition(db, request, new_status, actor.id)

        logger.info("[WORKFLOW] approval %s %s by %s, request %s is %s",
                    approval.id, decision, actor.id, request.id, request.status)
        return await request_service.get_request(db, request.id)

    async def decide_request(
        self,
        db: AsyncSession,
        actor: Principal,
        request_id: str,
        decision: str,
        notes: str | None = None,
    ) -> Request:
        """Decide on a request as a whole: the actor's own pending approval, else the first pending one."""
        if not actor.can_approve:
            raise Forbidden("You don't have permission to approve requests")
        request = await request_service.get_visible_request(db, actor, request_id)

        pending = [a for a in request.approvals if a.status == RequestStatus.PENDING]
        if not pending:
            raise Conflict("No pending approval on this request")
        target = next((a for a in pending if a.approver_id == actor.id), pending[0])
        return await self.decide_approval(db, actor, target.id, decision, notes)

    async def delete_approval(self, db: AsyncSession, actor: Principal, approval_id: str) -> None:
        if not actor.is_admin:
            raise Forbidden("Only administrators can delete approvals")
        approval = await self._get_approval(db, approval_id)
        if approval is None:
            raise NotFound("Approval not found")

        request = await self._lock_request(db, approval.request_id)
        details = {"approval_id": approval_id, "approver_id": approval.approver_id, "status": approval.status}
        await db.delete(approval)
        await db.flush()

        await self._log_audit(db, request.id, actor.id, "approval_deleted", details)

        # With no approvals left there is nothing to aggregate; the status stays as it was.
        remaining = await self._approval_statuses(db, request.id)
        if remaining:
            await self._transition(db, request, resolve_request_status(remaining), actor.id)
        logger.info("[WORKFLOW] approval %s deleted by %s", approval_id, actor.id)

    async def _get_approval(self, db: AsyncSession, approval_id: str) -> Approval | None:
        result = await db.execute(
            select(Approval)
            .where(Approval.id == approval_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _lock_request(self, db: AsyncSession, request_id: str) -> Request:
        result = await db.execute(
            select(Request)
            .options(selectinload(Request.request_type))
            .where(Request.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _approval_statuses(self, db: AsyncSession, request_id: str) -> list[str]:
        result = await db.execute(select(Approval.status).where(Approval.request_id == request_id))
        return list(result.scalars().all())

    async def _transition(self, db: AsyncSession, request: Request, new_status: str, user_id: str | None) -> None:
        if request.status == new_status:
            return
        previous = request.status
        request.status = new_status
        request.updated_at = utcnow()
        await db.flush()
        await self._log_audit(db, request.id, user_id, f"request_{new_status}", {"previous_status": previous})

    async def _log_audit(
        self,
        db: AsyncSession,
        request_id: str | None,
        user_id: str | None,
        action: str,
        details: dict[str, Any] | None = None,
    ):
        log = AuditLog(
            request_id=request_id,
            user_id=user_id,
            action=action,
            details=details,
        )
        db.add(log)
        await db.flush()


workflow_engine = WorkflowEngine()

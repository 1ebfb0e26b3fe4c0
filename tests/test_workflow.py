"""Approval workflow engine: submission, decisions, aggregation and visibility."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from herdit.core.errors import Conflict, Forbidden, NoApproverAssigned, NotFound, ValidationError
from herdit.models.approval import Approval
from herdit.models.audit import AuditLog
from herdit.models.request import RequestStatus
from herdit.services import file_service, request_service
from herdit.services.request_service import RequestFilters
from herdit.workflow.engine import resolve_request_status, workflow_engine
from tests.factories import (
    asset_payload,
    asset_type,
    change_payload,
    change_type,
    create_user,
    principal_of,
)


async def _cast(db: AsyncSession) -> dict:
    manager = await create_user(db, "manager@herdit.io", role="manager", groups=("IT",))
    other_manager = await create_user(db, "corp.manager@herdit.io", role="manager", groups=("Corporate",))
    admin = await create_user(db, "admin@herdit.io", role="admin")
    user = await create_user(db, "user@herdit.io", groups=("IT",), approver=manager)
    return {"manager": manager, "other_manager": other_manager, "admin": admin, "user": user}


async def _submit_change(db: AsyncSession, user, title: str = "Upgrade mail server"):
    request_type = await change_type(db)
    return await workflow_engine.submit_request(db, principal_of(user), change_payload(request_type, title=title))


@pytest.mark.asyncio
async def test_resolve_request_status() -> None:
    assert resolve_request_status([]) == RequestStatus.PENDING
    assert resolve_request_status(["approved"]) == RequestStatus.APPROVED
    assert resolve_request_status(["approved", "pending"]) == RequestStatus.PENDING
    assert resolve_request_status(["approved", "rejected", "pending"]) == RequestStatus.REJECTED


@pytest.mark.asyncio
async def test_submit_creates_pending_request_with_one_approval(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])

    assert request.status == RequestStatus.PENDING
    assert len(request.approvals) == 1
    assert request.approvals[0].approver_id == cast["manager"].id
    assert request.approvals[0].status == RequestStatus.PENDING
    assert request.data["priority"] == "high"
    assert request.data["kind"] == "change"


@pytest.mark.asyncio
async def test_single_approval_approves_request(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])

    decided = await workflow_engine.decide_approval(
        db, principal_of(cast["manager"]), request.approvals[0].id, "approved", notes="ok"
    )

    assert decided.status == RequestStatus.APPROVED
    assert decided.approvals[0].status == RequestStatus.APPROVED
    assert decided.approvals[0].notes == "ok"


@pytest.mark.asyncio
async def test_request_stays_pending_until_every_approval_is_approved(db: AsyncSession) -> None:
    cast = await _cast(db)
    second = await create_user(db, "second@herdit.io", role="manager", groups=("IT",))
    request = await _submit_change(db, cast["user"])
    db.add(Approval(request_id=request.id, approver_id=second.id, status=RequestStatus.PENDING))
    await db.flush()

    first_id = request.approvals[0].id
    decided = await workflow_engine.decide_approval(db, principal_of(cast["manager"]), first_id, "approved")
    assert decided.status == RequestStatus.PENDING
    assert {a.status for a in decided.approvals} == {RequestStatus.APPROVED, RequestStatus.PENDING}

    second_id = next(a.id for a in decided.approvals if a.approver_id == second.id)
    decided = await workflow_engine.decide_approval(db, principal_of(second), second_id, "approved")
    assert decided.status == RequestStatus.APPROVED


@pytest.mark.asyncio
async def test_manager_of_another_group_is_forbidden(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])
    approval_id = request.approvals[0].id

    with pytest.raises(Forbidden):
        await workflow_engine.decide_approval(db, principal_of(cast["other_manager"]), approval_id, "approved")

    approval = (await db.execute(select(Approval).where(Approval.id == approval_id))).scalar_one()
    assert approval.status == RequestStatus.PENDING
    assert approval.approver_id == cast["manager"].id


@pytest.mark.asyncio
async def test_named_approver_outside_the_group_can_decide(db: AsyncSession) -> None:
    cast = await _cast(db)
    outsider = await create_user(db, "outsider@herdit.io", role="manager", groups=("Corporate",))
    user = await create_user(db, "dev@herdit.io", groups=("IT",), approver=outsider)
    request = await _submit_change(db, user)

    decided = await workflow_engine.decide_approval(db, principal_of(outsider), request.approvals[0].id, "approved")
    assert decided.status == RequestStatus.APPROVED


@pytest.mark.asyncio
async def test_regular_user_can_never_decide(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])

    with pytest.raises(Forbidden):
        await workflow_engine.decide_approval(db, principal_of(cast["user"]), request.approvals[0].id, "approved")


@pytest.mark.asyncio
async def test_rejection_is_terminal(db: AsyncSession) -> None:
    cast = await _cast(db)
    second = await create_user(db, "second@herdit.io", role="manager", groups=("IT",))
    request = await _submit_change(db, cast["user"])
    db.add(Approval(request_id=request.id, approver_id=second.id, status=RequestStatus.PENDING))
    await db.flush()

    rejected = await workflow_engine.decide_approval(
        db, principal_of(cast["manager"]), request.approvals[0].id, "rejected", notes="Not this quarter"
    )
    assert rejected.status == RequestStatus.REJECTED

    second_id = next(a.id for a in rejected.approvals if a.approver_id == second.id)
    after = await workflow_engine.decide_approval(db, principal_of(second), second_id, "approved")
    assert after.status == RequestStatus.REJECTED


@pytest.mark.asyncio
async def test_redeciding_an_approval_conflicts(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])
    approval_id = request.approvals[0].id
    await workflow_engine.decide_approval(db, principal_of(cast["manager"]), approval_id, "approved")

    with pytest.raises(Conflict):
        await workflow_engine.decide_approval(db, principal_of(cast["manager"]), approval_id, "rejected")


@pytest.mark.asyncio
async def test_unknown_approval_and_bad_decision(db: AsyncSession) -> None:
    cast = await _cast(db)
    with pytest.raises(NotFound):
        await workflow_engine.decide_approval(db, principal_of(cast["admin"]), "missing", "approved")
    with pytest.raises(ValidationError):
        await workflow_engine.decide_approval(db, principal_of(cast["admin"]), "missing", "maybe")


@pytest.mark.asyncio
async def test_admin_decision_reassigns_the_approval(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])

    decided = await workflow_engine.decide_approval(db, principal_of(cast["admin"]), request.approvals[0].id, "approved")

    assert decided.approvals[0].approver_id == cast["admin"].id
    actions = (await db.execute(select(AuditLog.action).where(AuditLog.request_id == request.id))).scalars().all()
    assert "approval_reassigned" in actions
    assert "request_approved" in actions


@pytest.mark.asyncio
async def test_decide_request_targets_the_actors_pending_approval(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])

    decided = await workflow_engine.decide_request(db, principal_of(cast["manager"]), request.id, "approved")
    assert decided.status == RequestStatus.APPROVED

    with pytest.raises(Conflict):
        await workflow_engine.decide_request(db, principal_of(cast["manager"]), request.id, "approved")


@pytest.mark.asyncio
async def test_decide_request_hides_requests_outside_the_managers_groups(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])

    with pytest.raises(NotFound):
        await workflow_engine.decide_request(db, principal_of(cast["other_manager"]), request.id, "approved")

    approval = (await db.execute(select(Approval).where(Approval.request_id == request.id))).scalar_one()
    assert approval.status == RequestStatus.PENDING


@pytest.mark.asyncio
async def test_admin_deletes_approval_and_status_is_kept(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])
    approval_id = request.approvals[0].id

    await workflow_engine.delete_approval(db, principal_of(cast["admin"]), approval_id)

    assert (await db.execute(select(Approval).where(Approval.id == approval_id))).scalar_one_or_none() is None
    reloaded = await request_service.get_request(db, request.id)
    assert reloaded.status == RequestStatus.PENDING
    assert reloaded.approvals == []


@pytest.mark.asyncio
async def test_deleting_the_rejecting_approval_recomputes_status(db: AsyncSession) -> None:
    cast = await _cast(db)
    second = await create_user(db, "second@herdit.io", role="manager", groups=("IT",))
    request = await _submit_change(db, cast["user"])
    db.add(Approval(request_id=request.id, approver_id=second.id, status=RequestStatus.APPROVED))
    await db.flush()
    rejected = await workflow_engine.decide_approval(
        db, principal_of(cast["manager"]), request.approvals[0].id, "rejected"
    )

    rejecting = next(a.id for a in rejected.approvals if a.status == RequestStatus.REJECTED)
    await workflow_engine.delete_approval(db, principal_of(cast["admin"]), rejecting)

    reloaded = await request_service.get_request(db, request.id)
    assert reloaded.status == RequestStatus.APPROVED


@pytest.mark.asyncio
async def test_only_admins_delete_approvals(db: AsyncSession) -> None:
    cast = await _cast(db)
    request = await _submit_change(db, cast["user"])

    with pytest.raises(Forbidden):
        await workflow_engine.delete_approval(db, principal_of(cast["manager"]), request.approvals[0].id)
    with pytest.raises(NotFound):
        await workflow_engine.delete_approval(db, principal_of(cast["admin"]), "missing")


@pytest.mark.asyncio
async def test_change_request_without_approver_is_refused(db: AsyncSession) -> None:
    await _cast(db)
    loner = await create_user(db, "loner@herdit.io", groups=("IT",))

    with pytest.raises(NoApproverAssigned):
        await _submit_change(db, loner)


@pytest.mark.asyncio
async def test_asset_request_falls_back_to_a_group_manager(db: AsyncSession) -> None:
    cast = await _cast(db)
    requester = await create_user(db, "buyer@herdit.io", groups=("Corporate",))
    request_type = await asset_type(db)

    request = await workflow_engine.submit_request(db, principal_of(requester), asset_payload(request_type))

    assert request.approvals[0].approver_id == cast["other_manager"].id
    assert request.data["quantity"] == 2


@pytest.mark.asyncio
async def test_submission_checks_group_and_payload(db: AsyncSession) -> None:
    cast = await _cast(db)
    corporate = await create_user(db, "corp@herdit.io", groups=("Corporate",), approver=cast["manager"])
    request_type = await change_type(db)

    with pytest.raises(Forbidden):
        await workflow_engine.submit_request(db, principal_of(corporate), change_payload(request_type))
    with pytest.raises(ValidationError):
        await workflow_engine.submit_request(db, principal_of(cast["user"]), change_payload(request_type, impact="short"))


@pytest.mark.asyncio
async def test_visibility_per_tier(db: AsyncSession) -> None:
    cast = await _cast(db)
    colleague = await create_user(db, "colleague@herdit.io", groups=("IT",), approver=cast["manager"])
    own = await _submit_change(db, cast["user"], title="Own change")
    theirs = await _submit_change(db, colleague, title="Colleague change")

    user_view = await request_service.list_visible_requests(
        db, principal_of(cast["user"]), RequestFilters(search="change")
    )
    assert [r.id for r in user_view] == [own.id]

    manager_view = await request_service.list_visible_requests(db, principal_of(cast["manager"]))
    assert {r.id for r in manager_view} == {own.id, theirs.id}

    other_view = await request_service.list_visible_requests(db, principal_of(cast["other_manager"]))
    assert other_view == []

    admin_view = await request_service.list_visible_requests(db, principal_of(cast["admin"]))
    assert len(admin_view) == 2

    with pytest.raises(NotFound):
        await request_service.get_visible_request(db, principal_of(cast["other_manager"]), own.id)


@pytest.mark.asyncio
async def test_filters_never_widen_visibility(db: AsyncSession) -> None:
    cast = await _cast(db)
    colleague = await create_user(db, "colleague@herdit.io", groups=("IT",), approver=cast["manager"])
    await _submit_change(db, colleague)
    request_type = await change_type(db)

    filters = RequestFilters(group_ids=[request_type.group_id], type_name="IT Change Request")
    assert await request_service.list_visible_requests(db, principal_of(cast["user"]), filters) == []


@pytest.mark.asyncio
async def test_token_expires_after_its_ttl(db: AsyncSession, blob_dirs) -> None:
    issued_at = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)
    file_token = await file_service.issue_download_token(
        db, "F.pdf", "report.pdf", "application/pdf", now=issued_at
    )

    resolved = await file_service.resolve_token(db, file_token.token, now=issued_at + timedelta(minutes=14))
    assert resolved.file_id == "F.pdf"

    with pytest.raises(NotFound):
        await file_service.resolve_token(db, file_token.token, now=issued_at + timedelta(minutes=16))

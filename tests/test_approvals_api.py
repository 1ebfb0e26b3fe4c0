"""Tests for the approval inbox and decision endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import CHANGE_DATA, change_type, create_user, headers_for


async def _submitted(client: AsyncClient, db: AsyncSession) -> dict:
    manager = await create_user(db, "manager@herdit.io", role="manager", groups=("IT",))
    corp_manager = await create_user(db, "corp.manager@herdit.io", role="manager", groups=("Corporate",))
    admin = await create_user(db, "admin@herdit.io", role="admin")
    user = await create_user(db, "user@herdit.io", groups=("IT",), approver=manager)
    request_type = await change_type(db)

    res = await client.post(
        "/api/v1/requests",
        json={
            "title": "Rotate TLS certificates",
            "description": "Yearly rotation",
            "request_type_id": request_type.id,
            "data": CHANGE_DATA,
        },
        headers=headers_for(user),
    )
    assert res.status_code == 201
    request = res.json()
    return {
        "manager": manager,
        "corp_manager": corp_manager,
        "admin": admin,
        "user": user,
        "request_id": request["id"],
        "approval_id": request["approvals"][0]["id"],
    }


@pytest.mark.asyncio
async def test_approve_via_patch(client: AsyncClient, db: AsyncSession) -> None:
    ctx = await _submitted(client, db)

    res = await client.patch(
        f"/api/v1/approvals/{ctx['approval_id']}",
        json={"status": "approved", "notes": "ok"},
        headers=headers_for(ctx["manager"]),
    )
    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "approved"
    assert data["approvals"][0]["notes"] == "ok"


@pytest.mark.asyncio
async def test_decision_status_mapping(client: AsyncClient, db: AsyncSession) -> None:
    ctx = await _submitted(client, db)
    url = f"/api/v1/approvals/{ctx['approval_id']}"
    body = {"status": "approved"}

    assert (await client.patch(url, json=body)).status_code == 401
    assert (await client.patch(url, json=body, headers=headers_for(ctx["user"]))).status_code == 403
    assert (await client.patch(url, json=body, headers=headers_for(ctx["corp_manager"]))).status_code == 403
    assert (
        await client.patch("/api/v1/approvals/missing", json=body, headers=headers_for(ctx["manager"]))
    ).status_code == 404
    assert (await client.patch(url, json={"status": "maybe"}, headers=headers_for(ctx["manager"]))).status_code == 422

    assert (await client.patch(url, json=body, headers=headers_for(ctx["manager"]))).status_code == 200
    assert (await client.patch(url, json=body, headers=headers_for(ctx["manager"]))).status_code == 409


@pytest.mark.asyncio
async def test_reject_via_request_decision(client: AsyncClient, db: AsyncSession) -> None:
    ctx = await _submitted(client, db)

    res = await client.post(
        f"/api/v1/requests/{ctx['request_id']}/decision",
        json={"status": "rejected", "notes": "Freeze week"},
        headers=headers_for(ctx["manager"]),
    )
    assert res.status_code == 200
    assert res.json()["status"] == "rejected"


@pytest.mark.asyncio
async def test_approval_inbox(client: AsyncClient, db: AsyncSession) -> None:
    ctx = await _submitted(client, db)

    res = await client.get("/api/v1/approvals", headers=headers_for(ctx["manager"]))
    assert res.status_code == 200
    inbox = res.json()
    assert [item["id"] for item in inbox] == [ctx["approval_id"]]
    assert inbox[0]["request_type"] == "IT Change Request"
    assert inbox[0]["requested_by"] == ctx["user"].name

    res = await client.get("/api/v1/approvals", headers=headers_for(ctx["corp_manager"]))
    assert res.json() == []

    await client.patch(
        f"/api/v1/approvals/{ctx['approval_id']}", json={"status": "approved"}, headers=headers_for(ctx["manager"])
    )
    res = await client.get("/api/v1/approvals", headers=headers_for(ctx["manager"]))
    assert res.json() == []
    res = await client.get("/api/v1/approvals", params={"state": "completed"}, headers=headers_for(ctx["manager"]))
    assert [item["status"] for item in res.json()] == ["approved"]


@pytest.mark.asyncio
async def test_delete_approval(client: AsyncClient, db: AsyncSession) -> None:
    ctx = await _submitted(client, db)
    url = f"/api/v1/approvals/{ctx['approval_id']}"

    assert (await client.delete(url, headers=headers_for(ctx["manager"]))).status_code == 403
    assert (await client.delete(url, headers=headers_for(ctx["admin"]))).status_code == 204

    res = await client.get(f"/api/v1/requests/{ctx['request_id']}", headers=headers_for(ctx["admin"]))
    assert res.json()["approvals"] == []
    assert res.json()["status"] == "pending"

    res = await client.get("/api/v1/audit-log", params={"action": "approval_deleted"}, headers=headers_for(ctx["admin"]))
    assert res.status_code == 200
    assert len(res.json()) == 1
    assert (await client.get("/api/v1/audit-log", headers=headers_for(ctx["manager"]))).status_code == 403

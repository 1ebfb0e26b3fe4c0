"""Tests for request submission, listing and attachments over HTTP."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import CHANGE_DATA, change_type, create_user, headers_for


async def _people(db: AsyncSession) -> dict:
    manager = await create_user(db, "manager@herdit.io", role="manager", groups=("IT",))
    user = await create_user(db, "user@herdit.io", groups=("IT",), approver=manager)
    corp_user = await create_user(db, "corp@herdit.io", groups=("Corporate",), approver=manager)
    admin = await create_user(db, "admin@herdit.io", role="admin")
    return {"manager": manager, "user": user, "corp_user": corp_user, "admin": admin}


async def _change_body(db: AsyncSession, title: str = "Patch the firewall", **data) -> dict:
    request_type = await change_type(db)
    return {
        "title": title,
        "description": "Apply vendor patch",
        "request_type_id": request_type.id,
        "data": {**CHANGE_DATA, **data},
    }


@pytest.mark.asyncio
async def test_submit_request(client: AsyncClient, db: AsyncSession) -> None:
    people = await _people(db)
    body = await _change_body(db)
    body["attachments"] = [{"file_name": "plan.pdf", "file_url": "/uploads/abc.pdf", "file_size": "1024"}]

    res = await client.post("/api/v1/requests", json=body, headers=headers_for(people["user"]))
    assert res.status_code == 201
    data = res.json()
    assert data["status"] == "pending"
    assert data["user_id"] == people["user"].id
    assert [a["approver_id"] for a in data["approvals"]] == [people["manager"].id]
    assert data["attachments"][0]["file_name"] == "plan.pdf"


@pytest.mark.asyncio
async def test_submit_request_status_mapping(client: AsyncClient, db: AsyncSession) -> None:
    people = await _people(db)
    loner = await create_user(db, "loner@herdit.io", groups=("IT",))
    body = await _change_body(db)

    res = await client.post("/api/v1/requests", json=body)
    assert res.status_code == 401

    res = await client.post("/api/v1/requests", json=body, headers=headers_for(people["corp_user"]))
    assert res.status_code == 403

    res = await client.post(
        "/api/v1/requests", json={**body, "request_type_id": "missing"}, headers=headers_for(people["user"])
    )
    assert res.status_code == 404

    res = await client.post("/api/v1/requests", json=body, headers=headers_for(loner))
    assert res.status_code == 400
    assert res.json()["detail"] == "No approver assigned to this user"

    bad = await _change_body(db, priority="urgent")
    res = await client.post("/api/v1/requests", json=bad, headers=headers_for(people["user"]))
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_request_types_are_scoped_to_groups(client: AsyncClient, db: AsyncSession) -> None:
    people = await _people(db)

    res = await client.get("/api/v1/request-types", headers=headers_for(people["user"]))
    assert res.status_code == 200
    assert [t["name"] for t in res.json()] == ["IT Change Request"]
    assert res.json()[0]["group"]["name"] == "IT"

    res = await client.get("/api/v1/request-types", headers=headers_for(people["admin"]))
    assert {t["name"] for t in res.json()} == {"IT Change Request", "Asset Request"}


@pytest.mark.asyncio
async def test_list_and_get_respect_visibility(client: AsyncClient, db: AsyncSession) -> None:
    people = await _people(db)
    colleague = await create_user(db, "colleague@herdit.io", groups=("IT",), approver=people["manager"])
    own = await client.post("/api/v1/requests", json=await _change_body(db, "Own"), headers=headers_for(people["user"]))
    other = await client.post(
        "/api/v1/requests", json=await _change_body(db, "Other"), headers=headers_for(colleague)
    )
    own_id, other_id = own.json()["id"], other.json()["id"]

    res = await client.get("/api/v1/requests", headers=headers_for(people["user"]))
    assert [r["id"] for r in res.json()] == [own_id]

    res = await client.get("/api/v1/requests", params={"search": "oth"}, headers=headers_for(people["manager"]))
    assert [r["id"] for r in res.json()] == [other_id]

    res = await client.get(f"/api/v1/requests/{other_id}", headers=headers_for(people["user"]))
    assert res.status_code == 404

    res = await client.get(f"/api/v1/requests/{other_id}", headers=headers_for(people["admin"]))
    assert res.status_code == 200
    assert res.json()["title"] == "Other"


@pytest.mark.asyncio
async def test_add_attachments_owner_only(client: AsyncClient, db: AsyncSession) -> None:
    people = await _people(db)
    res = await client.post("/api/v1/requests", json=await _change_body(db), headers=headers_for(people["user"]))
    request_id = res.json()["id"]
    body = {"attachments": [{"file_name": "diagram.png", "file_url": "/uploads/d.png", "file_type": "image/png"}]}

    res = await client.post(f"/api/v1/requests/{request_id}/attachments", json=body, headers=headers_for(people["manager"]))
    assert res.status_code == 403

    res = await client.post(f"/api/v1/requests/{request_id}/attachments", json=body, headers=headers_for(people["user"]))
    assert res.status_code == 201
    assert [a["file_name"] for a in res.json()["attachments"]] == ["diagram.png"]


@pytest.mark.asyncio
async def test_request_audit_log(client: AsyncClient, db: AsyncSession) -> None:
    people = await _people(db)
    res = await client.post("/api/v1/requests", json=await _change_body(db), headers=headers_for(people["user"]))
    request_id = res.json()["id"]

    res = await client.get(f"/api/v1/requests/{request_id}/audit-log", headers=headers_for(people["user"]))
    assert res.status_code == 200
    assert [e["action"] for e in res.json()] == ["request_submitted"]

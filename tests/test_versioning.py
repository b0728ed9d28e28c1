"""
Optimistic concurrency tests: version counters, stale writes and the
end-to-end create/update/delete lifecycle.
"""

import pytest


async def create_document(client, headers, **fields):
    body = {"title": "X", "entity_type": "policy", "category": "hr", **fields}
    response = await client.post("/agent/internal/documents", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def create_employee(client, tenant_id, employee_id="E-100", full_name="Dana Reyes"):
    response = await client.post(
        "/employees",
        params={"tenant_id": tenant_id},
        json={"employee_id": employee_id, "full_name": full_name},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_document_lifecycle_scenario(client, internal_headers, oracle):
    """Create, update, stale update, denied delete, allowed delete."""
    document = await create_document(client, internal_headers, title="X")
    assert document["version"] == 1
    url = f"/agent/internal/documents/{document['id']}"

    response = await client.put(url, json={"version": 1, "title": "Y"}, headers=internal_headers)
    assert response.status_code == 200
    assert response.json()["data"]["version"] == 2
    assert response.json()["data"]["title"] == "Y"

    response = await client.put(url, json={"version": 1, "title": "Z"}, headers=internal_headers)
    assert response.status_code == 409
    assert response.json() == {
        "ok": False,
        "error": "conflict",
        "message": "Record was modified by someone else or does not exist",
    }

    current = (await client.get(url, headers=internal_headers)).json()["data"]
    assert current["title"] == "Y"
    assert current["version"] == 2

    oracle.allow = False
    response = await client.delete(url, headers=internal_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"
    assert (await client.get(url, headers=internal_headers)).status_code == 200

    oracle.allow = True
    response = await client.delete(url, headers=internal_headers)
    assert response.status_code == 200
    assert response.json()["data"]["deleted"] is True

    response = await client.get(url, headers=internal_headers)
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"

    assert oracle.requests[-1] == {
        "input": {"action": "delete", "resource": "documents", "user": {"role": "admin"}}
    }


@pytest.mark.asyncio
async def test_version_increments_once_per_update(client, tenant_id):
    employee = await create_employee(client, tenant_id)
    url = f"/employees/{employee['id']}"

    for n in range(1, 6):
        response = await client.put(
            url,
            params={"tenant_id": tenant_id},
            json={"version": n, "job_title": f"Analyst {n}"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["version"] == n + 1

    response = await client.put(
        url, params={"tenant_id": tenant_id}, json={"version": 3, "job_title": "Stale"}
    )
    assert response.status_code == 409

    current = (await client.get(url, params={"tenant_id": tenant_id})).json()["data"]
    assert current["version"] == 6
    assert current["job_title"] == "Analyst 5"


@pytest.mark.asyncio
async def test_update_without_allowed_fields_is_rejected(client, tenant_id, audit_log):
    employee = await create_employee(client, tenant_id)
    url = f"/employees/{employee['id']}"

    response = await client.put(
        url,
        params={"tenant_id": tenant_id},
        json={"version": 1, "employee_id": "E-999", "favourite_colour": "green"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "bad_request"

    current = (await client.get(url, params={"tenant_id": tenant_id})).json()["data"]
    assert current["version"] == 1
    assert current["employee_id"] == "E-100"

    events = [event for event in await audit_log() if event.action == "update"]
    assert events[-1].reason == "no_fields_to_update"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body, reason",
    [
        ({"job_title": "Lead"}, "version_missing"),
        ({"version": "1", "job_title": "Lead"}, "invalid_version"),
        ({"version": True, "job_title": "Lead"}, "invalid_version"),
    ],
)
async def test_update_requires_integer_version(client, tenant_id, audit_log, body, reason):
    employee = await create_employee(client, tenant_id)

    response = await client.put(
        f"/employees/{employee['id']}", params={"tenant_id": tenant_id}, json=body
    )
    assert response.status_code == 400

    events = [event for event in await audit_log() if event.action == "update"]
    assert events[-1].reason == reason


@pytest.mark.asyncio
async def test_update_rejects_values_outside_enum(client, tenant_id, audit_log):
    employee = await create_employee(client, tenant_id)

    response = await client.put(
        f"/employees/{employee['id']}",
        params={"tenant_id": tenant_id},
        json={"version": 1, "employment_status": "retired"},
    )
    assert response.status_code == 400

    events = [event for event in await audit_log() if event.action == "update"]
    assert events[-1].reason == "invalid_employment_status"


@pytest.mark.asyncio
async def test_update_after_soft_delete_reports_conflict(client, tenant_id, audit_log):
    employee = await create_employee(client, tenant_id)
    url = f"/employees/{employee['id']}"
    assert (await client.delete(url, params={"tenant_id": tenant_id})).status_code == 200

    response = await client.put(
        url, params={"tenant_id": tenant_id}, json={"version": 1, "job_title": "Ghost"}
    )
    assert response.status_code == 409

    events = [event for event in await audit_log() if event.action == "update"]
    assert events[-1].reason == "version_conflict_or_not_found"


@pytest.mark.asyncio
async def test_soft_delete_flips_terminal_status(client, tenant_id, session_factory):
    from uuid import UUID

    from compliance_agent.db.tables import EmployeeTable

    employee = await create_employee(client, tenant_id)
    response = await client.delete(f"/employees/{employee['id']}", params={"tenant_id": tenant_id})
    assert response.json()["data"]["mode"] == "soft"

    async with session_factory() as session:
        row = await session.get(EmployeeTable, UUID(employee["id"]))
    assert row is not None
    assert row.deleted_at is not None
    assert row.employment_status == "terminated"
    assert row.version == 1


@pytest.mark.asyncio
async def test_hard_delete_removes_row(client, tenant_id, session_factory):
    from uuid import UUID

    from compliance_agent.db.tables import AgentUserTable

    response = await client.post(
        "/agent-users",
        params={"tenant_id": tenant_id},
        json={"email": "owner@example.com", "role": "owner"},
    )
    user_id = response.json()["data"]["id"]

    response = await client.delete(f"/agent-users/{user_id}", params={"tenant_id": tenant_id})
    assert response.status_code == 200
    assert response.json()["data"]["mode"] == "hard"

    async with session_factory() as session:
        assert await session.get(AgentUserTable, UUID(user_id)) is None

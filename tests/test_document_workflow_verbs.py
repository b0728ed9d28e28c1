"""
Workflow verbs on document children and templates: approval decisions,
delegation and escalation, comment resolution, share access, section
compliance, version comparison, relationship graphs, compliance history and
scores, and template usage.
"""

import typing
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from compliance_agent.db.tables import DocumentRelationshipTable, DocumentTable
from compliance_agent.engine.core import ResourceService

BASE = "/agent/internal"


async def create_document(client, headers, title="Access Control Policy"):
    response = await client.post(
        f"{BASE}/documents",
        json={"title": title, "entity_type": "policy", "category": "security"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
async def document(client, internal_headers):
    return await create_document(client, internal_headers)


async def create_approval(client, headers, document_id):
    response = await client.post(
        f"{BASE}/documents/{document_id}/approvals",
        json={"approver_id": str(uuid4()), "approver_role": "compliance_officer"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def get_document(client, headers, document_id):
    return (await client.get(f"{BASE}/documents/{document_id}", headers=headers)).json()["data"]


def test_service_annotations_resolve_to_builtins():
    hints = typing.get_type_hints(ResourceService.reorder)
    assert hints["return"] == list[dict[str, Any]]
    assert typing.get_type_hints(ResourceService.history)["return"] == list[dict[str, Any]]


# =============================================================================
# Input limits
# =============================================================================


@pytest.mark.asyncio
async def test_document_cannot_relate_to_itself(client, internal_headers, document, audit_log, session_factory):
    response = await client.post(
        f"{BASE}/documents/{document['id']}/relationships",
        json={"target_document_id": document["id"], "relationship_type": "references"},
        headers=internal_headers,
    )
    assert response.status_code == 400
    assert (await audit_log())[-1].reason == "self_reference"

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(DocumentRelationshipTable))
    assert count == 0


@pytest.mark.asyncio
async def test_store_rejects_self_links(session):
    document_id = uuid4()
    session.add(
        DocumentRelationshipTable(
            tenant_id=uuid4(),
            document_id=document_id,
            target_document_id=document_id,
            relationship_type="references",
        )
    )
    with pytest.raises(IntegrityError):
        await session.flush()


@pytest.mark.asyncio
async def test_overlong_string_is_a_validation_error(client, internal_headers, audit_log, session_factory):
    response = await client.post(
        f"{BASE}/documents",
        json={"title": "x" * 501, "entity_type": "policy", "category": "security"},
        headers=internal_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "bad_request"
    assert "at most 500 characters" in response.json()["message"]
    assert (await audit_log())[-1].reason == "validation_error"

    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(DocumentTable)) == 0


# =============================================================================
# Approvals
# =============================================================================


@pytest.mark.asyncio
async def test_approve_last_open_step_approves_document(client, internal_headers, document, audit_log):
    approval = await create_approval(client, internal_headers, document["id"])
    assert approval["status"] == "pending"

    response = await client.put(
        f"{BASE}/documents/{document['id']}/approvals/{approval['id']}/decide",
        json={"decision": "approve", "comments": "Looks complete", "version": 1},
        headers=internal_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "approved"
    assert data["decision_at"] is not None
    assert data["comments"] == "Looks complete"
    assert data["version"] == 2

    current = await get_document(client, internal_headers, document["id"])
    assert current["status"] == "approved"
    assert current["version"] == 2

    event = (await audit_log())[-1]
    assert event.action == "decide"
    assert "documents.status" in event.changes


@pytest.mark.asyncio
async def test_decided_step_cannot_change_again(client, internal_headers, document, audit_log):
    approval = await create_approval(client, internal_headers, document["id"])
    url = f"{BASE}/documents/{document['id']}/approvals/{approval['id']}"

    assert (await client.put(f"{url}/decide", json={"decision": "approve"}, headers=internal_headers)).status_code == 200

    response = await client.put(f"{url}/decide", json={"decision": "reject"}, headers=internal_headers)
    assert response.status_code == 409
    assert (await audit_log())[-1].reason == "approval_closed"

    response = await client.put(url, json={"version": 2, "status": "rejected"}, headers=internal_headers)
    assert response.status_code == 400

    current = (await client.get(url, headers=internal_headers)).json()["data"]
    assert current["status"] == "approved"


@pytest.mark.asyncio
async def test_document_waits_for_every_open_step(client, internal_headers, document):
    first = await create_approval(client, internal_headers, document["id"])
    second = await create_approval(client, internal_headers, document["id"])
    url = f"{BASE}/documents/{document['id']}/approvals"

    await client.put(f"{url}/{first['id']}/decide", json={"decision": "approve"}, headers=internal_headers)
    assert (await get_document(client, internal_headers, document["id"]))["status"] == "draft"

    await client.put(f"{url}/{second['id']}/decide", json={"decision": "approve"}, headers=internal_headers)
    assert (await get_document(client, internal_headers, document["id"]))["status"] == "approved"


@pytest.mark.asyncio
async def test_rejection_rejects_document_immediately(client, internal_headers, document):
    first = await create_approval(client, internal_headers, document["id"])
    await create_approval(client, internal_headers, document["id"])

    response = await client.put(
        f"{BASE}/documents/{document['id']}/approvals/{first['id']}/decide",
        json={"decision": "reject", "rejection_reason": "Missing retention clause"},
        headers=internal_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["rejection_reason"] == "Missing retention clause"
    assert (await get_document(client, internal_headers, document["id"]))["status"] == "rejected"


@pytest.mark.asyncio
async def test_decide_validates_input(client, internal_headers, document, audit_log):
    approval = await create_approval(client, internal_headers, document["id"])
    url = f"{BASE}/documents/{document['id']}/approvals/{approval['id']}/decide"

    response = await client.put(url, json={"decision": "maybe"}, headers=internal_headers)
    assert response.status_code == 400
    assert (await audit_log())[-1].reason == "invalid_decision"

    response = await client.put(url, json={"decision": "approve", "version": 7}, headers=internal_headers)
    assert response.status_code == 409
    assert (await audit_log())[-1].reason == "version_conflict_or_not_found"

    response = await client.put(
        f"{BASE}/documents/{document['id']}/approvals/{uuid4()}/decide",
        json={"decision": "approve"},
        headers=internal_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delegate_keeps_step_pending(client, internal_headers, document, audit_log):
    approval = await create_approval(client, internal_headers, document["id"])
    url = f"{BASE}/documents/{document['id']}/approvals/{approval['id']}"

    response = await client.put(f"{url}/delegate", json={}, headers=internal_headers)
    assert response.status_code == 400
    assert "delegated_to" in response.json()["message"]

    delegate_id = str(uuid4())
    response = await client.put(
        f"{url}/delegate",
        json={"delegated_to": delegate_id, "delegation_reason": "On leave"},
        headers=internal_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["delegated_to"] == delegate_id
    assert data["delegated_at"] is not None
    assert (await audit_log())[-1].action == "delegate"


@pytest.mark.asyncio
async def test_escalated_step_can_still_be_decided(client, internal_headers, document, audit_log):
    approval = await create_approval(client, internal_headers, document["id"])
    url = f"{BASE}/documents/{document['id']}/approvals/{approval['id']}"

    response = await client.put(
        f"{url}/escalate", json={"escalated_to": str(uuid4())}, headers=internal_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "escalated"
    assert (await audit_log())[-1].action == "escalate"

    response = await client.put(f"{url}/delegate", json={"delegated_to": str(uuid4())}, headers=internal_headers)
    assert response.status_code == 409
    assert (await audit_log())[-1].reason == "approval_not_pending"

    response = await client.put(f"{url}/decide", json={"decision": "approve"}, headers=internal_headers)
    assert response.status_code == 200
    assert (await get_document(client, internal_headers, document["id"]))["status"] == "approved"


# =============================================================================
# Comments, shares and sections
# =============================================================================


@pytest.mark.asyncio
async def test_resolve_comment(client, internal_headers, document, audit_log):
    url = f"{BASE}/documents/{document['id']}/comments"
    comment = (
        await client.post(url, json={"comment_text": "Typo in 3.2", "comment_type": "issue"}, headers=internal_headers)
    ).json()["data"]

    response = await client.put(f"{url}/{comment['id']}/resolve", json={}, headers=internal_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["is_resolved"] is True
    assert data["resolved_by"] == internal_headers["X-User-Id"]
    assert data["resolved_at"] is not None
    assert data["version"] == 2
    assert (await audit_log())[-1].action == "resolve"

    response = await client.put(f"{url}/{uuid4()}/resolve", json={}, headers=internal_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_share_access_is_counted_and_exhausted(client, internal_headers, document, audit_log):
    url = f"{BASE}/documents/{document['id']}/shares"
    share = (
        await client.post(
            url,
            json={"share_type": "link", "shared_with_email": "ext@example.com", "max_access_count": 2},
            headers=internal_headers,
        )
    ).json()["data"]

    first = await client.put(f"{url}/{share['id']}/access", headers=internal_headers)
    assert first.status_code == 200
    assert first.json()["data"]["access_count"] == 1
    assert first.json()["data"]["is_active"] is True
    assert first.json()["data"]["version"] == 1

    second = await client.put(f"{url}/{share['id']}/access", headers=internal_headers)
    assert second.json()["data"]["access_count"] == 2
    assert second.json()["data"]["is_active"] is False
    assert (await audit_log())[-1].changes == ["access_count", "last_accessed_at", "is_active"]

    third = await client.put(f"{url}/{share['id']}/access", headers=internal_headers)
    assert third.status_code == 404
    assert (await audit_log())[-1].reason == "share_inactive"


@pytest.mark.asyncio
async def test_expired_share_cannot_be_accessed(client, internal_headers, document):
    url = f"{BASE}/documents/{document['id']}/shares"
    share = (
        await client.post(
            url,
            json={
                "share_type": "email",
                "shared_with_email": "late@example.com",
                "expires_at": "2000-01-01T00:00:00Z",
            },
            headers=internal_headers,
        )
    ).json()["data"]

    response = await client.put(f"{url}/{share['id']}/access", headers=internal_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_section_compliance_verdict(client, internal_headers, document, audit_log):
    url = f"{BASE}/documents/{document['id']}/sections"
    section = (
        await client.post(
            url,
            json={"section_key": "purpose", "title": "Purpose", "section_type": "paragraph", "content": "Why", "order_index": 0},
            headers=internal_headers,
        )
    ).json()["data"]

    response = await client.put(
        f"{url}/{section['id']}/compliance",
        json={
            "compliance_status": "partially_compliant",
            "compliance_issues": ["No owner named"],
            "is_completed": True,
        },
        headers=internal_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["compliance_status"] == "partially_compliant"
    assert data["compliance_issues"] == ["No owner named"]
    assert data["is_completed"] is True
    assert data["last_checked_at"] is not None
    assert data["version"] == 2

    event = (await audit_log())[-1]
    assert event.action == "update_compliance"
    assert event.event_category == "compliance"

    response = await client.put(
        f"{url}/{section['id']}/compliance", json={"compliance_status": "fine"}, headers=internal_headers
    )
    assert response.status_code == 400
    assert (await audit_log())[-1].reason == "invalid_compliance_status"

    response = await client.put(f"{url}/{section['id']}/compliance", json={}, headers=internal_headers)
    assert response.status_code == 400


# =============================================================================
# Read models
# =============================================================================


@pytest.mark.asyncio
async def test_compare_versions(client, internal_headers, document, audit_log):
    url = f"{BASE}/documents/{document['id']}/versions"
    source = (
        await client.post(
            url,
            json={"file_name": "policy-v1.pdf", "file_path": "/d/v1.pdf", "change_summary": "Initial"},
            headers=internal_headers,
        )
    ).json()["data"]
    target = (
        await client.post(
            url,
            json={
                "file_name": "policy-v2.pdf",
                "file_path": "/d/v2.pdf",
                "file_hash": "sha256:abc",
                "change_summary": "Initial",
            },
            headers=internal_headers,
        )
    ).json()["data"]

    response = await client.get(
        f"{url}/compare", params={"source": source["id"], "target": target["id"]}, headers=internal_headers
    )
    assert response.status_code == 200
    differences = {item["field"]: item for item in response.json()["data"]["differences"]}
    assert set(differences) == {"version_number", "file_name", "file_path", "file_hash"}
    assert differences["file_hash"]["change_type"] == "added"
    assert differences["file_name"] == {
        "field": "file_name",
        "old_value": "policy-v1.pdf",
        "new_value": "policy-v2.pdf",
        "change_type": "modified",
    }
    assert (await audit_log())[-1].action == "compare"

    response = await client.get(
        f"{url}/compare", params={"source": source["id"], "target": str(uuid4())}, headers=internal_headers
    )
    assert response.status_code == 404

    response = await client.get(f"{url}/compare", params={"source": "nope"}, headers=internal_headers)
    assert response.status_code == 400
    assert (await audit_log())[-1].reason == "invalid_source"


@pytest.mark.asyncio
async def test_relationship_graph_follows_links(client, internal_headers, document, audit_log):
    middle = await create_document(client, internal_headers, "Password Standard")
    leaf = await create_document(client, internal_headers, "MFA Procedure")

    for source, target in ((document, middle), (middle, leaf)):
        response = await client.post(
            f"{BASE}/documents/{source['id']}/relationships",
            json={"target_document_id": target["id"], "relationship_type": "supplements"},
            headers=internal_headers,
        )
        assert response.status_code == 201

    url = f"{BASE}/documents/{document['id']}/relationships/graph"

    shallow = (await client.get(url, params={"depth": 1}, headers=internal_headers)).json()["data"]
    assert shallow["depth"] == 1
    assert len(shallow["edges"]) == 1
    assert {node["id"] for node in shallow["nodes"]} == {document["id"], middle["id"]}

    deep = (await client.get(url, headers=internal_headers)).json()["data"]
    assert deep["depth"] == 2
    assert [edge["depth"] for edge in deep["edges"]] == [1, 2]
    assert {node["id"] for node in deep["nodes"]} == {document["id"], middle["id"], leaf["id"]}
    assert (await audit_log())[-1].action == "graph"

    capped = (await client.get(url, params={"depth": 50}, headers=internal_headers)).json()["data"]
    assert capped["depth"] == 5


@pytest.mark.asyncio
async def test_compliance_history_newest_first(client, internal_headers, document, audit_log):
    url = f"{BASE}/documents/{document['id']}/compliance"
    for score in (40, 60, 80):
        response = await client.post(
            f"{url}/checks",
            json={
                "check_type": "full_document",
                "overall_compliance": score,
                "section_checks": [],
                "recommendations": [],
            },
            headers=internal_headers,
        )
        assert response.status_code == 201

    response = await client.get(f"{url}/history", params={"limit": 2}, headers=internal_headers)
    assert response.status_code == 200
    assert [item["overall_compliance"] for item in response.json()["data"]] == [80.0, 60.0]
    assert (await audit_log())[-1].action == "history"

    response = await client.get(f"{BASE}/documents/{uuid4()}/compliance/history", headers=internal_headers)
    assert response.status_code == 404


# =============================================================================
# Bookkeeping
# =============================================================================


@pytest.mark.asyncio
async def test_compliance_score_is_set_without_version_bump(client, internal_headers, document, audit_log):
    url = f"{BASE}/documents/{document['id']}/compliance/score"

    response = await client.put(url, json={"compliance_score": 72.5}, headers=internal_headers)
    assert response.status_code == 200
    assert response.json()["data"]["compliance_score"] == 72.5

    current = await get_document(client, internal_headers, document["id"])
    assert current["compliance_score"] == 72.5
    assert current["last_compliance_check_at"] is not None
    assert current["version"] == 1

    event = [event for event in await audit_log() if event.action == "update_compliance_score"][0]
    assert event.event_category == "compliance"

    response = await client.put(url, json={"compliance_score": 150}, headers=internal_headers)
    assert response.status_code == 400
    assert (await audit_log())[-1].reason == "invalid_compliance_score"

    assert (await client.put(url, json={}, headers=internal_headers)).status_code == 400

    response = await client.put(
        f"{BASE}/documents/{uuid4()}/compliance/score", json={"compliance_score": 10}, headers=internal_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_template_use_updates_counters(client, internal_headers, document, audit_log):
    template = (
        await client.post(
            f"{BASE}/templates",
            json={"template_name": "Policy", "template_code": "POL-1", "category": "gov", "entity_type": "policy"},
            headers=internal_headers,
        )
    ).json()["data"]
    assert template["usage_count"] == 0
    url = f"{BASE}/templates/{template['id']}/use"

    response = await client.post(url, json={"document_id": document["id"]}, headers=internal_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["usage_count"] == 1
    assert data["last_used_at"] is not None
    assert data["version"] == 1

    event = (await audit_log())[-1]
    assert event.action == "use"
    assert event.target_name == "POL-1"

    response = await client.post(url, json={}, headers=internal_headers)
    assert response.status_code == 400

    response = await client.post(url, json={"document_id": str(uuid4())}, headers=internal_headers)
    assert response.status_code == 404
    assert (await audit_log())[-1].reason == "reference_not_found"

    items = (
        await client.get(f"{BASE}/templates", params={"sort_by": "usage_count"}, headers=internal_headers)
    ).json()["data"]["items"]
    assert items[0]["usage_count"] == 1

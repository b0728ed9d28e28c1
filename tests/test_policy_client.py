"""
Policy oracle client tests.
"""

import json
from uuid import uuid4

import httpx
import pytest

from compliance_agent.db.repositories import VersionedRepository
from compliance_agent.integrations.policy_client import PolicyClient
from compliance_agent.models import Actor
from compliance_agent.observability.metrics import metrics

URL = "http://policy.test/v1/data/agent/allow"
ACTOR = Actor(role="admin", email="x@example.com", ip="10.1.1.1")


def client_for(handler, *, allow_when_unconfigured=True, allow_on_error=False, url=URL):
    return PolicyClient(
        url=url,
        timeout_ms=100,
        allow_when_unconfigured=allow_when_unconfigured,
        allow_on_error=allow_on_error,
        transport=httpx.MockTransport(handler),
    )


def never_called(request):
    raise AssertionError("oracle must not be called")


@pytest.mark.asyncio
@pytest.mark.parametrize("fallback", [True, False])
async def test_unconfigured_uses_fallback(fallback):
    client = client_for(never_called, url=None, allow_when_unconfigured=fallback)
    assert client.configured is False
    assert await client.check("delete", "documents", ACTOR) is fallback


@pytest.mark.asyncio
async def test_payload_carries_only_role():
    seen = []

    def handler(request):
        seen.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(200, json={"result": True})

    assert await client_for(handler).check("delete", "employees", ACTOR) is True
    assert seen == [
        (
            "POST",
            URL,
            {"input": {"action": "delete", "resource": "employees", "user": {"role": "admin"}}},
        )
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{"result": False}, {"result": "true"}, {"result": 1}, {}, {"result": {"allow": True}}, [True]],
)
async def test_anything_but_literal_true_denies(body):
    client = client_for(lambda request: httpx.Response(200, json=body))
    assert await client.check("delete", "documents", ACTOR) is False


@pytest.mark.asyncio
@pytest.mark.parametrize("fallback", [True, False])
async def test_non_2xx_uses_error_fallback(fallback):
    client = client_for(lambda request: httpx.Response(503), allow_on_error=fallback)
    errors_before = metrics.count("policy.errors")
    assert await client.check("delete", "documents", ACTOR) is fallback
    assert metrics.count("policy.errors") == errors_before + 1


@pytest.mark.asyncio
async def test_timeout_uses_error_fallback():
    def handler(request):
        raise httpx.ReadTimeout("oracle too slow", request=request)

    assert await client_for(handler).check("delete", "documents", ACTOR) is False
    assert await client_for(handler, allow_on_error=True).check("delete", "documents", ACTOR) is True


@pytest.mark.asyncio
async def test_connection_error_uses_error_fallback():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert await client_for(handler).check("delete", "documents", ACTOR) is False


@pytest.mark.asyncio
async def test_malformed_body_uses_error_fallback():
    client = client_for(lambda request: httpx.Response(200, content=b"<html>nope</html>"))
    assert await client.check("delete", "documents", ACTOR) is False


@pytest.mark.asyncio
async def test_oracle_error_denies_delete_end_to_end(client, internal_headers, oracle, audit_log):
    response = await client.post(
        "/agent/internal/templates",
        json={"template_name": "T", "template_code": "T-1", "category": "hr", "entity_type": "employee"},
        headers=internal_headers,
    )
    url = f"/agent/internal/templates/{response.json()['data']['id']}"

    oracle.status_code = 500
    response = await client.delete(url, headers=internal_headers)
    assert response.status_code == 403

    assert (await client.get(url, headers=internal_headers)).status_code == 200
    oracle.status_code = 200
    assert (await client.delete(url, headers=internal_headers)).status_code == 200

    denied, allowed = [event for event in await audit_log() if event.action == "delete"]
    assert denied.decision == "deny"
    assert denied.target_name is None
    assert allowed.decision == "allow"
    assert allowed.target_name == "T-1"


@pytest.mark.asyncio
async def test_denied_delete_never_reads_the_store(client, internal_headers, oracle, monkeypatch):
    async def unreachable(self, scope, row_id):
        raise AssertionError("store read before the policy decision")

    oracle.allow = False
    monkeypatch.setattr(VersionedRepository, "get_row", unreachable)

    response = await client.delete(f"/agent/internal/documents/{uuid4()}", headers=internal_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


@pytest.mark.asyncio
async def test_ungated_resources_skip_the_oracle(client, internal_headers, oracle):
    response = await client.post(
        "/agent/internal/documents",
        json={"title": "Doc", "entity_type": "general", "category": "ops"},
        headers=internal_headers,
    )
    document_id = response.json()["data"]["id"]
    response = await client.post(
        f"/agent/internal/documents/{document_id}/comments",
        json={"comment_text": "hi", "comment_type": "general"},
        headers=internal_headers,
    )
    comment_id = response.json()["data"]["id"]

    oracle.allow = False
    response = await client.delete(
        f"/agent/internal/documents/{document_id}/comments/{comment_id}", headers=internal_headers
    )
    assert response.status_code == 200
    assert oracle.requests == []

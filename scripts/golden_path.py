#!/usr/bin/env python3
"""Golden path demo for the Compliance Agent (document lifecycle)."""

from __future__ import annotations

import json
import os
import sys
import uuid
from typing import Any
from urllib.error import HTTPError
from urllib.parse import urlencode
from urllib.request import Request, urlopen


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


class HttpClient:
    def __init__(self, base_url: str, agent_secret: str | None, tenant_id: str) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = {
            "Content-Type": "application/json",
            "X-Tenant-Id": tenant_id,
            "X-User-Role": "admin",
        }
        if agent_secret:
            self.headers["X-Agent-Secret"] = agent_secret

    def request_json(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        expect: int | None = None,
        timeout: float = 10.0,
    ) -> dict[str, Any]:
        """Send a request and return the decoded envelope.

        Non-2xx responses raise unless their status equals ``expect``.
        """
        url = f"{self.base_url}{path}"
        if query:
            query = {k: v for k, v in query.items() if v is not None}
            if query:
                url = f"{url}?{urlencode(query)}"

        data = None
        if payload is not None:
            data = json.dumps(payload, default=str).encode("utf-8")

        req = Request(url, data=data, method=method)
        for key, value in self.headers.items():
            req.add_header(key, value)

        try:
            with urlopen(req, timeout=timeout) as response:
                status, raw = response.status, response.read()
        except HTTPError as exc:
            status, raw = exc.code, exc.read()
            if status != expect:
                detail = raw.decode("utf-8", errors="replace")
                raise RuntimeError(f"{method} {url} failed: {status} {exc.reason}: {detail}") from None

        if expect is not None and status != expect:
            raise RuntimeError(f"{method} {url} returned {status}, expected {expect}")
        if not raw:
            return {}
        return json.loads(raw.decode("utf-8"))


def main() -> int:
    agent_url = _env("COMPLIANCE_AGENT_URL", "http://localhost:4001")
    agent_secret = _env("COMPLIANCE_AGENT_AGENT_API_SECRET") or _env("AGENT_API_SECRET")
    tenant_id = _env("COMPLIANCE_AGENT_TENANT_ID", str(uuid.uuid4()))

    client = HttpClient(agent_url, agent_secret=agent_secret, tenant_id=tenant_id)

    print("Checking health...")
    health = client.request_json("GET", "/health")
    if not health.get("canReachDb"):
        raise RuntimeError(f"Agent cannot reach its database: {health}")
    print(f"Policy posture: {health.get('policyPosture')}")

    print("Creating document...")
    document = client.request_json(
        "POST",
        "/agent/internal/documents",
        payload={"title": "Golden path policy", "entity_type": "policy", "category": "governance"},
        expect=201,
    )["data"]
    document_url = f"/agent/internal/documents/{document['id']}"
    print(f"Document created: {document['document_number']} (version {document['version']})")

    updated = client.request_json(
        "PUT", document_url, payload={"version": 1, "title": "Golden path policy v2"}
    )["data"]
    if updated["version"] != 2:
        raise RuntimeError(f"Version did not advance: {updated}")

    print("Replaying a stale update...")
    client.request_json(
        "PUT", document_url, payload={"version": 1, "title": "Stale write"}, expect=409
    )

    print("Recording a compliance check...")
    client.request_json(
        "POST",
        f"{document_url}/compliance/checks",
        payload={
            "check_type": "full_document",
            "overall_compliance": 92,
            "section_checks": [],
            "recommendations": [],
        },
        expect=201,
    )
    current = client.request_json("GET", document_url)["data"]
    if current["compliance_score"] != 92:
        raise RuntimeError(f"Compliance score not cached on document: {current}")

    print("Deleting document...")
    client.request_json("DELETE", document_url)
    client.request_json("GET", document_url, expect=404)

    events = client.request_json("GET", "/audit", query={"tenant_id": tenant_id, "limit": 50})["data"]
    actions = [event["action"] for event in reversed(events)]
    for expected in ("create", "update", "delete"):
        if expected not in actions:
            raise RuntimeError(f"Missing audit event {expected}: {actions}")
    conflicts = [event for event in events if event.get("outcome") == "conflict"]
    if not conflicts:
        raise RuntimeError("Stale update was not audited as a conflict")

    print("Golden path complete: versioning enforced, check cached, deletes audited.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        raise

"""
Pytest fixtures for Compliance Agent tests.
"""

import json
import os
from uuid import uuid4

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure test config is set before importing compliance_agent modules.
os.environ.setdefault("COMPLIANCE_AGENT_ENV", "development")
os.environ.setdefault("COMPLIANCE_AGENT_AGENT_API_SECRET", "test-agent-secret")

from compliance_agent.config import settings
from compliance_agent.db import base as db_base
from compliance_agent.db.base import Base
from compliance_agent.db.tables import AuditEventTable
from compliance_agent.engine.audit import AuditRecorder, get_audit_recorder
from compliance_agent.engine.idempotency import IdempotencyCache, get_idempotency_cache
from compliance_agent.integrations.policy_client import PolicyClient, get_policy_client

TEST_DATABASE_URL = os.getenv("COMPLIANCE_AGENT_TEST_DATABASE_URL")
POLICY_URL = "http://policy.test/v1/data/agent/allow"


class PolicyOracle:
    """Programmable stand-in for the policy decision service."""

    def __init__(self):
        self.allow = True
        self.status_code = 200
        self.requests: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "unavailable"})
        return httpx.Response(200, json={"result": self.allow})


@pytest.fixture
async def engine(tmp_path, monkeypatch):
    """Create a fresh schema and wire it into compliance_agent.db.base."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'compliance_agent.db'}"
    engine = create_async_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Override global engine/session factory for dependency injection.
    monkeypatch.setattr(db_base, "engine", engine)
    monkeypatch.setattr(
        db_base,
        "async_session_factory",
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
    )

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def oracle():
    return PolicyOracle()


@pytest.fixture
def policy_client(oracle):
    return PolicyClient(
        url=POLICY_URL,
        timeout_ms=500,
        allow_when_unconfigured=True,
        allow_on_error=False,
        transport=httpx.MockTransport(oracle.handler),
    )


@pytest.fixture
def idempotency_cache():
    return IdempotencyCache(max_entries=100, ttl_seconds=3600)


@pytest.fixture
def audit_recorder(engine):
    return AuditRecorder()


@pytest.fixture
async def client(engine, policy_client, idempotency_cache, audit_recorder):
    """Async test client with overridden dependencies."""
    from compliance_agent.main import app

    app.dependency_overrides[get_policy_client] = lambda: policy_client
    app.dependency_overrides[get_idempotency_cache] = lambda: idempotency_cache
    app.dependency_overrides[get_audit_recorder] = lambda: audit_recorder

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def tenant_id():
    return str(uuid4())


@pytest.fixture
def internal_headers(tenant_id):
    """Headers an upstream platform sends on the internal route tree."""
    return {
        "X-Agent-Secret": settings.agent_api_secret,
        "X-Tenant-Id": tenant_id,
        "X-User-Role": "admin",
        "X-User-Id": str(uuid4()),
        "X-User-Email": "reviewer@example.com",
    }


@pytest.fixture
def audit_log(session_factory):
    """Return a coroutine that reads every persisted audit row, oldest first."""

    async def fetch() -> list[AuditEventTable]:
        async with session_factory() as session:
            result = await session.execute(
                select(AuditEventTable).order_by(AuditEventTable.event_time)
            )
            return list(result.scalars())

    return fetch

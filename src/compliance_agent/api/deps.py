"""API dependencies."""

import json
import logging
import secrets
from typing import Any, AsyncGenerator, Optional

from fastapi import Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_agent.config import Environment, settings
from compliance_agent.db.base import get_session_factory
from compliance_agent.engine.errors import Forbidden, Unauthorized
from compliance_agent.engine.fields import parse_uuid
from compliance_agent.models import Actor
from compliance_agent.observability.trace import get_request_id

logger = logging.getLogger("compliance_agent.api")

PUBLIC_DEFAULT_ROLE = "user"
INTERNAL_DEFAULT_ROLE = "system"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session; services own commit and rollback."""
    async with get_session_factory()() as session:
        yield session


async def get_json_body(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object.

    Anything else is treated as an empty object so the resource service
    reports the missing fields and audits the attempt.
    """
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def get_request_id_value(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or get_request_id()


def _build_actor(
    request: Request,
    default_role: str,
    user_id: Optional[str],
    email: Optional[str],
    role: Optional[str],
    ip: Optional[str],
) -> Actor:
    peer = request.client.host if request.client else None
    return Actor(
        role=(role or "").strip() or default_role,
        id=parse_uuid(user_id),
        email=(email or "").strip() or None,
        ip=(ip or "").strip() or peer,
    )


async def get_public_actor(
    request: Request,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_user_ip: Optional[str] = Header(None, alias="X-User-IP"),
) -> Actor:
    """Actor for public routes (role defaults to user)."""
    return _build_actor(request, PUBLIC_DEFAULT_ROLE, x_user_id, x_user_email, x_user_role, x_user_ip)


async def get_internal_actor(
    request: Request,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_user_ip: Optional[str] = Header(None, alias="X-User-IP"),
) -> Actor:
    """Actor for the internal route tree (role defaults to system)."""
    return _build_actor(request, INTERNAL_DEFAULT_ROLE, x_user_id, x_user_email, x_user_role, x_user_ip)


async def get_public_tenant(
    tenant_id: Optional[str] = Query(None),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
) -> Optional[str]:
    """Tenant for public routes: the tenant_id query parameter, else the header.

    Validation happens in the resource service so rejections are audited.
    """
    return tenant_id if tenant_id and tenant_id.strip() else x_tenant_id


async def get_internal_tenant(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
) -> Optional[str]:
    """Tenant for internal routes: always the X-Tenant-Id header."""
    return x_tenant_id


async def require_internal_secret(
    x_agent_secret: Optional[str] = Header(None, alias="X-Agent-Secret"),
) -> None:
    """
    Gate the internal route tree behind the shared agent secret.

    Absent header is 401; a wrong secret, or no secret configured at all, is 403.
    """
    if not x_agent_secret:
        raise Unauthorized("X-Agent-Secret header required")

    if not settings.agent_api_secret:
        logger.error("Internal request rejected: AGENT_API_SECRET is not configured")
        raise Forbidden("Invalid secret")

    if not secrets.compare_digest(x_agent_secret, settings.agent_api_secret):
        raise Forbidden("Invalid secret")


def validate_security_config() -> None:
    """
    Validate the internal secret and policy posture at startup.

    Fails fast outside development when the internal route tree has no secret,
    and in production when deletes would be allowed without any oracle.
    Logs the active posture either way.
    """
    if not settings.agent_api_secret:
        if settings.env != Environment.DEVELOPMENT:
            raise RuntimeError(
                "SECURITY: AGENT_API_SECRET must be set outside development. "
                "All internal requests would be rejected."
            )
        logger.warning(
            "AGENT_API_SECRET is not set. The internal route tree will reject every request."
        )

    if not settings.policy_url:
        if settings.policy_allow_when_unconfigured and settings.env == Environment.PRODUCTION:
            raise RuntimeError(
                "SECURITY: policy oracle is not configured and policy_allow_when_unconfigured "
                "is enabled in production. Set COMPLIANCE_AGENT_POLICY_URL (or OPA_URL), or set "
                "COMPLIANCE_AGENT_POLICY_ALLOW_WHEN_UNCONFIGURED=false."
            )
        if settings.policy_allow_when_unconfigured:
            logger.warning(
                "=" * 80 + "\n"
                "POLICY ORACLE NOT CONFIGURED: policy-gated deletes are ALLOWED (fail-open).\n"
                "Set COMPLIANCE_AGENT_POLICY_URL before exposing this agent.\n" + "=" * 80
            )

    logger.info(f"Policy posture: {settings.policy_posture}")

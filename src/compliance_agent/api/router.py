"""REST API router.

Two route trees serve the same resources: the public tree (tenant via the
``tenant_id`` query parameter) and the internal tree under
``/agent/internal`` (tenant via ``X-Tenant-Id``, gated by ``X-Agent-Secret``).
"""

import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_agent.api.deps import (
    get_db_session,
    get_internal_actor,
    get_internal_tenant,
    get_json_body,
    get_public_actor,
    get_public_tenant,
    get_request_id_value,
    require_internal_secret,
)
from compliance_agent.api.schemas import (
    AuditEventView,
    HealthResponse,
    PageResponse,
    ok_response,
)
from compliance_agent.config import settings
from compliance_agent.db.base import ping_db
from compliance_agent.db.repositories import AuditEventRepository
from compliance_agent.engine.audit import AuditRecorder, get_audit_recorder
from compliance_agent.engine.catalogue import registry
from compliance_agent.engine.core import ResourceService
from compliance_agent.engine.fields import parse_uuid
from compliance_agent.engine.idempotency import IdempotencyCache, get_idempotency_cache
from compliance_agent.engine.resources import ResourceSpec
from compliance_agent.integrations.policy_client import PolicyClient, get_policy_client
from compliance_agent.models import Actor
from compliance_agent.observability.metrics import metrics

logger = logging.getLogger(__name__)


def service_dependency(
    spec: ResourceSpec,
    tenant_dependency: Callable[..., Any],
    actor_dependency: Callable[..., Any],
) -> Callable[..., Any]:
    """Build a dependency that yields a ResourceService for one request."""

    async def dependency(
        request: Request,
        session: AsyncSession = Depends(get_db_session),
        actor: Actor = Depends(actor_dependency),
        tenant: Optional[str] = Depends(tenant_dependency),
        recorder: AuditRecorder = Depends(get_audit_recorder),
        policy: PolicyClient = Depends(get_policy_client),
        cache: IdempotencyCache = Depends(get_idempotency_cache),
    ) -> ResourceService:
        parent_id = request.path_params.get(spec.parent.field) if spec.parent else None
        return ResourceService(
            session,
            spec,
            actor=actor,
            recorder=recorder,
            tenant=tenant,
            parent_id=parent_id,
            policy=policy,
            cache=cache,
            request_id=get_request_id_value(request),
        )

    return dependency


def add_resource_routes(router: APIRouter, spec: ResourceSpec, get_service: Callable[..., Any]) -> None:
    """Register Create/List/Get/Update/Delete for one resource on router."""

    @router.post("", status_code=201, name=f"{spec.name}_create")
    async def create_record(
        body: dict[str, Any] = Depends(get_json_body),
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
        service: ResourceService = Depends(get_service),
    ):
        result = await service.create(body, idempotency_key)
        if result.idempotent:
            return ok_response({**result.record, "idempotent": True})
        return ok_response(result.record, status_code=201)

    @router.get("", name=f"{spec.name}_list")
    async def list_records(
        request: Request,
        service: ResourceService = Depends(get_service),
    ):
        page = await service.list(request.query_params)
        return ok_response(
            PageResponse(
                items=page.items,
                page=page.page,
                page_size=page.page_size,
                total=page.total,
                total_pages=page.total_pages,
            )
        )

    @router.get("/{record_id}", name=f"{spec.name}_get")
    async def get_record(
        record_id: str,
        service: ResourceService = Depends(get_service),
    ):
        return ok_response(await service.get(record_id))

    @router.put("/{record_id}", name=f"{spec.name}_update")
    async def update_record(
        record_id: str,
        body: dict[str, Any] = Depends(get_json_body),
        service: ResourceService = Depends(get_service),
    ):
        return ok_response(await service.update(record_id, body))

    @router.delete("/{record_id}", name=f"{spec.name}_delete")
    async def delete_record(
        record_id: str,
        service: ResourceService = Depends(get_service),
    ):
        return ok_response(await service.delete(record_id))


def public_service(name: str) -> Callable[..., Any]:
    return service_dependency(registry.get(name), get_public_tenant, get_public_actor)


def internal_service(name: str) -> Callable[..., Any]:
    return service_dependency(registry.get(name), get_internal_tenant, get_internal_actor)


# ============================================================================
# Health & Audit
# ============================================================================

router = APIRouter()


@router.get("/health")
async def health_check():
    """Liveness, store reachability and version labels."""
    try:
        can_reach_db = await ping_db()
    except Exception:
        logger.warning("Database ping failed", exc_info=True)
        can_reach_db = False
    health = HealthResponse(
        agent="online" if can_reach_db else "degraded",
        can_reach_db=can_reach_db,
        schema_version=settings.schema_version,
        policy_version=settings.policy_version,
        policy_posture=settings.policy_posture,
    )
    return health.model_dump(by_alias=True)


@router.get("/audit")
async def list_audit_events(
    limit: Optional[int] = Query(None),
    tenant_id: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_db_session),
):
    """Latest audit events, newest first, without PII."""
    if limit is None or limit < 1:
        limit = settings.default_audit_limit
    limit = min(limit, settings.max_audit_limit)
    rows = await AuditEventRepository(session).latest(limit, parse_uuid(tenant_id))
    return ok_response([AuditEventView.from_row(row) for row in rows])


# ============================================================================
# Public resources
# ============================================================================

employees_router = APIRouter(prefix="/employees", tags=["employees"])
add_resource_routes(employees_router, registry.get("employees"), public_service("employees"))

agent_users_router = APIRouter(prefix="/agent-users", tags=["agent_users"])
add_resource_routes(agent_users_router, registry.get("agent_users"), public_service("agent_users"))

router.include_router(employees_router)
router.include_router(agent_users_router)


# ============================================================================
# Internal resources
# ============================================================================

internal_router = APIRouter(
    prefix="/agent/internal",
    dependencies=[Depends(require_internal_secret)],
)


@internal_router.get("/metrics")
async def get_metrics():
    """In-process counters and histograms."""
    return ok_response(metrics.snapshot())


internal_employees_router = APIRouter(prefix="/employees", tags=["internal"])
add_resource_routes(internal_employees_router, registry.get("employees"), internal_service("employees"))

internal_agent_users_router = APIRouter(prefix="/agent-users", tags=["internal"])
_agent_users_service = internal_service("agent_users")


@internal_agent_users_router.post("/{record_id}/login")
async def notify_login(
    record_id: str,
    service: ResourceService = Depends(_agent_users_service),
):
    """Record that an agent user has just signed in."""
    return ok_response(await service.record_login(record_id))


add_resource_routes(internal_agent_users_router, registry.get("agent_users"), _agent_users_service)

documents_router = APIRouter(prefix="/documents", tags=["internal"])
add_resource_routes(documents_router, registry.get("documents"), internal_service("documents"))

templates_router = APIRouter(prefix="/templates", tags=["internal"])
_templates_service = internal_service("templates")


@templates_router.post("/{record_id}/use")
async def use_template(
    record_id: str,
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_templates_service),
):
    """Count one use of a template for a document."""
    return ok_response(await service.record_use(record_id, body))


add_resource_routes(templates_router, registry.get("templates"), _templates_service)

template_fields_router = APIRouter(prefix="/templates/{template_id}/fields", tags=["internal"])
_template_fields_service = internal_service("template_fields")


@template_fields_router.api_route("/reorder", methods=["PUT", "POST"])
async def reorder_template_fields(
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_template_fields_service),
):
    """Rewrite order_index for the listed fields in one transaction."""
    return ok_response({"items": await service.reorder(body)})


add_resource_routes(template_fields_router, registry.get("template_fields"), _template_fields_service)

compliance_router = APIRouter(prefix="/documents/{document_id}/compliance", tags=["internal"])
_compliance_service = internal_service("compliance_checks")


@compliance_router.get("/latest")
async def latest_compliance_check(
    service: ResourceService = Depends(_compliance_service),
):
    """Most recent compliance check for a document."""
    return ok_response(await service.latest())


@compliance_router.get("/history")
async def compliance_history(
    request: Request,
    service: ResourceService = Depends(_compliance_service),
):
    """Newest compliance checks for a document."""
    return ok_response(await service.history(request.query_params))


@compliance_router.put("/score")
async def set_compliance_score(
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_compliance_service),
):
    """Overwrite the cached compliance score on a document."""
    return ok_response(await service.record_score(body))


compliance_checks_router = APIRouter(prefix="/checks")
add_resource_routes(compliance_checks_router, registry.get("compliance_checks"), _compliance_service)
compliance_router.include_router(compliance_checks_router)

internal_router.include_router(internal_employees_router)
internal_router.include_router(internal_agent_users_router)
internal_router.include_router(documents_router)
internal_router.include_router(templates_router)
internal_router.include_router(template_fields_router)
internal_router.include_router(compliance_router)

# ============================================================================
# Document children
# ============================================================================


def document_child_router(segment: str) -> APIRouter:
    return APIRouter(prefix=f"/documents/{{document_id}}/{segment}", tags=["internal"])


approvals_router = document_child_router("approvals")
_approvals_service = internal_service("approvals")


@approvals_router.put("/{record_id}/decide")
async def decide_approval(
    record_id: str,
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_approvals_service),
):
    """Approve or reject an open approval step."""
    return ok_response(await service.decide(record_id, body))


@approvals_router.put("/{record_id}/delegate")
async def delegate_approval(
    record_id: str,
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_approvals_service),
):
    """Hand a pending approval step to another user."""
    return ok_response(await service.delegate(record_id, body))


@approvals_router.put("/{record_id}/escalate")
async def escalate_approval(
    record_id: str,
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_approvals_service),
):
    """Escalate a pending approval step."""
    return ok_response(await service.escalate(record_id, body))


add_resource_routes(approvals_router, registry.get("approvals"), _approvals_service)

comments_router = document_child_router("comments")
_comments_service = internal_service("comments")


@comments_router.put("/{record_id}/resolve")
async def resolve_comment(
    record_id: str,
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_comments_service),
):
    """Mark a comment resolved."""
    return ok_response(await service.resolve(record_id, body))


add_resource_routes(comments_router, registry.get("comments"), _comments_service)

shares_router = document_child_router("shares")
_shares_service = internal_service("shares")


@shares_router.put("/{record_id}/access")
async def record_share_access(
    record_id: str,
    service: ResourceService = Depends(_shares_service),
):
    """Count one access through a share."""
    return ok_response(await service.record_access(record_id))


add_resource_routes(shares_router, registry.get("shares"), _shares_service)

sections_router = document_child_router("sections")
_sections_service = internal_service("sections")


@sections_router.put("/{record_id}/compliance")
async def record_section_compliance(
    record_id: str,
    body: dict[str, Any] = Depends(get_json_body),
    service: ResourceService = Depends(_sections_service),
):
    """Store a compliance verdict for one section."""
    return ok_response(await service.record_section_check(record_id, body))


add_resource_routes(sections_router, registry.get("sections"), _sections_service)

versions_router = document_child_router("versions")
_versions_service = internal_service("versions")


@versions_router.get("/compare")
async def compare_document_versions(
    request: Request,
    service: ResourceService = Depends(_versions_service),
):
    """Differences between the source and target revisions."""
    return ok_response(await service.compare(request.query_params))


add_resource_routes(versions_router, registry.get("versions"), _versions_service)

relationships_router = document_child_router("relationships")
_relationships_service = internal_service("relationships")


@relationships_router.get("/graph")
async def document_relationship_graph(
    request: Request,
    service: ResourceService = Depends(_relationships_service),
):
    """Documents linked to this one, up to the requested depth."""
    return ok_response(await service.graph(request.query_params))


add_resource_routes(relationships_router, registry.get("relationships"), _relationships_service)

for _child_router in (
    approvals_router,
    comments_router,
    shares_router,
    sections_router,
    versions_router,
    relationships_router,
):
    internal_router.include_router(_child_router)

router.include_router(internal_router)

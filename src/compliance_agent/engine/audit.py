"""Best-effort audit recorder.

``record`` makes exactly one insert attempt in its own session and never
raises: a failed write is logged and counted, and the caller's response is
unaffected.
"""

import logging
from typing import Any, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from compliance_agent.config import settings
from compliance_agent.db.base import get_session_factory
from compliance_agent.db.repositories import AuditEventRepository
from compliance_agent.models import AuditEvent, EventCategory
from compliance_agent.observability.metrics import metrics

logger = logging.getLogger(__name__)


def build_audit_row(event: AuditEvent) -> dict[str, Any]:
    """Normalize an event into audit_events column values.

    The persisted ``result`` collapses the outcome to success/failure/partial;
    the original outcome is kept in the metadata blob.
    """
    metadata: dict[str, Any] = {"outcome": event.outcome.value}
    if event.idempotency_key:
        metadata["idempotency_key"] = event.idempotency_key

    return {
        "tenant_id": event.tenant_id,
        "event_type": event.resource,
        "event_category": (event.event_category or EventCategory.DATA).value,
        "actor_id": event.actor.id,
        "actor_email": event.actor.email,
        "actor_role": event.actor.role,
        "actor_ip": event.actor.ip,
        "action": event.action.value,
        "resource": event.resource,
        "target_type": event.resource,
        "target_id": event.target_id,
        "target_name": event.target_name,
        "decision": event.decision.value,
        "result": event.outcome.to_result().value,
        "reason": event.reason,
        "request_id": event.request_id,
        "changes": list(event.changes) or None,
        "event_metadata": metadata,
        "schema_version": settings.schema_version,
        "policy_version": settings.policy_version,
    }


class AuditRecorder:
    """Appends one row per operation attempt to the audit trail."""

    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None):
        self._session_factory = session_factory

    async def record(self, event: AuditEvent) -> None:
        factory = self._session_factory or get_session_factory()
        try:
            async with factory() as session:
                await AuditEventRepository(session).insert(build_audit_row(event))
                await session.commit()
        except Exception:
            metrics.inc_counter("audit.write_failures")
            logger.exception(
                "Failed to record audit event action=%s resource=%s request_id=%s",
                event.action.value,
                event.resource,
                event.request_id,
            )
            return
        metrics.inc_counter("audit.writes")


_recorder: AuditRecorder | None = None


def get_audit_recorder() -> AuditRecorder:
    """Get or create the process-wide audit recorder."""
    global _recorder
    if _recorder is None:
        _recorder = AuditRecorder()
    return _recorder

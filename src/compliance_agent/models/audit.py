"""Audit event model - one record per operation attempt."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from compliance_agent.models.actor import Actor
from compliance_agent.models.enums import AuditAction, Decision, EventCategory, Outcome


class AuditEvent(BaseModel):
    """Fully-formed description of one attempted operation.

    Only structured metadata belongs here: ids, short reason codes and the
    names of changed fields. Field values are never carried.
    """

    tenant_id: Optional[UUID] = None
    actor: Actor
    action: AuditAction
    resource: str
    outcome: Outcome
    decision: Decision = Decision.NOT_APPLICABLE
    event_category: Optional[EventCategory] = None
    target_id: Optional[UUID] = None
    target_name: Optional[str] = None
    reason: Optional[str] = None
    changes: list[str] = Field(default_factory=list)
    request_id: Optional[str] = None
    idempotency_key: Optional[str] = None

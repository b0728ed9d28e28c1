"""Compliance Agent data models."""

from compliance_agent.models.actor import Actor
from compliance_agent.models.audit import AuditEvent
from compliance_agent.models.enums import (
    AuditAction,
    AuditResult,
    Decision,
    DeleteMode,
    EventCategory,
    Outcome,
)

__all__ = [
    "Actor",
    "AuditAction",
    "AuditEvent",
    "AuditResult",
    "Decision",
    "DeleteMode",
    "EventCategory",
    "Outcome",
]

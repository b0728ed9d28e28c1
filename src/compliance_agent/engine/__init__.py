"""Compliance Agent engine - resource operations and their audit discipline."""

from compliance_agent.engine.errors import (
    BadRequest,
    ComplianceAgentError,
    Conflict,
    Forbidden,
    InternalError,
    NotFound,
    Unauthorized,
    ValidationFailed,
)

__all__ = [
    "BadRequest",
    "ComplianceAgentError",
    "Conflict",
    "Forbidden",
    "InternalError",
    "NotFound",
    "Unauthorized",
    "ValidationFailed",
]

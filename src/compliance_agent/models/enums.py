"""Compliance Agent enumerations."""

from enum import Enum


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""

    CREATE = "create"
    LIST = "list"
    GET = "get"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    REORDER = "reorder"
    DECIDE = "decide"
    DELEGATE = "delegate"
    ESCALATE = "escalate"
    RESOLVE = "resolve"
    ACCESS = "access"
    UPDATE_COMPLIANCE = "update_compliance"
    UPDATE_SCORE = "update_compliance_score"
    COMPARE = "compare"
    GRAPH = "graph"
    HISTORY = "history"
    USE = "use"


class Outcome(str, Enum):
    """Outcome of one operation attempt as reported by the caller."""

    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"

    def to_result(self) -> "AuditResult":
        """Collapse onto the persisted result enum."""
        if self is Outcome.SUCCESS:
            return AuditResult.SUCCESS
        if self is Outcome.PARTIAL:
            return AuditResult.PARTIAL
        return AuditResult.FAILURE


class AuditResult(str, Enum):
    """Persisted long-term result bucket."""

    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


class Decision(str, Enum):
    """Whether a policy check applied and what it said."""

    ALLOW = "allow"
    DENY = "deny"
    NOT_APPLICABLE = "n/a"


class EventCategory(str, Enum):
    """Audit event classification."""

    AUTH = "auth"
    DATA = "data"
    SYSTEM = "system"
    COMPLIANCE = "compliance"
    SECURITY = "security"


class DeleteMode(str, Enum):
    """How a resource row is removed."""

    SOFT = "soft"
    HARD = "hard"

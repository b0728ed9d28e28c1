"""Compliance Agent error taxonomy.

Every error surfaced to callers carries a short machine-readable ``code`` from
a closed set (bad_request, conflict, forbidden, not_found, unauthorized,
internal_error). ``reason`` is the finer-grained code written to the audit
trail and ``outcome`` is the audit outcome label.
"""


class ComplianceAgentError(Exception):
    """Base error for Compliance Agent operations."""

    status_code = 500
    code = "internal_error"
    outcome = "failure"

    def __init__(self, message: str, reason: str | None = None):
        self.message = message
        self.reason = reason or self.code
        super().__init__(message)


class BadRequest(ComplianceAgentError):
    """Missing or malformed required input."""

    status_code = 400
    code = "bad_request"


class ValidationFailed(BadRequest):
    """Resource-specific required-field or enum-membership failure."""

    def __init__(self, message: str, reason: str = "validation_error"):
        super().__init__(message, reason)


class Unauthorized(ComplianceAgentError):
    """Credentials absent."""

    status_code = 401
    code = "unauthorized"


class Forbidden(ComplianceAgentError):
    """Credentials wrong or policy oracle denied the action."""

    status_code = 403
    code = "forbidden"
    outcome = "forbidden"


class NotFound(ComplianceAgentError):
    """No matching row for id + tenant."""

    status_code = 404
    code = "not_found"
    outcome = "not_found"


class Conflict(ComplianceAgentError):
    """Version mismatch on update or uniqueness violation on create."""

    status_code = 409
    code = "conflict"
    outcome = "conflict"


class InternalError(ComplianceAgentError):
    """Unexpected store or transport failure. Message never carries detail."""

    def __init__(self, message: str = "Internal error", reason: str = "internal_error"):
        super().__init__(message, reason)

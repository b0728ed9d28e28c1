"""HTTP middleware."""

from compliance_agent.middleware.trace import request_id_middleware

__all__ = ["request_id_middleware"]

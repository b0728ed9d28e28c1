"""Observability helpers."""

from compliance_agent.observability.metrics import metrics
from compliance_agent.observability.trace import get_request_id, set_request_id

__all__ = ["metrics", "get_request_id", "set_request_id"]

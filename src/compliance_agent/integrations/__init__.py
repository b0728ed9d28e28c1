"""External integrations."""

from compliance_agent.integrations.policy_client import PolicyClient, get_policy_client

__all__ = ["PolicyClient", "get_policy_client"]

"""Policy oracle (PDP) client.

The service is the enforcement point; the oracle only answers allow or deny
for ``{action, resource, user: {role}}``. Two configured fallbacks decide
what happens without an answer:

* no ``policy_url`` set: ``policy_allow_when_unconfigured`` (default allow)
* oracle error, non-2xx or timeout: ``policy_allow_on_error`` (default deny)
"""

import logging
from typing import Any, Optional

import httpx

from compliance_agent.config import settings
from compliance_agent.models.actor import Actor
from compliance_agent.observability.metrics import metrics

logger = logging.getLogger(__name__)


class PolicyClient:
    """Asks the oracle whether an actor may perform an action on a resource."""

    def __init__(
        self,
        url: Optional[str],
        timeout_ms: int,
        allow_when_unconfigured: bool,
        allow_on_error: bool,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout_ms / 1000
        self.allow_when_unconfigured = allow_when_unconfigured
        self.allow_on_error = allow_on_error
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.url)

    async def check(self, action: str, resource: str, actor: Actor) -> bool:
        """Return True when the action is allowed."""
        if not self.url:
            metrics.inc_counter("policy.unconfigured")
            return self.allow_when_unconfigured

        payload = {"input": {"action": action, "resource": resource, "user": actor.policy_input()}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                body: Any = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            metrics.inc_counter("policy.errors")
            logger.warning(
                "Policy oracle unavailable for %s %s (%s); falling back to %s",
                action,
                resource,
                type(exc).__name__,
                "allow" if self.allow_on_error else "deny",
            )
            return self.allow_on_error

        allowed = isinstance(body, dict) and body.get("result") is True
        metrics.inc_counter("policy.allow" if allowed else "policy.deny")
        return allowed


_policy_client: PolicyClient | None = None


def get_policy_client() -> PolicyClient:
    """Get or create the process-wide policy client."""
    global _policy_client
    if _policy_client is None:
        _policy_client = PolicyClient(
            url=settings.policy_url,
            timeout_ms=settings.policy_timeout_ms,
            allow_when_unconfigured=settings.policy_allow_when_unconfigured,
            allow_on_error=settings.policy_allow_on_error,
        )
    return _policy_client

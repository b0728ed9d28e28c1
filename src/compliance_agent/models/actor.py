"""Actor model - who is performing an operation."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Actor(BaseModel):
    """Caller identity taken from request headers."""

    role: str
    id: Optional[UUID] = None
    email: Optional[str] = None
    ip: Optional[str] = None

    def policy_input(self) -> dict[str, str]:
        """User block sent to the policy oracle."""
        return {"role": self.role}

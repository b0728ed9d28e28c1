"""API response envelopes and views."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from compliance_agent.db.tables import AuditEventTable


class PageResponse(BaseModel):
    """Paginated list payload."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[dict[str, Any]]
    page: int
    page_size: int = Field(serialization_alias="pageSize")
    total: int
    total_pages: int = Field(serialization_alias="totalPages")


class HealthResponse(BaseModel):
    """Liveness plus store reachability."""

    model_config = ConfigDict(populate_by_name=True)

    agent: str
    can_reach_db: bool = Field(serialization_alias="canReachDb")
    schema_version: str = Field(serialization_alias="schemaVersion")
    policy_version: str = Field(serialization_alias="policyVersion")
    policy_posture: str = Field(serialization_alias="policyPosture")


class AuditEventView(BaseModel):
    """Audit row as listed by /audit. Never carries changes, email or IP."""

    event_time: datetime
    tenant_id: Optional[UUID] = None
    actor_role: str
    action: str
    resource: str
    target_id: Optional[UUID] = None
    decision: str
    outcome: Optional[str] = None
    result: str
    reason: Optional[str] = None
    request_id: Optional[str] = None
    schema_version: str
    policy_version: str

    @classmethod
    def from_row(cls, row: AuditEventTable) -> "AuditEventView":
        return cls(
            event_time=row.event_time,
            tenant_id=row.tenant_id,
            actor_role=row.actor_role,
            action=row.action,
            resource=row.resource,
            target_id=row.target_id,
            decision=row.decision,
            outcome=(row.event_metadata or {}).get("outcome"),
            result=row.result,
            reason=row.reason,
            request_id=row.request_id,
            schema_version=row.schema_version,
            policy_version=row.policy_version,
        )


def ok_response(data: Any, status_code: int = 200) -> JSONResponse:
    """Success envelope ``{ok: true, data}``."""
    return JSONResponse(
        status_code=status_code,
        content={"ok": True, "data": jsonable_encoder(data, by_alias=True)},
    )


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    """Failure envelope ``{ok: false, error, message}``."""
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": code, "message": message},
    )

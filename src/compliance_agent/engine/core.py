"""Compliance Agent core engine - the validate, act, audit wrapper.

Every resource operation runs through ``ResourceService._run``: the operation
body validates input and talks to the store, the primary transaction is
committed (or rolled back on any error), and exactly one audit event is then
recorded in a separate session. Audit failures never reach the caller.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_agent.config import settings
from compliance_agent.db.repositories import (
    VersionedRepository,
    is_unique_violation,
    row_to_record,
)
from compliance_agent.engine.audit import AuditRecorder
from compliance_agent.engine.catalogue import (
    APPROVAL_DECISIONS,
    MAX_GRAPH_DEPTH,
    OPEN_APPROVAL_STATUSES,
    SECTION_CHECK_FIELDS,
    compare_versions,
    registry,
    relationship_graph,
    settle_document_approval,
)
from compliance_agent.engine.errors import (
    BadRequest,
    ComplianceAgentError,
    Conflict,
    Forbidden,
    InternalError,
    NotFound,
    ValidationFailed,
)
from compliance_agent.engine.fields import coerce, parse_uuid
from compliance_agent.engine.idempotency import IdempotencyCache
from compliance_agent.engine.resources import ResourceSpec, Scope
from compliance_agent.integrations.policy_client import PolicyClient
from compliance_agent.models import (
    Actor,
    AuditAction,
    AuditEvent,
    Decision,
    DeleteMode,
    EventCategory,
    Outcome,
)
from compliance_agent.observability.metrics import metrics
from compliance_agent.utils.time import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Attempt:
    """Audit context accumulated while one operation runs."""

    action: AuditAction
    tenant_id: Optional[UUID] = None
    target_id: Optional[UUID] = None
    target_name: Optional[str] = None
    decision: Decision = Decision.NOT_APPLICABLE
    reason: Optional[str] = None
    changes: list[str] = field(default_factory=list)
    idempotency_key: Optional[str] = None
    event_category: Optional[EventCategory] = None


@dataclass
class Page:
    """One page of a list result."""

    items: list[dict[str, Any]]
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


@dataclass
class CreateResult:
    record: dict[str, Any]
    idempotent: bool = False


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _positive_int(raw: Any, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 1 else default


class ResourceService:
    """Create/List/Get/Update/Delete over one tenant-scoped resource type."""

    def __init__(
        self,
        session: AsyncSession,
        spec: ResourceSpec,
        *,
        actor: Actor,
        recorder: AuditRecorder,
        tenant: Optional[str] = None,
        parent_id: Optional[str] = None,
        policy: Optional[PolicyClient] = None,
        cache: Optional[IdempotencyCache] = None,
        request_id: Optional[str] = None,
    ):
        self.session = session
        self.spec = spec
        self.actor = actor
        self.recorder = recorder
        self.tenant = tenant
        self.parent_id = parent_id
        self.policy = policy
        self.cache = cache
        self.request_id = request_id
        self.repo = VersionedRepository(session, spec)

    # =========================================================================
    # Operation wrapper
    # =========================================================================

    async def _run(self, attempt: Attempt, operation: Callable[[], Awaitable[T]]) -> T:
        outcome = Outcome.FAILURE
        start_time = perf_counter()
        try:
            result = await operation()
            await self.session.commit()
            outcome = Outcome.SUCCESS
            return result
        except ComplianceAgentError as exc:
            await self.session.rollback()
            outcome = Outcome(exc.outcome)
            attempt.reason = exc.reason
            raise
        except Exception as exc:
            await self.session.rollback()
            logger.exception(
                "Unexpected failure during %s on %s (request_id=%s)",
                attempt.action.value,
                self.spec.name,
                self.request_id,
            )
            attempt.reason = "internal_error"
            raise InternalError() from exc
        finally:
            metrics.inc_counter(f"operations.{attempt.action.value}.{outcome.value}")
            metrics.observe(
                f"operations.{attempt.action.value}.duration_ms",
                (perf_counter() - start_time) * 1000.0,
            )
            await self.recorder.record(self._event(attempt, outcome))

    def _event(self, attempt: Attempt, outcome: Outcome) -> AuditEvent:
        return AuditEvent(
            tenant_id=attempt.tenant_id,
            actor=self.actor,
            action=attempt.action,
            resource=self.spec.name,
            outcome=outcome,
            decision=attempt.decision,
            event_category=attempt.event_category or self.spec.event_category,
            target_id=attempt.target_id,
            target_name=attempt.target_name,
            reason=attempt.reason,
            changes=attempt.changes,
            request_id=self.request_id,
            idempotency_key=attempt.idempotency_key,
        )

    # =========================================================================
    # Input resolution (always before any store write)
    # =========================================================================

    def _resolve_tenant(self, attempt: Attempt, body_tenant: Any = None) -> UUID:
        primary = None if _is_blank(self.tenant) else self.tenant
        secondary = None if _is_blank(body_tenant) else body_tenant
        if primary is None and secondary is None:
            raise BadRequest("tenant_id is required", reason="tenant_id_missing")

        tenant_id = parse_uuid(primary if primary is not None else secondary)
        if tenant_id is None:
            raise BadRequest("tenant_id must be a UUID", reason="invalid_tenant_id")
        if primary is not None and secondary is not None and parse_uuid(secondary) != tenant_id:
            raise BadRequest("tenant_id in body does not match request scope", reason="tenant_mismatch")

        attempt.tenant_id = tenant_id
        return tenant_id

    def _parse_id(self, raw: Any, name: str = "id") -> UUID:
        value = parse_uuid(raw)
        if value is None:
            raise BadRequest(f"{name} must be a UUID", reason=f"invalid_{name}")
        return value

    def _expected_version(self, body: Mapping[str, Any]) -> Optional[int]:
        value = body.get("version")
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise BadRequest("version must be an integer", reason="invalid_version")
        return value

    def _scope(self, attempt: Attempt, body_tenant: Any = None) -> Scope:
        tenant_id = self._resolve_tenant(attempt, body_tenant)
        if self.spec.parent is None:
            return Scope(tenant_id=tenant_id)
        return Scope(tenant_id=tenant_id, parent_id=self._parse_id(self.parent_id, self.spec.parent.field))

    async def _require_parent(self, scope: Scope) -> None:
        if self.spec.parent is None:
            return
        parent_spec = registry.get(self.spec.parent.resource)
        parent_repo = VersionedRepository(self.session, parent_spec)
        if not await parent_repo.exists(Scope(tenant_id=scope.tenant_id), scope.parent_id):
            raise NotFound(f"Parent {parent_spec.name} record not found", reason="parent_not_found")

    def _coerce_fields(self, body: Mapping[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for name in allowed:
            if name not in body:
                continue
            try:
                values[name] = coerce(self.spec.column(name), body[name])
            except ValueError as exc:
                raise ValidationFailed(str(exc)) from exc
        return values

    def _check_values(self, scope: Scope, values: dict[str, Any], creating: bool) -> None:
        if creating:
            missing = [name for name in self.spec.required if _is_blank(values.get(name))]
        else:
            missing = [name for name in self.spec.required if name in values and _is_blank(values[name])]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}")

        for name, rule in self.spec.enums.items():
            value = values.get(name)
            if value is not None and value not in rule.values:
                raise ValidationFailed(
                    f"{name} must be one of: {', '.join(sorted(rule.values))}", rule.reason
                )

        if self.spec.validate is not None:
            self.spec.validate(values, creating, scope)

    async def _check_references(self, scope: Scope, values: dict[str, Any]) -> None:
        for reference in self.spec.references:
            target = values.get(reference.field)
            if target is None:
                continue
            target_scope = Scope(
                tenant_id=scope.tenant_id,
                parent_id=scope.parent_id if reference.same_parent else None,
            )
            target_repo = VersionedRepository(self.session, registry.get(reference.resource))
            if not await target_repo.exists(target_scope, target):
                raise NotFound(f"{reference.field} not found", reason="reference_not_found")

    # =========================================================================
    # Operations
    # =========================================================================

    async def create(
        self, body: Mapping[str, Any], idempotency_key: Optional[str] = None
    ) -> CreateResult:
        """Insert a new row at version 1, or replay a cached idempotent create."""
        key = None if _is_blank(idempotency_key) else idempotency_key.strip()
        attempt = Attempt(action=AuditAction.CREATE, idempotency_key=key)
        cache_scope = None
        reserved = False

        async def operation() -> CreateResult:
            nonlocal cache_scope, reserved
            scope = self._scope(attempt, body.get("tenant_id"))
            cache_scope = f"{scope.tenant_id}:{self.spec.name}"

            if key and self.cache is not None:
                identity = self.cache.get(cache_scope, key)
                if identity is not None:
                    attempt.reason = "idempotent_hit"
                    attempt.target_id = identity["id"]
                    return CreateResult(record=identity, idempotent=True)
                if not self.cache.reserve(cache_scope, key):
                    raise Conflict(
                        "A create with this Idempotency-Key is already in progress",
                        reason="idempotency_key_in_flight",
                    )
                reserved = True

            await self._require_parent(scope)

            values = self._coerce_fields(body, self.spec.create_fields)
            for column_name, actor_attribute in self.spec.actor_defaults.items():
                if values.get(column_name) is None and getattr(self.actor, actor_attribute) is not None:
                    values[column_name] = getattr(self.actor, actor_attribute)
            self._check_values(scope, values, creating=True)
            await self._check_references(scope, values)

            for column_name, generate in self.spec.generated.items():
                values[column_name] = await generate(self.session, scope)
            attempt.changes = sorted(values)

            values["tenant_id"] = scope.tenant_id
            if self.spec.parent is not None:
                values[self.spec.parent.field] = scope.parent_id

            try:
                row = await self.repo.create(values)
            except IntegrityError as exc:
                if is_unique_violation(exc):
                    raise Conflict(
                        f"{self.spec.name} record already exists", self.spec.duplicate_reason
                    ) from exc
                raise

            attempt.target_id = row.id
            attempt.target_name = self.spec.target_name(row)
            record = row_to_record(row)
            if self.spec.after_create is not None:
                touched = await self.spec.after_create(self.session, scope, row)
                attempt.changes.extend(f"{self.spec.parent.resource}.{name}" for name in touched)
            return CreateResult(record=record)

        stored = False
        try:
            result = await self._run(attempt, operation)
            if reserved:
                self.cache.put(cache_scope, key, self.spec.identity(result.record))
                stored = True
            return result
        finally:
            if reserved and not stored:
                self.cache.release(cache_scope, key)

    async def list(self, query: Mapping[str, Any]) -> Page:
        """One page of live rows matching the allow-listed filters."""
        attempt = Attempt(action=AuditAction.LIST)

        async def operation() -> Page:
            scope = self._scope(attempt)

            filters: dict[str, Any] = {}
            for name, allowed in self.spec.filters.items():
                raw = query.get(name)
                if _is_blank(raw):
                    continue
                if allowed is not None:
                    if raw in allowed:
                        filters[name] = raw
                    continue
                try:
                    filters[name] = coerce(self.spec.column(name), raw)
                except ValueError:
                    continue

            page = _positive_int(query.get("page"), 1)
            page_size = min(
                settings.max_page_size,
                _positive_int(query.get("page_size"), settings.default_page_size),
            )
            sort_order = query.get("sort_order")
            if _is_blank(sort_order):
                descending = self.spec.default_descending
            else:
                descending = str(sort_order).strip().upper() != "ASC"

            search = query.get("search")
            items, total = await self.repo.list(
                scope,
                search=None if _is_blank(search) else str(search).strip(),
                filters=filters,
                sort_by=query.get("sort_by"),
                descending=descending,
                page=page,
                page_size=page_size,
            )
            return Page(items=items, page=page, page_size=page_size, total=total)

        return await self._run(attempt, operation)

    async def get(self, raw_id: Any) -> dict[str, Any]:
        """Fetch one live row; other tenants' rows are indistinguishable from missing."""
        attempt = Attempt(action=AuditAction.GET)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt)
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id
            row = await self.repo.get_row(scope, row_id)
            if row is None:
                raise NotFound(f"{self.spec.name} record not found")
            attempt.target_name = self.spec.target_name(row)
            return row_to_record(row)

        return await self._run(attempt, operation)

    async def update(self, raw_id: Any, body: Mapping[str, Any]) -> dict[str, Any]:
        """Compare-and-increment update of allow-listed fields."""
        attempt = Attempt(action=AuditAction.UPDATE)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt, body.get("tenant_id"))
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id

            expected_version = self._expected_version(body)
            if expected_version is None:
                raise BadRequest("version is required", reason="version_missing")

            values = self._coerce_fields(body, self.spec.update_fields)
            if not values:
                raise BadRequest("No fields to update", reason="no_fields_to_update")
            self._check_values(scope, values, creating=False)
            attempt.changes = sorted(values)

            record = await self.repo.update(scope, row_id, expected_version, values)
            if record is None:
                raise Conflict(
                    "Record was modified by someone else or does not exist",
                    reason="version_conflict_or_not_found",
                )
            if self.spec.audit_name_field:
                attempt.target_name = record.get(self.spec.audit_name_field)
            return record

        return await self._run(attempt, operation)

    async def delete(self, raw_id: Any) -> dict[str, Any]:
        """Soft or hard delete, gated by the policy oracle where configured."""
        attempt = Attempt(action=AuditAction.DELETE)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt)
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id

            if self.spec.requires_policy:
                allowed = await self.policy.check("delete", self.spec.name, self.actor)
                attempt.decision = Decision.ALLOW if allowed else Decision.DENY
                if not allowed:
                    raise Forbidden("Action not permitted by policy", reason="policy_denied")

            if self.spec.audit_name_field:
                attempt.target_name = self.spec.target_name(await self.repo.get_row(scope, row_id))

            hard = self.spec.delete_mode is DeleteMode.HARD
            if not await self.repo.delete(scope, row_id, hard=hard):
                raise NotFound(f"{self.spec.name} record not found")
            return {"id": row_id, "deleted": True, "mode": self.spec.delete_mode.value}

        return await self._run(attempt, operation)

    # =========================================================================
    # Resource-specific operations
    # =========================================================================

    async def record_login(self, raw_id: Any) -> dict[str, Any]:
        """Stamp last_login_at on an agent user without bumping its version."""
        attempt = Attempt(
            action=AuditAction.LOGIN,
            event_category=EventCategory.AUTH,
            changes=["last_login_at"],
        )

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt)
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id
            if not await self.repo.touch(scope, row_id, {"last_login_at": utc_now()}):
                raise NotFound(f"{self.spec.name} record not found")
            return await self.repo.get(scope, row_id)

        return await self._run(attempt, operation)

    async def reorder(self, body: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Set order_index to list position for each id, all or nothing."""
        attempt = Attempt(action=AuditAction.REORDER, changes=["order_index"])

        async def operation() -> list[dict[str, Any]]:
            scope = self._scope(attempt)
            attempt.target_id = scope.parent_id
            raw_ids = body.get("field_ids", body.get("fieldIds"))
            if not isinstance(raw_ids, list) or not raw_ids:
                raise ValidationFailed("field_ids array is required")
            row_ids = [parse_uuid(raw) for raw in raw_ids]
            if any(row_id is None for row_id in row_ids):
                raise ValidationFailed("field_ids must contain UUIDs")
            if len(set(row_ids)) != len(row_ids):
                raise ValidationFailed("field_ids must not repeat")

            await self._require_parent(scope)
            records = []
            for position, row_id in enumerate(row_ids):
                record = await self.repo.update(scope, row_id, None, {"order_index": position})
                if record is None:
                    raise NotFound(f"Field {row_id} not found", reason="field_not_found")
                records.append(record)
            return records

        return await self._run(attempt, operation)

    async def latest(self) -> dict[str, Any]:
        """Newest live row under the parent, or not_found."""
        attempt = Attempt(action=AuditAction.GET)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt)
            attempt.target_id = scope.parent_id
            await self._require_parent(scope)
            items, _ = await self.repo.list(
                scope, sort_by="created_at", descending=True, page=1, page_size=1
            )
            if not items:
                raise NotFound(f"No {self.spec.name} record found")
            return items[0]

        return await self._run(attempt, operation)

    async def _apply(
        self,
        scope: Scope,
        row_id: UUID,
        expected_version: Optional[int],
        values: dict[str, Any],
        where: tuple[Any, ...] = (),
        state_reason: str = "invalid_state",
    ) -> dict[str, Any]:
        """Compare-and-increment under optional state guards, naming the failure."""
        record = await self.repo.update(scope, row_id, expected_version, values, where=where)
        if record is not None:
            return record
        current = await self.repo.get(scope, row_id)
        if current is None:
            raise NotFound(f"{self.spec.name} record not found")
        if expected_version is not None and current["version"] != expected_version:
            raise Conflict(
                "Record was modified by someone else or does not exist",
                reason="version_conflict_or_not_found",
            )
        raise Conflict(f"{self.spec.name} record is {current.get('status')}", reason=state_reason)

    # =========================================================================
    # Approval workflow
    # =========================================================================

    async def decide(self, raw_id: Any, body: Mapping[str, Any]) -> dict[str, Any]:
        """Approve or reject an open approval step and settle the document status."""
        attempt = Attempt(action=AuditAction.DECIDE)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt, body.get("tenant_id"))
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id

            decision = body.get("decision")
            if decision not in APPROVAL_DECISIONS:
                raise ValidationFailed("decision must be one of: approve, reject", "invalid_decision")
            expected_version = self._expected_version(body)
            values = self._coerce_fields(body, ("comments", "rejection_reason"))
            if decision == "approve":
                values.pop("rejection_reason", None)
            status = APPROVAL_DECISIONS[decision]
            values.update(status=status, decision_at=utc_now())
            attempt.changes = sorted(values)

            await self._require_parent(scope)
            record = await self._apply(
                scope,
                row_id,
                expected_version,
                values,
                where=(self.spec.column("status").in_(OPEN_APPROVAL_STATUSES),),
                state_reason="approval_closed",
            )
            touched = await settle_document_approval(self.session, scope, status)
            attempt.changes.extend(f"documents.{name}" for name in touched)
            return record

        return await self._run(attempt, operation)

    async def delegate(self, raw_id: Any, body: Mapping[str, Any]) -> dict[str, Any]:
        """Hand a pending approval step to another user."""
        return await self._reassign(
            raw_id, body, AuditAction.DELEGATE, "delegated_to", "delegation_reason", "delegated_at"
        )

    async def escalate(self, raw_id: Any, body: Mapping[str, Any]) -> dict[str, Any]:
        """Move a pending approval step to a higher authority."""
        return await self._reassign(
            raw_id,
            body,
            AuditAction.ESCALATE,
            "escalated_to",
            "escalation_reason",
            "escalated_at",
            status="escalated",
        )

    async def _reassign(
        self,
        raw_id: Any,
        body: Mapping[str, Any],
        action: AuditAction,
        assignee_field: str,
        reason_field: str,
        stamp_field: str,
        status: Optional[str] = None,
    ) -> dict[str, Any]:
        attempt = Attempt(action=action)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt, body.get("tenant_id"))
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id

            expected_version = self._expected_version(body)
            values = self._coerce_fields(body, (assignee_field, reason_field))
            if values.get(assignee_field) is None:
                raise ValidationFailed(f"{assignee_field} is required")
            values[stamp_field] = utc_now()
            if status is not None:
                values["status"] = status
            attempt.changes = sorted(values)

            await self._require_parent(scope)
            return await self._apply(
                scope,
                row_id,
                expected_version,
                values,
                where=(self.spec.column("status") == "pending",),
                state_reason="approval_not_pending",
            )

        return await self._run(attempt, operation)

    # =========================================================================
    # Comments, shares and sections
    # =========================================================================

    async def resolve(self, raw_id: Any, body: Mapping[str, Any]) -> dict[str, Any]:
        """Mark a comment resolved by the named user, or by the caller."""
        attempt = Attempt(action=AuditAction.RESOLVE)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt, body.get("tenant_id"))
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id

            expected_version = self._expected_version(body)
            values = self._coerce_fields(body, ("resolved_by",))
            if values.get("resolved_by") is None:
                values["resolved_by"] = self.actor.id
            values.update(is_resolved=True, resolved_at=utc_now())
            attempt.changes = sorted(values)

            await self._require_parent(scope)
            return await self._apply(scope, row_id, expected_version, values)

        return await self._run(attempt, operation)

    async def record_access(self, raw_id: Any) -> dict[str, Any]:
        """Count one access to an active, unexpired share.

        The share deactivates itself once ``access_count`` reaches
        ``max_access_count``. Access bookkeeping does not bump ``version``.
        """
        attempt = Attempt(action=AuditAction.ACCESS, changes=["access_count", "last_accessed_at"])

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt)
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id
            await self._require_parent(scope)

            now = utc_now()
            table = self.spec.table
            counted = await self.repo.touch(
                scope,
                row_id,
                {"access_count": table.access_count + 1, "last_accessed_at": now},
                where=(
                    table.is_active.is_(True),
                    or_(table.expires_at.is_(None), table.expires_at > now),
                ),
            )
            if not counted:
                raise NotFound("Share not found, inactive or expired", reason="share_inactive")

            record = await self.repo.get(scope, row_id)
            limit = record["max_access_count"]
            if limit is not None and record["access_count"] >= limit:
                await self.repo.touch(scope, row_id, {"is_active": False})
                record["is_active"] = False
                attempt.changes.append("is_active")
            return record

        return await self._run(attempt, operation)

    async def record_section_check(self, raw_id: Any, body: Mapping[str, Any]) -> dict[str, Any]:
        """Store the platform's compliance verdict for one section."""
        attempt = Attempt(
            action=AuditAction.UPDATE_COMPLIANCE, event_category=EventCategory.COMPLIANCE
        )

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt, body.get("tenant_id"))
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id

            expected_version = self._expected_version(body)
            values = self._coerce_fields(body, SECTION_CHECK_FIELDS)
            if not values:
                raise BadRequest("No compliance fields to update", reason="no_fields_to_update")
            self._check_values(scope, values, creating=False)
            values["last_checked_at"] = utc_now()
            attempt.changes = sorted(values)

            await self._require_parent(scope)
            return await self._apply(scope, row_id, expected_version, values)

        return await self._run(attempt, operation)

    # =========================================================================
    # Read models
    # =========================================================================

    async def compare(self, query: Mapping[str, Any]) -> dict[str, Any]:
        """Field differences between two revisions of the same document."""
        attempt = Attempt(action=AuditAction.COMPARE)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt)
            source_id = self._parse_id(query.get("source"), "source")
            target_id = self._parse_id(query.get("target"), "target")
            attempt.target_id = target_id

            await self._require_parent(scope)
            source = await self.repo.get(scope, source_id)
            target = await self.repo.get(scope, target_id)
            if source is None or target is None:
                raise NotFound("One or both versions not found")
            return {
                "source": source,
                "target": target,
                "differences": compare_versions(source, target),
            }

        return await self._run(attempt, operation)

    async def graph(self, query: Mapping[str, Any]) -> dict[str, Any]:
        """Relationship graph around the parent document."""
        attempt = Attempt(action=AuditAction.GRAPH)

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt)
            attempt.target_id = scope.parent_id
            depth = min(MAX_GRAPH_DEPTH, _positive_int(query.get("depth"), 2))

            await self._require_parent(scope)
            graph = await relationship_graph(self.session, scope, depth)
            return {"document_id": scope.parent_id, "depth": depth, **graph}

        return await self._run(attempt, operation)

    async def history(self, query: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Newest rows under the parent, capped at the page size limit."""
        attempt = Attempt(action=AuditAction.HISTORY)

        async def operation() -> list[dict[str, Any]]:
            scope = self._scope(attempt)
            attempt.target_id = scope.parent_id
            limit = min(settings.max_page_size, _positive_int(query.get("limit"), 10))

            await self._require_parent(scope)
            items, _ = await self.repo.list(
                scope, sort_by="created_at", descending=True, page=1, page_size=limit
            )
            return items

        return await self._run(attempt, operation)

    # =========================================================================
    # Bookkeeping on parent rows
    # =========================================================================

    async def record_score(self, body: Mapping[str, Any]) -> dict[str, Any]:
        """Set a document's cached compliance score without a version bump."""
        attempt = Attempt(
            action=AuditAction.UPDATE_SCORE,
            changes=["compliance_score", "last_compliance_check_at"],
        )

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt, body.get("tenant_id"))
            attempt.target_id = scope.parent_id
            documents = registry.get("documents")

            if body.get("compliance_score") is None:
                raise ValidationFailed("compliance_score is required")
            try:
                score = coerce(documents.column("compliance_score"), body["compliance_score"])
            except ValueError as exc:
                raise ValidationFailed(str(exc)) from exc
            if not 0 <= score <= 100:
                raise ValidationFailed(
                    "compliance_score must be between 0 and 100", "invalid_compliance_score"
                )

            checked_at = utc_now()
            touched = await VersionedRepository(self.session, documents).touch(
                Scope(tenant_id=scope.tenant_id),
                scope.parent_id,
                {"compliance_score": score, "last_compliance_check_at": checked_at},
            )
            if not touched:
                raise NotFound("Parent documents record not found", reason="parent_not_found")
            return {
                "document_id": scope.parent_id,
                "compliance_score": score,
                "last_compliance_check_at": checked_at,
            }

        return await self._run(attempt, operation)

    async def record_use(self, raw_id: Any, body: Mapping[str, Any]) -> dict[str, Any]:
        """Count one use of a template for a document without a version bump."""
        attempt = Attempt(action=AuditAction.USE, changes=["usage_count", "last_used_at"])

        async def operation() -> dict[str, Any]:
            scope = self._scope(attempt, body.get("tenant_id"))
            row_id = self._parse_id(raw_id)
            attempt.target_id = row_id

            document_id = parse_uuid(body.get("document_id"))
            if document_id is None:
                raise ValidationFailed("document_id must be a document UUID")
            documents = VersionedRepository(self.session, registry.get("documents"))
            if not await documents.exists(Scope(tenant_id=scope.tenant_id), document_id):
                raise NotFound("document_id not found", reason="reference_not_found")

            table = self.spec.table
            if not await self.repo.touch(
                scope, row_id, {"usage_count": table.usage_count + 1, "last_used_at": utc_now()}
            ):
                raise NotFound(f"{self.spec.name} record not found")
            row = await self.repo.get_row(scope, row_id)
            attempt.target_name = self.spec.target_name(row)
            return row_to_record(row)

        return await self._run(attempt, operation)

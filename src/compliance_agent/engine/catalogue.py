"""Concrete resource types served by the agent."""

import secrets
from typing import Any
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_agent.db.repositories import VersionedRepository
from compliance_agent.db.tables import (
    AgentUserTable,
    DocumentApprovalTable,
    DocumentCommentTable,
    DocumentComplianceCheckTable,
    DocumentRelationshipTable,
    DocumentSectionTable,
    DocumentShareTable,
    DocumentTable,
    DocumentTemplateTable,
    DocumentVersionTable,
    EmployeeTable,
    TemplateFieldTable,
)
from compliance_agent.engine.errors import ValidationFailed
from compliance_agent.engine.resources import (
    EnumRule,
    ParentLink,
    Reference,
    ResourceRegistry,
    ResourceSpec,
    Scope,
)
from compliance_agent.models.enums import DeleteMode, EventCategory
from compliance_agent.utils.time import utc_now

EMPLOYMENT_STATUSES = frozenset({"active", "inactive", "terminated", "on-leave"})
EMPLOYMENT_TYPES = frozenset({"full-time", "part-time", "contract", "temporary", "intern"})
AGENT_ROLES = frozenset({"owner", "admin", "member"})
AGENT_STATUSES = frozenset({"invited", "active", "revoked"})
ENTITY_TYPES = frozenset({"employee", "vendor", "policy", "general", "contract", "certificate"})
DOCUMENT_STATUSES = frozenset(
    {
        "draft",
        "pending_review",
        "under_review",
        "pending_approval",
        "approved",
        "published",
        "archived",
        "expired",
        "rejected",
        "disposed",
    }
)
SENSITIVITY_LEVELS = frozenset({"public", "internal", "confidential", "restricted"})
TEMPLATE_LANGUAGES = frozenset({"en", "ar", "both"})
FIELD_TYPES = frozenset(
    {
        "text",
        "number",
        "date",
        "email",
        "phone",
        "url",
        "select",
        "multi_select",
        "boolean",
        "currency",
        "address",
    }
)
COMMENT_TYPES = frozenset(
    {"general", "review", "question", "suggestion", "issue", "approval", "change_request"}
)
APPROVAL_TYPES = frozenset({"sequential", "parallel"})
APPROVAL_STATUSES = frozenset({"pending", "approved", "rejected", "skipped", "escalated"})
# Steps still waiting on someone; decisions are only accepted in these states.
OPEN_APPROVAL_STATUSES = ("pending", "escalated")
APPROVAL_DECISIONS = {"approve": "approved", "reject": "rejected"}
SHARE_TYPES = frozenset({"link", "email", "internal_user"})
ACCESS_LEVELS = frozenset({"view", "download", "comment", "edit"})
RELATIONSHIP_TYPES = frozenset(
    {
        "references",
        "supersedes",
        "amends",
        "supplements",
        "related",
        "parent",
        "child",
        "depends_on",
    }
)
SECTION_TYPES = frozenset(
    {
        "heading",
        "paragraph",
        "list",
        "table",
        "checklist",
        "signature_field",
        "mustache_field",
        "attachment",
    }
)
SECTION_COMPLIANCE_STATUSES = frozenset(
    {"compliant", "partially_compliant", "non_compliant", "not_checked", "not_applicable"}
)
CHECK_TYPES = frozenset(
    {"full_document", "section", "template_validation", "upload_analysis", "real_time"}
)
VERSION_COMPARE_FIELDS = (
    "version_number",
    "file_name",
    "file_path",
    "file_size",
    "file_hash",
    "change_summary",
    "change_type",
)
MAX_GRAPH_DEPTH = 5
SECTION_CHECK_FIELDS = ("compliance_status", "compliance_issues", "compliance_suggestions", "is_completed")

registry = ResourceRegistry()


async def generate_document_number(session: AsyncSession, scope: Scope) -> str:
    """DOC-YYYYMMDD-NNNNN; a collision surfaces as a duplicate conflict."""
    return f"DOC-{utc_now():%Y%m%d}-{secrets.randbelow(100000):05d}"


async def next_version_number(session: AsyncSession, scope: Scope) -> int:
    current = await VersionedRepository(session, registry.get("versions")).max_value(
        scope, "version_number"
    )
    return (current or 0) + 1


def validate_share_target(values: dict[str, Any], creating: bool, scope: Scope) -> None:
    if creating and not (values.get("shared_with_user_id") or values.get("shared_with_email")):
        raise ValidationFailed("shared_with_user_id or shared_with_email is required")


def validate_compliance_score(values: dict[str, Any], creating: bool, scope: Scope) -> None:
    score = values.get("overall_compliance")
    if score is not None and not 0 <= score <= 100:
        raise ValidationFailed(
            "overall_compliance must be between 0 and 100", "invalid_compliance_score"
        )


async def cache_compliance_score(session: AsyncSession, scope: Scope, row: Any) -> list[str]:
    """Copy the new check's score onto the parent document."""
    documents = VersionedRepository(session, registry.get("documents"))
    touched = await documents.touch(
        Scope(tenant_id=scope.tenant_id),
        scope.parent_id,
        {
            "compliance_score": row.overall_compliance,
            "last_compliance_check_at": row.created_at,
        },
    )
    return ["compliance_score", "last_compliance_check_at"] if touched else []


def validate_relationship_target(values: dict[str, Any], creating: bool, scope: Scope) -> None:
    target = values.get("target_document_id")
    if target is not None and target == scope.parent_id:
        raise ValidationFailed("A document cannot be related to itself", "self_reference")


async def settle_document_approval(session: AsyncSession, scope: Scope, status: str) -> list[str]:
    """Carry an approval decision onto the parent document's status.

    A rejection rejects the document at once. An approval marks it approved
    only when no step under the document is still open.
    """
    if status == "rejected":
        document_status = "rejected"
    else:
        approvals = VersionedRepository(session, registry.get("approvals"))
        open_steps = await approvals.find(
            scope, DocumentApprovalTable.status.in_(OPEN_APPROVAL_STATUSES)
        )
        if open_steps:
            return []
        document_status = "approved"

    documents = VersionedRepository(session, registry.get("documents"))
    record = await documents.update(
        Scope(tenant_id=scope.tenant_id), scope.parent_id, None, {"status": document_status}
    )
    return ["status"] if record is not None else []


def compare_versions(source: dict[str, Any], target: dict[str, Any]) -> list[dict[str, Any]]:
    """Field-level differences between two stored revisions."""
    differences = []
    for name in VERSION_COMPARE_FIELDS:
        old_value, new_value = source.get(name), target.get(name)
        if old_value == new_value:
            continue
        if old_value is None:
            change_type = "added"
        elif new_value is None:
            change_type = "removed"
        else:
            change_type = "modified"
        differences.append(
            {"field": name, "old_value": old_value, "new_value": new_value, "change_type": change_type}
        )
    return differences


async def relationship_graph(session: AsyncSession, scope: Scope, depth: int) -> dict[str, Any]:
    """Documents and links reachable from the scoped document within depth hops.

    Links are followed in both directions; each is reported once, at the hop
    where it was first reached.
    """
    links = VersionedRepository(session, registry.get("relationships"))
    tenant_scope = Scope(tenant_id=scope.tenant_id)
    reached = {scope.parent_id}
    frontier = [scope.parent_id]
    edges: dict[UUID, dict[str, Any]] = {}

    for hop in range(1, depth + 1):
        rows = await links.find(
            tenant_scope,
            or_(
                DocumentRelationshipTable.document_id.in_(frontier),
                DocumentRelationshipTable.target_document_id.in_(frontier),
            ),
        )
        frontier = []
        for row in rows:
            if row.id in edges:
                continue
            edges[row.id] = {
                "id": row.id,
                "source": row.document_id,
                "target": row.target_document_id,
                "type": row.relationship_type,
                "depth": hop,
            }
            for document_id in (row.document_id, row.target_document_id):
                if document_id not in reached:
                    reached.add(document_id)
                    frontier.append(document_id)
        if not frontier:
            break

    documents = VersionedRepository(session, registry.get("documents"))
    nodes = [
        {"id": row.id, "title": row.title, "document_number": row.document_number}
        for row in await documents.find(tenant_scope, DocumentTable.id.in_(list(reached)))
    ]
    return {"nodes": nodes, "edges": list(edges.values())}


def _enum(values: frozenset[str], field: str) -> EnumRule:
    return EnumRule(values=values, reason=f"invalid_{field}")


registry.register(
    ResourceSpec(
        name="employees",
        table=EmployeeTable,
        required=("employee_id", "full_name"),
        create_fields=(
            "employee_id",
            "full_name",
            "email",
            "phone",
            "department",
            "job_title",
            "national_id",
            "nationality",
            "hire_date",
            "employment_status",
            "employment_type",
            "manager_id",
            "custom_metadata",
        ),
        update_fields=(
            "full_name",
            "email",
            "phone",
            "department",
            "job_title",
            "national_id",
            "nationality",
            "hire_date",
            "employment_status",
            "employment_type",
            "manager_id",
            "custom_metadata",
        ),
        search_columns=("full_name", "employee_id", "email", "department", "job_title"),
        filters={
            "employment_status": EMPLOYMENT_STATUSES,
            "employment_type": EMPLOYMENT_TYPES,
            "department": None,
            "manager_id": None,
        },
        sort_columns=("created_at", "updated_at", "full_name", "employee_id", "hire_date"),
        enums={
            "employment_status": _enum(EMPLOYMENT_STATUSES, "employment_status"),
            "employment_type": _enum(EMPLOYMENT_TYPES, "employment_type"),
        },
        natural_key="employee_id",
        duplicate_reason="duplicate_employee_id",
        delete_mode=DeleteMode.SOFT,
        soft_delete_values={"employment_status": "terminated"},
        requires_policy=True,
    )
)

registry.register(
    ResourceSpec(
        name="agent_users",
        table=AgentUserTable,
        required=("email", "role"),
        create_fields=("email", "display_name", "role", "status", "employee_id"),
        update_fields=("display_name", "role", "status", "employee_id"),
        search_columns=("email", "display_name"),
        filters={"role": AGENT_ROLES, "status": AGENT_STATUSES, "employee_id": None},
        sort_columns=("created_at", "updated_at", "email", "role", "status", "last_login_at"),
        enums={"role": _enum(AGENT_ROLES, "role"), "status": _enum(AGENT_STATUSES, "status")},
        natural_key="email",
        duplicate_reason="duplicate_email",
        delete_mode=DeleteMode.HARD,
        requires_policy=True,
    )
)

registry.register(
    ResourceSpec(
        name="documents",
        table=DocumentTable,
        required=("title", "entity_type", "category"),
        create_fields=(
            "title",
            "description",
            "entity_type",
            "entity_id",
            "category",
            "tags",
            "file_name",
            "file_size",
            "file_type",
            "file_path",
            "file_hash",
            "mime_type",
            "issue_date",
            "expiry_date",
            "renewal_required",
            "renewal_period_days",
            "grace_period_days",
            "contains_pii",
            "contains_phi",
            "sensitivity_level",
            "retention_period_years",
            "custom_metadata",
            "auto_archive_on_expiry",
            "template_id",
            "created_by",
        ),
        update_fields=(
            "title",
            "description",
            "category",
            "tags",
            "status",
            "issue_date",
            "expiry_date",
            "renewal_required",
            "renewal_period_days",
            "grace_period_days",
            "contains_pii",
            "contains_phi",
            "sensitivity_level",
            "retention_period_years",
            "legal_hold",
            "legal_hold_reason",
            "custom_metadata",
            "auto_archive_on_expiry",
        ),
        search_columns=("title", "description", "document_number", "file_name"),
        filters={
            "entity_type": ENTITY_TYPES,
            "entity_id": None,
            "category": None,
            "status": DOCUMENT_STATUSES,
            "sensitivity_level": SENSITIVITY_LEVELS,
            "is_latest_version": None,
        },
        sort_columns=("created_at", "updated_at", "title", "expiry_date", "status"),
        enums={
            "entity_type": _enum(ENTITY_TYPES, "entity_type"),
            "status": _enum(DOCUMENT_STATUSES, "status"),
            "sensitivity_level": _enum(SENSITIVITY_LEVELS, "sensitivity_level"),
        },
        natural_key="document_number",
        duplicate_reason="duplicate_document_number",
        delete_mode=DeleteMode.SOFT,
        soft_delete_values={"status": "disposed"},
        requires_policy=True,
        audit_name_field="document_number",
        actor_defaults={"created_by": "id"},
        generated={"document_number": generate_document_number},
    )
)

registry.register(
    ResourceSpec(
        name="templates",
        table=DocumentTemplateTable,
        required=("template_name", "template_code", "category", "entity_type"),
        create_fields=(
            "template_name",
            "template_code",
            "description",
            "category",
            "entity_type",
            "language",
            "template_content",
            "tags",
            "is_active",
            "is_system",
            "custom_metadata",
            "created_by",
        ),
        update_fields=(
            "template_name",
            "description",
            "category",
            "entity_type",
            "language",
            "template_content",
            "tags",
            "is_active",
            "rating",
            "custom_metadata",
        ),
        search_columns=("template_name", "template_code", "description"),
        filters={
            "category": None,
            "entity_type": ENTITY_TYPES,
            "language": TEMPLATE_LANGUAGES,
            "is_active": None,
            "is_system": None,
        },
        sort_columns=(
            "created_at",
            "updated_at",
            "template_name",
            "usage_count",
            "last_used_at",
            "rating",
        ),
        enums={
            "entity_type": _enum(ENTITY_TYPES, "entity_type"),
            "language": _enum(TEMPLATE_LANGUAGES, "language"),
        },
        natural_key="template_code",
        duplicate_reason="duplicate_template_code",
        delete_mode=DeleteMode.SOFT,
        soft_delete_values={"is_active": False},
        requires_policy=True,
        audit_name_field="template_code",
        actor_defaults={"created_by": "id"},
    )
)

registry.register(
    ResourceSpec(
        name="template_fields",
        table=TemplateFieldTable,
        required=("field_name", "field_label", "field_type"),
        create_fields=(
            "field_name",
            "field_label",
            "field_type",
            "is_required",
            "default_value",
            "placeholder",
            "help_text",
            "options",
            "validation_rules",
            "order_index",
        ),
        update_fields=(
            "field_label",
            "field_type",
            "is_required",
            "default_value",
            "placeholder",
            "help_text",
            "options",
            "validation_rules",
            "order_index",
        ),
        search_columns=("field_name", "field_label"),
        filters={"field_type": FIELD_TYPES, "is_required": None},
        sort_columns=("order_index", "created_at", "updated_at", "field_name"),
        default_sort="order_index",
        default_descending=False,
        enums={"field_type": _enum(FIELD_TYPES, "field_type")},
        natural_key="field_name",
        duplicate_reason="duplicate_field_name",
        delete_mode=DeleteMode.HARD,
        parent=ParentLink(field="template_id", resource="templates"),
    )
)

registry.register(
    ResourceSpec(
        name="comments",
        table=DocumentCommentTable,
        required=("comment_text", "comment_type"),
        create_fields=(
            "comment_text",
            "comment_type",
            "parent_comment_id",
            "section_key",
            "author_id",
            "author_name",
            "author_role",
            "has_attachments",
            "attachments",
        ),
        update_fields=(
            "comment_text",
            "comment_type",
            "has_attachments",
            "attachments",
        ),
        search_columns=("comment_text",),
        filters={
            "comment_type": COMMENT_TYPES,
            "is_resolved": None,
            "section_key": None,
            "parent_comment_id": None,
        },
        enums={"comment_type": _enum(COMMENT_TYPES, "comment_type")},
        delete_mode=DeleteMode.SOFT,
        parent=ParentLink(field="document_id", resource="documents"),
        references=(Reference(field="parent_comment_id", resource="comments", same_parent=True),),
        actor_defaults={"author_id": "id", "author_role": "role"},
    )
)

registry.register(
    ResourceSpec(
        name="approvals",
        table=DocumentApprovalTable,
        required=("approver_id",),
        create_fields=(
            "approver_id",
            "approver_name",
            "approver_role",
            "approval_type",
            "approval_order",
            "due_date",
            "comments",
        ),
        update_fields=(
            "approver_name",
            "approver_role",
            "approval_order",
            "comments",
            "due_date",
        ),
        filters={
            "status": APPROVAL_STATUSES,
            "approval_type": APPROVAL_TYPES,
            "approver_id": None,
        },
        sort_columns=("approval_order", "created_at", "updated_at", "due_date", "status"),
        enums={"approval_type": _enum(APPROVAL_TYPES, "approval_type")},
        delete_mode=DeleteMode.HARD,
        parent=ParentLink(field="document_id", resource="documents"),
    )
)

registry.register(
    ResourceSpec(
        name="shares",
        table=DocumentShareTable,
        required=("shared_by", "share_type"),
        create_fields=(
            "shared_by",
            "shared_with_user_id",
            "shared_with_email",
            "share_type",
            "access_level",
            "expires_at",
            "max_access_count",
            "message",
        ),
        update_fields=("access_level", "expires_at", "max_access_count", "is_active", "message"),
        filters={
            "share_type": SHARE_TYPES,
            "access_level": ACCESS_LEVELS,
            "is_active": None,
            "shared_with_user_id": None,
        },
        sort_columns=("created_at", "updated_at", "expires_at"),
        enums={
            "share_type": _enum(SHARE_TYPES, "share_type"),
            "access_level": _enum(ACCESS_LEVELS, "access_level"),
        },
        delete_mode=DeleteMode.SOFT,
        soft_delete_values={"is_active": False},
        parent=ParentLink(field="document_id", resource="documents"),
        actor_defaults={"shared_by": "id"},
        validate=validate_share_target,
    )
)

registry.register(
    ResourceSpec(
        name="relationships",
        table=DocumentRelationshipTable,
        required=("target_document_id", "relationship_type"),
        create_fields=("target_document_id", "relationship_type", "description"),
        update_fields=("relationship_type", "description"),
        filters={"relationship_type": RELATIONSHIP_TYPES, "target_document_id": None},
        sort_columns=("created_at", "updated_at", "relationship_type"),
        enums={"relationship_type": _enum(RELATIONSHIP_TYPES, "relationship_type")},
        duplicate_reason="duplicate_relationship",
        delete_mode=DeleteMode.HARD,
        parent=ParentLink(field="document_id", resource="documents"),
        references=(Reference(field="target_document_id", resource="documents"),),
        actor_defaults={"created_by": "id"},
        validate=validate_relationship_target,
    )
)

registry.register(
    ResourceSpec(
        name="sections",
        table=DocumentSectionTable,
        required=("section_key", "title", "section_type", "content", "order_index"),
        create_fields=(
            "section_key",
            "title",
            "section_type",
            "content",
            "order_index",
            "parent_section_id",
            "is_required",
            "compliance_status",
            "custom_metadata",
        ),
        update_fields=(
            "title",
            "section_type",
            "content",
            "order_index",
            "parent_section_id",
            "is_required",
            "custom_metadata",
        ),
        search_columns=("section_key", "title", "content"),
        filters={
            "section_type": SECTION_TYPES,
            "compliance_status": SECTION_COMPLIANCE_STATUSES,
            "is_required": None,
        },
        sort_columns=("order_index", "created_at", "updated_at", "title"),
        default_sort="order_index",
        default_descending=False,
        enums={
            "section_type": _enum(SECTION_TYPES, "section_type"),
            "compliance_status": _enum(SECTION_COMPLIANCE_STATUSES, "compliance_status"),
        },
        natural_key="section_key",
        duplicate_reason="duplicate_section_key",
        delete_mode=DeleteMode.SOFT,
        parent=ParentLink(field="document_id", resource="documents"),
        references=(Reference(field="parent_section_id", resource="sections", same_parent=True),),
    )
)

registry.register(
    ResourceSpec(
        name="versions",
        table=DocumentVersionTable,
        required=("file_name", "file_path", "change_summary"),
        create_fields=(
            "file_name",
            "file_path",
            "file_size",
            "file_hash",
            "change_summary",
            "change_type",
        ),
        update_fields=("change_summary", "change_type"),
        search_columns=("file_name", "change_summary"),
        filters={"change_type": None},
        sort_columns=("version_number", "created_at", "updated_at"),
        default_sort="version_number",
        natural_key="version_number",
        duplicate_reason="duplicate_version_number",
        delete_mode=DeleteMode.SOFT,
        parent=ParentLink(field="document_id", resource="documents"),
        actor_defaults={"created_by": "id"},
        generated={"version_number": next_version_number},
    )
)

registry.register(
    ResourceSpec(
        name="compliance_checks",
        table=DocumentComplianceCheckTable,
        required=("check_type", "overall_compliance", "section_checks", "recommendations"),
        create_fields=(
            "check_type",
            "overall_compliance",
            "section_checks",
            "recommendations",
            "requirements_checked",
            "model_version",
        ),
        update_fields=("section_checks", "recommendations", "requirements_checked", "model_version"),
        filters={"check_type": CHECK_TYPES},
        sort_columns=("created_at", "updated_at", "overall_compliance"),
        enums={"check_type": _enum(CHECK_TYPES, "check_type")},
        delete_mode=DeleteMode.SOFT,
        parent=ParentLink(field="document_id", resource="documents"),
        event_category=EventCategory.COMPLIANCE,
        actor_defaults={"checked_by": "id"},
        validate=validate_compliance_score,
        after_create=cache_compliance_score,
    )
)

"""SQLAlchemy table definitions.

Every tenant-owned resource table shares the versioned row shape from
``VersionedColumns``: a UUID primary key, the owning ``tenant_id``, a
``version`` counter starting at 1, timestamps and an optional soft-delete
marker.
"""

import uuid
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from compliance_agent.db.base import Base
from compliance_agent.utils.time import utc_now

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

Score = Numeric(5, 2, asdecimal=False)


class VersionedColumns:
    """Columns carried by every versioned resource row."""

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class EmployeeTable(VersionedColumns, Base):
    """HR employee records."""

    __tablename__ = "employees"

    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    national_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    nationality: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    hire_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    employment_status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    employment_type: Mapped[str] = mapped_column(String(32), nullable=False, default="full-time")
    manager_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    custom_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_id", name="ux_employees_tenant_employee_id"),
        Index("ix_employees_tenant_status", "tenant_id", "employment_status"),
    )


class AgentUserTable(VersionedColumns, Base):
    """Users allowed to operate this agent on behalf of a tenant."""

    __tablename__ = "agent_users"

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="invited")
    employee_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="ux_agent_users_tenant_email"),
        Index("ix_agent_users_status", "status"),
    )


class DocumentTable(VersionedColumns, Base):
    """Compliance documents."""

    __tablename__ = "documents"

    document_number: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSONType, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")

    # File
    file_name: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    file_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    file_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Lifecycle
    issue_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    renewal_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    renewal_period_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    grace_period_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    auto_archive_on_expiry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Classification and retention
    contains_pii: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    contains_phi: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sensitivity_level: Mapped[str] = mapped_column(String(32), nullable=False, default="internal")
    retention_period_years: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    legal_hold: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    legal_hold_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    custom_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    is_latest_version: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    template_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    # Cached result of the most recent compliance check
    compliance_score: Mapped[Optional[float]] = mapped_column(Score, nullable=True)
    last_compliance_check_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", name="ux_documents_tenant_number"),
        Index("ix_documents_tenant_status", "tenant_id", "status"),
        Index("ix_documents_tenant_entity", "tenant_id", "entity_type", "entity_id"),
    )


class DocumentTemplateTable(VersionedColumns, Base):
    """Reusable document templates."""

    __tablename__ = "document_templates"

    template_name: Mapped[str] = mapped_column(String(255), nullable=False)
    template_code: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False, default="en")
    template_content: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSONType, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Score, nullable=True)
    custom_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "template_code", name="ux_templates_tenant_code"),
    )


class TemplateFieldTable(VersionedColumns, Base):
    """Fillable fields declared by a template."""

    __tablename__ = "template_fields"

    template_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_label: Mapped[str] = mapped_column(String(255), nullable=False)
    field_type: Mapped[str] = mapped_column(String(32), nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    default_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    placeholder: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    help_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    options: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)
    validation_rules: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("template_id", "field_name", name="ux_template_fields_name"),
    )


class DocumentCommentTable(VersionedColumns, Base):
    """Review comments on a document."""

    __tablename__ = "document_comments"

    document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    parent_comment_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    comment_type: Mapped[str] = mapped_column(String(32), nullable=False, default="general")
    section_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    author_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    author_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    author_role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    has_attachments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attachments: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)


class DocumentApprovalTable(VersionedColumns, Base):
    """Approval workflow steps for a document."""

    __tablename__ = "document_approvals"

    document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    approver_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    approver_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    approver_role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approval_type: Mapped[str] = mapped_column(String(32), nullable=False, default="sequential")
    approval_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    decision_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Reassignment
    delegated_to: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    delegated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delegation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    escalated_to: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    escalation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_document_approvals_document_status", "document_id", "status"),)


class DocumentShareTable(VersionedColumns, Base):
    """Document shares with users or external addresses."""

    __tablename__ = "document_shares"

    document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    shared_by: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    shared_with_user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    shared_with_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    share_type: Mapped[str] = mapped_column(String(32), nullable=False)
    access_level: Mapped[str] = mapped_column(String(32), nullable=False, default="view")
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    access_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_access_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DocumentRelationshipTable(VersionedColumns, Base):
    """Directed links between two documents of the same tenant."""

    __tablename__ = "document_relationships"

    document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    target_document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    relationship_type: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "target_document_id",
            "relationship_type",
            name="ux_document_relationships_link",
        ),
        CheckConstraint(
            "document_id <> target_document_id",
            name="ck_document_relationships_no_self_reference",
        ),
    )


class DocumentSectionTable(VersionedColumns, Base):
    """Structured sections of a document body."""

    __tablename__ = "document_sections"

    document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    section_key: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    section_type: Mapped[str] = mapped_column(String(32), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    parent_section_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    compliance_status: Mapped[str] = mapped_column(String(32), nullable=False, default="not_checked")
    compliance_issues: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)
    compliance_suggestions: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    custom_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        UniqueConstraint("document_id", "section_key", name="ux_document_sections_key"),
    )


class DocumentVersionTable(VersionedColumns, Base):
    """Stored file revisions of a document."""

    __tablename__ = "document_versions"

    document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    file_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    change_summary: Mapped[str] = mapped_column(Text, nullable=False)
    change_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="ux_document_versions_number"),
    )


class DocumentComplianceCheckTable(VersionedColumns, Base):
    """Results of compliance checks computed by the upstream platform."""

    __tablename__ = "document_compliance_checks"

    document_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    check_type: Mapped[str] = mapped_column(String(32), nullable=False)
    overall_compliance: Mapped[float] = mapped_column(Score, nullable=False)
    section_checks: Mapped[Any] = mapped_column(JSONType, nullable=False)
    recommendations: Mapped[Any] = mapped_column(JSONType, nullable=False)
    requirements_checked: Mapped[Optional[list[Any]]] = mapped_column(JSONType, nullable=True)
    model_version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    checked_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)


class AuditEventTable(Base):
    """Append-only audit trail. Rows are never updated or deleted."""

    __tablename__ = "audit_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    event_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_category: Mapped[str] = mapped_column(String(32), nullable=False, default="data")

    # Actor
    actor_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    actor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    actor_role: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # What happened
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    target_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    target_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    target_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    decision: Mapped[str] = mapped_column(String(8), nullable=False, default="n/a")
    result: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Correlation
    request_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    changes: Mapped[Optional[list[str]]] = mapped_column(JSONType, nullable=True)
    event_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    schema_version: Mapped[str] = mapped_column(String(32), nullable=False)
    policy_version: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        Index("ix_audit_events_time", "event_time"),
        Index("ix_audit_events_tenant_time", "tenant_id", "event_time"),
    )

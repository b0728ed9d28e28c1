"""Initial Compliance Agent schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _versioned_columns() -> list[sa.Column]:
    """id, tenant_id, version and timestamps shared by every resource table."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _uuid(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _flag(name: str, default: bool) -> sa.Column:
    return sa.Column(name, sa.Boolean(), nullable=False, server_default=sa.true() if default else sa.false())


def upgrade() -> None:
    """Create resource tables and the audit trail."""
    op.create_table(
        "employees",
        *_versioned_columns(),
        sa.Column("employee_id", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("job_title", sa.String(length=255), nullable=True),
        sa.Column("national_id", sa.String(length=64), nullable=True),
        sa.Column("nationality", sa.String(length=100), nullable=True),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("employment_status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("employment_type", sa.String(length=32), nullable=False, server_default="full-time"),
        _uuid("manager_id"),
        sa.Column("custom_metadata", postgresql.JSONB(), nullable=True),
        sa.UniqueConstraint("tenant_id", "employee_id", name="ux_employees_tenant_employee_id"),
    )
    op.create_index("ix_employees_tenant_id", "employees", ["tenant_id"])
    op.create_index("ix_employees_tenant_status", "employees", ["tenant_id", "employment_status"])

    op.create_table(
        "agent_users",
        *_versioned_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="invited"),
        _uuid("employee_id"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "email", name="ux_agent_users_tenant_email"),
    )
    op.create_index("ix_agent_users_tenant_id", "agent_users", ["tenant_id"])
    op.create_index("ix_agent_users_status", "agent_users", ["status"])

    op.create_table(
        "documents",
        *_versioned_columns(),
        sa.Column("document_number", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        _uuid("entity_id"),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("file_name", sa.String(length=500), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_type", sa.String(length=100), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=True),
        sa.Column("file_hash", sa.String(length=128), nullable=True),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        _flag("renewal_required", False),
        sa.Column("renewal_period_days", sa.Integer(), nullable=True),
        sa.Column("grace_period_days", sa.Integer(), nullable=True),
        _flag("auto_archive_on_expiry", False),
        _flag("contains_pii", False),
        _flag("contains_phi", False),
        sa.Column("sensitivity_level", sa.String(length=32), nullable=False, server_default="internal"),
        sa.Column("retention_period_years", sa.Integer(), nullable=True),
        _flag("legal_hold", False),
        sa.Column("legal_hold_reason", sa.Text(), nullable=True),
        sa.Column("custom_metadata", postgresql.JSONB(), nullable=True),
        _flag("is_latest_version", True),
        _uuid("template_id"),
        _uuid("created_by"),
        sa.Column("compliance_score", sa.Numeric(5, 2), nullable=True),
        sa.Column("last_compliance_check_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "document_number", name="ux_documents_tenant_number"),
    )
    op.create_index("ix_documents_tenant_id", "documents", ["tenant_id"])
    op.create_index("ix_documents_tenant_status", "documents", ["tenant_id", "status"])
    op.create_index("ix_documents_tenant_entity", "documents", ["tenant_id", "entity_type", "entity_id"])

    op.create_table(
        "document_templates",
        *_versioned_columns(),
        sa.Column("template_name", sa.String(length=255), nullable=False),
        sa.Column("template_code", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
        sa.Column("template_content", postgresql.JSONB(), nullable=True),
        sa.Column("tags", postgresql.JSONB(), nullable=True),
        _flag("is_active", True),
        _flag("is_system", False),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Numeric(5, 2), nullable=True),
        sa.Column("custom_metadata", postgresql.JSONB(), nullable=True),
        _uuid("created_by"),
        sa.UniqueConstraint("tenant_id", "template_code", name="ux_templates_tenant_code"),
    )
    op.create_index("ix_document_templates_tenant_id", "document_templates", ["tenant_id"])

    op.create_table(
        "template_fields",
        *_versioned_columns(),
        _uuid("template_id", nullable=False),
        sa.Column("field_name", sa.String(length=100), nullable=False),
        sa.Column("field_label", sa.String(length=255), nullable=False),
        sa.Column("field_type", sa.String(length=32), nullable=False),
        _flag("is_required", False),
        sa.Column("default_value", sa.Text(), nullable=True),
        sa.Column("placeholder", sa.String(length=255), nullable=True),
        sa.Column("help_text", sa.Text(), nullable=True),
        sa.Column("options", postgresql.JSONB(), nullable=True),
        sa.Column("validation_rules", postgresql.JSONB(), nullable=True),
        sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("template_id", "field_name", name="ux_template_fields_name"),
    )
    op.create_index("ix_template_fields_tenant_id", "template_fields", ["tenant_id"])
    op.create_index("ix_template_fields_template_id", "template_fields", ["template_id"])

    op.create_table(
        "document_comments",
        *_versioned_columns(),
        _uuid("document_id", nullable=False),
        _uuid("parent_comment_id"),
        sa.Column("comment_text", sa.Text(), nullable=False),
        sa.Column("comment_type", sa.String(length=32), nullable=False, server_default="general"),
        sa.Column("section_key", sa.String(length=100), nullable=True),
        _uuid("author_id"),
        sa.Column("author_name", sa.String(length=255), nullable=True),
        sa.Column("author_role", sa.String(length=64), nullable=True),
        _flag("is_resolved", False),
        _uuid("resolved_by"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        _flag("has_attachments", False),
        sa.Column("attachments", postgresql.JSONB(), nullable=True),
    )
    op.create_index("ix_document_comments_tenant_id", "document_comments", ["tenant_id"])
    op.create_index("ix_document_comments_document_id", "document_comments", ["document_id"])

    op.create_table(
        "document_approvals",
        *_versioned_columns(),
        _uuid("document_id", nullable=False),
        _uuid("approver_id", nullable=False),
        sa.Column("approver_name", sa.String(length=255), nullable=True),
        sa.Column("approver_role", sa.String(length=64), nullable=True),
        sa.Column("approval_type", sa.String(length=32), nullable=False, server_default="sequential"),
        sa.Column("approval_order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("decision_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
    )
    op.create_index("ix_document_approvals_tenant_id", "document_approvals", ["tenant_id"])
    op.create_index("ix_document_approvals_document_id", "document_approvals", ["document_id"])

    op.create_table(
        "document_shares",
        *_versioned_columns(),
        _uuid("document_id", nullable=False),
        _uuid("shared_by", nullable=False),
        _uuid("shared_with_user_id"),
        sa.Column("shared_with_email", sa.String(length=255), nullable=True),
        sa.Column("share_type", sa.String(length=32), nullable=False),
        sa.Column("access_level", sa.String(length=32), nullable=False, server_default="view"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        _flag("is_active", True),
        sa.Column("access_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("message", sa.Text(), nullable=True),
    )
    op.create_index("ix_document_shares_tenant_id", "document_shares", ["tenant_id"])
    op.create_index("ix_document_shares_document_id", "document_shares", ["document_id"])

    op.create_table(
        "document_relationships",
        *_versioned_columns(),
        _uuid("document_id", nullable=False),
        _uuid("target_document_id", nullable=False),
        sa.Column("relationship_type", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _uuid("created_by"),
        sa.UniqueConstraint(
            "document_id",
            "target_document_id",
            "relationship_type",
            name="ux_document_relationships_link",
        ),
    )
    op.create_index("ix_document_relationships_tenant_id", "document_relationships", ["tenant_id"])
    op.create_index("ix_document_relationships_document_id", "document_relationships", ["document_id"])
    op.create_index(
        "ix_document_relationships_target_document_id",
        "document_relationships",
        ["target_document_id"],
    )

    op.create_table(
        "document_sections",
        *_versioned_columns(),
        _uuid("document_id", nullable=False),
        sa.Column("section_key", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("section_type", sa.String(length=32), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("order_index", sa.Integer(), nullable=False),
        _uuid("parent_section_id"),
        _flag("is_required", False),
        sa.Column("compliance_status", sa.String(length=32), nullable=False, server_default="not_checked"),
        sa.Column("custom_metadata", postgresql.JSONB(), nullable=True),
        sa.UniqueConstraint("document_id", "section_key", name="ux_document_sections_key"),
    )
    op.create_index("ix_document_sections_tenant_id", "document_sections", ["tenant_id"])
    op.create_index("ix_document_sections_document_id", "document_sections", ["document_id"])

    op.create_table(
        "document_versions",
        *_versioned_columns(),
        _uuid("document_id", nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("file_name", sa.String(length=500), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("file_hash", sa.String(length=128), nullable=True),
        sa.Column("change_summary", sa.Text(), nullable=False),
        sa.Column("change_type", sa.String(length=32), nullable=True),
        _uuid("created_by"),
        sa.UniqueConstraint("document_id", "version_number", name="ux_document_versions_number"),
    )
    op.create_index("ix_document_versions_tenant_id", "document_versions", ["tenant_id"])
    op.create_index("ix_document_versions_document_id", "document_versions", ["document_id"])

    op.create_table(
        "document_compliance_checks",
        *_versioned_columns(),
        _uuid("document_id", nullable=False),
        sa.Column("check_type", sa.String(length=32), nullable=False),
        sa.Column("overall_compliance", sa.Numeric(5, 2), nullable=False),
        sa.Column("section_checks", postgresql.JSONB(), nullable=False),
        sa.Column("recommendations", postgresql.JSONB(), nullable=False),
        sa.Column("requirements_checked", postgresql.JSONB(), nullable=True),
        sa.Column("model_version", sa.String(length=64), nullable=True),
        _uuid("checked_by"),
    )
    op.create_index("ix_document_compliance_checks_tenant_id", "document_compliance_checks", ["tenant_id"])
    op.create_index(
        "ix_document_compliance_checks_document_id",
        "document_compliance_checks",
        ["document_id"],
    )

    op.create_table(
        "audit_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        _uuid("tenant_id"),
        sa.Column("event_time", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("event_category", sa.String(length=32), nullable=False, server_default="data"),
        _uuid("actor_id"),
        sa.Column("actor_email", sa.String(length=255), nullable=True),
        sa.Column("actor_role", sa.String(length=64), nullable=False),
        sa.Column("actor_ip", sa.String(length=64), nullable=True),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("resource", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=64), nullable=True),
        _uuid("target_id"),
        sa.Column("target_name", sa.String(length=255), nullable=True),
        sa.Column("decision", sa.String(length=8), nullable=False, server_default="n/a"),
        sa.Column("result", sa.String(length=16), nullable=False),
        sa.Column("reason", sa.String(length=100), nullable=True),
        sa.Column("request_id", sa.String(length=128), nullable=True),
        sa.Column("changes", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("schema_version", sa.String(length=32), nullable=False),
        sa.Column("policy_version", sa.String(length=32), nullable=False),
        sa.CheckConstraint("result IN ('success', 'failure', 'partial')", name="ck_audit_events_result"),
        sa.CheckConstraint("decision IN ('allow', 'deny', 'n/a')", name="ck_audit_events_decision"),
    )
    op.create_index("ix_audit_events_time", "audit_events", ["event_time"])
    op.create_index("ix_audit_events_tenant_time", "audit_events", ["tenant_id", "event_time"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("ix_audit_events_tenant_time", table_name="audit_events")
    op.drop_index("ix_audit_events_time", table_name="audit_events")
    op.drop_table("audit_events")

    for table in (
        "document_compliance_checks",
        "document_versions",
        "document_sections",
        "document_relationships",
        "document_shares",
        "document_approvals",
        "document_comments",
        "template_fields",
        "document_templates",
        "documents",
        "agent_users",
        "employees",
    ):
        op.drop_table(table)

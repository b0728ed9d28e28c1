"""Add approval routing, share access tracking and section compliance columns."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0002_document_workflow_columns"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Columns for approval decisions, share access limits and section checks."""
    op.add_column("document_approvals", sa.Column("rejection_reason", sa.Text(), nullable=True))
    op.add_column("document_approvals", sa.Column("delegated_to", postgresql.UUID(as_uuid=True), nullable=True))
    op.add_column("document_approvals", sa.Column("delegated_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("document_approvals", sa.Column("delegation_reason", sa.Text(), nullable=True))
    op.add_column("document_approvals", sa.Column("escalated_to", postgresql.UUID(as_uuid=True), nullable=True))
    op.add_column("document_approvals", sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True))
    op.add_column("document_approvals", sa.Column("escalation_reason", sa.Text(), nullable=True))
    op.create_index(
        "ix_document_approvals_document_status",
        "document_approvals",
        ["document_id", "status"],
    )

    op.add_column("document_shares", sa.Column("max_access_count", sa.Integer(), nullable=True))
    op.add_column("document_shares", sa.Column("last_accessed_at", sa.DateTime(timezone=True), nullable=True))

    op.add_column("document_sections", sa.Column("compliance_issues", postgresql.JSONB(), nullable=True))
    op.add_column("document_sections", sa.Column("compliance_suggestions", postgresql.JSONB(), nullable=True))
    op.add_column(
        "document_sections",
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.add_column("document_sections", sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True))

    op.create_check_constraint(
        "ck_document_relationships_no_self_reference",
        "document_relationships",
        "document_id <> target_document_id",
    )


def downgrade() -> None:
    """Drop workflow columns."""
    op.drop_constraint(
        "ck_document_relationships_no_self_reference",
        "document_relationships",
        type_="check",
    )

    op.drop_column("document_sections", "last_checked_at")
    op.drop_column("document_sections", "is_completed")
    op.drop_column("document_sections", "compliance_suggestions")
    op.drop_column("document_sections", "compliance_issues")

    op.drop_column("document_shares", "last_accessed_at")
    op.drop_column("document_shares", "max_access_count")

    op.drop_index("ix_document_approvals_document_status", table_name="document_approvals")
    op.drop_column("document_approvals", "escalation_reason")
    op.drop_column("document_approvals", "escalated_at")
    op.drop_column("document_approvals", "escalated_to")
    op.drop_column("document_approvals", "delegation_reason")
    op.drop_column("document_approvals", "delegated_at")
    op.drop_column("document_approvals", "delegated_to")
    op.drop_column("document_approvals", "rejection_reason")

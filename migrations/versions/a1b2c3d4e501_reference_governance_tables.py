"""Reference governance tables.

Reference documents, the Unit → LearningOutcome → Criterion universe,
assignment briefs with their criterion maps, submissions (usage oracle
source) and the audit log.

Revision ID: a1b2c3d4e501
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

import sqlalchemy as sa
from alembic import op

revision = "a1b2c3d4e501"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "reference_documents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("status", sa.String(12), nullable=False, server_default="UPLOADED"),
        sa.Column("title", sa.String(300), nullable=False, server_default=""),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("checksum", sa.String(64), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(150), nullable=True),
        sa.Column("extracted_draft", sa.JSON, nullable=True),
        sa.Column("extraction_warnings", sa.JSON, nullable=False),
        sa.Column("source_meta", sa.JSON, nullable=False),
        sa.Column("row_version", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("idx_refdoc_kind_status", "reference_documents", ["kind", "status"])

    op.create_table(
        "units",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("unit_code", sa.String(30), nullable=False),
        sa.Column("unit_title", sa.String(300), nullable=False, server_default=""),
        sa.Column("status", sa.String(10), nullable=False, server_default="DRAFT"),
        sa.Column("spec_issue", sa.String(100), nullable=True),
        sa.Column("spec_document_id", sa.String(36),
                  sa.ForeignKey("reference_documents.id", ondelete="SET NULL"), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_units_unit_code", "units", ["unit_code"])

    op.create_table(
        "learning_outcomes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("unit_id", sa.String(36),
                  sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lo_code", sa.String(10), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("essential_content", sa.Text, nullable=True),
        sa.UniqueConstraint("unit_id", "lo_code", name="uq_lo_unit_code"),
    )
    op.create_index("ix_learning_outcomes_unit_id", "learning_outcomes", ["unit_id"])

    op.create_table(
        "assessment_criteria",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("learning_outcome_id", sa.String(36),
                  sa.ForeignKey("learning_outcomes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ac_code", sa.String(5), nullable=False),
        sa.Column("grade_band", sa.String(12), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.UniqueConstraint("learning_outcome_id", "ac_code", name="uq_criterion_lo_code"),
    )
    op.create_index("ix_assessment_criteria_learning_outcome_id", "assessment_criteria",
                    ["learning_outcome_id"])

    op.create_table(
        "assignment_briefs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("unit_id", sa.String(36),
                  sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assignment_code", sa.String(20), nullable=False),
        sa.Column("title", sa.String(300), nullable=False, server_default=""),
        sa.Column("brief_document_id", sa.String(36),
                  sa.ForeignKey("reference_documents.id", ondelete="SET NULL"), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_by", sa.String(150), nullable=True),
        sa.Column("source_meta", sa.JSON, nullable=False),
        sa.Column("row_version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("idx_brief_unit_assignment", "assignment_briefs", ["unit_id", "assignment_code"])
    op.create_index("ix_assignment_briefs_brief_document_id", "assignment_briefs", ["brief_document_id"])

    op.create_table(
        "assignment_criterion_maps",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("assignment_brief_id", sa.String(36),
                  sa.ForeignKey("assignment_briefs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("criterion_id", sa.String(36),
                  sa.ForeignKey("assessment_criteria.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="AUTO_FROM_BRIEF"),
        sa.Column("confidence", sa.Float, nullable=False, server_default="0.95"),
        sa.UniqueConstraint("assignment_brief_id", "criterion_id", name="uq_brief_criterion"),
    )
    op.create_index("ix_assignment_criterion_maps_assignment_brief_id",
                    "assignment_criterion_maps", ["assignment_brief_id"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("assignment_brief_id", sa.String(36),
                  sa.ForeignKey("assignment_briefs.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="UPLOADED"),
        sa.Column("graded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("ix_submissions_assignment_brief_id", "submissions", ["assignment_brief_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(60), nullable=False),
        sa.Column("actor", sa.String(150), nullable=False, server_default="system"),
        sa.Column("diff_json", sa.Text, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.func.now()),
    )
    op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("idx_audit_actor", "audit_logs", ["actor"])
    op.create_index("idx_audit_action", "audit_logs", ["action"])
    op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    op.drop_table("audit_logs")
    op.drop_table("submissions")
    op.drop_table("assignment_criterion_maps")
    op.drop_table("assignment_briefs")
    op.drop_table("assessment_criteria")
    op.drop_table("learning_outcomes")
    op.drop_table("units")
    op.drop_table("reference_documents")

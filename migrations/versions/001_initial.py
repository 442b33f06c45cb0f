"""Create compliance posture tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

IMPLEMENTATION_STATUS = sa.Enum(
    "not_started", "in_progress", "implemented", "exempt", name="implementation_status"
)
RISK_STATUS = sa.Enum(
    "Open", "In Progress", "Mitigated", "Closed", "Accepted", name="risk_status"
)
AUDIT_ACTOR_KIND = sa.Enum("human", "agent", "system", name="audit_actor_kind")
AUDIT_ACTION = sa.Enum(
    "created", "updated", "status_changed", "deleted", name="audit_action"
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "frameworks",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_frameworks_key", "frameworks", ["key"], unique=True)

    op.create_table(
        "framework_controls",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column(
            "framework_id", sa.String(128), sa.ForeignKey("frameworks.id"), nullable=False
        ),
        sa.Column("control_ref", sa.String(64), nullable=False),
        sa.Column("control_name", sa.String(512), nullable=False),
        sa.Column("control_text", sa.Text, nullable=False),
        sa.Column("chapter", sa.String(256), nullable=True),
        sa.Column("guidance", sa.Text, nullable=True),
        sa.Column("embedding", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("framework_id", "control_ref", name="uq_framework_control_ref"),
    )
    op.create_index(
        "ix_framework_controls_framework_id", "framework_controls", ["framework_id"]
    )

    op.create_table(
        "control_implementations",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column(
            "control_id",
            sa.String(128),
            sa.ForeignKey("framework_controls.id"),
            nullable=False,
        ),
        sa.Column("organization_id", sa.String(128), nullable=False),
        sa.Column("status", IMPLEMENTATION_STATUS, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("updated_by", sa.String(128), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "control_id", "organization_id", name="uq_control_implementation_org"
        ),
    )
    op.create_index(
        "ix_control_implementations_control_id", "control_implementations", ["control_id"]
    )
    op.create_index(
        "ix_control_implementations_organization_id",
        "control_implementations",
        ["organization_id"],
    )

    op.create_table(
        "evidence",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("organization_id", sa.String(128), nullable=False),
        sa.Column("framework_key", sa.String(64), nullable=False),
        sa.Column("control_ref", sa.String(64), nullable=False),
        sa.Column("storage_path", sa.String(1024), nullable=False, unique=True),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_type", sa.String(128), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=False),
        sa.Column("uploaded_by", sa.String(128), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("delete_requested_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_evidence_slot", "evidence", ["organization_id", "framework_key", "control_ref"]
    )
    op.create_index("ix_evidence_delete_requested_at", "evidence", ["delete_requested_at"])

    op.create_table(
        "risks",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("organization_id", sa.String(128), nullable=True),
        sa.Column("framework_key", sa.String(64), nullable=True),
        sa.Column("is_catalog", sa.Boolean, nullable=False),
        sa.Column("source_risk_id", sa.String(128), sa.ForeignKey("risks.id"), nullable=True),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("category", sa.String(128), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("impact", sa.Integer, nullable=False),
        sa.Column("likelihood", sa.Integer, nullable=False),
        sa.Column("status", RISK_STATUS, nullable=False),
        sa.Column("owner", sa.String(128), nullable=True),
        sa.Column("existing_controls", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_risks_organization_id", "risks", ["organization_id"])
    op.create_index("ix_risks_framework_key", "risks", ["framework_key"])

    op.create_table(
        "policies",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("organization_id", sa.String(128), nullable=False),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("embedding", sa.JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_policies_organization_id", "policies", ["organization_id"])

    op.create_table(
        "policy_control_mappings",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("policy_id", sa.String(128), sa.ForeignKey("policies.id"), nullable=False),
        sa.Column(
            "control_id",
            sa.String(128),
            sa.ForeignKey("framework_controls.id"),
            nullable=False,
        ),
        sa.Column("confidence", sa.Float, nullable=False),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("policy_id", "control_id", name="uq_policy_control"),
    )
    op.create_index(
        "ix_policy_control_mappings_policy_id", "policy_control_mappings", ["policy_id"]
    )
    op.create_index(
        "ix_policy_control_mappings_control_id", "policy_control_mappings", ["control_id"]
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_kind", AUDIT_ACTOR_KIND, nullable=False),
        sa.Column("actor_id", sa.String(128), nullable=False),
        sa.Column("action", AUDIT_ACTION, nullable=False),
        sa.Column("entity_kind", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(128), nullable=False),
        sa.Column("organization_id", sa.String(128), nullable=True),
        sa.Column("before", sa.JSON, nullable=True),
        sa.Column("after", sa.JSON, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index("ix_audit_log_ts", "audit_log", ["ts"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_entity_kind", "audit_log", ["entity_kind"])
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])
    op.create_index("ix_audit_log_organization_id", "audit_log", ["organization_id"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_kind", "entity_id"])
    op.create_index("ix_audit_log_org_ts", "audit_log", ["organization_id", "ts"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("policy_control_mappings")
    op.drop_table("policies")
    op.drop_table("risks")
    op.drop_table("evidence")
    op.drop_table("control_implementations")
    op.drop_table("framework_controls")
    op.drop_table("frameworks")

    bind = op.get_bind()
    for enum in (AUDIT_ACTION, AUDIT_ACTOR_KIND, RISK_STATUS, IMPLEMENTATION_STATUS):
        enum.drop(bind, checkfirst=True)

"""Initial workflow schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Tables added:
- workflow_definitions: Approval workflow templates
- workflow_stages: Ordered stages (nodes) of a definition
- workflow_stage_reviewers: Reviewers assigned to a stage
- workflow_instances: Definition bound to one approvable request
- workflow_instance_stages: Stage sequence snapshot per instance
- workflow_votes: Reviewer decisions
- workflow_audit_entries: Append-only approval audit trail
- reprint_requests: Ticket reprint requests (example request domain)

On PostgreSQL, triggers reject UPDATE and DELETE on workflow_audit_entries.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create workflow tables."""

    # --- workflow_definitions ---
    op.create_table(
        "workflow_definitions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_definitions"),
    )
    op.create_index("ix_workflow_definitions_is_active", "workflow_definitions", ["is_active"])

    # --- workflow_stages ---
    op.create_table(
        "workflow_stages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("definition_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("node_order", sa.Integer(), nullable=False),
        sa.Column("quorum_policy", sa.String(10), nullable=False, server_default="ALL"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_stages"),
        sa.ForeignKeyConstraint(
            ["definition_id"], ["workflow_definitions.id"],
            name="fk_workflow_stages_definition_id_workflow_definitions", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("definition_id", "node_order", name="uq_workflow_stages_definition_order"),
        sa.CheckConstraint("quorum_policy IN ('ALL', 'ANY')", name="ck_workflow_stages_quorum_policy"),
    )
    op.create_index("ix_workflow_stages_definition_id", "workflow_stages", ["definition_id"])

    # --- workflow_stage_reviewers ---
    op.create_table(
        "workflow_stage_reviewers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=False),
        sa.Column("reviewer_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_stage_reviewers"),
        sa.ForeignKeyConstraint(
            ["stage_id"], ["workflow_stages.id"],
            name="fk_workflow_stage_reviewers_stage_id_workflow_stages", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("stage_id", "reviewer_id", name="uq_workflow_stage_reviewers_stage_reviewer"),
    )
    op.create_index("ix_workflow_stage_reviewers_stage_id", "workflow_stage_reviewers", ["stage_id"])
    op.create_index("ix_workflow_stage_reviewers_reviewer_id", "workflow_stage_reviewers", ["reviewer_id"])

    # --- workflow_instances ---
    op.create_table(
        "workflow_instances",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("workflow_definition_id", sa.Integer(), nullable=False),
        sa.Column("request_type", sa.String(64), nullable=False),
        sa.Column("target_request_id", sa.String(64), nullable=False),
        sa.Column("active_key", sa.String(140), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING"),
        sa.Column("current_position", sa.Integer(), nullable=True),
        sa.Column("current_stage_id", sa.Integer(), nullable=True),
        sa.Column("finalized_at", sa.DateTime(), nullable=True),
        sa.Column("outcome_synced_at", sa.DateTime(), nullable=True),
        sa.Column("last_adapter_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_instances"),
        sa.ForeignKeyConstraint(
            ["workflow_definition_id"], ["workflow_definitions.id"],
            name="fk_workflow_instances_workflow_definition_id_workflow_definitions",
        ),
        sa.ForeignKeyConstraint(
            ["current_stage_id"], ["workflow_stages.id"],
            name="fk_workflow_instances_current_stage_id_workflow_stages", ondelete="SET NULL",
        ),
        sa.UniqueConstraint("active_key", name="uq_workflow_instances_active_key"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')", name="ck_workflow_instances_status"
        ),
    )
    op.create_index("ix_workflow_instances_workflow_definition_id", "workflow_instances", ["workflow_definition_id"])
    op.create_index("ix_workflow_instances_target_request_id", "workflow_instances", ["target_request_id"])
    op.create_index("ix_workflow_instances_status", "workflow_instances", ["status"])
    op.create_index("ix_workflow_instances_current_stage_id", "workflow_instances", ["current_stage_id"])
    op.create_index("ix_workflow_instances_created_at", "workflow_instances", ["created_at"])

    # --- workflow_instance_stages ---
    op.create_table(
        "workflow_instance_stages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("instance_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("node_order", sa.Integer(), nullable=False),
        sa.Column("quorum_policy", sa.String(10), nullable=False),
        sa.Column("reviewer_ids", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_instance_stages"),
        sa.ForeignKeyConstraint(
            ["instance_id"], ["workflow_instances.id"],
            name="fk_workflow_instance_stages_instance_id_workflow_instances", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["stage_id"], ["workflow_stages.id"],
            name="fk_workflow_instance_stages_stage_id_workflow_stages", ondelete="SET NULL",
        ),
        sa.UniqueConstraint("instance_id", "position", name="uq_workflow_instance_stages_instance_position"),
    )
    op.create_index("ix_workflow_instance_stages_instance_id", "workflow_instance_stages", ["instance_id"])

    # --- workflow_votes ---
    op.create_table(
        "workflow_votes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("instance_id", sa.Integer(), nullable=False),
        sa.Column("instance_stage_id", sa.Integer(), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=True),
        sa.Column("reviewer_id", sa.Integer(), nullable=False),
        sa.Column("decision", sa.String(10), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("cast_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_votes"),
        sa.ForeignKeyConstraint(
            ["instance_id"], ["workflow_instances.id"],
            name="fk_workflow_votes_instance_id_workflow_instances", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["instance_stage_id"], ["workflow_instance_stages.id"],
            name="fk_workflow_votes_instance_stage_id_workflow_instance_stages", ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "instance_id", "instance_stage_id", "reviewer_id",
            name="uq_workflow_votes_instance_stage_reviewer",
        ),
        sa.CheckConstraint("decision IN ('APPROVE', 'REJECT')", name="ck_workflow_votes_decision"),
        sa.CheckConstraint(
            "decision <> 'REJECT' OR (comments IS NOT NULL AND length(trim(comments)) > 0)",
            name="ck_workflow_votes_reject_comment",
        ),
    )
    op.create_index("ix_workflow_votes_instance_id", "workflow_votes", ["instance_id"])
    op.create_index("ix_workflow_votes_instance_stage_id", "workflow_votes", ["instance_stage_id"])
    op.create_index("ix_workflow_votes_reviewer_id", "workflow_votes", ["reviewer_id"])

    # --- workflow_audit_entries ---
    op.create_table(
        "workflow_audit_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("instance_id", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("event", sa.String(32), nullable=False),
        sa.Column("stage_id", sa.Integer(), nullable=True),
        sa.Column("stage_name", sa.String(255), nullable=True),
        sa.Column("to_stage_id", sa.Integer(), nullable=True),
        sa.Column("to_stage_name", sa.String(255), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("vote_id", sa.Integer(), nullable=True),
        sa.Column("decision", sa.String(10), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_audit_entries"),
        sa.ForeignKeyConstraint(
            ["instance_id"], ["workflow_instances.id"],
            name="fk_workflow_audit_entries_instance_id_workflow_instances",
        ),
        sa.ForeignKeyConstraint(
            ["vote_id"], ["workflow_votes.id"],
            name="fk_workflow_audit_entries_vote_id_workflow_votes",
        ),
        sa.UniqueConstraint("instance_id", "sequence", name="uq_workflow_audit_entries_instance_sequence"),
    )
    op.create_index("ix_workflow_audit_entries_instance_id", "workflow_audit_entries", ["instance_id"])
    op.create_index("ix_workflow_audit_entries_event", "workflow_audit_entries", ["event"])
    op.create_index("ix_workflow_audit_entries_actor_id", "workflow_audit_entries", ["actor_id"])
    op.create_index("ix_workflow_audit_entries_created_at", "workflow_audit_entries", ["created_at"])

    # --- reprint_requests ---
    op.create_table(
        "reprint_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("ticket_id", sa.Integer(), nullable=False),
        sa.Column("trace_no", sa.String(100), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("requested_copies", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("requested_by", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_reprint_requests"),
    )
    op.create_index("ix_reprint_requests_ticket_id", "reprint_requests", ["ticket_id"])
    op.create_index("ix_reprint_requests_trace_no", "reprint_requests", ["trace_no"])
    op.create_index("ix_reprint_requests_status", "reprint_requests", ["status"])
    op.create_index("ix_reprint_requests_created_at", "reprint_requests", ["created_at"])

    if op.get_bind().dialect.name != "postgresql":
        return

    # Audit trail is append-only
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_workflow_audit_change()
        RETURNS TRIGGER AS $trigger$
        BEGIN
            RAISE EXCEPTION 'Workflow audit entries are append-only. Entry ID: %', OLD.id;
        END;
        $trigger$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER workflow_audit_entries_prevent_update
        BEFORE UPDATE ON workflow_audit_entries
        FOR EACH ROW
        EXECUTE FUNCTION prevent_workflow_audit_change();
    """)
    op.execute("""
        CREATE TRIGGER workflow_audit_entries_prevent_delete
        BEFORE DELETE ON workflow_audit_entries
        FOR EACH ROW
        EXECUTE FUNCTION prevent_workflow_audit_change();
    """)


def downgrade() -> None:
    """Drop workflow tables."""
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS workflow_audit_entries_prevent_update ON workflow_audit_entries;")
        op.execute("DROP TRIGGER IF EXISTS workflow_audit_entries_prevent_delete ON workflow_audit_entries;")
        op.execute("DROP FUNCTION IF EXISTS prevent_workflow_audit_change();")

    op.drop_table("reprint_requests")
    op.drop_table("workflow_audit_entries")
    op.drop_table("workflow_votes")
    op.drop_table("workflow_instance_stages")
    op.drop_table("workflow_instances")
    op.drop_table("workflow_stage_reviewers")
    op.drop_table("workflow_stages")
    op.drop_table("workflow_definitions")

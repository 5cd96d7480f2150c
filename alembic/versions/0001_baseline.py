"""Baseline: users, threshold violations, escalations, payouts, audit logs.

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(30), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "delivery_agents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("da_code", sa.String(30), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("zone", sa.String(100), nullable=True),
        sa.Column(
            "eligible_for_next_payout", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column(
            "assigned_da_id",
            sa.Integer(),
            sa.ForeignKey("delivery_agents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "threshold_violations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("cost_type", sa.String(20), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("threshold_limit", sa.Numeric(14, 2), nullable=False),
        sa.Column("overage_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="blocked"),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("context", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.CheckConstraint("overage_amount > 0", name="ck_violation_overage_positive"),
    )
    op.create_index(
        "idx_violations_status_created", "threshold_violations", ["status", "created_at"]
    )

    op.create_table(
        "escalation_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "threshold_violation_id",
            sa.Integer(),
            sa.ForeignKey("threshold_violations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("escalation_type", sa.String(20), nullable=False),
        sa.Column("amount_requested", sa.Numeric(14, 2), nullable=False),
        sa.Column("threshold_limit", sa.Numeric(14, 2), nullable=False),
        sa.Column("overage_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("approval_required", sa.JSON(), nullable=False),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending_approval"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("final_decision_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("final_outcome", sa.String(20), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
    )
    op.create_index(
        "idx_escalations_status_expires", "escalation_requests", ["status", "expires_at"]
    )
    op.create_index(
        "idx_escalations_violation", "escalation_requests", ["threshold_violation_id"]
    )

    op.create_table(
        "approval_decisions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "escalation_request_id",
            sa.Integer(),
            sa.ForeignKey("escalation_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "approver_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("approver_role", sa.String(30), nullable=False),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("decision_reason", sa.Text(), nullable=True),
        sa.Column("decision_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "escalation_request_id", "approver_id", name="uq_decision_escalation_approver"
        ),
        sa.UniqueConstraint(
            "escalation_request_id", "approver_role", name="uq_decision_escalation_role"
        ),
    )

    op.create_table(
        "payouts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "order_id",
            sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "delivery_agent_id",
            sa.Integer(),
            sa.ForeignKey("delivery_agents.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("compliance_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("otp_submitted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("photo_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pos_matched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("flagged", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column(
            "last_action_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index("idx_payouts_status_created", "payouts", ["status", "created_at"])

    op.create_table(
        "payout_action_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "payout_id",
            sa.Integer(),
            sa.ForeignKey("payouts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("action", sa.String(30), nullable=False),
        sa.Column("from_status", sa.String(30), nullable=True),
        sa.Column("to_status", sa.String(30), nullable=True),
        sa.Column(
            "performed_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("role", sa.String(30), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_payout_actions_payout", "payout_action_logs", ["payout_id", "created_at"]
    )

    op.create_table(
        "system_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=True),
        sa.Column("level", sa.String(20), nullable=False, server_default="info"),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_system_logs_type_created", "system_logs", ["type", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_system_logs_type_created", table_name="system_logs")
    op.drop_table("system_logs")
    op.drop_index("idx_payout_actions_payout", table_name="payout_action_logs")
    op.drop_table("payout_action_logs")
    op.drop_index("idx_payouts_status_created", table_name="payouts")
    op.drop_table("payouts")
    op.drop_table("approval_decisions")
    op.drop_index("idx_escalations_violation", table_name="escalation_requests")
    op.drop_index("idx_escalations_status_expires", table_name="escalation_requests")
    op.drop_table("escalation_requests")
    op.drop_index("idx_violations_status_created", table_name="threshold_violations")
    op.drop_table("threshold_violations")
    op.drop_table("orders")
    op.drop_table("delivery_agents")
    op.drop_table("users")

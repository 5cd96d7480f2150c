"""Add salary_deductions for rejected and expired escalations.

Revision ID: 0002_salary_deductions
Revises: 0001_baseline
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = "0002_salary_deductions"
down_revision = "0001_baseline"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "salary_deductions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "threshold_violation_id",
            sa.Integer(),
            sa.ForeignKey("threshold_violations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "escalation_request_id",
            sa.Integer(),
            sa.ForeignKey("escalation_requests.id", ondelete="RESTRICT"),
            nullable=False,
            unique=True,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("deduction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("context", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "settled_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index(
        "idx_deductions_status_date", "salary_deductions", ["status", "deduction_date"]
    )
    op.create_index("idx_deductions_user", "salary_deductions", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_deductions_user", table_name="salary_deductions")
    op.drop_index("idx_deductions_status_date", table_name="salary_deductions")
    op.drop_table("salary_deductions")

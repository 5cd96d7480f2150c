"""SQLAlchemy ORM model for salary deductions raised by escalation outcomes."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from costguard.db.base import Base
from costguard.db.enums import DeductionStatus
from costguard.utils.datetime_utils import utcnow


class SalaryDeduction(Base):
    """
    Pending charge against the salary of the staff member who raised a cost
    that was rejected or left to expire.

    One per escalation. Becomes due on ``deduction_date``; the payroll sweep
    moves due rows to processed, and finance may process or cancel earlier.
    """

    __tablename__ = "salary_deductions"
    __table_args__ = (
        Index("idx_deductions_status_date", "status", "deduction_date"),
        Index("idx_deductions_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    threshold_violation_id: Mapped[int] = mapped_column(
        ForeignKey("threshold_violations.id", ondelete="RESTRICT"), nullable=False
    )
    escalation_request_id: Mapped[int] = mapped_column(
        ForeignKey("escalation_requests.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)  # DeductionReason
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DeductionStatus.PENDING.value, nullable=False
    )
    deduction_date: Mapped[datetime] = mapped_column(nullable=False)
    # Rule snapshot and escalation figures at creation time
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    settled_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,  # NULL when processed by the payroll sweep
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

"""SQLAlchemy ORM models for threshold violations and their escalations."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costguard.db.base import Base
from costguard.db.enums import EscalationPriority, EscalationStatus, ViolationStatus
from costguard.utils.datetime_utils import utcnow


class ThresholdViolation(Base):
    """
    A recorded breach of a cost threshold.

    Append-only: rows are never deleted. Status moves from blocked to
    approved or rejected exactly once, driven by the owning escalation.
    """

    __tablename__ = "threshold_violations"
    __table_args__ = (
        CheckConstraint("overage_amount > 0", name="ck_violation_overage_positive"),
        Index("idx_violations_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cost_type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    threshold_limit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    overage_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ViolationStatus.BLOCKED.value, nullable=False
    )

    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # Optional link back to the record that incurred the cost (order, expense, ...)
    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    escalations: Mapped[list["EscalationRequest"]] = relationship(
        back_populates="violation", order_by="EscalationRequest.id"
    )


class EscalationRequest(Base):
    """
    Time-boxed request for approval of an over-threshold cost.

    ``approval_required`` is fixed at creation. The request is approved once
    every listed role has approved; the first rejection ends it.
    """

    __tablename__ = "escalation_requests"
    __table_args__ = (
        Index("idx_escalations_status_expires", "status", "expires_at"),
        Index("idx_escalations_violation", "threshold_violation_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    threshold_violation_id: Mapped[int] = mapped_column(
        ForeignKey("threshold_violations.id", ondelete="RESTRICT"), nullable=False
    )
    escalation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_requested: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    threshold_limit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    overage_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(20), default=EscalationPriority.MEDIUM.value, nullable=False
    )
    approval_required: Mapped[list] = mapped_column(JSON, nullable=False)
    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=EscalationStatus.PENDING_APPROVAL.value, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    final_decision_at: Mapped[datetime | None] = mapped_column(nullable=True)
    final_outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    violation: Mapped[ThresholdViolation] = relationship(back_populates="escalations")
    decisions: Mapped[list["ApprovalDecision"]] = relationship(
        back_populates="escalation", order_by="ApprovalDecision.id"
    )

    @property
    def required_roles(self) -> frozenset[str]:
        return frozenset(self.approval_required or [])

    @property
    def approved_roles(self) -> frozenset[str]:
        return frozenset(
            d.approver_role for d in self.decisions if d.decision == "approved"
        )

    @property
    def pending_roles(self) -> list[str]:
        """Required roles without an approval yet, in stable order."""
        if self.status != EscalationStatus.PENDING_APPROVAL.value:
            return []
        return sorted(self.required_roles - self.approved_roles)


class ApprovalDecision(Base):
    """One approver's decision on an escalation. Never updated once written."""

    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint(
            "escalation_request_id", "approver_id", name="uq_decision_escalation_approver"
        ),
        UniqueConstraint(
            "escalation_request_id", "approver_role", name="uq_decision_escalation_role"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    escalation_request_id: Mapped[int] = mapped_column(
        ForeignKey("escalation_requests.id", ondelete="CASCADE"), nullable=False
    )
    approver_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    approver_role: Mapped[str] = mapped_column(String(30), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    decision_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decision_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    escalation: Mapped[EscalationRequest] = relationship(back_populates="decisions")

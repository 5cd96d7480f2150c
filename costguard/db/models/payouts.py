"""SQLAlchemy ORM models for delivery agents, orders and their payouts."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from costguard.db.base import Base
from costguard.db.enums import PayoutStatus
from costguard.db.models.auth import User
from costguard.utils.datetime_utils import utcnow


class DeliveryAgent(Base):
    __tablename__ = "delivery_agents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    da_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    zone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    eligible_for_next_payout: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assigned_da_id: Mapped[int | None] = mapped_column(
        ForeignKey("delivery_agents.id", ondelete="SET NULL"), nullable=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    delivery_agent: Mapped[DeliveryAgent | None] = relationship()


class Payout(Base):
    """
    Delivery-agent payout for one order.

    Approved, rejected and auto_reverted are terminal; only an explicit
    unlock moves a payout out of them. All status changes go through
    compare-and-swap updates in payout_service.
    """

    __tablename__ = "payouts"
    __table_args__ = (
        Index("idx_payouts_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    delivery_agent_id: Mapped[int] = mapped_column(
        ForeignKey("delivery_agents.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), default=PayoutStatus.PENDING.value, nullable=False
    )

    # Compliance evidence
    compliance_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    otp_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    photo_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pos_matched: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    flagged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)  # last human or sweep action
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_action_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    delivery_agent: Mapped[DeliveryAgent] = relationship()
    order: Mapped[Order | None] = relationship()
    last_actor: Mapped[User | None] = relationship(foreign_keys=[last_action_by])


class PayoutActionLog(Base):
    """Append-only history of every payout transition."""

    __tablename__ = "payout_action_logs"
    __table_args__ = (
        Index("idx_payout_actions_payout", "payout_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payout_id: Mapped[int] = mapped_column(
        ForeignKey("payouts.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    performed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True  # None for system sweeps
    )
    role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

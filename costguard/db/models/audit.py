"""SQLAlchemy ORM models."""

from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from costguard.db.base import Base
from costguard.utils.datetime_utils import utcnow


class SystemLog(Base):
    """
    Operational audit log.

    Receives threshold/escalation events, delivery-agent reminders and
    compliance escalations. Context holds ids and amounts only, never
    free-form customer data beyond the order number.
    """

    __tablename__ = "system_logs"
    __table_args__ = (
        Index("idx_system_logs_type_created", "type", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # SystemLogType
    message: Mapped[str] = mapped_column(Text, nullable=False)
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    level: Mapped[str] = mapped_column(String(20), default="info", nullable=False)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,  # System events have no actor
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

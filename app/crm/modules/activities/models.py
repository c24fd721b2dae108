from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.crm.models import Base, SoftDeleteMixin, TimestampMixin, User

if TYPE_CHECKING:
    from app.crm.modules.companies.models import Company

ACTIVITY_TYPES = ("visit", "phone", "email", "web_meeting", "other")


class ActivityLog(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "activity_logs"
    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('visit', 'phone', 'email', 'web_meeting', 'other')",
            name="ck_activity_logs_activity_type",
        ),
        Index("idx_activity_logs_company_id", "company_id"),
        Index("idx_activity_logs_user_id", "user_id"),
        Index("idx_activity_logs_activity_date", "activity_date"),
        Index("idx_activity_logs_next_action_date", "next_action_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)  # author

    activity_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Follow-up ("next action")
    next_action_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    next_action_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship(User, lazy="joined")
    company: Mapped["Company"] = relationship("Company", lazy="joined")

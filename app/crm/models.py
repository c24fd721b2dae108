from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, Query, mapped_column

from app.crm.utils import INT_MAX, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

ROLE_ADMIN = "admin"
ROLE_USER = "user"
VALID_ROLES = (ROLE_ADMIN, ROLE_USER)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)


class SoftDeleteMixin:
    """
    Logical deletion. A row with deleted_at set is absent from every user-facing query.

    live() is the default scope every service reads through; include_deleted=True is the
    escape hatch for internal joins that must still see removed rows.
    """

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True, index=True)

    @classmethod
    def not_deleted(cls):
        """The scope predicate itself, for joins and subqueries built outside live()."""
        return cls.deleted_at.is_(None)

    @classmethod
    def live(cls, s: "Session", *, include_deleted: bool = False) -> Query[Any]:
        q = s.query(cls)
        if include_deleted:
            return q
        return q.filter(cls.not_deleted())

    @classmethod
    def get_live(cls, s: "Session", obj_id: int | None):
        # Ids outside the column range cannot exist; the driver would reject them.
        if obj_id is None or not 0 < obj_id <= INT_MAX:
            return None
        return cls.live(s).filter(cls.id == obj_id).one_or_none()  # type: ignore[attr-defined]

    def soft_delete(self, when: datetime | None = None) -> None:
        self.deleted_at = when or utcnow()


class User(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name="ck_users_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_USER)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class UserSession(Base):
    """
    Server-side session record. The cookie only carries the opaque token;
    the token hash and the caller snapshot live here.
    """

    __tablename__ = "user_sessions"
    __table_args__ = (
        Index("idx_user_sessions_user_id", "user_id"),
        Index("idx_user_sessions_expires_at", "expires_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    # Snapshot taken at login; role changes apply on the next login.
    username: Mapped[str] = mapped_column(String(150), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.crm.modules.companies.models import Company  # noqa: E402,F401
from app.crm.modules.contacts.models import CompanyAssignment, Contact  # noqa: E402,F401
from app.crm.modules.activities.models import ActivityLog  # noqa: E402,F401

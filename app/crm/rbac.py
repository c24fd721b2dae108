from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any

from flask import g

from app.crm.errors import AuthenticationError, AuthorizationError
from app.crm.models import ROLE_ADMIN

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


@dataclass(frozen=True)
class Caller:
    """Identity of the authenticated caller, passed explicitly into services."""

    id: int
    username: str
    name: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


# ---------- Predicates ----------
# Read-only checks. A soft-deleted target counts as absent, so the predicate is False;
# callers resolve existence first when they need a distinct 404.


def is_assigned(s: "Session", user_id: int, company_id: int) -> bool:
    from app.crm.modules.companies.models import Company
    from app.crm.modules.contacts.models import CompanyAssignment

    row = (
        CompanyAssignment.live(s)
        .join(Company, Company.id == CompanyAssignment.company_id)
        .filter(
            CompanyAssignment.user_id == user_id,
            CompanyAssignment.company_id == company_id,
            Company.not_deleted(),
        )
        .first()
    )
    return row is not None


def can_edit_company(s: "Session", user_id: int, role: str, company_id: int) -> bool:
    if role == ROLE_ADMIN:
        return True
    return is_assigned(s, user_id, company_id)


def can_edit_activity(s: "Session", user_id: int, role: str, activity_id: int) -> bool:
    """Author-only for non-admins; company assignment does not matter."""
    from app.crm.modules.activities.models import ActivityLog

    if role == ROLE_ADMIN:
        return True
    activity = ActivityLog.get_live(s, activity_id)
    return activity is not None and activity.user_id == user_id


# ---------- Gates ----------


def current_caller() -> Caller:
    caller: Caller | None = getattr(g, "caller", None)
    if caller is None:
        raise AuthenticationError("Authentication required.")
    return caller


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_caller()
        return fn(*args, **kwargs)

    return wrapped


def admin_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        # Unauthenticated → 401, authenticated but not admin → 403
        caller = current_caller()
        if not caller.is_admin:
            g.missing_permission = "admin"
            raise AuthorizationError("Administrator privileges required.")
        return fn(*args, **kwargs)

    return wrapped

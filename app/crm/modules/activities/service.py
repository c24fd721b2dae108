from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.crm.errors import AuthorizationError, NotFoundError, ValidationError
from app.crm.modules.activities.models import ACTIVITY_TYPES, ActivityLog
from app.crm.modules.companies.models import Company
from app.crm.modules.contacts.models import CompanyAssignment
from app.crm.rbac import can_edit_activity, is_assigned
from app.crm.utils import clean_str, iso, paginate, parse_datetime, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.rbac import Caller

logger = logging.getLogger(__name__)

DEFAULT_NEXT_ACTION_DAYS = 7
MAX_NEXT_ACTION_DAYS = 3650


def serialize_activity(a: ActivityLog) -> dict:
    return {
        "id": a.id,
        "company_id": a.company_id,
        "company_name": a.company.name if a.company else None,
        "user_id": a.user_id,
        "user_name": a.user.name if a.user else None,
        "activity_date": iso(a.activity_date),
        "activity_type": a.activity_type,
        "content": a.content,
        "next_action_date": iso(a.next_action_date),
        "next_action_content": a.next_action_content,
        "created_at": iso(a.created_at),
        "updated_at": iso(a.updated_at),
    }


def _field(payload: dict, camel: str, snake: str) -> Any:
    # The browser client sends camelCase; accept snake_case too.
    if camel in payload:
        return payload.get(camel)
    return payload.get(snake)


def parse_activity_payload(payload: dict) -> dict:
    """Validate and normalize an activity payload; raises ValidationError."""
    errors = []
    activity_type = clean_str(_field(payload, "activityType", "activity_type"))
    content = clean_str(payload.get("content"))

    activity_date = None
    next_action_date = None
    try:
        activity_date = parse_datetime(_field(payload, "activityDate", "activity_date"), "activityDate")
    except ValidationError as e:
        errors.append(e.message)
    try:
        next_action_date = parse_datetime(_field(payload, "nextActionDate", "next_action_date"), "nextActionDate")
    except ValidationError as e:
        errors.append(e.message)

    if activity_date is None and not errors:
        errors.append("activityDate is required.")
    if not activity_type:
        errors.append("activityType is required.")
    elif activity_type not in ACTIVITY_TYPES:
        errors.append(f"Invalid activityType. Must be one of: {', '.join(ACTIVITY_TYPES)}")
    if not content:
        errors.append("content is required.")
    if errors:
        raise ValidationError(" ".join(errors))

    return {
        "activity_date": activity_date,
        "activity_type": activity_type,
        "content": content,
        "next_action_date": next_action_date,
        "next_action_content": clean_str(_field(payload, "nextActionContent", "next_action_content")),
    }


def _assigned_company_ids(user_id: int):
    return select(CompanyAssignment.company_id).where(
        CompanyAssignment.user_id == user_id,
        CompanyAssignment.not_deleted(),
    )


def _day_start(d: date) -> datetime:
    return datetime(d.year, d.month, d.day)


# ---------- Queries ----------


def get_activity(s: "Session", activity_id: int) -> ActivityLog:
    activity = ActivityLog.get_live(s, activity_id)
    # Activities of a deleted company stay in place but are hidden.
    if activity is None or Company.get_live(s, activity.company_id) is None:
        raise NotFoundError("Activity not found.")
    return activity


def list_company_activities(
    s: "Session",
    caller: "Caller",
    company_id: int,
    *,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[ActivityLog], dict]:
    """Newest first. Non-admins only see companies they are assigned to."""
    from app.crm.modules.companies.service import get_company

    company = get_company(s, company_id)
    q = ActivityLog.live(s).filter(ActivityLog.company_id == company.id)
    if not caller.is_admin:
        q = q.filter(ActivityLog.company_id.in_(_assigned_company_ids(caller.id)))
    q = q.order_by(ActivityLog.activity_date.desc(), ActivityLog.created_at.desc(), ActivityLog.id.desc())
    return paginate(q, page, limit)


def list_next_actions(
    s: "Session",
    caller: "Caller",
    *,
    days: int = DEFAULT_NEXT_ACTION_DAYS,
    overdue: bool = False,
    today: date | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[ActivityLog], dict]:
    """
    Follow-ups due within [today, today + days] (whole days), or strictly before today
    when overdue is set. Soonest first.
    """
    if not 0 <= days <= MAX_NEXT_ACTION_DAYS:
        raise ValidationError(f"days must be between 0 and {MAX_NEXT_ACTION_DAYS}.")
    # Stored timestamps are naive UTC, so "today" is the UTC date.
    today = today or utcnow().date()
    start = _day_start(today)

    q = (
        ActivityLog.live(s)
        .join(Company, Company.id == ActivityLog.company_id)
        .filter(Company.not_deleted(), ActivityLog.next_action_date.isnot(None))
    )
    if not caller.is_admin:
        q = q.filter(ActivityLog.company_id.in_(_assigned_company_ids(caller.id)))

    if overdue:
        q = q.filter(ActivityLog.next_action_date < start)
    else:
        end = _day_start(today + timedelta(days=days + 1))
        q = q.filter(ActivityLog.next_action_date >= start, ActivityLog.next_action_date < end)

    q = q.order_by(ActivityLog.next_action_date.asc(), ActivityLog.id.asc())
    return paginate(q, page, limit)


# ---------- Mutations ----------


def create_activity(s: "Session", caller: "Caller", company_id: Any, payload: dict) -> ActivityLog:
    cid = parse_int(company_id, "companyId")
    if cid is None:
        raise ValidationError("companyId is required.")
    fields = parse_activity_payload(payload)

    company = Company.get_live(s, cid)
    if company is None:
        raise NotFoundError("Company not found.")
    if not caller.is_admin and not is_assigned(s, caller.id, company.id):
        raise AuthorizationError("You can only log activities for companies assigned to you.")

    now = utcnow()
    activity = ActivityLog(company_id=company.id, user_id=caller.id, created_at=now, updated_at=now, **fields)
    s.add(activity)
    s.flush()
    logger.info("Activity %s (%s) logged on company %s by user %s", activity.id, activity.activity_type, company.id, caller.id)
    return activity


def update_activity(s: "Session", caller: "Caller", activity_id: int, payload: dict) -> ActivityLog:
    activity = get_activity(s, activity_id)
    if not can_edit_activity(s, caller.id, caller.role, activity.id):
        raise AuthorizationError("You do not have permission to edit this activity.")

    fields = parse_activity_payload(payload)
    for key, value in fields.items():
        setattr(activity, key, value)
    activity.updated_at = utcnow()
    return activity


def delete_activity(s: "Session", caller: "Caller", activity_id: int) -> ActivityLog:
    activity = get_activity(s, activity_id)
    if not can_edit_activity(s, caller.id, caller.role, activity.id):
        raise AuthorizationError("You do not have permission to delete this activity.")
    activity.soft_delete()
    logger.info("Activity %s soft-deleted by user %s", activity.id, caller.id)
    return activity

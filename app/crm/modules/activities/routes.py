from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.crm.db import db_session
from app.crm.modules.activities.service import (
    DEFAULT_NEXT_ACTION_DAYS,
    create_activity,
    delete_activity,
    get_activity,
    list_company_activities,
    list_next_actions,
    serialize_activity,
    update_activity,
)
from app.crm.rbac import current_caller, login_required
from app.crm.utils import parse_bool, parse_int, parse_pagination

bp = Blueprint("activities", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.get("/next-actions")
@login_required
def next_actions():
    s = db_session()
    page, limit = parse_pagination(request.args, default_limit=50)
    days = parse_int(request.args.get("days"), "days")
    overdue = parse_bool(request.args.get("overdue"))
    activities, pagination = list_next_actions(
        s,
        current_caller(),
        days=DEFAULT_NEXT_ACTION_DAYS if days is None else days,
        overdue=overdue,
        page=page,
        limit=limit,
    )
    return jsonify({"items": [serialize_activity(a) for a in activities], "pagination": pagination})


@bp.get("/company/<int:company_id>")
@login_required
def company_activities(company_id: int):
    s = db_session()
    page, limit = parse_pagination(request.args, default_limit=50)
    activities, pagination = list_company_activities(s, current_caller(), company_id, page=page, limit=limit)
    return jsonify({"items": [serialize_activity(a) for a in activities], "pagination": pagination})


@bp.post("/company/<int:company_id>")
@login_required
def company_activity_create(company_id: int):
    s = db_session()
    activity = create_activity(s, current_caller(), company_id, _payload())
    s.commit()
    return jsonify({"message": "Activity created.", "id": activity.id}), 201


@bp.post("")
@login_required
def activity_create():
    payload = _payload()
    s = db_session()
    activity = create_activity(s, current_caller(), payload.get("companyId", payload.get("company_id")), payload)
    s.commit()
    return jsonify({"message": "Activity created.", "id": activity.id}), 201


@bp.get("/<int:activity_id>")
@login_required
def activity_detail(activity_id: int):
    s = db_session()
    return jsonify({"activity": serialize_activity(get_activity(s, activity_id))})


@bp.put("/<int:activity_id>")
@login_required
def activity_update(activity_id: int):
    s = db_session()
    update_activity(s, current_caller(), activity_id, _payload())
    s.commit()
    return jsonify({"message": "Activity updated."})


@bp.delete("/<int:activity_id>")
@login_required
def activity_delete(activity_id: int):
    s = db_session()
    delete_activity(s, current_caller(), activity_id)
    s.commit()
    return jsonify({"message": "Activity deleted."})

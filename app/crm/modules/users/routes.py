from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.crm.db import db_session
from app.crm.modules.users.service import (
    change_password,
    create_user,
    delete_user,
    get_user,
    list_users,
    serialize_user,
    update_user,
)
from app.crm.rbac import admin_required, current_caller, login_required
from app.crm.utils import parse_bool, parse_pagination

bp = Blueprint("users", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.get("")
@login_required
def users_list():
    s = db_session()
    page, limit = parse_pagination(request.args, default_limit=50)
    users, pagination = list_users(
        s,
        active_only=parse_bool(request.args.get("active_only")),
        page=page,
        limit=limit,
    )
    return jsonify({"items": [serialize_user(u) for u in users], "pagination": pagination})


@bp.post("")
@admin_required
def users_create():
    s = db_session()
    user = create_user(s, current_caller(), _payload())
    s.commit()
    return jsonify({"message": "User created.", "id": user.id}), 201


@bp.get("/<int:user_id>")
@login_required
def user_detail(user_id: int):
    s = db_session()
    return jsonify({"user": serialize_user(get_user(s, user_id))})


@bp.put("/<int:user_id>")
@login_required
def user_update(user_id: int):
    s = db_session()
    update_user(s, current_caller(), user_id, _payload())
    s.commit()
    return jsonify({"message": "User updated."})


@bp.post("/<int:user_id>/change-password")
@login_required
def user_change_password(user_id: int):
    s = db_session()
    change_password(s, current_caller(), user_id, _payload())
    s.commit()
    return jsonify({"message": "Password changed."})


@bp.delete("/<int:user_id>")
@admin_required
def user_delete(user_id: int):
    s = db_session()
    delete_user(s, current_caller(), user_id)
    s.commit()
    return jsonify({"message": "User deleted."})

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request, session

from app.crm.db import db_session
from app.crm.errors import AuthenticationError, ValidationError
from app.crm.models import User
from app.crm.modules.users.service import authenticate, get_user, serialize_user
from app.crm.rbac import current_caller, login_required
from app.crm.security import ensure_csrf_token
from app.crm.sessions import (
    caller_from_session,
    create_session,
    destroy_session,
    get_active_session,
    purge_expired_sessions,
    touch_session,
)

bp = Blueprint("auth", __name__)
logger = logging.getLogger(__name__)


def _lifetime() -> timedelta:
    return timedelta(hours=int(current_app.config.get("SESSION_LIFETIME_HOURS", 24)))


def load_current_user() -> None:
    """
    Loads g.caller from the server-side session named by the cookie token.
    Also assigns a simple per-request request_id (for log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.caller = None
    if request.path.startswith(("/health", "/healthz")):
        return

    token = session.get("sid")
    if not token:
        return

    s = db_session()
    record = get_active_session(s, token)
    if record is None:
        session.pop("sid", None)
        return

    # Deactivated or deleted accounts lose their sessions immediately.
    user = User.get_live(s, record.user_id)
    if user is None or not user.is_active:
        destroy_session(s, token)
        s.commit()
        session.pop("sid", None)
        return

    touch_session(record, lifetime=_lifetime())
    s.commit()
    g.caller = caller_from_session(record)


@bp.post("/login")
def login():
    data = request.get_json(silent=True)
    payload = data if isinstance(data, dict) else {}
    username = payload.get("username")
    password = payload.get("password")
    # Matched exactly as stored; no trimming.
    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        raise ValidationError("Username and password are required.")

    s = db_session()
    try:
        user = authenticate(s, username, password)
    except AuthenticationError:
        logger.warning("Login failed (username=%s request_id=%s)", username, getattr(g, "request_id", None))
        raise

    purge_expired_sessions(s)
    old_token = session.get("sid")
    if old_token:
        destroy_session(s, old_token)
    token, _record = create_session(s, user, lifetime=_lifetime())
    s.commit()

    # Fresh cookie state on privilege change.
    session.clear()
    session.permanent = True
    session["sid"] = token
    csrf_token = ensure_csrf_token()
    logger.info("Login ok (user_id=%s request_id=%s)", user.id, getattr(g, "request_id", None))
    return jsonify({"message": "Logged in.", "user": serialize_user(user), "csrf_token": csrf_token})


@bp.post("/logout")
@login_required
def logout():
    s = db_session()
    destroy_session(s, session.get("sid"))
    s.commit()
    session.clear()
    return jsonify({"message": "Logged out."})


@bp.get("/me")
@login_required
def me():
    s = db_session()
    user = get_user(s, current_caller().id)
    return jsonify({"user": serialize_user(user), "csrf_token": ensure_csrf_token()})

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from werkzeug.security import check_password_hash, generate_password_hash

from app.crm.errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.crm.models import ROLE_USER, VALID_ROLES, User
from app.crm.utils import clean_str, iso, paginate, parse_bool, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.rbac import Caller

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
INVALID_CREDENTIALS = "Invalid username or password."

_dummy_hash: str | None = None


def _timing_dummy_hash() -> str:
    # Checked against when the username is unknown so both paths cost one hash verification.
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = generate_password_hash("not-a-real-password")
    return _dummy_hash


def serialize_user(u: User) -> dict:
    """Public view of a user. The password hash never leaves the service."""
    return {
        "id": u.id,
        "username": u.username,
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "is_active": u.is_active,
        "created_at": iso(u.created_at),
        "updated_at": iso(u.updated_at),
    }


def _password_errors(password: Any) -> list[str]:
    if not password:
        return ["Password is required."]
    if not isinstance(password, str):
        return ["Password must be a string."]
    if len(password) < MIN_PASSWORD_LENGTH:
        return [f"Password must be at least {MIN_PASSWORD_LENGTH} characters."]
    return []


def validate_new_user_payload(payload: dict) -> list[str]:
    errors = []
    if not clean_str(payload.get("username")):
        errors.append("Username is required.")
    errors.extend(_password_errors(payload.get("password") or ""))
    if not clean_str(payload.get("name")):
        errors.append("Name is required.")
    role = clean_str(payload.get("role"))
    if role and role not in VALID_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    return errors


# ---------- Authentication ----------


def authenticate(s: "Session", username: str, password: str) -> User:
    """
    Resolve credentials to a live, active user.
    Unknown user, inactive/deleted user and wrong password all raise the same error.
    """
    user = User.live(s).filter(User.username == username).one_or_none()
    if user is None or not user.is_active:
        check_password_hash(_timing_dummy_hash(), password)
        raise AuthenticationError(INVALID_CREDENTIALS)
    if not check_password_hash(user.password_hash, password):
        raise AuthenticationError(INVALID_CREDENTIALS)
    return user


# ---------- Queries ----------


def list_users(s: "Session", *, active_only: bool = False, page: int = 1, limit: int = 50) -> tuple[list[User], dict]:
    q = User.live(s)
    if active_only:
        q = q.filter(User.is_active.is_(True))
    q = q.order_by(User.created_at.desc(), User.id.desc())
    return paginate(q, page, limit)


def get_user(s: "Session", user_id: int) -> User:
    user = User.get_live(s, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


# ---------- Mutations ----------


def create_user(s: "Session", caller: "Caller", payload: dict) -> User:
    if not caller.is_admin:
        raise AuthorizationError("Administrator privileges required.")

    errors = validate_new_user_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    username = clean_str(payload.get("username"))
    # Includes soft-deleted rows: the column is unique.
    if s.query(User.id).filter(User.username == username).first() is not None:
        raise ConflictError("Username is already taken.")

    now = utcnow()
    user = User(
        username=username,
        password_hash=generate_password_hash(payload["password"]),
        name=clean_str(payload.get("name")),
        email=clean_str(payload.get("email")),
        role=clean_str(payload.get("role")) or ROLE_USER,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    logger.info("User %s (%s) created by %s", user.id, user.username, caller.id)
    return user


def update_own_profile(s: "Session", caller: "Caller", payload: dict) -> User:
    """Self-service update: name and email only. Role and active flag are kept."""
    user = get_user(s, caller.id)
    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError("Name is required.")
    user.name = name
    user.email = clean_str(payload.get("email"))
    user.updated_at = utcnow()
    return user


def admin_update_user(s: "Session", caller: "Caller", user_id: int, payload: dict) -> User:
    """Admin update: profile plus role/active. Omitted role/is_active keep their prior value."""
    if not caller.is_admin:
        raise AuthorizationError("Administrator privileges required.")
    user = get_user(s, user_id)

    name = clean_str(payload.get("name"))
    if not name:
        raise ValidationError("Name is required.")

    role = clean_str(payload.get("role"))
    if role is not None and role not in VALID_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    new_role = role or user.role
    new_active = parse_bool(payload["is_active"]) if payload.get("is_active") is not None else user.is_active

    if user.id == caller.id and (new_role != user.role or not new_active):
        raise ValidationError("You cannot demote or deactivate your own account.")

    user.name = name
    user.email = clean_str(payload.get("email"))
    user.role = new_role
    user.is_active = new_active
    user.updated_at = utcnow()
    return user


def update_user(s: "Session", caller: "Caller", user_id: int, payload: dict[str, Any]) -> User:
    """Pick the update variant by caller role."""
    if caller.is_admin:
        return admin_update_user(s, caller, user_id, payload)
    if user_id != caller.id:
        raise AuthorizationError("You may only update your own profile.")
    return update_own_profile(s, caller, payload)


def change_password(s: "Session", caller: "Caller", user_id: int, payload: dict) -> User:
    if not caller.is_admin and user_id != caller.id:
        raise AuthorizationError("You may only change your own password.")

    new_password = payload.get("newPassword") or ""
    errors = _password_errors(new_password)
    if errors:
        raise ValidationError(" ".join(errors))

    user = get_user(s, user_id)
    if not caller.is_admin:
        current = payload.get("currentPassword")
        if not current:
            raise ValidationError("Current password is required.")
        if not isinstance(current, str):
            raise ValidationError("Current password must be a string.")
        if not check_password_hash(user.password_hash, current):
            raise AuthenticationError("Current password is incorrect.")

    user.password_hash = generate_password_hash(new_password)
    user.updated_at = utcnow()
    logger.info("Password changed for user %s by %s", user.id, caller.id)
    return user


def delete_user(s: "Session", caller: "Caller", user_id: int) -> User:
    from app.crm.sessions import destroy_user_sessions

    if not caller.is_admin:
        raise AuthorizationError("Administrator privileges required.")
    if user_id == caller.id:
        raise ValidationError("You cannot delete your own account.")
    user = get_user(s, user_id)
    user.soft_delete()
    destroy_user_sessions(s, user.id)
    logger.info("User %s soft-deleted by %s", user.id, caller.id)
    return user

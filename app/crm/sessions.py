"""Server-side session store: opaque cookie token -> user_sessions row."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from app.crm.models import User, UserSession
from app.crm.rbac import Caller
from app.crm.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME = timedelta(hours=24)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def create_session(
    s: "Session",
    user: User,
    *,
    lifetime: timedelta = DEFAULT_LIFETIME,
    now: datetime | None = None,
) -> tuple[str, UserSession]:
    """Persist a session for user; returns the raw token (store it in the cookie only)."""
    now = now or utcnow()
    token = secrets.token_urlsafe(32)
    record = UserSession(
        token_hash=hash_token(token),
        user_id=user.id,
        username=user.username,
        name=user.name,
        role=user.role,
        created_at=now,
        last_seen_at=now,
        expires_at=now + lifetime,
    )
    s.add(record)
    s.flush()
    logger.info("Created session for user %s", user.id)
    return token, record


def get_active_session(s: "Session", token: str | None, *, now: datetime | None = None) -> UserSession | None:
    """Returns None when the token is unknown or the session has expired."""
    if not token:
        return None
    now = now or utcnow()
    return (
        s.query(UserSession)
        .filter(UserSession.token_hash == hash_token(token), UserSession.expires_at > now)
        .one_or_none()
    )


def touch_session(
    record: UserSession,
    *,
    lifetime: timedelta = DEFAULT_LIFETIME,
    now: datetime | None = None,
) -> None:
    # Sliding window: every authenticated request pushes expiry out again.
    now = now or utcnow()
    record.last_seen_at = now
    record.expires_at = now + lifetime


def destroy_session(s: "Session", token: str | None) -> bool:
    if not token:
        return False
    deleted = s.query(UserSession).filter(UserSession.token_hash == hash_token(token)).delete(synchronize_session=False)
    return bool(deleted)


def destroy_user_sessions(s: "Session", user_id: int) -> int:
    return s.query(UserSession).filter(UserSession.user_id == user_id).delete(synchronize_session=False)


def purge_expired_sessions(s: "Session", *, now: datetime | None = None) -> int:
    now = now or utcnow()
    n = s.query(UserSession).filter(UserSession.expires_at <= now).delete(synchronize_session=False)
    if n:
        logger.info("Purged %s expired sessions", n)
    return n


def caller_from_session(record: UserSession) -> Caller:
    return Caller(id=record.user_id, username=record.username, name=record.name, role=record.role)

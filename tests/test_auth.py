"""Tests for login, the server-side session store, and session expiry."""
from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.models import Base, User, UserSession
from app.crm.sessions import (
    create_session,
    get_active_session,
    hash_token,
    purge_expired_sessions,
    touch_session,
)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add_all(
            [
                User(username="admin", password_hash=generate_password_hash("adminpass"), name="Admin", role="admin"),
                User(username="alice", password_hash=generate_password_hash("alicepass"), name="Alice", role="user"),
                User(
                    username="idle",
                    password_hash=generate_password_hash("idlepass"),
                    name="Idle",
                    role="user",
                    is_active=False,
                ),
                User(
                    username="gone",
                    password_hash=generate_password_hash("gonepass"),
                    name="Gone",
                    role="user",
                    deleted_at=datetime(2024, 1, 1),
                ),
            ]
        )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, username, password):
    r = client.post("/auth/login", json={"username": username, "password": password})
    if r.status_code == 200:
        client.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
    return r


def test_login_success_returns_user_and_token(client):
    r = _login(client, "alice", "alicepass")
    assert r.status_code == 200
    assert r.json["user"]["username"] == "alice"
    assert r.json["csrf_token"]


def test_login_failures_are_indistinguishable(client):
    attempts = [
        ("alice", "wrong-password"),
        ("Alice", "alicepass"),  # usernames are case-sensitive
        ("idle", "idlepass"),
        ("gone", "gonepass"),
        ("nobody", "whatever1"),
    ]
    bodies = set()
    for username, password in attempts:
        r = _login(client, username, password)
        assert r.status_code == 401, username
        bodies.add(r.json["error"])
    assert len(bodies) == 1


def test_login_requires_both_fields(client):
    r = client.post("/auth/login", json={"username": "alice"})
    assert r.status_code == 400

    for body in ([], ["alice", "alicepass"], "alice", {"username": "alice", "password": 12345678}, {"username": ["alice"], "password": "alicepass"}):
        r = client.post("/auth/login", json=body)
        assert r.status_code == 400, body
        assert "error" in r.json


def test_login_username_is_not_trimmed(client):
    r = client.post("/auth/login", json={"username": " alice ", "password": "alicepass"})
    assert r.status_code == 401
    r = client.post("/auth/login", json={"username": "alice", "password": "alicepass"})
    assert r.status_code == 200


def test_login_stores_only_token_hash(app, client):
    _login(client, "alice", "alicepass")
    with session_scope(app) as s:
        rows = s.query(UserSession).all()
        assert len(rows) == 1
        assert len(rows[0].token_hash) == 64
        assert rows[0].username == "alice"
        assert rows[0].role == "user"


def test_logout_destroys_server_session(app, client):
    _login(client, "alice", "alicepass")
    r = client.post("/auth/logout")
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.query(UserSession).count() == 0


def test_deactivated_user_loses_session(app, client):
    _login(client, "alice", "alicepass")
    assert client.get("/auth/me").status_code == 200

    with session_scope(app) as s:
        s.query(User).filter(User.username == "alice").one().is_active = False

    assert client.get("/auth/me").status_code == 401


def test_deleted_user_session_destroyed(app):
    admin = app.test_client()
    alice = app.test_client()
    _login(admin, "admin", "adminpass")
    _login(alice, "alice", "alicepass")

    with session_scope(app) as s:
        alice_id = s.query(User.id).filter(User.username == "alice").scalar()

    r = admin.delete(f"/users/{alice_id}")
    assert r.status_code == 200
    assert alice.get("/auth/me").status_code == 401


def test_session_snapshot_keeps_role_until_next_login(app):
    admin = app.test_client()
    alice = app.test_client()
    _login(admin, "admin", "adminpass")
    _login(alice, "alice", "alicepass")

    with session_scope(app) as s:
        alice_id = s.query(User.id).filter(User.username == "alice").scalar()

    r = admin.put(f"/users/{alice_id}", json={"name": "Alice", "role": "admin"})
    assert r.status_code == 200

    # /auth/me reads the stored profile, but permissions follow the login snapshot.
    assert alice.get("/auth/me").json["user"]["role"] == "admin"
    assert alice.post("/users", json={"username": "x", "password": "longenough", "name": "X"}).status_code == 403

    _login(alice, "alice", "alicepass")
    r = alice.post("/users", json={"username": "x", "password": "longenough", "name": "X"})
    assert r.status_code == 201


def test_session_expiry_and_sliding_window(app):
    start = datetime(2025, 3, 1, 9, 0, 0)
    with session_scope(app) as s:
        user = s.query(User).filter(User.username == "alice").one()
        token, record = create_session(s, user, lifetime=timedelta(hours=24), now=start)
        assert record.token_hash == hash_token(token)

        assert get_active_session(s, token, now=start + timedelta(hours=23)) is not None
        assert get_active_session(s, token, now=start + timedelta(hours=24)) is None

        # Activity at hour 20 pushes expiry to hour 44.
        touch_session(record, lifetime=timedelta(hours=24), now=start + timedelta(hours=20))
        s.flush()
        assert get_active_session(s, token, now=start + timedelta(hours=30)) is not None
        assert get_active_session(s, token, now=start + timedelta(hours=45)) is None

        assert get_active_session(s, "not-a-token", now=start) is None
        assert get_active_session(s, None, now=start) is None


def test_purge_expired_sessions(app):
    start = datetime(2025, 3, 1, 9, 0, 0)
    with session_scope(app) as s:
        user = s.query(User).filter(User.username == "alice").one()
        create_session(s, user, lifetime=timedelta(hours=1), now=start)
        create_session(s, user, lifetime=timedelta(hours=48), now=start)

        assert purge_expired_sessions(s, now=start + timedelta(hours=2)) == 1
        assert s.query(UserSession).count() == 1


def test_expired_cookie_is_unauthorized(app, client):
    _login(client, "alice", "alicepass")
    with session_scope(app) as s:
        for row in s.query(UserSession).all():
            row.expires_at = datetime(2000, 1, 1)

    assert client.get("/auth/me").status_code == 401

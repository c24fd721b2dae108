"""Tests for user administration, self-service profile updates and password rotation."""
import pytest
from werkzeug.security import generate_password_hash

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.models import Base, User


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(User(username="admin", password_hash=generate_password_hash("adminpass"), name="Admin", role="admin"))
    return app


def _login(app, username, password):
    c = app.test_client()
    r = c.post("/auth/login", json={"username": username, "password": password})
    if r.status_code == 200:
        c.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["csrf_token"]
    return c, r


@pytest.fixture()
def admin(app):
    c, _ = _login(app, "admin", "adminpass")
    return c


def _create_user(admin, username, password="password1", **fields):
    payload = {"username": username, "password": password, "name": username.upper()}
    payload.update(fields)
    r = admin.post("/users", json=payload)
    assert r.status_code == 201, r.json
    return r.json["id"]


def test_admin_creates_user(app, admin):
    uid = _create_user(admin, "u1", email="u1@example.com")

    r = admin.get(f"/users/{uid}")
    assert r.status_code == 200
    assert r.json["user"]["role"] == "user"
    assert r.json["user"]["is_active"] is True
    assert "password_hash" not in r.json["user"]

    _, r = _login(app, "u1", "password1")
    assert r.status_code == 200


def test_create_validation_and_conflict(admin):
    _create_user(admin, "u1")

    r = admin.post("/users", json={"username": "u1", "password": "password1", "name": "Dup"})
    assert r.status_code == 409

    r = admin.post("/users", json={"username": "short", "password": "abc", "name": "Short"})
    assert r.status_code == 400

    r = admin.post("/users", json={"username": "num", "password": 123456789, "name": "Num"})
    assert r.status_code == 400

    r = admin.post("/users", json={"username": "boss", "password": "password1", "name": "Boss", "role": "owner"})
    assert r.status_code == 400

    r = admin.post("/users", json={"password": "password1", "name": "Anon"})
    assert r.status_code == 400


def test_deleted_username_stays_taken(admin):
    uid = _create_user(admin, "u1")
    assert admin.delete(f"/users/{uid}").status_code == 200

    r = admin.post("/users", json={"username": "u1", "password": "password1", "name": "Again"})
    assert r.status_code == 409


def test_non_admin_cannot_create_or_delete(app, admin):
    uid = _create_user(admin, "u1")
    u1, _ = _login(app, "u1", "password1")

    r = u1.post("/users", json={"username": "x", "password": "password1", "name": "X"})
    assert r.status_code == 403
    assert u1.delete(f"/users/{uid}").status_code == 403


def test_list_users(app, admin):
    _create_user(admin, "u1")
    uid2 = _create_user(admin, "u2")
    admin.put(f"/users/{uid2}", json={"name": "U2", "is_active": False})

    u1, _ = _login(app, "u1", "password1")
    r = u1.get("/users")
    assert r.status_code == 200
    assert {u["username"] for u in r.json["items"]} == {"admin", "u1", "u2"}

    r = u1.get("/users?active_only=true")
    assert {u["username"] for u in r.json["items"]} == {"admin", "u1"}


def test_self_update_keeps_role_and_active(app, admin):
    uid = _create_user(admin, "u1")
    u1, _ = _login(app, "u1", "password1")

    r = u1.put(f"/users/{uid}", json={"name": "New Name", "email": "new@example.com", "role": "admin", "is_active": False})
    assert r.status_code == 200

    user = admin.get(f"/users/{uid}").json["user"]
    assert user["name"] == "New Name"
    assert user["email"] == "new@example.com"
    assert user["role"] == "user"
    assert user["is_active"] is True


def test_non_admin_cannot_update_others(app, admin):
    _create_user(admin, "u1")
    uid2 = _create_user(admin, "u2")
    u1, _ = _login(app, "u1", "password1")

    assert u1.put(f"/users/{uid2}", json={"name": "Hacked"}).status_code == 403


def test_admin_updates_role_and_active(app, admin):
    uid = _create_user(admin, "u1")

    r = admin.put(f"/users/{uid}", json={"name": "U1", "role": "admin"})
    assert r.status_code == 200
    user = admin.get(f"/users/{uid}").json["user"]
    assert user["role"] == "admin"
    assert user["is_active"] is True

    r = admin.put(f"/users/{uid}", json={"name": "U1", "is_active": False})
    assert r.status_code == 200
    assert admin.get(f"/users/{uid}").json["user"]["is_active"] is False

    _, r = _login(app, "u1", "password1")
    assert r.status_code == 401

    assert admin.put(f"/users/{uid}", json={"name": "U1", "role": "root"}).status_code == 400
    assert admin.put("/users/9999", json={"name": "Ghost"}).status_code == 404


def test_admin_cannot_demote_or_delete_self(app, admin):
    me = admin.get("/auth/me").json["user"]["id"]

    assert admin.put(f"/users/{me}", json={"name": "Admin", "role": "user"}).status_code == 400
    assert admin.put(f"/users/{me}", json={"name": "Admin", "is_active": False}).status_code == 400
    assert admin.put(f"/users/{me}", json={"name": "Chief"}).status_code == 200
    assert admin.delete(f"/users/{me}").status_code == 400


def test_change_password_scenario(app, admin):
    uid = _create_user(admin, "u1", password="oldpassword")
    u1, _ = _login(app, "u1", "oldpassword")

    r = u1.post(f"/users/{uid}/change-password", json={"currentPassword": "wrongpassword", "newPassword": "newpassword"})
    assert r.status_code == 401
    _, r = _login(app, "u1", "oldpassword")
    assert r.status_code == 200

    r = u1.post(f"/users/{uid}/change-password", json={"currentPassword": "oldpassword", "newPassword": "newpassword"})
    assert r.status_code == 200

    _, r = _login(app, "u1", "oldpassword")
    assert r.status_code == 401
    _, r = _login(app, "u1", "newpassword")
    assert r.status_code == 200


def test_change_password_rules(app, admin):
    uid = _create_user(admin, "u1")
    uid2 = _create_user(admin, "u2")
    u1, _ = _login(app, "u1", "password1")

    r = u1.post(f"/users/{uid}/change-password", json={"newPassword": "newpassword"})
    assert r.status_code == 400

    r = u1.post(f"/users/{uid}/change-password", json={"currentPassword": "password1", "newPassword": "short"})
    assert r.status_code == 400

    r = u1.post(f"/users/{uid}/change-password", json={"currentPassword": "password1", "newPassword": 123456789})
    assert r.status_code == 400

    r = u1.post(f"/users/{uid}/change-password", json={"currentPassword": 12345678, "newPassword": "newpassword"})
    assert r.status_code == 400

    r = u1.post(f"/users/{uid2}/change-password", json={"currentPassword": "password1", "newPassword": "newpassword"})
    assert r.status_code == 403

    # Admin resets without knowing the current password.
    r = admin.post(f"/users/{uid2}/change-password", json={"newPassword": "resetpassword"})
    assert r.status_code == 200
    _, r = _login(app, "u2", "resetpassword")
    assert r.status_code == 200

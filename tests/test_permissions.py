"""Access-control predicates checked directly against the store."""
from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.crm import create_app
from app.crm.db import session_scope
from app.crm.models import Base, User
from app.crm.modules.activities.models import ActivityLog
from app.crm.modules.companies.models import Company
from app.crm.modules.contacts.models import CompanyAssignment
from app.crm.rbac import can_edit_activity, can_edit_company, is_assigned


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def world(app):
    """Two users, three companies; u1 assigned to A, u2 to B, nobody live on C."""
    with session_scope(app) as s:
        admin = User(username="admin", password_hash=generate_password_hash("x"), name="Admin", role="admin")
        u1 = User(username="u1", password_hash=generate_password_hash("x"), name="U1", role="user")
        u2 = User(username="u2", password_hash=generate_password_hash("x"), name="U2", role="user")
        a, b, c = Company(name="A"), Company(name="B"), Company(name="C")
        s.add_all([admin, u1, u2, a, b, c])
        s.flush()

        s.add_all(
            [
                CompanyAssignment(company_id=a.id, user_id=u1.id, is_primary=True),
                CompanyAssignment(company_id=b.id, user_id=u2.id, is_primary=True),
                CompanyAssignment(company_id=c.id, user_id=u1.id, deleted_at=datetime(2025, 1, 1)),
            ]
        )
        act = ActivityLog(
            company_id=a.id,
            user_id=u1.id,
            activity_date=datetime(2025, 1, 1),
            activity_type="visit",
            content="hello",
        )
        s.add(act)
        s.flush()
        return {
            "admin": admin.id,
            "u1": u1.id,
            "u2": u2.id,
            "A": a.id,
            "B": b.id,
            "C": c.id,
            "activity": act.id,
        }


def test_is_assigned_ignores_removed_assignments(app, world):
    with session_scope(app) as s:
        assert is_assigned(s, world["u1"], world["A"]) is True
        assert is_assigned(s, world["u1"], world["B"]) is False
        assert is_assigned(s, world["u1"], world["C"]) is False
        assert is_assigned(s, world["u1"], 9999) is False


def test_can_edit_company_matches_assignment_for_non_admins(app, world):
    with session_scope(app) as s:
        for uid in (world["u1"], world["u2"]):
            for cid in (world["A"], world["B"], world["C"]):
                assert can_edit_company(s, uid, "user", cid) == is_assigned(s, uid, cid)
                assert can_edit_company(s, uid, "admin", cid) is True


def test_deleted_company_is_not_assigned(app, world):
    with session_scope(app) as s:
        s.get(Company, world["A"]).soft_delete()
        s.flush()
        assert is_assigned(s, world["u1"], world["A"]) is False
        assert can_edit_company(s, world["u1"], "user", world["A"]) is False


def test_can_edit_activity_is_author_only(app, world):
    with session_scope(app) as s:
        aid = world["activity"]
        assert can_edit_activity(s, world["u1"], "user", aid) is True
        assert can_edit_activity(s, world["u2"], "user", aid) is False
        assert can_edit_activity(s, world["admin"], "admin", aid) is True
        assert can_edit_activity(s, world["u2"], "user", 9999) is False

        # Author rights do not depend on the company assignment.
        s.query(CompanyAssignment).filter(CompanyAssignment.user_id == world["u1"]).delete()
        s.flush()
        assert can_edit_activity(s, world["u1"], "user", aid) is True

        s.get(ActivityLog, aid).soft_delete()
        s.flush()
        assert can_edit_activity(s, world["u1"], "user", aid) is False


def test_live_scope_and_id_range(app, world):
    with session_scope(app) as s:
        assert {a.company_id for a in CompanyAssignment.live(s)} == {world["A"], world["B"]}
        assert s.query(CompanyAssignment).filter(CompanyAssignment.not_deleted()).count() == 2
        assert CompanyAssignment.live(s, include_deleted=True).count() == 3

        assert Company.get_live(s, world["A"]).name == "A"
        for bad in (None, 0, -1, 2**31, 10**20):
            assert Company.get_live(s, bad) is None

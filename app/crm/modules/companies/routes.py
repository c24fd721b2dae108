from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.crm.db import db_session
from app.crm.modules.companies.service import (
    assigned_user_names,
    create_company,
    delete_company,
    get_company_detail,
    list_companies,
    serialize_company,
    update_company,
)
from app.crm.modules.contacts.service import serialize_assignment, serialize_contact
from app.crm.rbac import admin_required, current_caller, login_required
from app.crm.utils import parse_pagination

bp = Blueprint("companies", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ---------- List ----------
@bp.get("")
@login_required
def companies_list():
    s = db_session()
    page, limit = parse_pagination(request.args, default_limit=20)
    search = (request.args.get("search") or request.args.get("q") or "").strip()

    companies, pagination = list_companies(s, search=search, page=page, limit=limit)
    names = assigned_user_names(s, [c.id for c in companies])

    items = []
    for c in companies:
        row = serialize_company(c)
        row["assigned_users"] = names.get(c.id, [])
        items.append(row)
    return jsonify({"items": items, "pagination": pagination})


# ---------- Create ----------
@bp.post("")
@login_required
def companies_create():
    s = db_session()
    company = create_company(s, current_caller(), _payload())
    s.commit()
    return jsonify({"message": "Company created.", "id": company.id}), 201


# ---------- Detail ----------
@bp.get("/<int:company_id>")
@login_required
def company_detail(company_id: int):
    s = db_session()
    company, contacts, assignments = get_company_detail(s, company_id)
    return jsonify(
        {
            "company": serialize_company(company),
            "contacts": [serialize_contact(c) for c in contacts],
            "assignments": [serialize_assignment(a) for a in assignments],
        }
    )


# ---------- Edit ----------
@bp.put("/<int:company_id>")
@login_required
def company_update(company_id: int):
    s = db_session()
    update_company(s, current_caller(), company_id, _payload())
    s.commit()
    return jsonify({"message": "Company updated."})


# ---------- Delete ----------
@bp.delete("/<int:company_id>")
@admin_required
def company_delete(company_id: int):
    s = db_session()
    delete_company(s, current_caller(), company_id)
    s.commit()
    return jsonify({"message": "Company deleted."})

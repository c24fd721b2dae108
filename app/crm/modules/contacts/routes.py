from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.crm.db import db_session
from app.crm.modules.contacts.service import (
    assign_user,
    create_contact,
    delete_contact,
    get_contact,
    list_contacts,
    serialize_contact,
    unassign_user,
    update_contact,
)
from app.crm.rbac import current_caller, login_required
from app.crm.utils import parse_pagination

bp = Blueprint("contacts", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.get("/company/<int:company_id>")
@login_required
def contacts_list(company_id: int):
    s = db_session()
    page, limit = parse_pagination(request.args, default_limit=50)
    contacts, pagination = list_contacts(s, company_id, page=page, limit=limit)
    return jsonify({"items": [serialize_contact(c) for c in contacts], "pagination": pagination})


@bp.post("/company/<int:company_id>")
@login_required
def contacts_create(company_id: int):
    s = db_session()
    contact = create_contact(s, current_caller(), company_id, _payload())
    s.commit()
    return jsonify({"message": "Contact created.", "id": contact.id}), 201


@bp.get("/<int:contact_id>")
@login_required
def contact_detail(contact_id: int):
    s = db_session()
    return jsonify({"contact": serialize_contact(get_contact(s, contact_id))})


@bp.put("/<int:contact_id>")
@login_required
def contact_update(contact_id: int):
    s = db_session()
    update_contact(s, current_caller(), contact_id, _payload())
    s.commit()
    return jsonify({"message": "Contact updated."})


@bp.delete("/<int:contact_id>")
@login_required
def contact_delete(contact_id: int):
    s = db_session()
    delete_contact(s, current_caller(), contact_id)
    s.commit()
    return jsonify({"message": "Contact deleted."})


# ---------- Staff assignments ----------
@bp.post("/company/<int:company_id>/assign")
@login_required
def company_assign(company_id: int):
    s = db_session()
    assignment = assign_user(s, current_caller(), company_id, _payload())
    s.commit()
    return jsonify({"message": "User assigned.", "id": assignment.id}), 201


@bp.delete("/assignment/<int:assignment_id>")
@login_required
def company_unassign(assignment_id: int):
    s = db_session()
    unassign_user(s, current_caller(), assignment_id)
    s.commit()
    return jsonify({"message": "Assignment removed."})

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.crm.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.crm.models import User
from app.crm.modules.contacts.models import CompanyAssignment, Contact
from app.crm.rbac import can_edit_company
from app.crm.utils import clean_str, iso, paginate, parse_bool, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.rbac import Caller

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name_kana", "department", "position", "phone", "mobile", "email", "notes")


def serialize_contact(c: Contact) -> dict:
    return {
        "id": c.id,
        "company_id": c.company_id,
        "name": c.name,
        "name_kana": c.name_kana,
        "department": c.department,
        "position": c.position,
        "phone": c.phone,
        "mobile": c.mobile,
        "email": c.email,
        "notes": c.notes,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def serialize_assignment(a: CompanyAssignment) -> dict:
    return {
        "id": a.id,
        "company_id": a.company_id,
        "user_id": a.user_id,
        "user_name": a.user.name if a.user else None,
        "user_email": a.user.email if a.user else None,
        "is_primary": a.is_primary,
        "assigned_at": iso(a.assigned_at),
        "notes": a.notes,
        "created_at": iso(a.created_at),
        "updated_at": iso(a.updated_at),
    }


def validate_contact_payload(payload: dict) -> list[str]:
    errors = []
    if not clean_str(payload.get("name")):
        errors.append("Contact name is required.")
    return errors


def _require_company(s: "Session", company_id: int):
    from app.crm.modules.companies.service import get_company

    return get_company(s, company_id)


def _require_company_edit(s: "Session", caller: "Caller", company_id: int, message: str) -> None:
    if not can_edit_company(s, caller.id, caller.role, company_id):
        raise AuthorizationError(message)


# ---------- Contacts ----------


def list_contacts(s: "Session", company_id: int, *, page: int = 1, limit: int = 50) -> tuple[list[Contact], dict]:
    company = _require_company(s, company_id)
    q = Contact.live(s).filter(Contact.company_id == company.id).order_by(Contact.id.asc())
    return paginate(q, page, limit)


def get_contact(s: "Session", contact_id: int) -> Contact:
    from app.crm.modules.companies.models import Company

    contact = Contact.get_live(s, contact_id)
    # Contacts of a deleted company stay in place but are hidden.
    if contact is None or Company.get_live(s, contact.company_id) is None:
        raise NotFoundError("Contact not found.")
    return contact


def create_contact(s: "Session", caller: "Caller", company_id: int, payload: dict) -> Contact:
    errors = validate_contact_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    company = _require_company(s, company_id)
    _require_company_edit(s, caller, company.id, "You do not have permission to add contacts to this company.")

    now = utcnow()
    contact = Contact(
        company_id=company.id,
        name=clean_str(payload.get("name")),
        created_at=now,
        updated_at=now,
    )
    for field in EDITABLE_FIELDS:
        setattr(contact, field, clean_str(payload.get(field)))
    s.add(contact)
    s.flush()
    logger.info("Contact %s created on company %s by user %s", contact.id, company.id, caller.id)
    return contact


def update_contact(s: "Session", caller: "Caller", contact_id: int, payload: dict) -> Contact:
    contact = get_contact(s, contact_id)
    _require_company_edit(s, caller, contact.company_id, "You do not have permission to edit this contact.")

    errors = validate_contact_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    # company_id is fixed at creation; a supplied value is ignored.
    contact.name = clean_str(payload.get("name"))
    for field in EDITABLE_FIELDS:
        setattr(contact, field, clean_str(payload.get(field)))
    contact.updated_at = utcnow()
    return contact


def delete_contact(s: "Session", caller: "Caller", contact_id: int) -> Contact:
    contact = get_contact(s, contact_id)
    _require_company_edit(s, caller, contact.company_id, "You do not have permission to delete this contact.")
    contact.soft_delete()
    logger.info("Contact %s soft-deleted by user %s", contact.id, caller.id)
    return contact


# ---------- Staff assignments ----------


def assign_user(s: "Session", caller: "Caller", company_id: int, payload: dict) -> CompanyAssignment:
    user_id = parse_int(payload.get("userId", payload.get("user_id")), "userId")
    if user_id is None:
        raise ValidationError("userId is required.")

    company = _require_company(s, company_id)
    _require_company_edit(s, caller, company.id, "You do not have permission to assign staff to this company.")

    user = User.get_live(s, user_id)
    if user is None or not user.is_active:
        raise NotFoundError("User not found.")

    existing = (
        CompanyAssignment.live(s)
        .filter(CompanyAssignment.company_id == company.id, CompanyAssignment.user_id == user.id)
        .first()
    )
    if existing is not None:
        raise ConflictError("This user is already assigned to the company.")

    now = utcnow()
    assignment = CompanyAssignment(
        company_id=company.id,
        user_id=user.id,
        is_primary=parse_bool(payload.get("isPrimary", payload.get("is_primary"))),
        notes=clean_str(payload.get("notes")),
        assigned_at=now,
        created_at=now,
        updated_at=now,
    )
    s.add(assignment)
    s.flush()
    logger.info("User %s assigned to company %s by user %s", user.id, company.id, caller.id)
    return assignment


def unassign_user(s: "Session", caller: "Caller", assignment_id: int) -> CompanyAssignment:
    assignment = CompanyAssignment.get_live(s, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found.")
    _require_company_edit(s, caller, assignment.company_id, "You do not have permission to change this company's staff.")

    assignment.soft_delete()
    assignment.updated_at = utcnow()
    logger.info("Assignment %s (company %s) removed by user %s", assignment.id, assignment.company_id, caller.id)
    return assignment

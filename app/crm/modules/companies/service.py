from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import or_

from app.crm.errors import AuthorizationError, NotFoundError, ValidationError
from app.crm.models import User
from app.crm.modules.companies.models import Company
from app.crm.modules.contacts.models import CompanyAssignment, Contact
from app.crm.rbac import can_edit_company
from app.crm.utils import BIGINT_MAX, INT_MAX, clean_str, iso, paginate, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.rbac import Caller

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "name_kana",
    "postal_code",
    "address",
    "phone",
    "fax",
    "email",
    "website",
    "industry",
    "notes",
)

# capital is a BigInteger column; employee_count is a plain Integer.
INT_FIELDS = {"employee_count": INT_MAX, "capital": BIGINT_MAX}


def serialize_company(c: Company) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "name_kana": c.name_kana,
        "postal_code": c.postal_code,
        "address": c.address,
        "phone": c.phone,
        "fax": c.fax,
        "email": c.email,
        "website": c.website,
        "industry": c.industry,
        "employee_count": c.employee_count,
        "capital": c.capital,
        "notes": c.notes,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def validate_company_payload(payload: dict) -> list[str]:
    """Validate company creation/update payload. Returns list of errors."""
    errors = []
    if not clean_str(payload.get("name")):
        errors.append("Company name is required.")
    for field, max_abs in INT_FIELDS.items():
        try:
            value = parse_int(payload.get(field), field, max_abs=max_abs)
        except ValidationError as e:
            errors.append(e.message)
            continue
        if value is not None and value < 0:
            errors.append(f"{field} must not be negative.")
    return errors


def _apply_payload(company: Company, payload: dict) -> None:
    # Full overwrite: omitted optional fields become NULL.
    company.name = clean_str(payload.get("name"))
    for field in TEXT_FIELDS:
        setattr(company, field, clean_str(payload.get(field)))
    for field, max_abs in INT_FIELDS.items():
        setattr(company, field, parse_int(payload.get(field), field, max_abs=max_abs))


def get_company(s: "Session", company_id: int) -> Company:
    company = Company.get_live(s, company_id)
    if company is None:
        raise NotFoundError("Company not found.")
    return company


def list_companies(s: "Session", *, search: str | None = None, page: int = 1, limit: int = 20) -> tuple[list[Company], dict]:
    q = Company.live(s)
    search = clean_str(search)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Company.name.ilike(like),
                Company.name_kana.ilike(like),
                Company.address.ilike(like),
            )
        )
    q = q.order_by(Company.updated_at.desc(), Company.id.desc())
    return paginate(q, page, limit)


def assigned_user_names(s: "Session", company_ids: list[int]) -> dict[int, list[str]]:
    """Names of live assignees with live accounts, keyed by company id."""
    out: dict[int, list[str]] = {cid: [] for cid in company_ids}
    if not company_ids:
        return out
    rows = (
        s.query(CompanyAssignment.company_id, User.name)
        .join(User, User.id == CompanyAssignment.user_id)
        .filter(
            CompanyAssignment.company_id.in_(company_ids),
            CompanyAssignment.not_deleted(),
            User.not_deleted(),
        )
        .order_by(CompanyAssignment.is_primary.desc(), CompanyAssignment.assigned_at.desc())
        .all()
    )
    for company_id, name in rows:
        if name not in out[company_id]:
            out[company_id].append(name)
    return out


def list_company_assignments(s: "Session", company_id: int) -> list[CompanyAssignment]:
    """Primary first, then most recently assigned."""
    return (
        CompanyAssignment.live(s)
        .filter(CompanyAssignment.company_id == company_id)
        .order_by(
            CompanyAssignment.is_primary.desc(),
            CompanyAssignment.assigned_at.desc(),
            CompanyAssignment.id.desc(),
        )
        .all()
    )


def get_company_detail(s: "Session", company_id: int) -> tuple[Company, list[Contact], list[CompanyAssignment]]:
    company = get_company(s, company_id)
    contacts = Contact.live(s).filter(Contact.company_id == company.id).order_by(Contact.id.asc()).all()
    assignments = list_company_assignments(s, company.id)
    return company, contacts, assignments


def create_company(s: "Session", caller: "Caller", payload: dict) -> Company:
    """
    Create a company and assign the creator as its primary owner.
    Both rows go out in the caller's single commit.
    """
    errors = validate_company_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    now = utcnow()
    company = Company(created_at=now, updated_at=now)
    _apply_payload(company, payload)
    s.add(company)
    s.flush()

    s.add(
        CompanyAssignment(
            company_id=company.id,
            user_id=caller.id,
            is_primary=True,
            assigned_at=now,
            created_at=now,
            updated_at=now,
        )
    )
    s.flush()
    logger.info("Company %s created by user %s", company.id, caller.id)
    return company


def update_company(s: "Session", caller: "Caller", company_id: int, payload: dict) -> Company:
    company = get_company(s, company_id)
    if not can_edit_company(s, caller.id, caller.role, company.id):
        raise AuthorizationError("You do not have permission to edit this company.")

    errors = validate_company_payload(payload)
    if errors:
        raise ValidationError(" ".join(errors))

    _apply_payload(company, payload)
    company.updated_at = utcnow()
    return company


def delete_company(s: "Session", caller: "Caller", company_id: int) -> Company:
    """
    Logical delete, admin only.
    Contacts, assignments and activities of the company are left as they are.
    """
    if not caller.is_admin:
        raise AuthorizationError("Only administrators can delete companies.")
    company = get_company(s, company_id)
    company.soft_delete()
    logger.info("Company %s soft-deleted by user %s", company.id, caller.id)
    return company

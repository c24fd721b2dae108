from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any

from app.crm.errors import ValidationError

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

# Column ranges: Integer ids/counts are 32-bit on Postgres, BigInteger is 64-bit.
INT_MAX = 2**31 - 1
BIGINT_MAX = 2**63 - 1


def utcnow() -> datetime:
    # Naive UTC, matching the DateTime(timezone=False) columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean_str(value: Any) -> str | None:
    """Strip strings; empty strings become None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_int(value: Any, field: str, *, max_abs: int | None = BIGINT_MAX) -> int | None:
    """Values beyond max_abs would overflow the column, so they are rejected here."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    try:
        result = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be an integer.") from None
    if max_abs is not None and abs(result) > max_abs:
        raise ValidationError(f"{field} is out of range.")
    return result


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_datetime(value: Any, field: str) -> datetime | None:
    """Parse YYYY-MM-DD or an ISO 8601 timestamp. Dates become midnight."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    s = str(value).strip()
    if not s:
        return None
    try:
        if len(s) == 10:
            d = date.fromisoformat(s)
            return datetime(d.year, d.month, d.day)
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD) or timestamp.") from None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def iso(value: datetime | date | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_pagination(args: Any, default_limit: int = DEFAULT_PAGE_LIMIT) -> tuple[int, int]:
    """Read 1-indexed page/limit from query args."""
    # Unbounded: an oversized page is just past the end, and limit is capped below.
    page = parse_int(args.get("page"), "page", max_abs=None)
    limit = parse_int(args.get("limit"), "limit", max_abs=None)
    if page is None:
        page = 1
    if limit is None:
        limit = default_limit
    if page < 1:
        raise ValidationError("page must be a positive integer.")
    if limit < 1:
        raise ValidationError("limit must be a positive integer.")
    return page, min(limit, MAX_PAGE_LIMIT)


def paginate(query, page: int, limit: int) -> tuple[list, dict]:
    """
    Apply offset/limit to an ordered query.
    A page past the end yields an empty item list, not an error.
    """
    total = query.order_by(None).count()
    offset = (page - 1) * limit
    # Checked before querying: an offset past the end may not even fit the driver's integer type.
    items = query.offset(offset).limit(limit).all() if offset < total else []
    meta = {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit),
    }
    return items, meta

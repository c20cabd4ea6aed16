"""Shared utility functions used by services and blueprints.

utcnow / as_utc:   timezone-aware timestamps (SQLite hands back naive values)
parse_date:        returns None on bad input
parse_date_input:  raises BadRequestError on bad input
parse_bool:        query-string booleans ("true"/"false")
parse_csv:         comma-separated query values → list
get_or_404:        fetch by primary key or raise NotFoundError
normalize_email:   validated, normalized address or BadRequestError
check_password_policy: minimum length from MIN_PASSWORD_LENGTH
"""
import logging
from datetime import date, datetime, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from app.core.exceptions import BadRequestError, NotFoundError
from app.models import db

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_or_404(model, pk, message=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(message or f"{model.__name__} not found")
    return obj


def normalize_email(email) -> str:
    if not email or not isinstance(email, str):
        raise BadRequestError("Email is required")
    try:
        valid = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise BadRequestError(f"Invalid email: {e}")
    return valid.normalized.lower()


def check_password_policy(password) -> str:
    min_len = current_app.config.get("MIN_PASSWORD_LENGTH", 8)
    if not password or not isinstance(password, str) or len(password) < min_len:
        raise BadRequestError(f"Password must be at least {min_len} characters")
    return password


def parse_int(value, field, default=None):
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"{field} must be an integer")


def parse_float(value, field, default=None):
    if value in (None, ""):
        return default
    if isinstance(value, bool):
        raise BadRequestError(f"{field} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"{field} must be a number")


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Same as parse_date() but raises BadRequestError on unparseable input."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise BadRequestError(f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.")
    return parsed


def parse_bool(value):
    """'true'/'false' (any case) → bool, anything else → None."""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    return None


def parse_csv(value) -> list[str]:
    """Accept a list or a comma-separated string; drop empty items."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


# ── Pagination ───────────────────────────────────────────────────────────────

def paginate(query, page: int, limit: int):
    """Apply page/limit pagination to a SQLAlchemy query.

    Returns:
        (items, meta) where meta is
        {total, page, limit, totalPages, hasNext, hasPrev}.
    """
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = (total + limit - 1) // limit if limit else 0
    meta = {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }
    return items, meta

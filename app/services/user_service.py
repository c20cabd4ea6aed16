"""
User Service — administration of user accounts.

Guards applied on every mutating path:
  * protected (superadmin) accounts are immutable
  * an actor cannot grant an elevated role at or above their own level
"""

import logging

from sqlalchemy import or_

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models import db
from app.models.auth import Role, Tenant, User
from app.services import email_service
from app.services.auth_service import PROFILE_FIELDS, get_login_history
from app.services.jwt_service import delete_user_sessions
from app.services.permission_service import (
    CurrentUser,
    ensure_can_assign_role,
    ensure_not_protected,
)
from app.utils.crypto import hash_password
from app.utils.helpers import check_password_policy, normalize_email, paginate

logger = logging.getLogger(__name__)

USER_SORT_FIELDS = {
    "code": User.code,
    "email": User.email,
    "first_name": User.first_name,
    "last_name": User.last_name,
    "created_at": User.created_at,
    "last_login": User.last_login,
}


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None or user.is_deleted:
        raise NotFoundError("User not found")
    return user


def _resolve_role(role_id) -> Role:
    role = db.session.get(Role, role_id) if role_id is not None else None
    if role is None:
        raise BadRequestError("Invalid role specified")
    return role


def _resolve_tenant(tenant_id):
    if tenant_id in (None, ""):
        return None
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise BadRequestError("Tenant not found")
    return tenant.id


def _ensure_unique(code=None, email=None, exclude_id=None):
    if code is not None:
        q = User.query.filter(User.code == code)
        if exclude_id is not None:
            q = q.filter(User.id != exclude_id)
        if q.first():
            raise ConflictError("User with this code already exists")
    if email is not None:
        q = User.query.filter(User.email == email)
        if exclude_id is not None:
            q = q.filter(User.id != exclude_id)
        if q.first():
            raise ConflictError("User with this email already exists")


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(actor: CurrentUser, data: dict) -> User:
    code = (data.get("code") or "").strip()
    if not code:
        raise BadRequestError("code is required")
    email = normalize_email(data.get("email"))
    password = check_password_policy(data.get("password"))
    role = _resolve_role(data.get("role_id"))
    ensure_can_assign_role(actor, role)
    _ensure_unique(code=code, email=email)

    user = User(
        code=code,
        email=email,
        password_hash=hash_password(password),
        role_id=role.id,
        tenant_id=_resolve_tenant(data.get("tenant_id")),
        is_active=bool(data.get("is_active", True)),
    )
    for field in PROFILE_FIELDS:
        if field in data:
            setattr(user, field, data[field])
    db.session.add(user)
    db.session.commit()
    logger.info("User %s created by %s with role '%s'", user.id, actor.id, role.name)
    email_service.send_welcome(user)
    return user


def list_users(filters: dict, page: int, limit: int):
    q = User.query.filter(User.not_deleted())
    search = filters.get("q")
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            User.code.ilike(like), User.email.ilike(like),
            User.first_name.ilike(like), User.last_name.ilike(like),
        ))
    if filters.get("role_id"):
        q = q.filter(User.role_id == filters["role_id"])
    if filters.get("role"):
        q = q.join(Role, Role.id == User.role_id).filter(Role.name == filters["role"])
    if filters.get("is_active") is not None:
        q = q.filter(User.is_active.is_(filters["is_active"]))
    if filters.get("tenant_id"):
        q = q.filter(User.tenant_id == filters["tenant_id"])

    column = USER_SORT_FIELDS.get(filters.get("sort_by") or "created_at", User.created_at)
    q = q.order_by(column.asc() if filters.get("sort_order") == "asc" else column.desc(), User.id)
    return paginate(q, page, limit)


def get_user(user_id: int) -> User:
    return _get_user(user_id)


def update_user(actor: CurrentUser, user_id: int, data: dict) -> User:
    user = _get_user(user_id)
    ensure_not_protected(user, "modified")

    if "code" in data:
        code = (data.get("code") or "").strip()
        if not code:
            raise BadRequestError("code cannot be empty")
        _ensure_unique(code=code, exclude_id=user.id)
        user.code = code
    if "email" in data:
        email = normalize_email(data.get("email"))
        _ensure_unique(email=email, exclude_id=user.id)
        user.email = email
    if "role_id" in data and data["role_id"] != user.role_id:
        role = _resolve_role(data["role_id"])
        ensure_can_assign_role(actor, role)
        user.role_id = role.id
    if "tenant_id" in data:
        user.tenant_id = _resolve_tenant(data["tenant_id"])
    if "password" in data and data["password"]:
        user.password_hash = hash_password(check_password_policy(data["password"]))
    if "is_active" in data:
        user.is_active = bool(data["is_active"])
    for field in PROFILE_FIELDS:
        if field in data:
            setattr(user, field, data[field])

    db.session.commit()
    logger.info("User %s updated by %s", user.id, actor.id)
    return user


def delete_user(actor: CurrentUser, user_id: int) -> None:
    """Soft delete: the row stays, the account disappears from listings."""
    user = _get_user(user_id)
    ensure_not_protected(user, "deleted")
    if user.id == actor.id:
        raise BadRequestError("You cannot delete your own account")
    user.soft_delete()
    user.is_active = False
    delete_user_sessions(user.id)
    db.session.commit()
    logger.info("User %s soft-deleted by %s", user.id, actor.id)


def anonymize_user(actor: CurrentUser, user_id: int) -> User:
    """Overwrite PII. Terminal: the account cannot be used again."""
    user = _get_user(user_id)
    ensure_not_protected(user, "anonymized")
    user.email = f"anonymized_{user.id}@deleted.local"
    user.code = f"ANON-{user.id}"
    user.first_name = "Anonymized"
    user.last_name = "User"
    for field in ("phone", "address", "city", "country", "postal_code", "avatar"):
        setattr(user, field, None)
    user.preferences = None
    user.reset_token = None
    user.reset_token_expires = None
    user.is_active = False
    user.soft_delete()
    delete_user_sessions(user.id)
    db.session.commit()
    logger.info("User %s anonymized by %s", user.id, actor.id,
                extra={"event_type": "user_anonymized"})
    return user


# ═══════════════════════════════════════════════════════════════
# Account state
# ═══════════════════════════════════════════════════════════════
def activate_user(actor: CurrentUser, user_id: int) -> User:
    user = _get_user(user_id)
    ensure_not_protected(user, "activated")
    user.is_active = True
    db.session.commit()
    logger.info("User %s activated by %s", user.id, actor.id)
    return user


def deactivate_user(actor: CurrentUser, user_id: int) -> User:
    user = _get_user(user_id)
    ensure_not_protected(user, "deactivated")
    if user.id == actor.id:
        raise BadRequestError("You cannot deactivate your own account")
    user.is_active = False
    delete_user_sessions(user.id)
    db.session.commit()
    logger.info("User %s deactivated by %s", user.id, actor.id)
    return user


def unlock_user(actor: CurrentUser, user_id: int) -> User:
    user = _get_user(user_id)
    ensure_not_protected(user, "unlocked")
    user.login_attempts = 0
    user.locked_until = None
    db.session.commit()
    logger.info("User %s unlocked by %s", user.id, actor.id,
                extra={"event_type": "account_unlocked"})
    return user


def update_preferences(actor: CurrentUser, user_id: int, preferences) -> User:
    """Merge into the stored preferences. A protected account edits only its own."""
    if not isinstance(preferences, dict):
        raise BadRequestError("preferences must be an object")
    user = _get_user(user_id)
    if user.id != actor.id:
        ensure_not_protected(user, "modified")
    merged = dict(user.preferences or {})
    merged.update(preferences)
    user.preferences = merged
    db.session.commit()
    return user


def user_login_history(user_id: int, limit: int = 50):
    _get_user(user_id)
    return get_login_history(user_id, limit)


def get_available_roles(actor: CurrentUser) -> list[Role]:
    """Roles the actor may hand out: non-elevated ones plus those below them."""
    return (
        Role.query.filter(or_(Role.is_elevated.is_(False), Role.level < actor.role_level))
        .order_by(Role.level.desc(), Role.name)
        .all()
    )

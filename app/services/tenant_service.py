"""
Tenant Service — tenant registry, leadership and employee membership.

A tenant has at most one leader; a user leads at most one tenant and is an
employee of at most one tenant (``User.tenant_id``).
"""

import logging

from sqlalchemy import func, or_

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models import db
from app.models.auth import Role, Tenant, User
from app.models.document import Document
from app.models.project import Project
from app.services.permission_service import PROTECTED_ROLES
from app.utils.helpers import paginate

logger = logging.getLogger(__name__)

TENANT_FIELDS = ("name", "country", "address")


def _get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def _active_user(user_id, message: str) -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or user.is_deleted or not user.is_active:
        raise BadRequestError(message)
    return user


def _validate_leader(leader_id, tenant_id=None) -> int | None:
    if leader_id in (None, ""):
        return None
    leader = _active_user(leader_id, "Leader not found or inactive")
    if leader.role_name in PROTECTED_ROLES:
        raise BadRequestError("Superadmin users cannot lead a tenant")
    q = Tenant.query.filter(Tenant.leader_id == leader.id)
    if tenant_id is not None:
        q = q.filter(Tenant.id != tenant_id)
    if q.first():
        raise ConflictError("User is already leading another tenant")
    return leader.id


def _ensure_code_free(code: str, exclude_id=None) -> None:
    q = Tenant.query.filter(Tenant.code == code)
    if exclude_id is not None:
        q = q.filter(Tenant.id != exclude_id)
    if q.first():
        raise ConflictError("Tenant with this code already exists")


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
def create_tenant(data: dict) -> Tenant:
    code = (data.get("code") or "").strip()
    if not code:
        raise BadRequestError("code is required")
    _ensure_code_free(code)
    tenant = Tenant(code=code, leader_id=_validate_leader(data.get("leader_id")))
    for field in TENANT_FIELDS:
        if field in data:
            setattr(tenant, field, data[field])
    db.session.add(tenant)
    db.session.commit()
    logger.info("Tenant '%s' created", code)
    return tenant


def list_tenants(filters: dict, page: int, limit: int):
    q = Tenant.query
    search = filters.get("q")
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Tenant.code.ilike(like), Tenant.name.ilike(like)))
    if filters.get("country"):
        q = q.filter(Tenant.country == filters["country"])
    has_leader = filters.get("has_leader")
    if has_leader is True:
        q = q.filter(Tenant.leader_id.isnot(None))
    elif has_leader is False:
        q = q.filter(Tenant.leader_id.is_(None))
    q = q.order_by(Tenant.created_at.desc(), Tenant.id.desc())
    return paginate(q, page, limit)


def get_tenant(tenant_id: int) -> Tenant:
    return _get_tenant(tenant_id)


def tenant_detail(tenant: Tenant) -> dict:
    d = tenant.to_dict(include_counts=True)
    d["employees"] = [
        u.to_summary()
        for u in tenant.employees.filter(User.not_deleted()).order_by(User.email).all()
    ]
    d["projects"] = [
        {"id": p.id, "code": p.code, "name": p.name, "status": p.status}
        for p in tenant.projects.order_by(Project.created_at.desc()).limit(5).all()
    ]
    d["documents"] = [
        {"id": doc.id, "name": doc.name}
        for doc in tenant.documents.order_by(Document.created_at.desc()).limit(5).all()
    ]
    return d


def update_tenant(tenant_id: int, data: dict) -> Tenant:
    tenant = _get_tenant(tenant_id)
    if "code" in data:
        code = (data.get("code") or "").strip()
        if not code:
            raise BadRequestError("code cannot be empty")
        _ensure_code_free(code, exclude_id=tenant.id)
        tenant.code = code
    if "leader_id" in data:
        tenant.leader_id = _validate_leader(data["leader_id"], tenant.id)
    for field in TENANT_FIELDS:
        if field in data:
            setattr(tenant, field, data[field])
    db.session.commit()
    logger.info("Tenant %s updated", tenant.id)
    return tenant


def delete_tenant(tenant_id: int) -> None:
    tenant = _get_tenant(tenant_id)
    counts = tenant.counts()
    if counts["employees"]:
        raise BadRequestError("Cannot delete tenant with assigned employees")
    if counts["projects"]:
        raise BadRequestError("Cannot delete tenant with associated projects")
    if counts["documents"]:
        raise BadRequestError("Cannot delete tenant with associated documents")
    db.session.delete(tenant)
    db.session.commit()
    logger.info("Tenant %s deleted", tenant_id)


# ═══════════════════════════════════════════════════════════════
# Employees
# ═══════════════════════════════════════════════════════════════
def add_employee(tenant_id: int, user_id) -> User:
    tenant = _get_tenant(tenant_id)
    user = _active_user(user_id, "User not found or inactive")
    if user.tenant_id == tenant.id:
        raise ConflictError("User is already an employee of this tenant")
    if user.tenant_id is not None:
        raise ConflictError("User is already assigned to another tenant")
    user.tenant_id = tenant.id
    db.session.commit()
    logger.info("User %s added to tenant %s", user.id, tenant.id)
    return user


def remove_employee(tenant_id: int, user_id: int) -> None:
    tenant = _get_tenant(tenant_id)
    user = db.session.get(User, user_id)
    if user is None or user.tenant_id != tenant.id:
        raise BadRequestError("User not found or not assigned to this tenant")
    if tenant.leader_id == user.id:
        raise BadRequestError("Cannot remove tenant leader. Please assign a new leader first.")
    user.tenant_id = None
    db.session.commit()
    logger.info("User %s removed from tenant %s", user.id, tenant.id)


def list_employees(tenant_id: int, page: int, limit: int):
    tenant = _get_tenant(tenant_id)
    q = tenant.employees.filter(User.not_deleted()).order_by(User.email)
    return paginate(q, page, limit)


# ═══════════════════════════════════════════════════════════════
# Reporting
# ═══════════════════════════════════════════════════════════════
def get_statistics() -> dict:
    total = Tenant.query.count()
    with_leader = Tenant.query.filter(Tenant.leader_id.isnot(None)).count()
    with_employees = (
        db.session.query(func.count(func.distinct(User.tenant_id)))
        .filter(User.tenant_id.isnot(None), User.not_deleted())
        .scalar()
    )
    with_projects = (
        db.session.query(func.count(func.distinct(Project.tenant_id)))
        .filter(Project.tenant_id.isnot(None))
        .scalar()
    )
    by_country = (
        db.session.query(Tenant.country, func.count(Tenant.id))
        .group_by(Tenant.country)
        .order_by(func.count(Tenant.id).desc(), Tenant.country)
        .all()
    )
    return {
        "total": total,
        "with_leader": with_leader,
        "without_leader": total - with_leader,
        "with_employees": with_employees or 0,
        "with_projects": with_projects or 0,
        "by_country": [
            {"country": country or "Unknown", "count": count} for country, count in by_country
        ],
    }


def get_available_leaders(tenant_id=None) -> list[User]:
    """Active users not leading another tenant (current leader included)."""
    leading = db.select(Tenant.leader_id).where(Tenant.leader_id.isnot(None))
    if tenant_id is not None:
        leading = leading.where(Tenant.id != tenant_id)
    return (
        User.query.outerjoin(Role, Role.id == User.role_id)
        .filter(
            User.is_active.is_(True),
            User.not_deleted(),
            User.id.notin_(leading),
            or_(Role.name.is_(None), Role.name.notin_(sorted(PROTECTED_ROLES))),
        )
        .order_by(User.first_name, User.email)
        .all()
    )

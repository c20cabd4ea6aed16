"""
Role & Permission Service — role definitions and their permission sets.

Features:
  - Create roles with an initial permission set
  - Replace or extend a role's permissions in one transaction
  - Permission catalogue CRUD (``resource:action`` names)
  - System role protection (seeded roles cannot be renamed or deleted)
  - Role level enforcement (cannot define an elevated role at or above your own)

Every mutation invalidates the cached permission sets.
"""

import logging
import re

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models import db
from app.models.auth import Permission, Role, RolePermission
from app.services.permission_service import (
    CurrentUser,
    ensure_can_assign_role,
    invalidate_all_cache,
    invalidate_cache,
)
from app.utils.helpers import parse_int

logger = logging.getLogger(__name__)

PERMISSION_NAME_RE = re.compile(r"^[a-z][a-z0-9_-]*:[a-z][a-z0-9_-]*$")


def _get_role(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role not found")
    return role


def _load_permissions(permission_ids) -> list[Permission]:
    if permission_ids is None:
        return []
    if not isinstance(permission_ids, list):
        raise BadRequestError("permission_ids must be a list")
    ids = {parse_int(pid, "permission_ids") for pid in permission_ids}
    if not ids:
        return []
    perms = Permission.query.filter(Permission.id.in_(ids)).all()
    if len(perms) != len(ids):
        raise NotFoundError("Some permissions not found")
    return perms


def _replace_permissions(role: Role, permissions: list[Permission]) -> None:
    RolePermission.query.filter_by(role_id=role.id).delete(synchronize_session=False)
    for perm in permissions:
        db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))


# ═══════════════════════════════════════════════════════════════
# Role CRUD
# ═══════════════════════════════════════════════════════════════
def list_roles() -> list[Role]:
    return Role.query.order_by(Role.level.desc(), Role.name).all()


def get_role(role_ref) -> Role:
    """Look up a role by id or by name."""
    if isinstance(role_ref, int) or str(role_ref).isdigit():
        return _get_role(int(role_ref))
    role = Role.query.filter_by(name=str(role_ref)).first()
    if role is None:
        raise NotFoundError("Role not found")
    return role


def create_role(actor: CurrentUser, data: dict) -> Role:
    name = (data.get("name") or "").strip().lower()
    if not name:
        raise BadRequestError("Role name is required")
    if Role.query.filter_by(name=name).first():
        raise ConflictError("Role with this name already exists")

    role = Role(
        name=name,
        description=data.get("description"),
        level=parse_int(data.get("level"), "level", 0),
        is_elevated=bool(data.get("is_elevated", False)),
        is_system=False,
    )
    ensure_can_assign_role(actor, role)
    permissions = _load_permissions(data.get("permission_ids"))

    db.session.add(role)
    db.session.flush()
    _replace_permissions(role, permissions)
    db.session.commit()
    invalidate_cache(role.id)
    logger.info("Role '%s' created by %s with %d permissions", name, actor.id, len(permissions))
    return role


def update_role(actor: CurrentUser, role_id: int, data: dict) -> Role:
    role = _get_role(role_id)

    if "name" in data:
        name = (data.get("name") or "").strip().lower()
        if not name:
            raise BadRequestError("Role name is required")
        if name != role.name:
            if role.is_system:
                raise BadRequestError("System roles cannot be renamed")
            if Role.query.filter(Role.name == name, Role.id != role.id).first():
                raise ConflictError("Role with this name already exists")
            role.name = name
    if "description" in data:
        role.description = data["description"]
    if "level" in data:
        role.level = parse_int(data["level"], "level", role.level)
    if "is_elevated" in data:
        role.is_elevated = bool(data["is_elevated"])
    if "level" in data or "is_elevated" in data:
        ensure_can_assign_role(actor, role)

    if "permission_ids" in data:
        _replace_permissions(role, _load_permissions(data["permission_ids"]))

    db.session.commit()
    invalidate_cache(role.id)
    logger.info("Role '%s' updated by %s", role.name, actor.id)
    return role


def delete_role(actor: CurrentUser, role_id: int) -> None:
    role = _get_role(role_id)
    if role.is_system:
        raise BadRequestError("System roles cannot be deleted")
    if role.users.count():
        raise BadRequestError("Cannot delete role with assigned users")
    RolePermission.query.filter_by(role_id=role.id).delete(synchronize_session=False)
    db.session.delete(role)
    db.session.commit()
    invalidate_cache(role_id)
    logger.info("Role '%s' deleted by %s", role.name, actor.id)


def assign_permissions(role_id: int, permission_ids) -> Role:
    """Add permissions to a role, skipping those it already has."""
    role = _get_role(role_id)
    permissions = _load_permissions(permission_ids)
    existing = {rp.permission_id for rp in role.role_permissions.all()}
    missing = [p for p in permissions if p.id not in existing]
    if not missing:
        raise BadRequestError("No new permissions to assign")
    for perm in missing:
        db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    db.session.commit()
    invalidate_cache(role.id)
    logger.info("Assigned %d permissions to role '%s'", len(missing), role.name)
    return role


# ═══════════════════════════════════════════════════════════════
# Permission catalogue
# ═══════════════════════════════════════════════════════════════
def list_permissions(resource: str | None = None) -> list[Permission]:
    q = Permission.query
    if resource:
        q = q.filter(Permission.name.like(f"{resource}:%"))
    return q.order_by(Permission.name).all()


def permissions_by_resource() -> dict[str, list[dict]]:
    grouped: dict[str, list[dict]] = {}
    for perm in list_permissions():
        grouped.setdefault(perm.resource, []).append(perm.to_dict())
    return grouped


def get_permission(permission_id: int) -> Permission:
    perm = db.session.get(Permission, permission_id)
    if perm is None:
        raise NotFoundError("Permission not found")
    return perm


def _validate_permission_name(name) -> str:
    name = (name or "").strip().lower()
    if not PERMISSION_NAME_RE.match(name):
        raise BadRequestError("Permission name must follow the 'resource:action' format")
    return name


def create_permission(data: dict) -> Permission:
    name = _validate_permission_name(data.get("name"))
    if Permission.query.filter_by(name=name).first():
        raise ConflictError("Permission with this name already exists")
    perm = Permission(name=name, description=data.get("description"))
    db.session.add(perm)
    db.session.commit()
    logger.info("Permission '%s' created", name)
    return perm


def update_permission(permission_id: int, data: dict) -> Permission:
    perm = get_permission(permission_id)
    if "name" in data:
        name = _validate_permission_name(data["name"])
        if Permission.query.filter(Permission.name == name, Permission.id != perm.id).first():
            raise ConflictError("Permission with this name already exists")
        perm.name = name
    if "description" in data:
        perm.description = data["description"]
    db.session.commit()
    invalidate_all_cache()
    return perm


def delete_permission(permission_id: int) -> None:
    perm = get_permission(permission_id)
    RolePermission.query.filter_by(permission_id=perm.id).delete(synchronize_session=False)
    db.session.delete(perm)
    db.session.commit()
    invalidate_all_cache()
    logger.info("Permission '%s' deleted", perm.name)

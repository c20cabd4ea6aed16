"""
Permission Service — role-driven RBAC plus ownership/tenant scoping.

Two axes:
  1. Permission membership: the caller's role resolves to an immutable set
     of ``resource:action`` strings, computed once per request. An action is
     allowed iff its permission is in the set.
  2. Record scope: non-elevated roles may only touch records they own
     (``owner_id``) or that belong to a tenant they lead or work for.
     Elevated roles skip this axis entirely.

Evaluation is deny-by-default: a missing user or a missing permission set is
rejected, never treated as an empty allow-list.
"""

import logging
import threading
import time
from dataclasses import dataclass, field

from flask import current_app, has_app_context
from sqlalchemy import false, or_

from app.core.exceptions import ForbiddenError
from app.models import db
from app.models.auth import Permission, Role, RolePermission, Tenant

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300  # 5 minutes

# Accounts holding these roles are immutable through the API.
PROTECTED_ROLES = frozenset({"superadmin"})

PermissionSet = frozenset  # frozenset[str] of "resource:action" names

# Cache key: role_id
_permission_cache: dict[int, tuple[float, PermissionSet]] = {}
_cache_lock = threading.Lock()


@dataclass(frozen=True)
class CurrentUser:
    """Request-scoped view of the authenticated user."""

    id: int
    email: str
    role_name: str | None
    role_level: int = 0
    is_elevated: bool = False
    tenant_id: int | None = None
    permissions: PermissionSet | None = field(default=None)

    def has(self, permission: str) -> bool:
        return self.permissions is not None and permission in self.permissions


# ═══════════════════════════════════════════════════════════════
# Permission-set resolution (cached per role)
# ═══════════════════════════════════════════════════════════════
def _cache_ttl() -> int:
    if has_app_context():
        return current_app.config.get("PERMISSION_CACHE_TTL", DEFAULT_CACHE_TTL)
    return DEFAULT_CACHE_TTL


def _get_cached(role_id: int) -> PermissionSet | None:
    with _cache_lock:
        entry = _permission_cache.get(role_id)
        if entry is None:
            return None
        cached_at, perms = entry
        if time.time() - cached_at > _cache_ttl():
            del _permission_cache[role_id]
            return None
        return perms


def _set_cached(role_id: int, perms: PermissionSet) -> None:
    with _cache_lock:
        _permission_cache[role_id] = (time.time(), perms)


def invalidate_cache(role_id: int) -> None:
    with _cache_lock:
        _permission_cache.pop(role_id, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _permission_cache.clear()


def get_role_permissions(role_id: int | None) -> PermissionSet:
    """Flatten role → permissions into an immutable set of names."""
    if role_id is None:
        return PermissionSet()
    cached = _get_cached(role_id)
    if cached is not None:
        return cached

    rows = (
        db.session.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == role_id)
        .all()
    )
    perms = PermissionSet(name for (name,) in rows)
    _set_cached(role_id, perms)
    return perms


def build_current_user(user) -> CurrentUser:
    """Resolve a User row into the request-scoped CurrentUser."""
    role = user.role
    return CurrentUser(
        id=user.id,
        email=user.email,
        role_name=role.name if role else None,
        role_level=role.level if role else 0,
        is_elevated=bool(role and role.is_elevated),
        tenant_id=user.tenant_id,
        permissions=get_role_permissions(role.id if role else None),
    )


# ═══════════════════════════════════════════════════════════════
# Axis 1: permission membership
# ═══════════════════════════════════════════════════════════════
def check_permission(user: CurrentUser | None, permission: str) -> None:
    """Raise ForbiddenError unless ``permission`` is in the user's set."""
    if user is None:
        raise ForbiddenError("User not authenticated")
    if not isinstance(user.permissions, frozenset):
        raise ForbiddenError("User permissions not found")
    if permission not in user.permissions:
        logger.warning(
            "User %s denied: missing permission '%s'", user.id, permission,
            extra={"event_type": "permission_denied"},
        )
        raise ForbiddenError(f"Insufficient permissions: {permission} required")


# ═══════════════════════════════════════════════════════════════
# Axis 2: ownership / tenant membership
# ═══════════════════════════════════════════════════════════════
def led_tenant_ids(user_id: int) -> list[int]:
    return [tid for (tid,) in db.session.query(Tenant.id).filter(Tenant.leader_id == user_id).all()]


def member_tenant_ids(user: CurrentUser) -> set[int]:
    """Tenants the user leads or is employed by."""
    ids = set(led_tenant_ids(user.id))
    if user.tenant_id is not None:
        ids.add(user.tenant_id)
    return ids


def is_tenant_member(user: CurrentUser, tenant_id: int | None) -> bool:
    if tenant_id is None:
        return False
    if user.tenant_id == tenant_id:
        return True
    tenant = db.session.get(Tenant, tenant_id)
    return tenant is not None and tenant.leader_id == user.id


def can_access_entity(
    user: CurrentUser,
    owner_id: int | None = None,
    tenant_id: int | None = None,
) -> bool:
    """Elevated roles see everything; others need ownership or membership."""
    if user.is_elevated:
        return True
    if owner_id is not None and owner_id == user.id:
        return True
    return is_tenant_member(user, tenant_id)


def ensure_entity_access(
    user: CurrentUser,
    owner_id: int | None,
    tenant_id: int | None,
    message: str = "Access denied",
) -> None:
    if not can_access_entity(user, owner_id, tenant_id):
        logger.warning(
            "User %s denied record access (owner=%s tenant=%s)", user.id, owner_id, tenant_id,
            extra={"event_type": "access_denied"},
        )
        raise ForbiddenError(message)


def access_filter(user: CurrentUser, owner_column=None, tenant_column=None):
    """SQL condition restricting a list query to what ``user`` may see.

    Returns None for elevated roles (no restriction).
    """
    if user.is_elevated:
        return None
    conditions = []
    if owner_column is not None:
        conditions.append(owner_column == user.id)
    if tenant_column is not None:
        tenant_ids = member_tenant_ids(user)
        if tenant_ids:
            conditions.append(tenant_column.in_(sorted(tenant_ids)))
    if not conditions:
        return false()
    return or_(*conditions)


# ═══════════════════════════════════════════════════════════════
# Escalation & protected accounts
# ═══════════════════════════════════════════════════════════════
def ensure_can_assign_role(actor: CurrentUser, role: Role) -> None:
    """Block granting an elevated role at or above the actor's own level."""
    if role.is_elevated and role.level >= actor.role_level:
        logger.warning(
            "User %s attempted to assign role '%s' (level %s >= %s)",
            actor.id, role.name, role.level, actor.role_level,
            extra={"event_type": "privilege_escalation"},
        )
        raise ForbiddenError(f"Cannot assign role '{role.name}': equal or higher than your own")


def is_protected(user) -> bool:
    return user.role is not None and user.role.name in PROTECTED_ROLES


def ensure_not_protected(user, action: str) -> None:
    if is_protected(user):
        raise ForbiddenError(f"Superadmin users cannot be {action}")

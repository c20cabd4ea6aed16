"""
Permission Decorators — RBAC decorators for route protection.

Checks run against ``g.current_user.permissions``, the immutable set resolved
once per request by the JWT middleware.

Usage:
    @bp.route("/<int:project_id>", methods=["DELETE"])
    @require_permission("project:delete")
    def delete_project(project_id):
        ...

    @bp.route("/test", methods=["POST"])
    @require_any_permission("system:admin", "user:create")
    def send_test_email():
        ...
"""

import functools
import logging

from flask import g

from app.core.exceptions import ForbiddenError
from app.services.permission_service import check_permission

logger = logging.getLogger(__name__)


def require_permission(permission: str):
    """
    Decorator: require the current user to hold ``permission``.

    Args:
        permission: ``resource:action`` string, e.g. "project:delete"
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            check_permission(getattr(g, "current_user", None), permission)
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_any_permission(*permissions: str):
    """
    Decorator: require the current user to hold at least ONE of the listed permissions.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise ForbiddenError("User not authenticated")
            if not isinstance(user.permissions, frozenset):
                raise ForbiddenError("User permissions not found")
            if not any(p in user.permissions for p in permissions):
                logger.warning(
                    "User %s denied: missing any of %s on %s",
                    user.id, permissions, f.__name__,
                    extra={"event_type": "permission_denied"},
                )
                raise ForbiddenError(
                    f"Insufficient permissions: one of {', '.join(permissions)} required"
                )
            return f(*args, **kwargs)
        return decorated
    return decorator

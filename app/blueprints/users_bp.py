"""
Users Blueprint — account administration.

Endpoints:
  POST   /api/v1/users                        user:create
  GET    /api/v1/users                        user:read
  GET    /api/v1/users/roles/available        user:read
  GET    /api/v1/users/<id>                   user:read
  PATCH  /api/v1/users/<id>                   user:update
  DELETE /api/v1/users/<id>                   user:delete     (soft delete)
  POST   /api/v1/users/<id>/anonymize         user:anonymize
  POST   /api/v1/users/<id>/activate          user:activate
  POST   /api/v1/users/<id>/deactivate        user:activate
  POST   /api/v1/users/<id>/unlock            user:unlock
  GET    /api/v1/users/<id>/login-history     user:view-logs
  PATCH  /api/v1/users/<id>/preferences       self, or user:update
"""

from flask import Blueprint, request

from app.blueprints import (
    arg_bool,
    arg_int,
    current_user,
    json_body,
    pagination_args,
    sort_args,
)
from app.middleware.permission_required import require_permission
from app.services import user_service
from app.services.permission_service import check_permission
from app.utils.responses import api_success

users_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@users_bp.route("", methods=["POST"])
@require_permission("user:create")
def create_user():
    user = user_service.create_user(current_user(), json_body())
    return api_success(user.to_dict(), status=201)


@users_bp.route("", methods=["GET"])
@require_permission("user:read")
def list_users():
    page, limit = pagination_args()
    filters = {
        "q": request.args.get("q") or request.args.get("search"),
        "role": request.args.get("role"),
        "role_id": arg_int("role_id"),
        "tenant_id": arg_int("tenant_id"),
        "is_active": arg_bool("is_active"),
        **sort_args(),
    }
    users, meta = user_service.list_users(filters, page, limit)
    return api_success([u.to_dict() for u in users], meta=meta)


@users_bp.route("/roles/available", methods=["GET"])
@require_permission("user:read")
def available_roles():
    roles = user_service.get_available_roles(current_user())
    return api_success([r.to_dict() for r in roles])


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_permission("user:read")
def get_user(user_id):
    return api_success(user_service.get_user(user_id).to_dict(include_permissions=True))


@users_bp.route("/<int:user_id>", methods=["PATCH", "PUT"])
@require_permission("user:update")
def update_user(user_id):
    user = user_service.update_user(current_user(), user_id, json_body())
    return api_success(user.to_dict())


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@require_permission("user:delete")
def delete_user(user_id):
    user_service.delete_user(current_user(), user_id)
    return api_success({"message": "User deleted successfully"})


@users_bp.route("/<int:user_id>/anonymize", methods=["POST"])
@require_permission("user:anonymize")
def anonymize_user(user_id):
    user = user_service.anonymize_user(current_user(), user_id)
    return api_success(user.to_dict())


@users_bp.route("/<int:user_id>/activate", methods=["POST"])
@require_permission("user:activate")
def activate_user(user_id):
    return api_success(user_service.activate_user(current_user(), user_id).to_dict())


@users_bp.route("/<int:user_id>/deactivate", methods=["POST"])
@require_permission("user:activate")
def deactivate_user(user_id):
    return api_success(user_service.deactivate_user(current_user(), user_id).to_dict())


@users_bp.route("/<int:user_id>/unlock", methods=["POST"])
@require_permission("user:unlock")
def unlock_user(user_id):
    return api_success(user_service.unlock_user(current_user(), user_id).to_dict())


@users_bp.route("/<int:user_id>/login-history", methods=["GET"])
@require_permission("user:view-logs")
def login_history(user_id):
    logs = user_service.user_login_history(user_id)
    return api_success([log.to_dict() for log in logs])


@users_bp.route("/<int:user_id>/preferences", methods=["PATCH", "PUT"])
def update_preferences(user_id):
    actor = current_user()
    if actor.id != user_id:
        check_permission(actor, "user:update")
    user = user_service.update_preferences(actor, user_id, json_body().get("preferences"))
    return api_success({"preferences": user.preferences})

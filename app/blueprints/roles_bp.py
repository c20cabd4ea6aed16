"""
Roles Blueprint — role definitions and the permission catalogue.

Endpoints:
  GET    /api/v1/roles                              role:read
  POST   /api/v1/roles                              role:create
  GET    /api/v1/roles/<id or name>                 role:read
  PATCH  /api/v1/roles/<id>                         role:update
  DELETE /api/v1/roles/<id>                         role:delete
  POST   /api/v1/roles/<id>/permissions             permission:assign
  GET    /api/v1/roles/permissions                  permission:read
  POST   /api/v1/roles/permissions                  permission:create
  PATCH  /api/v1/roles/permissions/<id>             permission:update
  DELETE /api/v1/roles/permissions/<id>             permission:delete
"""

from flask import Blueprint, request

from app.blueprints import current_user, json_body
from app.middleware.permission_required import require_permission
from app.services import role_service
from app.utils.helpers import parse_bool
from app.utils.responses import api_success

roles_bp = Blueprint("roles", __name__, url_prefix="/api/v1/roles")


# ═══════════════════════════════════════════════════════════════
# Permission catalogue
# ═══════════════════════════════════════════════════════════════
@roles_bp.route("/permissions", methods=["GET"])
@require_permission("permission:read")
def list_permissions():
    if parse_bool(request.args.get("grouped")):
        return api_success(role_service.permissions_by_resource())
    perms = role_service.list_permissions(request.args.get("resource"))
    return api_success([p.to_dict() for p in perms])


@roles_bp.route("/permissions", methods=["POST"])
@require_permission("permission:create")
def create_permission():
    return api_success(role_service.create_permission(json_body()).to_dict(), status=201)


@roles_bp.route("/permissions/<int:permission_id>", methods=["PATCH", "PUT"])
@require_permission("permission:update")
def update_permission(permission_id):
    return api_success(role_service.update_permission(permission_id, json_body()).to_dict())


@roles_bp.route("/permissions/<int:permission_id>", methods=["DELETE"])
@require_permission("permission:delete")
def delete_permission(permission_id):
    role_service.delete_permission(permission_id)
    return api_success({"message": "Permission deleted successfully"})


# ═══════════════════════════════════════════════════════════════
# Roles
# ═══════════════════════════════════════════════════════════════
@roles_bp.route("", methods=["GET"])
@require_permission("role:read")
def list_roles():
    return api_success([r.to_dict(include_permissions=True) for r in role_service.list_roles()])


@roles_bp.route("", methods=["POST"])
@require_permission("role:create")
def create_role():
    role = role_service.create_role(current_user(), json_body())
    return api_success(role.to_dict(include_permissions=True), status=201)


@roles_bp.route("/<role_ref>", methods=["GET"])
@require_permission("role:read")
def get_role(role_ref):
    return api_success(role_service.get_role(role_ref).to_dict(include_permissions=True))


@roles_bp.route("/<int:role_id>", methods=["PATCH", "PUT"])
@require_permission("role:update")
def update_role(role_id):
    role = role_service.update_role(current_user(), role_id, json_body())
    return api_success(role.to_dict(include_permissions=True))


@roles_bp.route("/<int:role_id>", methods=["DELETE"])
@require_permission("role:delete")
def delete_role(role_id):
    role_service.delete_role(current_user(), role_id)
    return api_success({"message": "Role deleted successfully"})


@roles_bp.route("/<int:role_id>/permissions", methods=["POST"])
@require_permission("permission:assign")
def assign_permissions(role_id):
    role = role_service.assign_permissions(role_id, json_body().get("permission_ids"))
    return api_success(role.to_dict(include_permissions=True))

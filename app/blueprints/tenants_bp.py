"""
Tenants Blueprint — tenant registry, leadership and employees.

Endpoints:
  POST   /api/v1/tenants                              tenant:create
  GET    /api/v1/tenants                              tenant:read
  GET    /api/v1/tenants/statistics                   tenant:read
  GET    /api/v1/tenants/available-leaders            tenant:read
  GET    /api/v1/tenants/<id>                         tenant:read
  PATCH  /api/v1/tenants/<id>                         tenant:update
  DELETE /api/v1/tenants/<id>                         tenant:delete
  GET    /api/v1/tenants/<id>/employees               tenant:read
  POST   /api/v1/tenants/<id>/employees/<user_id>     tenant:update
  DELETE /api/v1/tenants/<id>/employees/<user_id>     tenant:update
"""

from flask import Blueprint, request

from app.blueprints import arg_bool, arg_int, json_body, pagination_args
from app.middleware.permission_required import require_permission
from app.services import tenant_service
from app.utils.responses import api_success

tenants_bp = Blueprint("tenants", __name__, url_prefix="/api/v1/tenants")


@tenants_bp.route("", methods=["POST"])
@require_permission("tenant:create")
def create_tenant():
    tenant = tenant_service.create_tenant(json_body())
    return api_success(tenant.to_dict(include_counts=True), status=201)


@tenants_bp.route("", methods=["GET"])
@require_permission("tenant:read")
def list_tenants():
    page, limit = pagination_args()
    filters = {
        "q": request.args.get("q") or request.args.get("search"),
        "country": request.args.get("country"),
        "has_leader": arg_bool("has_leader"),
    }
    tenants, meta = tenant_service.list_tenants(filters, page, limit)
    return api_success([t.to_dict(include_counts=True) for t in tenants], meta=meta)


@tenants_bp.route("/statistics", methods=["GET"])
@require_permission("tenant:read")
def statistics():
    return api_success(tenant_service.get_statistics())


@tenants_bp.route("/available-leaders", methods=["GET"])
@require_permission("tenant:read")
def available_leaders():
    users = tenant_service.get_available_leaders(arg_int("tenant_id"))
    return api_success([u.to_summary() for u in users])


@tenants_bp.route("/<int:tenant_id>", methods=["GET"])
@require_permission("tenant:read")
def get_tenant(tenant_id):
    return api_success(tenant_service.tenant_detail(tenant_service.get_tenant(tenant_id)))


@tenants_bp.route("/<int:tenant_id>", methods=["PATCH", "PUT"])
@require_permission("tenant:update")
def update_tenant(tenant_id):
    tenant = tenant_service.update_tenant(tenant_id, json_body())
    return api_success(tenant.to_dict(include_counts=True))


@tenants_bp.route("/<int:tenant_id>", methods=["DELETE"])
@require_permission("tenant:delete")
def delete_tenant(tenant_id):
    tenant_service.delete_tenant(tenant_id)
    return api_success({"message": "Tenant deleted successfully"})


@tenants_bp.route("/<int:tenant_id>/employees", methods=["GET"])
@require_permission("tenant:read")
def list_employees(tenant_id):
    page, limit = pagination_args()
    users, meta = tenant_service.list_employees(tenant_id, page, limit)
    return api_success([u.to_dict() for u in users], meta=meta)


@tenants_bp.route("/<int:tenant_id>/employees/<int:user_id>", methods=["POST"])
@require_permission("tenant:update")
def add_employee(tenant_id, user_id):
    user = tenant_service.add_employee(tenant_id, user_id)
    return api_success(user.to_dict(), status=201)


@tenants_bp.route("/<int:tenant_id>/employees/<int:user_id>", methods=["DELETE"])
@require_permission("tenant:update")
def remove_employee(tenant_id, user_id):
    tenant_service.remove_employee(tenant_id, user_id)
    return api_success({"message": "Employee removed from tenant"})

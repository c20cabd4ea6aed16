"""
Projects Blueprint — project registry, status history, indicator scores,
the performance pyramid and the phase timeline.

Endpoints:
  POST   /api/v1/projects                                        project:create
  GET    /api/v1/projects                                        project:read
  GET    /api/v1/projects/statistics                             project:read
  GET    /api/v1/projects/reference                              project:read
  GET    /api/v1/projects/<id>                                   project:read
  PATCH  /api/v1/projects/<id>                                   project:update
  DELETE /api/v1/projects/<id>                                   project:delete
  GET    /api/v1/projects/<id>/statuses                          project:read
  POST   /api/v1/projects/<id>/statuses                          project:update
  PUT    /api/v1/projects/<id>/indicators/<indicator_id>/score   project:update
  GET    /api/v1/projects/<id>/performance-pyramid               project:read
  GET    /api/v1/projects/<id>/timeline                          project:read
  POST   /api/v1/projects/<id>/timeline                          project:update
"""

from flask import Blueprint, request

from app.blueprints import (
    arg_int,
    arg_list,
    current_user,
    json_body,
    pagination_args,
    sort_args,
)
from app.middleware.permission_required import require_permission
from app.models.project import DOMAINS, PILLARS, PROJECT_STATUSES, STATUS_COLORS, TRENDS
from app.services import project_service
from app.utils.helpers import parse_date_input, parse_float
from app.utils.responses import api_success

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1/projects")


# ═══════════════════════════════════════════════════════════════
# Collection
# ═══════════════════════════════════════════════════════════════
@projects_bp.route("", methods=["POST"])
@require_permission("project:create")
def create_project():
    project = project_service.create_project(current_user(), json_body())
    return api_success(project.to_dict(include_relations=True), status=201)


@projects_bp.route("", methods=["GET"])
@require_permission("project:read")
def list_projects():
    page, limit = pagination_args()
    args = request.args
    filters = {
        "q": args.get("q") or args.get("search"),
        "status": arg_list("status"),
        "country": args.get("country"),
        "start_date": parse_date_input(args.get("start_date"), "start_date") if args.get("start_date") else None,
        "end_date": parse_date_input(args.get("end_date"), "end_date") if args.get("end_date") else None,
        "min_score": parse_float(args.get("min_score"), "min_score"),
        "owner_id": arg_int("owner_id"),
        "tenant_id": arg_int("tenant_id"),
        "domains": arg_list("domains"),
        "pillars": arg_list("pillars"),
        **sort_args(),
    }
    projects, meta = project_service.list_projects(current_user(), filters, page, limit)
    return api_success([p.to_dict() for p in projects], meta=meta)


@projects_bp.route("/statistics", methods=["GET"])
@require_permission("project:read")
def statistics():
    return api_success(project_service.get_statistics(current_user()))


@projects_bp.route("/reference", methods=["GET"])
@require_permission("project:read")
def reference():
    """Allowed values for the project form selects."""
    return api_success({
        "statuses": [{"name": s, "color": STATUS_COLORS.get(s)} for s in PROJECT_STATUSES],
        "domains": list(DOMAINS),
        "pillars": list(PILLARS),
        "trends": list(TRENDS),
    })


# ═══════════════════════════════════════════════════════════════
# Single project
# ═══════════════════════════════════════════════════════════════
@projects_bp.route("/<int:project_id>", methods=["GET"])
@require_permission("project:read")
def get_project(project_id):
    project = project_service.get_project(current_user(), project_id)
    return api_success(project.to_dict(include_relations=True))


@projects_bp.route("/<int:project_id>", methods=["PATCH", "PUT"])
@require_permission("project:update")
def update_project(project_id):
    project = project_service.update_project(current_user(), project_id, json_body())
    return api_success(project.to_dict(include_relations=True))


@projects_bp.route("/<int:project_id>", methods=["DELETE"])
@require_permission("project:delete")
def delete_project(project_id):
    project_service.delete_project(current_user(), project_id)
    return api_success({"message": "Project deleted successfully"})


# ═══════════════════════════════════════════════════════════════
# Status history & scores
# ═══════════════════════════════════════════════════════════════
@projects_bp.route("/<int:project_id>/statuses", methods=["GET"])
@require_permission("project:read")
def list_statuses(project_id):
    statuses = project_service.get_statuses(current_user(), project_id)
    return api_success([s.to_dict() for s in statuses])


@projects_bp.route("/<int:project_id>/statuses", methods=["POST"])
@require_permission("project:update")
def add_status(project_id):
    entry = project_service.add_status(current_user(), project_id, json_body())
    return api_success(entry.to_dict(), status=201)


@projects_bp.route("/<int:project_id>/indicators/<int:indicator_id>/score", methods=["PUT", "PATCH"])
@require_permission("project:update")
def update_indicator_score(project_id, indicator_id):
    result = project_service.update_indicator_score(
        current_user(), project_id, indicator_id, json_body().get("score"),
    )
    return api_success(result)


# ═══════════════════════════════════════════════════════════════
# Views
# ═══════════════════════════════════════════════════════════════
@projects_bp.route("/<int:project_id>/performance-pyramid", methods=["GET"])
@require_permission("project:read")
def performance_pyramid(project_id):
    return api_success(project_service.get_performance_pyramid(current_user(), project_id))


@projects_bp.route("/<int:project_id>/timeline", methods=["GET"])
@require_permission("project:read")
def timeline(project_id):
    return api_success(project_service.get_timeline(current_user(), project_id))


@projects_bp.route("/<int:project_id>/timeline", methods=["POST"])
@require_permission("project:update")
def add_timeline_event(project_id):
    entry = project_service.add_timeline_event(current_user(), project_id, json_body())
    return api_success(entry.to_dict(), status=201)

"""
Indicators Blueprint — the performance indicator tree.

Endpoints:
  POST   /api/v1/indicators                       indicator:create
  GET    /api/v1/indicators                       indicator:read
  GET    /api/v1/indicators/hierarchy             indicator:read
  GET    /api/v1/indicators/statistics            indicator:read
  GET    /api/v1/indicators/available-parents     indicator:read   (?exclude_id=)
  GET    /api/v1/indicators/<id>                  indicator:read
  PATCH  /api/v1/indicators/<id>                  indicator:update
  DELETE /api/v1/indicators/<id>                  indicator:delete
"""

from flask import Blueprint, request

from app.blueprints import arg_bool, arg_int, arg_list, json_body, pagination_args, sort_args
from app.middleware.permission_required import require_permission
from app.services import indicator_service
from app.utils.responses import api_success

indicators_bp = Blueprint("indicators", __name__, url_prefix="/api/v1/indicators")


@indicators_bp.route("", methods=["POST"])
@require_permission("indicator:create")
def create_indicator():
    indicator = indicator_service.create_indicator(json_body())
    return api_success(indicator.to_dict(include_relations=True), status=201)


@indicators_bp.route("", methods=["GET"])
@require_permission("indicator:read")
def list_indicators():
    page, limit = pagination_args(max_limit=500)
    filters = {
        "q": request.args.get("q") or request.args.get("search"),
        "parent_id": arg_int("parent_id"),
        "has_parent": arg_bool("has_parent"),
        "pillars": arg_list("pillars"),
        **sort_args(),
    }
    indicators, meta = indicator_service.list_indicators(filters, page, limit)
    return api_success([i.to_dict() for i in indicators], meta=meta)


@indicators_bp.route("/hierarchy", methods=["GET"])
@require_permission("indicator:read")
def hierarchy():
    return api_success(indicator_service.get_hierarchy())


@indicators_bp.route("/statistics", methods=["GET"])
@require_permission("indicator:read")
def statistics():
    return api_success(indicator_service.get_statistics())


@indicators_bp.route("/available-parents", methods=["GET"])
@require_permission("indicator:read")
def available_parents():
    parents = indicator_service.get_available_parents(arg_int("exclude_id"))
    return api_success([{"id": p.id, "name": p.name, "parent_id": p.parent_id} for p in parents])


@indicators_bp.route("/<int:indicator_id>", methods=["GET"])
@require_permission("indicator:read")
def get_indicator(indicator_id):
    indicator = indicator_service.get_indicator(indicator_id)
    return api_success(indicator.to_dict(include_relations=True))


@indicators_bp.route("/<int:indicator_id>", methods=["PATCH", "PUT"])
@require_permission("indicator:update")
def update_indicator(indicator_id):
    indicator = indicator_service.update_indicator(indicator_id, json_body())
    return api_success(indicator.to_dict(include_relations=True))


@indicators_bp.route("/<int:indicator_id>", methods=["DELETE"])
@require_permission("indicator:delete")
def delete_indicator(indicator_id):
    indicator_service.delete_indicator(indicator_id)
    return api_success({"message": "Performance indicator deleted successfully"})

"""
Documents Blueprint — document records scoped to tenants and projects.

Endpoints:
  POST   /api/v1/documents          document:create
  GET    /api/v1/documents          document:read
  GET    /api/v1/documents/<id>     document:read
  PATCH  /api/v1/documents/<id>     document:update
  DELETE /api/v1/documents/<id>     document:delete
"""

from flask import Blueprint, request

from app.blueprints import arg_int, current_user, json_body, pagination_args, sort_args
from app.middleware.permission_required import require_permission
from app.services import document_service
from app.utils.responses import api_success

documents_bp = Blueprint("documents", __name__, url_prefix="/api/v1/documents")


@documents_bp.route("", methods=["POST"])
@require_permission("document:create")
def create_document():
    document = document_service.create_document(current_user(), json_body())
    return api_success(document.to_dict(), status=201)


@documents_bp.route("", methods=["GET"])
@require_permission("document:read")
def list_documents():
    page, limit = pagination_args()
    filters = {
        "q": request.args.get("q") or request.args.get("search"),
        "tenant_id": arg_int("tenant_id"),
        "project_id": arg_int("project_id"),
        **sort_args(),
    }
    documents, meta = document_service.list_documents(current_user(), filters, page, limit)
    return api_success([d.to_dict() for d in documents], meta=meta)


@documents_bp.route("/<int:document_id>", methods=["GET"])
@require_permission("document:read")
def get_document(document_id):
    return api_success(document_service.get_document(current_user(), document_id).to_dict())


@documents_bp.route("/<int:document_id>", methods=["PATCH", "PUT"])
@require_permission("document:update")
def update_document(document_id):
    document = document_service.update_document(current_user(), document_id, json_body())
    return api_success(document.to_dict())


@documents_bp.route("/<int:document_id>", methods=["DELETE"])
@require_permission("document:delete")
def delete_document(document_id):
    document_service.delete_document(current_user(), document_id)
    return api_success({"message": "Document deleted successfully"})

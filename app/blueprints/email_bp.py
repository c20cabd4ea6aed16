"""
Email Blueprint — test sends and the delivery log.

Endpoints:
  POST /api/v1/email/test     system:admin or user:create
  GET  /api/v1/email/logs     system:admin
"""

from flask import Blueprint, request

from app.blueprints import current_user, json_body
from app.core.exceptions import BadRequestError
from app.middleware.permission_required import require_any_permission, require_permission
from app.services import email_service
from app.utils.helpers import normalize_email, parse_int
from app.utils.responses import api_success

email_bp = Blueprint("email", __name__, url_prefix="/api/v1/email")


@email_bp.route("/test", methods=["POST"])
@require_any_permission("system:admin", "user:create")
def send_test_email():
    """
    Body: { "email": "someone@example.com" }   (defaults to the caller's address)
    """
    target = json_body().get("email") or current_user().email
    if not target:
        raise BadRequestError("email is required")
    log = email_service.send_test(normalize_email(target))
    return api_success({
        "message": "Test email processed",
        "log": log.to_dict() if log else None,
    })


@email_bp.route("/logs", methods=["GET"])
@require_permission("system:admin")
def email_logs():
    limit = min(parse_int(request.args.get("limit"), "limit", 50), 200)
    logs = email_service.list_email_logs(request.args.get("recipient"), limit)
    return api_success([log.to_dict() for log in logs])

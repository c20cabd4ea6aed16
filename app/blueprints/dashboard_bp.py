"""
Dashboard Blueprint — headline numbers for the landing page.

Everything is computed over the projects the caller can see.
"""

from flask import Blueprint

from app.blueprints import current_user
from app.middleware.permission_required import require_permission
from app.services import dashboard_service as svc
from app.utils.responses import api_success

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("/stats", methods=["GET"])
@require_permission("project:read")
def stats():
    """Stats cards, project stages, top countries and pillar split."""
    return api_success(svc.get_dashboard(current_user()))

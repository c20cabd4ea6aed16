"""
Reference Blueprint — lookup data served from third-party providers.

Endpoints:
  GET /api/v1/reference/countries     any authenticated user
"""

from flask import Blueprint

from app.services import reference_service
from app.utils.responses import api_success

reference_bp = Blueprint("reference", __name__, url_prefix="/api/v1/reference")


@reference_bp.route("/countries", methods=["GET"])
def countries():
    return api_success(reference_service.fetch_countries())

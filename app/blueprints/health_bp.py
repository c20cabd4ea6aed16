"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — liveness plus database round-trip
"""

import logging
import time

from flask import Blueprint
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.utils.responses import api_error, api_success

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    """Public: report app and database status."""
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {
            "status": "ok",
            "latency_ms": round((time.perf_counter() - t0) * 1000, 1),
        }
        status = "ok"
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        status = "degraded"
        logger.error("Health check: database failed: %s", exc)

    if status != "ok":
        return api_error(503, "Database unavailable")
    return api_success({"status": status, "checks": checks})

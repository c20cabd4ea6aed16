"""Standardised API response envelopes.

Usage
-----
    from app.utils.responses import api_success, api_error

    return api_success(project.to_dict(), status=201)
    return api_success(items, meta=meta)
    return api_error(404, "Project not found")

Success body::

    {"success": true, "data": ..., "meta": {...}?, "timestamp": "..."}

Error body::

    {"success": false, "statusCode": 404, "message": "...",
     "timestamp": "...", "path": "/api/v1/..."}
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import jsonify, request


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def api_success(data=None, *, status: int = 200, meta: dict | None = None):
    """Return ``(jsonify(body), status)`` in the success envelope."""
    body: dict = {"success": True}
    if meta is not None:
        body["meta"] = meta
    body["data"] = data
    body["timestamp"] = _timestamp()
    return jsonify(body), status


def error_body(status: int, message: str) -> dict:
    return {
        "success": False,
        "statusCode": status,
        "message": message,
        "timestamp": _timestamp(),
        "path": request.path,
    }


def api_error(status: int, message: str):
    """Return ``(jsonify(body), status)`` in the error envelope."""
    return jsonify(error_body(status, message)), status

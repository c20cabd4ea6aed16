"""
Performance Hub
Blueprint registry and shared request helpers.
"""

from flask import g, request

from app.core.exceptions import BadRequestError
from app.utils.helpers import parse_bool, parse_csv, parse_int

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def pagination_args(default_limit=DEFAULT_PAGE_SIZE, max_limit=MAX_PAGE_SIZE):
    """Read page/limit from the query string.

    Query params:
        page   — 1-based page number (default 1)
        limit  — page size (default 10, capped at max_limit)

    Returns:
        (page, limit)
    """
    page = parse_int(request.args.get("page"), "page", 1)
    limit = parse_int(request.args.get("limit"), "limit", default_limit)
    if page < 1:
        raise BadRequestError("page must be >= 1")
    if limit < 1:
        raise BadRequestError("limit must be >= 1")
    return page, min(limit, max_limit)


def sort_args():
    sort_order = (request.args.get("sort_order") or request.args.get("sortOrder") or "").lower()
    if sort_order and sort_order not in ("asc", "desc"):
        raise BadRequestError("sort_order must be 'asc' or 'desc'")
    return {
        "sort_by": request.args.get("sort_by") or request.args.get("sortBy"),
        "sort_order": sort_order or None,
    }


def arg_int(name):
    return parse_int(request.args.get(name), name)


def arg_bool(name):
    return parse_bool(request.args.get(name))


def arg_list(name):
    values = request.args.getlist(name)
    if len(values) == 1:
        return parse_csv(values[0])
    return parse_csv(values)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequestError("Request body must be a JSON object")
    return data


def current_user():
    """The CurrentUser resolved by the JWT middleware."""
    return g.current_user


def client_info():
    return request.remote_addr, request.headers.get("User-Agent", "")

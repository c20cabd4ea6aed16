"""
Indicator Service — the performance indicator tree.

The tree has no depth limit. Descendant sets and the nested hierarchy are
both built from a single ``parent_id → [child ids]`` adjacency map with an
explicit stack, so deep trees never hit the recursion limit.

Reparenting rules:
  - an indicator cannot be its own parent
  - the new parent must exist
  - the new parent cannot be one of the indicator's descendants
"""

import logging
from collections import defaultdict

from sqlalchemy import func, or_

from app.core.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models import db
from app.models.indicator import PerformanceIndicator
from app.models.project import PILLARS, ProjectIndicator
from app.utils.helpers import paginate, parse_float

logger = logging.getLogger(__name__)

INDICATOR_SORT_FIELDS = {
    "name": PerformanceIndicator.name,
    "created_at": PerformanceIndicator.created_at,
    "updated_at": PerformanceIndicator.updated_at,
    "pillar": PerformanceIndicator.pillar,
}

EDITABLE_FIELDS = ("description", "unit")


def _get_indicator(indicator_id: int) -> PerformanceIndicator:
    indicator = db.session.get(PerformanceIndicator, indicator_id)
    if indicator is None:
        raise NotFoundError("Performance indicator not found")
    return indicator


def _ensure_name_free(name: str, exclude_id=None) -> None:
    q = PerformanceIndicator.query.filter(PerformanceIndicator.name == name)
    if exclude_id is not None:
        q = q.filter(PerformanceIndicator.id != exclude_id)
    if q.first():
        raise ConflictError("Performance indicator with this name already exists")


def _validate_pillar(pillar):
    if pillar in (None, ""):
        return None
    if pillar not in PILLARS:
        raise BadRequestError(f"Invalid pillar. Must be one of: {', '.join(PILLARS)}")
    return pillar


def _apply_scores(indicator: PerformanceIndicator, data: dict) -> None:
    if "min_score" in data:
        indicator.min_score = parse_float(data["min_score"], "min_score")
    if "max_score" in data:
        indicator.max_score = parse_float(data["max_score"], "max_score")
    if (
        indicator.min_score is not None
        and indicator.max_score is not None
        and indicator.min_score > indicator.max_score
    ):
        raise BadRequestError("min_score cannot be greater than max_score")


# ═══════════════════════════════════════════════════════════════
# Tree traversal
# ═══════════════════════════════════════════════════════════════
def _adjacency() -> dict[int | None, list[int]]:
    children: dict[int | None, list[int]] = defaultdict(list)
    rows = db.session.query(PerformanceIndicator.id, PerformanceIndicator.parent_id).all()
    for ind_id, parent_id in rows:
        children[parent_id].append(ind_id)
    return children


def get_descendant_ids(indicator_id: int, children=None) -> set[int]:
    """All ids below ``indicator_id`` at any depth (the node itself excluded)."""
    if children is None:
        children = _adjacency()
    found: set[int] = set()
    stack = list(children.get(indicator_id, ()))
    while stack:
        node = stack.pop()
        if node in found:
            continue
        found.add(node)
        stack.extend(children.get(node, ()))
    return found


def _resolve_parent(parent_id, indicator_id=None) -> int | None:
    if parent_id in (None, ""):
        return None
    try:
        parent_id = int(parent_id)
    except (TypeError, ValueError):
        raise BadRequestError("parent_id must be an integer")
    if indicator_id is not None and parent_id == indicator_id:
        raise BadRequestError("Indicator cannot be its own parent")
    if db.session.get(PerformanceIndicator, parent_id) is None:
        raise NotFoundError("Parent indicator not found")
    if indicator_id is not None and parent_id in get_descendant_ids(indicator_id):
        raise BadRequestError("Cannot set parent: this would create a circular reference")
    return parent_id


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
def create_indicator(data: dict) -> PerformanceIndicator:
    name = (data.get("name") or "").strip()
    if not name:
        raise BadRequestError("name is required")
    _ensure_name_free(name)

    indicator = PerformanceIndicator(
        name=name,
        parent_id=_resolve_parent(data.get("parent_id")),
        pillar=_validate_pillar(data.get("pillar")),
        is_grey=bool(data.get("is_grey", False)),
    )
    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(indicator, field, data[field])
    _apply_scores(indicator, data)

    db.session.add(indicator)
    db.session.commit()
    logger.info("Indicator '%s' created (parent=%s)", name, indicator.parent_id)
    return indicator


def list_indicators(filters: dict, page: int, limit: int):
    q = PerformanceIndicator.query
    search = filters.get("q") or filters.get("search")
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            PerformanceIndicator.name.ilike(like),
            PerformanceIndicator.description.ilike(like),
        ))
    if filters.get("parent_id") is not None:
        q = q.filter(PerformanceIndicator.parent_id == filters["parent_id"])
    has_parent = filters.get("has_parent")
    if has_parent is True:
        q = q.filter(PerformanceIndicator.parent_id.isnot(None))
    elif has_parent is False:
        q = q.filter(PerformanceIndicator.parent_id.is_(None))
    if filters.get("pillars"):
        q = q.filter(PerformanceIndicator.pillar.in_(filters["pillars"]))

    column = INDICATOR_SORT_FIELDS.get(filters.get("sort_by") or "name", PerformanceIndicator.name)
    ordered = column.desc() if filters.get("sort_order") == "desc" else column.asc()
    q = q.order_by(ordered, PerformanceIndicator.id)
    return paginate(q, page, limit)


def get_indicator(indicator_id: int) -> PerformanceIndicator:
    return _get_indicator(indicator_id)


def update_indicator(indicator_id: int, data: dict) -> PerformanceIndicator:
    indicator = _get_indicator(indicator_id)

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise BadRequestError("name cannot be empty")
        if name != indicator.name:
            _ensure_name_free(name, exclude_id=indicator.id)
            indicator.name = name
    if "parent_id" in data:
        indicator.parent_id = _resolve_parent(data["parent_id"], indicator.id)
    if "pillar" in data:
        indicator.pillar = _validate_pillar(data["pillar"])
    if "is_grey" in data:
        indicator.is_grey = bool(data["is_grey"])
    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(indicator, field, data[field])
    _apply_scores(indicator, data)

    db.session.commit()
    logger.info("Indicator %s updated", indicator.id)
    return indicator


def delete_indicator(indicator_id: int) -> None:
    indicator = _get_indicator(indicator_id)
    if PerformanceIndicator.query.filter_by(parent_id=indicator.id).count():
        raise BadRequestError("Cannot delete indicator with child indicators")
    if indicator.project_links.count():
        raise BadRequestError("Cannot delete indicator that is linked to projects")
    db.session.delete(indicator)
    db.session.commit()
    logger.info("Indicator %s deleted", indicator_id)


# ═══════════════════════════════════════════════════════════════
# Hierarchy views
# ═══════════════════════════════════════════════════════════════
def _node(indicator: PerformanceIndicator) -> dict:
    return {
        "id": indicator.id,
        "name": indicator.name,
        "description": indicator.description,
        "pillar": indicator.pillar,
        "unit": indicator.unit,
        "is_grey": indicator.is_grey,
        "children": [],
    }


def build_forest(indicators: list[PerformanceIndicator]) -> list[dict]:
    """Nest a flat list into trees, siblings ordered by name.

    Nodes whose parent is not in ``indicators`` become roots.
    """
    ordered = sorted(indicators, key=lambda i: (i.name or "", i.id))
    nodes = {i.id: _node(i) for i in ordered}
    roots = []
    for ind in ordered:
        parent = nodes.get(ind.parent_id)
        if parent is None:
            roots.append(nodes[ind.id])
        else:
            parent["children"].append(nodes[ind.id])
    return roots


def get_hierarchy() -> list[dict]:
    return build_forest(PerformanceIndicator.query.all())


def get_available_parents(exclude_id=None) -> list[PerformanceIndicator]:
    q = PerformanceIndicator.query
    if exclude_id is not None:
        excluded = get_descendant_ids(exclude_id) | {exclude_id}
        q = q.filter(PerformanceIndicator.id.notin_(sorted(excluded)))
    return q.order_by(PerformanceIndicator.name).all()


def get_statistics() -> dict:
    total = PerformanceIndicator.query.count()
    roots = PerformanceIndicator.query.filter(PerformanceIndicator.parent_id.is_(None)).count()
    with_children = (
        db.session.query(func.count(func.distinct(PerformanceIndicator.parent_id)))
        .filter(PerformanceIndicator.parent_id.isnot(None))
        .scalar()
    )
    in_use = db.session.query(func.count(func.distinct(ProjectIndicator.indicator_id))).scalar()
    return {
        "total": total,
        "root_indicators": roots,
        "child_indicators": total - roots,
        "indicators_with_children": with_children or 0,
        "indicators_in_use": in_use or 0,
    }

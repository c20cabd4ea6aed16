"""Project service: CRUD with owner/tenant access checks, status history,
indicator links, statistics, the performance pyramid and the phase timeline.

Multi-step writes (project + indicator links + status row + timeline entry +
documents) commit together. Score recalculation and notification emails run
afterwards and never undo the committed change.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import String, cast, func, or_

from app.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.models import db
from app.models.auth import Tenant, User
from app.models.document import Document
from app.models.indicator import PerformanceIndicator
from app.models.project import (
    COMPLETED_STATUS,
    DEFAULT_STATUS,
    DOMAINS,
    PILLARS,
    PROJECT_STATUSES,
    STATUS_COLORS,
    TRENDS,
    Project,
    ProjectIndicator,
    ProjectStatus,
    ProjectTimeline,
)
from app.services import email_service
from app.services.indicator_service import get_descendant_ids
from app.services.permission_service import (
    CurrentUser,
    access_filter,
    ensure_entity_access,
    is_tenant_member,
)
from app.services.scoring_service import refresh_project_score
from app.utils.helpers import as_utc, paginate, parse_date_input, parse_float, utcnow

logger = logging.getLogger(__name__)

PROJECT_SORT_FIELDS = {
    "code": Project.code,
    "name": Project.name,
    "status": Project.status,
    "score": Project.score,
    "start_date": Project.start_date,
    "end_date": Project.end_date,
    "created_at": Project.created_at,
}

DEFAULT_PHASE_COLOR = "#CCCCCC"


# ═══════════════════════════════════════════════════════════════
# Lookups & validation
# ═══════════════════════════════════════════════════════════════
def _get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    return project


def get_accessible_project(actor: CurrentUser, project_id: int) -> Project:
    project = _get_project(project_id)
    ensure_entity_access(actor, project.owner_id, project.tenant_id, "Access denied to this project")
    return project


def _actor_name(actor: CurrentUser) -> str:
    user = db.session.get(User, actor.id)
    return user.display_name if user else actor.email


def _validate_status(status) -> str:
    if status not in PROJECT_STATUSES:
        raise BadRequestError(f"Invalid status. Must be one of: {', '.join(PROJECT_STATUSES)}")
    return status


def _validate_choices(values, allowed, field) -> list[str]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise BadRequestError(f"{field} must be a list")
    invalid = [v for v in values if v not in allowed]
    if invalid:
        raise BadRequestError(f"Invalid {field}: {', '.join(map(str, invalid))}")
    return list(dict.fromkeys(values))


def _validate_score(value, field="score"):
    score = parse_float(value, field)
    if score is not None and not 0 <= score <= 100:
        raise BadRequestError(f"{field} must be between 0 and 100")
    return score


def _parse_budget(value):
    if value in (None, ""):
        return None
    try:
        budget = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise BadRequestError("budget must be a number")
    if budget < 0:
        raise BadRequestError("budget cannot be negative")
    return budget


def _resolve_owner(owner_id) -> int:
    owner = db.session.get(User, owner_id) if owner_id is not None else None
    if owner is None or owner.is_deleted or not owner.is_active:
        raise BadRequestError("Owner not found or inactive")
    return owner.id


def _resolve_tenant(actor: CurrentUser, tenant_id) -> int | None:
    if tenant_id in (None, ""):
        return None
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise BadRequestError("Tenant not found")
    if not actor.is_elevated and not is_tenant_member(actor, tenant.id):
        raise ForbiddenError("Access denied to this tenant")
    return tenant.id


def _ensure_code_free(code: str, exclude_id=None) -> None:
    q = Project.query.filter(Project.code == code)
    if exclude_id is not None:
        q = q.filter(Project.id != exclude_id)
    if q.first():
        raise ConflictError("Project with this code already exists")


def _check_dates(project: Project) -> None:
    if project.start_date and project.end_date and project.end_date < project.start_date:
        raise BadRequestError("end_date cannot be before start_date")


def _build_links(items) -> list[ProjectIndicator]:
    """Validate the indicator payload and build unsaved link rows."""
    if not isinstance(items, list):
        raise BadRequestError("indicators must be a list")
    links = []
    seen = set()
    for item in items:
        if not isinstance(item, dict) or item.get("indicator_id") in (None, ""):
            raise BadRequestError("Each indicator needs an indicator_id")
        try:
            indicator_id = int(item["indicator_id"])
        except (TypeError, ValueError):
            raise BadRequestError("indicator_id must be an integer")
        if indicator_id in seen:
            raise BadRequestError("Duplicate indicator in project")
        seen.add(indicator_id)
        trend = item.get("expected_trend")
        if trend not in (None, "") and trend not in TRENDS:
            raise BadRequestError(f"Invalid expected_trend. Must be one of: {', '.join(TRENDS)}")
        links.append(ProjectIndicator(
            indicator_id=indicator_id,
            score=_validate_score(item.get("score")),
            expected_score=parse_float(item.get("expected_score"), "expected_score"),
            expected_trend=trend or None,
        ))
    if seen:
        found = PerformanceIndicator.query.filter(PerformanceIndicator.id.in_(seen)).count()
        if found != len(seen):
            raise BadRequestError("Some performance indicators not found")
    return links


def _replace_links(project: Project, links: list[ProjectIndicator]) -> None:
    ProjectIndicator.query.filter_by(project_id=project.id).delete(synchronize_session=False)
    for link in links:
        link.project_id = project.id
        db.session.add(link)


def _attach_files(project: Project, files) -> int:
    if not files:
        return 0
    if not isinstance(files, list):
        raise BadRequestError("files must be a list of URLs")
    for url in files:
        if not isinstance(url, str) or not url.strip():
            raise BadRequestError("files must be a list of URLs")
        name = url.rstrip("/").rsplit("/", 1)[-1].split("?", 1)[0] or "document"
        db.session.add(Document(
            name=name[:255], url=url.strip(), project_id=project.id, tenant_id=project.tenant_id,
        ))
    return len(files)


def _timeline(project_id: int, actor_id: int, event: str, description: str) -> None:
    db.session.add(ProjectTimeline(
        project_id=project_id, created_by=actor_id, event=event, description=description,
    ))


def _apply_fields(actor: CurrentUser, project: Project, data: dict) -> None:
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise BadRequestError("name cannot be empty")
        project.name = name
    for field in ("description", "country", "currency"):
        if field in data:
            setattr(project, field, data[field])
    if "start_date" in data:
        project.start_date = parse_date_input(data["start_date"], "start_date")
    if "end_date" in data:
        project.end_date = parse_date_input(data["end_date"], "end_date")
    if "budget" in data:
        project.budget = _parse_budget(data["budget"])
    if "domains" in data:
        project.domains = _validate_choices(data["domains"], DOMAINS, "domains")
    if "pillars" in data:
        project.pillars = _validate_choices(data["pillars"], PILLARS, "pillars")
    if "owner_id" in data:
        project.owner_id = _resolve_owner(data["owner_id"])
    if "tenant_id" in data:
        project.tenant_id = _resolve_tenant(actor, data["tenant_id"])
    _check_dates(project)


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
def create_project(actor: CurrentUser, data: dict) -> Project:
    code = (data.get("code") or "").strip()
    if not code:
        raise BadRequestError("code is required")
    if not (data.get("name") or "").strip():
        raise BadRequestError("name is required")
    _ensure_code_free(code)

    project = Project(
        code=code,
        status=_validate_status(data.get("status") or DEFAULT_STATUS),
        owner_id=_resolve_owner(data.get("owner_id", actor.id)),
        created_by=actor.id,
        domains=[],
        pillars=[],
    )
    _apply_fields(actor, project, {k: v for k, v in data.items() if k != "owner_id"})
    links = _build_links(data.get("indicators") or [])

    db.session.add(project)
    db.session.flush()
    _replace_links(project, links)
    db.session.add(ProjectStatus(
        project_id=project.id, status=project.status,
        description="Project created", created_by=actor.id,
    ))
    _attach_files(project, data.get("files"))
    _timeline(project.id, actor.id, "Project created",
              f"Project {project.code} created by {_actor_name(actor)}")
    db.session.commit()
    logger.info("Project %s created by %s", project.code, actor.id)

    if links:
        refresh_project_score(project.id)
    return project


def list_projects(actor: CurrentUser, filters: dict, page: int, limit: int):
    q = Project.query
    condition = access_filter(actor, Project.owner_id, Project.tenant_id)
    if condition is not None:
        q = q.filter(condition)

    search = filters.get("q")
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Project.code.ilike(like), Project.name.ilike(like), Project.description.ilike(like),
        ))
    if filters.get("status"):
        q = q.filter(Project.status.in_(filters["status"]))
    if filters.get("country"):
        q = q.filter(Project.country == filters["country"])
    if filters.get("start_date"):
        q = q.filter(Project.start_date >= filters["start_date"])
    if filters.get("end_date"):
        q = q.filter(Project.end_date <= filters["end_date"])
    if filters.get("min_score") is not None:
        q = q.filter(Project.score >= filters["min_score"])
    if filters.get("owner_id"):
        q = q.filter(Project.owner_id == filters["owner_id"])
    if filters.get("tenant_id"):
        q = q.filter(Project.tenant_id == filters["tenant_id"])
    for field, column in (("domains", Project.domains), ("pillars", Project.pillars)):
        wanted = filters.get(field)
        if wanted:
            # JSON list overlap, matched on the serialized element
            text = cast(column, String)
            q = q.filter(or_(*[text.like(f"%{json.dumps(v)}%") for v in wanted]))

    column = PROJECT_SORT_FIELDS.get(filters.get("sort_by") or "created_at", Project.created_at)
    q = q.order_by(column.asc() if filters.get("sort_order") == "asc" else column.desc(), Project.id)
    return paginate(q, page, limit)


def get_project(actor: CurrentUser, project_id: int) -> Project:
    return get_accessible_project(actor, project_id)


def update_project(actor: CurrentUser, project_id: int, data: dict) -> Project:
    project = get_accessible_project(actor, project_id)

    if "code" in data:
        code = (data.get("code") or "").strip()
        if not code:
            raise BadRequestError("code cannot be empty")
        _ensure_code_free(code, exclude_id=project.id)
        project.code = code
    _apply_fields(actor, project, data)

    if "status" in data and data["status"] != project.status:
        project.status = _validate_status(data["status"])
        db.session.add(ProjectStatus(
            project_id=project.id, status=project.status,
            description=f"Status changed to {project.status}", created_by=actor.id,
        ))

    links_replaced = "indicators" in data
    if links_replaced:
        _replace_links(project, _build_links(data.get("indicators") or []))
    _attach_files(project, data.get("files"))
    _timeline(project.id, actor.id, "Project updated",
              f"Project details updated by {_actor_name(actor)}")
    db.session.commit()
    logger.info("Project %s updated by %s", project.id, actor.id)

    if links_replaced:
        refresh_project_score(project.id)
    return project


def delete_project(actor: CurrentUser, project_id: int) -> None:
    project = get_accessible_project(actor, project_id)
    if not actor.is_elevated and project.owner_id != actor.id:
        raise ForbiddenError("Only the project owner can delete this project")
    for model in (Document, ProjectIndicator, ProjectStatus, ProjectTimeline):
        model.query.filter_by(project_id=project.id).delete(synchronize_session=False)
    db.session.delete(project)
    db.session.commit()
    logger.info("Project %s deleted by %s", project_id, actor.id)


# ═══════════════════════════════════════════════════════════════
# Status history & indicator scores
# ═══════════════════════════════════════════════════════════════
def add_status(actor: CurrentUser, project_id: int, data: dict) -> ProjectStatus:
    project = get_accessible_project(actor, project_id)
    status = _validate_status(data.get("status"))
    entry = ProjectStatus(
        project_id=project.id, status=status,
        description=data.get("description"), created_by=actor.id,
    )
    db.session.add(entry)
    project.status = status
    _timeline(project.id, actor.id, "Project status updated",
              f"Status changed to {status} by {_actor_name(actor)}")
    db.session.commit()
    logger.info("Project %s moved to '%s' by %s", project.id, status, actor.id)

    if project.owner_id != actor.id:
        email_service.send_project_status_update(project, entry, db.session.get(User, actor.id))
    return entry


def get_statuses(actor: CurrentUser, project_id: int) -> list[ProjectStatus]:
    project = get_accessible_project(actor, project_id)
    return project.statuses.all()


def update_indicator_score(actor: CurrentUser, project_id: int, indicator_id: int, score) -> dict:
    project = get_accessible_project(actor, project_id)
    if score is None:
        raise BadRequestError("score is required")
    value = _validate_score(score)
    link = ProjectIndicator.query.filter_by(project_id=project.id, indicator_id=indicator_id).first()
    if link is None:
        raise NotFoundError("Performance indicator not found for this project")
    link.score = value
    db.session.commit()
    logger.info("Project %s indicator %s scored %s", project.id, indicator_id, value)

    refresh_project_score(project.id)
    d = link.to_dict()
    d["project_score"] = db.session.get(Project, project.id).score
    return d


# ═══════════════════════════════════════════════════════════════
# Reporting
# ═══════════════════════════════════════════════════════════════
def _visible(actor: CurrentUser):
    q = Project.query
    condition = access_filter(actor, Project.owner_id, Project.tenant_id)
    return q.filter(condition) if condition is not None else q


def get_statistics(actor: CurrentUser) -> dict:
    base = _visible(actor)
    by_status = (
        base.with_entities(Project.status, func.count(Project.id))
        .group_by(Project.status).order_by(Project.status).all()
    )
    by_owner = (
        base.with_entities(Project.owner_id, func.count(Project.id))
        .group_by(Project.owner_id).order_by(Project.owner_id).all()
    )
    recent = base.order_by(Project.created_at.desc(), Project.id.desc()).limit(5).all()
    return {
        "total": base.count(),
        "by_status": [{"status": s, "count": c} for s, c in by_status],
        "by_owner": [{"owner_id": o, "count": c} for o, c in by_owner],
        "recent_projects": [p.to_dict() for p in recent],
        "completed": base.filter(Project.status == COMPLETED_STATUS).count(),
    }


def _progress_items(indicator: PerformanceIndicator, link: ProjectIndicator | None) -> list[dict]:
    value = "0%"
    if link is not None and link.expected_score:
        sign = {"increase": "+", "decrease": "-"}.get(link.expected_trend, "")
        value = f"{sign}{abs(round(link.expected_score))}%"
    items = [{"field": indicator.name, "value": value}]
    if indicator.description and indicator.description != indicator.name:
        items.append({"field": indicator.description, "value": value})
    return items


def _on_progress(indicator: PerformanceIndicator, link: ProjectIndicator | None) -> bool:
    if indicator.is_grey:
        return False
    expected = link.expected_score if link is not None else None
    if not expected:
        return True
    return expected < 100


def _pyramid_level(descendant_count: int) -> int:
    # Leaves sit at the top of the pyramid, wide subtrees at the base
    if descendant_count == 0:
        return 4
    if descendant_count <= 2:
        return 3
    if descendant_count <= 5:
        return 2
    return 1


def _pillar_pyramid(pillar: str, indicators, links: dict[int, ProjectIndicator]) -> list[dict]:
    members = [i for i in indicators if i.pillar == pillar]
    member_ids = {i.id for i in members}
    children: dict[int | None, list[int]] = {}
    for ind in members:
        children.setdefault(ind.parent_id if ind.parent_id in member_ids else None, []).append(ind.id)
    by_id = {i.id: i for i in members}

    roots = sorted((by_id[i] for i in children.get(None, [])), key=lambda i: i.name)
    placed = set()
    result = []
    for root in roots:
        node = {
            "name": root.name,
            "level": _pyramid_level(len(get_descendant_ids(root.id, children))),
            "onprogress": _on_progress(root, links.get(root.id)),
            "progressItem": _progress_items(root, links.get(root.id)),
        }
        kids = sorted((by_id[c] for c in children.get(root.id, [])), key=lambda i: i.name)
        if kids:
            node["subchild"] = [
                {
                    "subLevel": index,
                    "name": child.name,
                    "onprogress": _on_progress(child, links.get(child.id)),
                    "progressItem": _progress_items(child, links.get(child.id)),
                }
                for index, child in enumerate(kids, start=1)
            ]
            placed.update(child.id for child in kids)
        placed.add(root.id)
        result.append(node)

    # Deeper nodes are listed flat after the roots
    for ind in sorted(members, key=lambda i: i.name):
        if ind.id in placed:
            continue
        result.append({
            "name": ind.name,
            "level": _pyramid_level(len(get_descendant_ids(ind.id, children))),
            "onprogress": _on_progress(ind, links.get(ind.id)),
            "progressItem": _progress_items(ind, links.get(ind.id)),
        })
    return result


def get_performance_pyramid(actor: CurrentUser, project_id: int) -> dict:
    project = get_accessible_project(actor, project_id)
    links = {link.indicator_id: link for link in project.indicators.all()}
    indicators = PerformanceIndicator.query.all()
    return {
        f"{pillar.lower()}PerformanceData": _pillar_pyramid(pillar, indicators, links)
        for pillar in PILLARS
    }


def _activity(event, description, when, creator) -> dict:
    return {
        "event": event,
        "description": description or f"{event} activity",
        "date": when.isoformat() if when else None,
        "creator": {"name": creator.display_name if creator else "System"},
    }


def get_timeline(actor: CurrentUser, project_id: int) -> list[dict]:
    """Seven phases spread evenly over the project span with their activities."""
    project = get_accessible_project(actor, project_id)
    today = date.today()
    start = project.start_date or today
    end = project.end_date or today
    total_days = max(1, (end - start).days)
    phase_days = math.ceil(total_days / len(PROJECT_STATUSES))
    activities = project.timeline.all()

    phases = []
    for index, phase in enumerate(PROJECT_STATUSES):
        phase_start = start + timedelta(days=index * phase_days)
        is_last = index == len(PROJECT_STATUSES) - 1
        phase_end = end if is_last else phase_start + timedelta(days=phase_days - 1)
        in_phase = [
            a for a in activities
            if a.created_at and phase_start <= as_utc(a.created_at).date() <= phase_end
        ]
        entries = [_activity(a.event, a.description, as_utc(a.created_at), a.creator) for a in in_phase]
        if not entries and index == 0:
            entries = [_activity(
                f"{phase} Started", f"Project entered {phase} phase", phase_start, project.owner,
            )]
        phases.append({
            "name": phase,
            "startDate": phase_start.isoformat(),
            "endDate": phase_end.isoformat(),
            "color": STATUS_COLORS.get(phase, DEFAULT_PHASE_COLOR),
            "activities": entries,
        })
    return phases


def add_timeline_event(actor: CurrentUser, project_id: int, data: dict) -> ProjectTimeline:
    project = get_accessible_project(actor, project_id)
    event = (data.get("event") or "").strip()
    if not event:
        raise BadRequestError("event is required")
    entry = ProjectTimeline(
        project_id=project.id, created_by=actor.id, event=event,
        description=data.get("description"), created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.commit()
    return entry

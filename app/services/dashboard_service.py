"""
Dashboard Service — aggregate project statistics for the landing page.

All numbers are computed over the projects visible to the caller (the same
owner/tenant filter used by the project list). Period-over-period change
indicators are not reported: there is no history to compute them from.
"""

import logging
from decimal import Decimal

from sqlalchemy import func

from app.models import db
from app.models.project import COMPLETED_STATUS, PILLARS, PROJECT_STATUSES, Project
from app.services.permission_service import CurrentUser, access_filter

logger = logging.getLogger(__name__)

STAGE_COLORS = {
    "Framing": "#A5B4FC",
    "Qualification": "#BFDBFE",
    "Problem Solving": "#FEF3C7",
    "Testing": "#FED7AA",
    "Scale": "#DDD6FE",
    "Deployment Planning": "#BFDBFE",
    "Deployment": "#BBF7D0",
}
COUNTRY_COLORS = ("#6352ce", "#0cb9c5", "#1e88e5", "#8e24aa", "#43a047", "#ff7043")
PILLAR_COLORS = {
    "Environmental": "#90EE90",
    "Operating": "#87CEEB",
    "Safety": "#F0A0A0",
}
TOP_COUNTRIES = 10


def format_budget(amount) -> str:
    """$1.5M / $250.0K / $900 style short form."""
    if not amount:
        return "$0"
    amount = float(amount)
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.1f}K"
    return f"${amount:.0f}"


def _visible_projects(user: CurrentUser):
    q = Project.query
    condition = access_filter(user, Project.owner_id, Project.tenant_id)
    return q.filter(condition) if condition is not None else q


def _stats(total: int, completed: int, budget) -> list[dict]:
    return [
        {"label": "Total Projects", "value": str(total), "color": "blue",
         "icon": "mdi-chart-line"},
        {"label": "Active Projects", "value": str(total - completed), "color": "green",
         "icon": "mdi-trending-up"},
        {"label": "Completed Projects", "value": str(completed), "color": "orange",
         "icon": "mdi-file-document-check-outline"},
        {"label": "Total Budget", "value": format_budget(budget), "color": "purple",
         "icon": "mdi-currency-usd"},
    ]


def _stages(base) -> list[dict]:
    counts = dict(
        base.with_entities(Project.status, func.count(Project.id)).group_by(Project.status).all()
    )
    return [
        {"name": stage, "count": counts.get(stage, 0), "color": STAGE_COLORS.get(stage, "#CCCCCC")}
        for stage in PROJECT_STATUSES
    ]


def _countries(base) -> list[dict]:
    rows = (
        base.filter(Project.country.isnot(None), Project.country != "")
        .with_entities(Project.country, func.count(Project.id))
        .group_by(Project.country)
        .order_by(func.count(Project.id).desc(), Project.country)
        .limit(TOP_COUNTRIES)
        .all()
    )
    return [
        {
            "code": country[:2].upper(),
            "name": country,
            "count_project": count,
            "color": COUNTRY_COLORS[index % len(COUNTRY_COLORS)],
        }
        for index, (country, count) in enumerate(rows)
    ]


def _pillars(base, total: int) -> list[dict]:
    counts = dict.fromkeys(PILLARS, 0)
    for (pillars,) in base.with_entities(Project.pillars).all():
        for pillar in pillars or []:
            if pillar in counts:
                counts[pillar] += 1
    return [
        {
            "name": f"{pillar} Performance",
            "count": counts[pillar],
            "color": PILLAR_COLORS[pillar],
            "percentage": round(counts[pillar] / total * 100) if total else 0,
        }
        for pillar in sorted(PILLARS)
    ]


def get_dashboard(user: CurrentUser) -> dict:
    base = _visible_projects(user)
    total = base.count()
    completed = base.filter(Project.status == COMPLETED_STATUS).count()
    budget = base.with_entities(func.coalesce(func.sum(Project.budget), Decimal(0))).scalar()
    logger.debug("Dashboard for user %s: %d projects", user.id, total)
    return {
        "stats": _stats(total, completed, budget),
        "projectStages": _stages(base),
        "mapCountries": _countries(base),
        "valuePillars": _pillars(base, total),
    }

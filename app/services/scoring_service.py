"""
Project score aggregation.

    project.score = mean(non-null linked indicator scores), rounded half up to 2 dp

or null when no linked indicator carries a score. Recalculation runs after
the triggering mutation has committed; ``refresh_project_score`` logs and
swallows failures so the mutation itself is never undone.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from app.models import db
from app.models.project import Project, ProjectIndicator

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def aggregate_score(scores) -> float | None:
    values = [float(s) for s in scores if s is not None]
    if not values:
        return None
    mean = sum(values) / len(values)
    # half up: 70.125 -> 70.13
    return float(Decimal(str(mean)).quantize(CENT, rounding=ROUND_HALF_UP))


def recalculate_project_score(project_id: int) -> float | None:
    """Recompute and persist the score. Raises on database errors."""
    project = db.session.get(Project, project_id)
    if project is None:
        return None
    rows = (
        db.session.query(ProjectIndicator.score)
        .filter(ProjectIndicator.project_id == project_id)
        .all()
    )
    project.score = aggregate_score(score for (score,) in rows)
    db.session.commit()
    return project.score


def refresh_project_score(project_id: int) -> float | None:
    """Best-effort wrapper used after indicator mutations."""
    try:
        return recalculate_project_score(project_id)
    except Exception:
        db.session.rollback()
        logger.exception("Score recalculation failed for project %s", project_id)
        return None

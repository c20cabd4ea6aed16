"""Project domain models: projects, indicator links, status history, timeline."""

from datetime import datetime, timezone

from app.models import db


# ── Reference values ────────────────────────────────────────────────────
PROJECT_STATUSES = (
    "Framing",
    "Qualification",
    "Problem Solving",
    "Testing",
    "Scale",
    "Deployment Planning",
    "Deployment",
)
DEFAULT_STATUS = "Framing"
COMPLETED_STATUS = "Deployment"

STATUS_COLORS = {
    "Framing": "#FFB366",
    "Qualification": "#6BB6FF",
    "Problem Solving": "#FFE066",
    "Testing": "#FFCC80",
    "Scale": "#B19CD9",
    "Deployment Planning": "#A8C8EC",
    "Deployment": "#A8D8A8",
}

PILLARS = ("Operating", "Environmental", "Safety")

DOMAINS = (
    "D&W",
    "Emission",
    "Exploration",
    "G&R",
    "Operations",
    "Production",
    "Safety",
    "Supply chain / Logistics",
)

TRENDS = ("increase", "decrease")


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Project(db.Model):
    """A tracked initiative, owned by one user and optionally scoped to a tenant."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(2000))
    country = db.Column(db.String(100), index=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(50), nullable=False, default=DEFAULT_STATUS, index=True)
    score = db.Column(
        db.Float, nullable=True,
        comment="Derived: rounded mean of non-null linked indicator scores",
    )
    currency = db.Column(db.String(10))
    budget = db.Column(db.Numeric(18, 2), nullable=True)
    domains = db.Column(db.JSON, nullable=False, default=list)
    pillars = db.Column(db.JSON, nullable=False, default=list)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = db.relationship("User", foreign_keys=[owner_id])
    creator = db.relationship("User", foreign_keys=[created_by])
    tenant = db.relationship("Tenant", back_populates="projects")
    indicators = db.relationship(
        "ProjectIndicator", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    statuses = db.relationship(
        "ProjectStatus", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProjectStatus.created_at.desc()",
    )
    timeline = db.relationship(
        "ProjectTimeline", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ProjectTimeline.created_at",
    )
    documents = db.relationship("Document", back_populates="project", lazy="dynamic")

    def to_dict(self, include_relations=False):
        d = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "country": self.country,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "score": self.score,
            "currency": self.currency,
            "budget": float(self.budget) if self.budget is not None else None,
            "domains": self.domains or [],
            "pillars": self.pillars or [],
            "owner_id": self.owner_id,
            "owner": self.owner.to_summary() if self.owner else None,
            "tenant_id": self.tenant_id,
            "tenant": (
                {"id": self.tenant.id, "code": self.tenant.code, "name": self.tenant.name}
                if self.tenant else None
            ),
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_relations:
            d["indicators"] = [pi.to_dict() for pi in self.indicators.all()]
            d["statuses"] = [s.to_dict() for s in self.statuses.all()]
            d["documents"] = [doc.to_dict() for doc in self.documents.all()]
        return d


class ProjectIndicator(db.Model):
    """Project ↔ indicator link carrying the per-project score."""

    __tablename__ = "project_indicators"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    indicator_id = db.Column(
        db.Integer, db.ForeignKey("performance_indicators.id"), nullable=False, index=True,
    )
    score = db.Column(db.Float, nullable=True)
    expected_score = db.Column(db.Float, nullable=True)
    expected_trend = db.Column(db.String(20), nullable=True)  # increase | decrease
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("project_id", "indicator_id", name="uq_project_indicator"),
    )

    project = db.relationship("Project", back_populates="indicators")
    indicator = db.relationship("PerformanceIndicator", back_populates="project_links")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "indicator_id": self.indicator_id,
            "indicator_name": self.indicator.name if self.indicator else None,
            "pillar": self.indicator.pillar if self.indicator else None,
            "score": self.score,
            "expected_score": self.expected_score,
            "expected_trend": self.expected_trend,
        }


class ProjectStatus(db.Model):
    """Status history entry."""

    __tablename__ = "project_statuses"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    project = db.relationship("Project", back_populates="statuses")
    creator = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "status": self.status,
            "description": self.description,
            "created_by": self.created_by,
            "creator": self.creator.to_summary() if self.creator else None,
            "created_at": _iso(self.created_at),
        }


class ProjectTimeline(db.Model):
    """Free-form activity log rendered by the timeline view."""

    __tablename__ = "project_timeline"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    event = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(1000))
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    project = db.relationship("Project", back_populates="timeline")
    creator = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "event": self.event,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

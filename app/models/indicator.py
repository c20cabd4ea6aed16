"""Performance indicator tree: a self-referential hierarchy of named metrics."""

from datetime import datetime, timezone

from app.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class PerformanceIndicator(db.Model):
    """Named metric definition that projects are scored against.

    ``parent_id`` is nullable; roots have no parent. Cycles are rejected in
    the service layer before any reparenting is committed.
    """

    __tablename__ = "performance_indicators"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.String(1000))
    parent_id = db.Column(
        db.Integer,
        db.ForeignKey("performance_indicators.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    unit = db.Column(db.String(50))
    min_score = db.Column(db.Float, nullable=True)
    max_score = db.Column(db.Float, nullable=True)
    pillar = db.Column(
        db.String(50), nullable=True,
        comment="Operating | Environmental | Safety",
    )
    is_grey = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    parent = db.relationship("PerformanceIndicator", remote_side=[id], back_populates="children")
    children = db.relationship(
        "PerformanceIndicator",
        back_populates="parent",
        order_by="PerformanceIndicator.name",
    )
    project_links = db.relationship("ProjectIndicator", back_populates="indicator", lazy="dynamic")

    def to_dict(self, include_relations=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "unit": self.unit,
            "min_score": self.min_score,
            "max_score": self.max_score,
            "pillar": self.pillar,
            "is_grey": self.is_grey,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_relations:
            d["parent"] = (
                {"id": self.parent.id, "name": self.parent.name} if self.parent else None
            )
            d["children"] = [
                {"id": c.id, "name": c.name, "description": c.description}
                for c in self.children
            ]
            d["project_links"] = [
                {
                    "project_id": link.project_id,
                    "project_code": link.project.code if link.project else None,
                    "project_name": link.project.name if link.project else None,
                    "score": link.score,
                }
                for link in self.project_links.all()
            ]
        return d

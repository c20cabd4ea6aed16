"""Document records, optionally attached to a tenant and/or a project."""

from datetime import datetime, timezone

from app.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Document(db.Model):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(1000))
    content = db.Column(db.Text)
    url = db.Column(db.String(1000), comment="Blob URL when the document is a stored file")
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    tenant = db.relationship("Tenant", back_populates="documents")
    project = db.relationship("Project", back_populates="documents")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "content": self.content,
            "url": self.url,
            "tenant_id": self.tenant_id,
            "tenant": (
                {"id": self.tenant.id, "code": self.tenant.code, "name": self.tenant.name}
                if self.tenant else None
            ),
            "project_id": self.project_id,
            "project": (
                {"id": self.project.id, "code": self.project.code, "name": self.project.name}
                if self.project else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

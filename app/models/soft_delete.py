"""
Soft deletion for accounts.

A soft-deleted row keeps its primary key so projects, sessions and login
logs that point at it stay valid; it just drops out of every listing.

    class User(SoftDeleteMixin, db.Model): ...

    user.soft_delete()
    User.query.filter(User.not_deleted())
"""

from datetime import datetime, timezone

from app.models import db


class SoftDeleteMixin:
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def soft_delete(self, when=None):
        self.is_deleted = True
        self.deleted_at = when or datetime.now(timezone.utc)

    @classmethod
    def not_deleted(cls):
        """Filter criterion for rows still in service."""
        return cls.is_deleted.is_(False)

"""
Auth Models — tenants, users, roles, permissions, sessions, login logs.

A user holds exactly one role; a role bundles permissions through the
role_permissions junction table. Permission names follow ``resource:action``
(e.g. ``project:read``, ``user:anonymize``).
"""

from datetime import datetime, timezone

from app.models import db
from app.models.soft_delete import SoftDeleteMixin


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════
# 1. TENANTS
# ═══════════════════════════════════════════════════════════════
class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(255))
    country = db.Column(db.String(100))
    address = db.Column(db.String(500))
    leader_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL", use_alter=True),
        nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    leader = db.relationship("User", foreign_keys=[leader_id], post_update=True)
    employees = db.relationship(
        "User", back_populates="tenant", lazy="dynamic", foreign_keys="User.tenant_id",
    )
    projects = db.relationship("Project", back_populates="tenant", lazy="dynamic")
    documents = db.relationship("Document", back_populates="tenant", lazy="dynamic")

    def counts(self):
        return {
            "employees": self.employees.count(),
            "projects": self.projects.count(),
            "documents": self.documents.count(),
        }

    def to_dict(self, include_counts=False):
        d = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "country": self.country,
            "address": self.address,
            "leader_id": self.leader_id,
            "leader": self.leader.to_summary() if self.leader else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_counts:
            d["_count"] = self.counts()
        return d


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(SoftDeleteMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True, index=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Lockout
    login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    # Password reset
    reset_token = db.Column(db.String(128), nullable=True, index=True)
    reset_token_expires = db.Column(db.DateTime(timezone=True), nullable=True)

    # Profile
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))
    phone = db.Column(db.String(50))
    address = db.Column(db.String(500))
    city = db.Column(db.String(100))
    country = db.Column(db.String(100))
    postal_code = db.Column(db.String(20))
    avatar = db.Column(db.String(500))
    preferences = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    role = db.relationship("Role", back_populates="users")
    tenant = db.relationship("Tenant", back_populates="employees", foreign_keys=[tenant_id])
    sessions = db.relationship(
        "Session", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )

    @property
    def role_name(self):
        return self.role.name if self.role else None

    @property
    def display_name(self):
        if self.first_name:
            return f"{self.first_name} {self.last_name or ''}".strip()
        return self.email

    def is_locked(self, now=None):
        if not self.locked_until:
            return False
        now = now or _utcnow()
        return self.locked_until.replace(tzinfo=timezone.utc) > now

    def profile_dict(self):
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "postal_code": self.postal_code,
            "avatar": self.avatar,
            "preferences": self.preferences,
        }

    def to_summary(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def to_dict(self, include_permissions=False):
        # password_hash and reset_token never leave the model
        d = {
            "id": self.id,
            "code": self.code,
            "email": self.email,
            "role_id": self.role_id,
            "role_name": self.role_name,
            "tenant_id": self.tenant_id,
            "is_active": self.is_active,
            "is_deleted": self.is_deleted,
            "login_attempts": self.login_attempts,
            "locked_until": _iso(self.locked_until),
            "last_login": _iso(self.last_login),
            "profile": self.profile_dict(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_permissions and self.role:
            d["role"] = self.role.to_dict(include_permissions=True)
        return d


# ═══════════════════════════════════════════════════════════════
# 3. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255))
    level = db.Column(db.Integer, nullable=False, default=0)  # higher = more authority
    is_elevated = db.Column(db.Boolean, nullable=False, default=False)  # bypasses ownership checks
    is_system = db.Column(db.Boolean, nullable=False, default=False)  # seeded, cannot be renamed/deleted
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="dynamic", cascade="all, delete-orphan",
    )
    users = db.relationship("User", back_populates="role", lazy="dynamic")

    @property
    def permission_names(self):
        return sorted(rp.permission.name for rp in self.role_permissions.all())

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "level": self.level,
            "is_elevated": self.is_elevated,
            "is_system": self.is_system,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "_count": {
                "users": self.users.count(),
                "permissions": self.role_permissions.count(),
            },
        }
        if include_permissions:
            d["permissions"] = [rp.permission.to_dict() for rp in self.role_permissions.all()]
        return d


# ═══════════════════════════════════════════════════════════════
# 4. PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)  # e.g. "project:read"
    description = db.Column(db.String(255))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    # Relationships
    role_permissions = db.relationship("RolePermission", back_populates="permission", lazy="dynamic")

    @property
    def resource(self):
        return self.name.split(":", 1)[0]

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }


# ═══════════════════════════════════════════════════════════════
# 5. ROLE_PERMISSIONS (Junction table)
# ═══════════════════════════════════════════════════════════════
class RolePermission(db.Model):
    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    permission_id = db.Column(
        db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    # Relationships
    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions")


# ═══════════════════════════════════════════════════════════════
# 6. SESSIONS
# ═══════════════════════════════════════════════════════════════
class Session(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    token_hash = db.Column(db.String(64), nullable=False, index=True)  # SHA-256 of access token
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    # Relationships
    user = db.relationship("User", back_populates="sessions")

    @property
    def is_expired(self):
        return _utcnow() > self.expires_at.replace(tzinfo=timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
        }


# ═══════════════════════════════════════════════════════════════
# 7. LOGIN_LOGS
# ═══════════════════════════════════════════════════════════════
class LoginLog(db.Model):
    """One row per login attempt, successful or not."""

    __tablename__ = "login_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    identifier = db.Column(db.String(255))  # email or code as typed
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    success = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.String(100))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "success": self.success,
            "reason": self.reason,
            "created_at": _iso(self.created_at),
        }

"""
Seed data — permissions, system roles, a default indicator tree and the
bootstrap superadmin.

Every step is idempotent: existing rows are updated in place, missing rows are
created, and role permission sets are reconciled to the definitions below.
Invoked by ``flask seed``.
"""

import logging

from app.models import db
from app.models.auth import Permission, Role, RolePermission, User
from app.models.indicator import PerformanceIndicator
from app.services.permission_service import invalidate_all_cache
from app.utils.crypto import hash_password

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# PERMISSIONS: resource → actions
# ═══════════════════════════════════════════════════════════════
PERMISSION_ACTIONS = {
    "user": ("create", "read", "update", "delete", "anonymize", "activate", "unlock", "view-logs"),
    "role": ("create", "read", "update", "delete"),
    "permission": ("create", "read", "update", "delete", "assign"),
    "system": ("admin", "logs", "monitoring"),
    "tenant": ("create", "read", "update", "delete"),
    "project": ("create", "read", "update", "delete"),
    "document": ("create", "read", "update", "delete"),
    "indicator": ("create", "read", "update", "delete"),
    "profile": ("read", "update"),
}

ALL_PERMISSIONS = [
    f"{resource}:{action}"
    for resource, actions in PERMISSION_ACTIONS.items()
    for action in actions
]


def _crud(resource):
    return [f"{resource}:{action}" for action in ("create", "read", "update", "delete")]


# ═══════════════════════════════════════════════════════════════
# ROLES: level decides who may grant what
# ═══════════════════════════════════════════════════════════════
ROLES = {
    "superadmin": {
        "description": "Full system access; protected from modification",
        "level": 100,
        "is_elevated": True,
        "permissions": "*",
    },
    "admin": {
        "description": "Administers users, tenants and the project registry",
        "level": 80,
        "is_elevated": True,
        "permissions": [
            "user:create", "user:read", "user:update", "user:delete",
            "user:activate", "user:unlock", "user:view-logs",
            "role:read", "permission:read",
            *_crud("tenant"), *_crud("project"), *_crud("document"), *_crud("indicator"),
            "profile:read", "profile:update", "system:logs",
        ],
    },
    "user": {
        "description": "Works on projects they own or that belong to their tenant",
        "level": 20,
        "is_elevated": False,
        "permissions": [
            "user:read", "permission:read", "profile:read", "profile:update",
            "project:create", "project:read", "project:update",
            "document:create", "document:read", "document:update",
            "indicator:read", "tenant:read",
        ],
    },
    "viewer": {
        "description": "Read-only access to their own and their tenant's records",
        "level": 10,
        "is_elevated": False,
        "permissions": [
            "profile:read", "profile:update",
            "project:read", "document:read", "indicator:read",
        ],
    },
}


# ═══════════════════════════════════════════════════════════════
# INDICATORS: (name, description, pillar, children)
# ═══════════════════════════════════════════════════════════════
INDICATOR_TREE = [
    ("Production Optimization", "Optimize production processes and efficiency", "Operating", [
        ("Deliver Profitable Project", "Projects deliver expected profitability (5-10%)", "Operating", []),
    ]),
    ("Cost Vigilance", "Monitor and control operational costs", "Operating", [
        ("Monitor Daily Expenses", "Track daily operational expenses", "Operating", []),
        ("Review Supplier Contracts", "Regular review of supplier contracts", "Operating", []),
    ]),
    ("Digital Excellence", "Digital excellence and operational efficiency initiatives", "Operating", [
        ("Operational Efficiency", "Improve operational processes", "Operating", [
            ("Improve Process", "Streamline business processes", "Operating", []),
            ("Train Staff", "Training to improve staff efficiency", "Operating", []),
        ]),
        ("Profitable Delivery", "Project delivery with focus on profitability", "Operating", [
            ("Project Management Practices", "Effective project management for profitability", "Operating", []),
            ("Project Review", "Regular reviews against profitability targets", "Operating", []),
        ]),
    ]),
    ("Decreasing Methane Intensity", "Reduce methane emissions", "Environmental", [
        ("Upgrade Equipment", "Upgrade equipment to reduce emissions", "Environmental", []),
        ("Monitor Emissions", "Continuous monitoring of methane emissions", "Environmental", []),
        ("Implement Best Practices", "Industry best practices for methane reduction", "Environmental", []),
    ]),
    ("Safety Culture", "Strengthen safety across operations", "Safety", [
        ("Incident Reduction", "Reduce recordable incidents", "Safety", []),
        ("Safety Training", "Safety training coverage", "Safety", []),
    ]),
]


def _expand_permissions(spec) -> set[str]:
    if spec == "*":
        return set(ALL_PERMISSIONS)
    return {p for p in spec if p in ALL_PERMISSIONS}


def seed_permissions() -> int:
    created = 0
    for name in ALL_PERMISSIONS:
        if not Permission.query.filter_by(name=name).first():
            resource, action = name.split(":", 1)
            db.session.add(Permission(name=name, description=f"{action.title()} {resource}"))
            created += 1
    db.session.commit()
    return created


def seed_roles() -> int:
    created = 0
    perms_by_name = {p.name: p for p in Permission.query.all()}
    for role_name, cfg in ROLES.items():
        role = Role.query.filter_by(name=role_name).first()
        if role is None:
            role = Role(name=role_name)
            db.session.add(role)
            created += 1
        role.description = cfg["description"]
        role.level = cfg["level"]
        role.is_elevated = cfg["is_elevated"]
        role.is_system = True
        db.session.flush()

        target = _expand_permissions(cfg["permissions"])
        existing = {rp.permission.name: rp for rp in role.role_permissions.all()}
        for name in target - existing.keys():
            db.session.add(RolePermission(role_id=role.id, permission_id=perms_by_name[name].id))
        for name in existing.keys() - target:
            db.session.delete(existing[name])
    db.session.commit()
    invalidate_all_cache()
    return created


def seed_indicators() -> int:
    created = 0
    stack = [(None, node) for node in reversed(INDICATOR_TREE)]
    while stack:
        parent_id, (name, description, pillar, children) = stack.pop()
        indicator = PerformanceIndicator.query.filter_by(name=name).first()
        if indicator is None:
            indicator = PerformanceIndicator(
                name=name, description=description, pillar=pillar, parent_id=parent_id,
            )
            db.session.add(indicator)
            db.session.flush()
            created += 1
        stack.extend((indicator.id, child) for child in reversed(children))
    db.session.commit()
    return created


def seed_superadmin(email: str, password: str) -> User:
    user = User.query.filter_by(email=email).first()
    if user is not None:
        return user
    role = Role.query.filter_by(name="superadmin").first()
    user = User(
        code="SUPERADMIN",
        email=email,
        password_hash=hash_password(password),
        role_id=role.id if role else None,
        first_name="Super",
        last_name="Admin",
    )
    db.session.add(user)
    db.session.commit()
    return user


def seed_all(admin_email: str | None = None, admin_password: str | None = None) -> dict:
    summary = {
        "permissions_created": seed_permissions(),
        "roles_created": seed_roles(),
        "indicators_created": seed_indicators(),
    }
    if admin_email and admin_password:
        summary["superadmin_id"] = seed_superadmin(admin_email, admin_password).id
    logger.info("Seed complete: %s", summary)
    return summary

"""
Shared pytest fixtures for the Performance Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - roles: Seeded permissions + system roles, keyed by role name
    - make_user: Factory for users with a given role / tenant
    - auth_headers: Factory returning a Bearer header for a user
    - superadmin, admin, regular_user, other_user, viewer: ready-made accounts
    - tenant: A tenant with ``regular_user`` as employee
"""

import functools

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import Role, Tenant, User
from app.services.jwt_service import create_session, generate_access_token
from app.services.permission_service import invalidate_all_cache
from app.services.seed_service import seed_permissions, seed_roles
from app.utils.crypto import hash_password

DEFAULT_PASSWORD = "Passw0rd!123"


@functools.lru_cache(maxsize=1)
def _default_hash():
    # bcrypt is slow on purpose; hash the shared test password once
    return hash_password(DEFAULT_PASSWORD)


def _clear_tables():
    """Empty every table so the drop never trips a foreign key.

    SQLite empties a table row by row on DROP while foreign keys are on,
    which fails for self-referencing indicator rows and the tenants/users
    cycle. Nullable foreign keys are cleared first, then rows go children
    first.
    """
    tables = _db.metadata.sorted_tables
    for table in tables:
        nullable = {c: None for c in table.columns if c.foreign_keys and c.nullable}
        if nullable:
            _db.session.execute(table.update().values(nullable))
    for table in reversed(tables):
        _db.session.execute(table.delete())
    _db.session.commit()


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _clear_tables()
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # ids are reused after every recreate; stale role permission sets must go
        invalidate_all_cache()
        yield
        invalidate_all_cache()
        _db.session.rollback()
        _clear_tables()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Auth fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def roles():
    """Seed the permission catalogue and the four system roles."""
    seed_permissions()
    seed_roles()
    return {r.name: r for r in Role.query.all()}


@pytest.fixture()
def make_user(roles):
    counter = {"n": 0}

    def _make(role_name="user", *, email=None, tenant=None, password=None, **fields):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            code=fields.pop("code", f"U{n:03d}"),
            email=email or f"{role_name}{n}@example.com",
            password_hash=hash_password(password) if password else _default_hash(),
            role_id=roles[role_name].id,
            tenant_id=tenant.id if tenant is not None else None,
            **fields,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_headers():
    """Open a session for ``user`` and return the Authorization header."""

    def _headers(user):
        token, _ = generate_access_token(user.id, user.email, user.role_name, user.tenant_id)
        create_session(user.id, token, "127.0.0.1", "pytest")
        _db.session.commit()
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def superadmin(make_user):
    return make_user("superadmin", email="root@example.com", code="SUPERADMIN")


@pytest.fixture()
def admin(make_user):
    return make_user("admin", email="admin@example.com")


@pytest.fixture()
def regular_user(make_user):
    return make_user("user", email="alice@example.com", first_name="Alice")


@pytest.fixture()
def other_user(make_user):
    return make_user("user", email="bob@example.com", first_name="Bob")


@pytest.fixture()
def viewer(make_user):
    return make_user("viewer", email="viewer@example.com")


@pytest.fixture()
def tenant(regular_user):
    """A tenant with ``regular_user`` as its only employee."""
    t = Tenant(code="T-NORTH", name="North Region", country="Norway")
    _db.session.add(t)
    _db.session.flush()
    regular_user.tenant_id = t.id
    _db.session.commit()
    return t

"""
Access control tests — permission membership, ownership/tenant membership,
escalation guard and protected accounts.
"""

import pytest

from app.core.exceptions import ForbiddenError
from app.models import db
from app.models.auth import Permission, RolePermission
from app.models.project import Project
from app.services.permission_service import (
    CurrentUser,
    build_current_user,
    can_access_entity,
    check_permission,
    ensure_can_assign_role,
    ensure_not_protected,
    get_role_permissions,
    invalidate_all_cache,
    member_tenant_ids,
)


def _project(owner, tenant=None, code="P-001"):
    p = Project(code=code, name=f"Project {code}", owner_id=owner.id, created_by=owner.id,
                tenant_id=tenant.id if tenant else None, domains=[], pillars=[])
    db.session.add(p)
    db.session.commit()
    return p


# ═══════════════════════════════════════════════════════════════
# Permission membership
# ═══════════════════════════════════════════════════════════════

class TestPermissionMembership:
    def test_unauthenticated(self):
        with pytest.raises(ForbiddenError, match="User not authenticated"):
            check_permission(None, "project:read")

    def test_missing_permission_set(self):
        user = CurrentUser(id=1, email="x@example.com", role_name="user")
        with pytest.raises(ForbiddenError, match="User permissions not found"):
            check_permission(user, "project:read")

    def test_insufficient_permission_message(self, regular_user):
        user = build_current_user(regular_user)
        with pytest.raises(ForbiddenError) as exc:
            check_permission(user, "project:delete")
        assert exc.value.message == "Insufficient permissions: project:delete required"

    def test_permission_set_is_immutable(self, regular_user):
        user = build_current_user(regular_user)
        assert isinstance(user.permissions, frozenset)
        assert user.has("project:read")

    def test_superadmin_holds_every_permission(self, superadmin):
        perms = get_role_permissions(superadmin.role_id)
        assert perms == {p.name for p in Permission.query.all()}

    def test_cache_invalidation_picks_up_new_grant(self, app, viewer):
        perm = Permission.query.filter_by(name="project:create").one()
        app.config["PERMISSION_CACHE_TTL"] = 300
        try:
            assert "project:create" not in get_role_permissions(viewer.role_id)
            db.session.add(RolePermission(role_id=viewer.role_id, permission_id=perm.id))
            db.session.commit()
            assert "project:create" not in get_role_permissions(viewer.role_id)
            invalidate_all_cache()
            assert "project:create" in get_role_permissions(viewer.role_id)
        finally:
            app.config["PERMISSION_CACHE_TTL"] = 0


# ═══════════════════════════════════════════════════════════════
# Ownership & tenant membership
# ═══════════════════════════════════════════════════════════════

class TestEntityAccess:
    def test_elevated_bypasses_ownership(self, admin, other_user):
        assert can_access_entity(build_current_user(admin), owner_id=other_user.id)

    def test_owner_without_tenant(self, other_user):
        assert can_access_entity(build_current_user(other_user), owner_id=other_user.id)

    def test_employee_of_tenant(self, regular_user, other_user, tenant):
        actor = build_current_user(regular_user)
        assert can_access_entity(actor, owner_id=other_user.id, tenant_id=tenant.id)

    def test_tenant_leader(self, other_user, admin, tenant):
        tenant.leader_id = other_user.id
        db.session.commit()
        actor = build_current_user(other_user)
        assert tenant.id in member_tenant_ids(actor)
        assert can_access_entity(actor, owner_id=admin.id, tenant_id=tenant.id)

    def test_stranger_denied(self, regular_user, other_user, tenant):
        actor = build_current_user(other_user)
        assert not can_access_entity(actor, owner_id=regular_user.id, tenant_id=tenant.id)
        assert not can_access_entity(actor, owner_id=None, tenant_id=None)


class TestProjectAccessOverHttp:
    def test_owner_reads_and_updates_without_tenant(self, client, other_user, auth_headers):
        project = _project(other_user)
        headers = auth_headers(other_user)
        assert client.get(f"/api/v1/projects/{project.id}", headers=headers).status_code == 200
        res = client.patch(f"/api/v1/projects/{project.id}", headers=headers,
                           json={"description": "updated"})
        assert res.status_code == 200

    def test_non_owner_non_member_forbidden(self, client, regular_user, other_user, auth_headers):
        project = _project(regular_user)
        res = client.get(f"/api/v1/projects/{project.id}", headers=auth_headers(other_user))
        assert res.status_code == 403
        assert res.get_json()["message"] == "Access denied to this project"

    def test_delete_requires_permission_even_for_owner(self, client, regular_user, auth_headers):
        project = _project(regular_user)
        res = client.delete(f"/api/v1/projects/{project.id}", headers=auth_headers(regular_user))
        assert res.status_code == 403
        assert "project:delete" in res.get_json()["message"]
        assert db.session.get(Project, project.id) is not None

    def test_list_only_shows_visible_projects(self, client, regular_user, other_user, tenant, auth_headers):
        _project(regular_user, code="MINE")
        _project(other_user, tenant=tenant, code="TENANT")
        _project(other_user, code="HIDDEN")
        res = client.get("/api/v1/projects", headers=auth_headers(regular_user))
        codes = sorted(p["code"] for p in res.get_json()["data"])
        assert codes == ["MINE", "TENANT"]

    def test_admin_sees_everything(self, client, admin, regular_user, other_user, auth_headers):
        _project(regular_user, code="A")
        _project(other_user, code="B")
        res = client.get("/api/v1/projects", headers=auth_headers(admin))
        assert res.get_json()["meta"]["total"] == 2


# ═══════════════════════════════════════════════════════════════
# Escalation & protected accounts
# ═══════════════════════════════════════════════════════════════

class TestEscalation:
    def test_admin_cannot_grant_admin(self, admin, roles):
        with pytest.raises(ForbiddenError):
            ensure_can_assign_role(build_current_user(admin), roles["admin"])

    def test_admin_cannot_grant_superadmin(self, admin, roles):
        with pytest.raises(ForbiddenError):
            ensure_can_assign_role(build_current_user(admin), roles["superadmin"])

    def test_admin_can_grant_non_elevated(self, admin, roles):
        ensure_can_assign_role(build_current_user(admin), roles["user"])
        ensure_can_assign_role(build_current_user(admin), roles["viewer"])

    def test_superadmin_can_grant_admin_but_not_superadmin(self, superadmin, roles):
        actor = build_current_user(superadmin)
        ensure_can_assign_role(actor, roles["admin"])
        with pytest.raises(ForbiddenError):
            ensure_can_assign_role(actor, roles["superadmin"])

    def test_superadmin_is_protected(self, superadmin):
        with pytest.raises(ForbiddenError, match="Superadmin users cannot be deleted"):
            ensure_not_protected(superadmin, "deleted")

    def test_regular_user_not_protected(self, regular_user):
        ensure_not_protected(regular_user, "deleted")

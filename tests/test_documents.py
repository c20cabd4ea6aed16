"""
Document registry tests — reachability through project ownership or tenant
membership, reference validation and list scoping.
"""

import pytest

from app.models import db
from app.models.auth import Tenant
from app.models.document import Document
from app.models.project import Project


@pytest.fixture()
def projects(regular_user, other_user, tenant):
    mine = Project(code="MINE", name="Alice pilot", owner_id=regular_user.id, domains=[], pillars=[])
    shared = Project(code="SHARED", name="North rollout", owner_id=other_user.id,
                     tenant_id=tenant.id, domains=[], pillars=[])
    private = Project(code="PRIVATE", name="Bob sandbox", owner_id=other_user.id,
                      domains=[], pillars=[])
    db.session.add_all([mine, shared, private])
    db.session.commit()
    return {"mine": mine, "shared": shared, "private": private}


def _doc(name, project=None, tenant=None):
    d = Document(name=name, project_id=project.id if project else None,
                 tenant_id=tenant.id if tenant else None)
    db.session.add(d)
    db.session.commit()
    return d


# ═══════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════

class TestCreateDocument:
    def test_create_on_own_project(self, client, regular_user, projects, auth_headers):
        res = client.post("/api/v1/documents", headers=auth_headers(regular_user), json={
            "name": "scope.pdf", "project_id": projects["mine"].id, "url": "https://x.example/scope.pdf",
        })
        assert res.status_code == 201
        assert res.get_json()["data"]["project"]["code"] == "MINE"

    def test_name_required(self, client, regular_user, auth_headers):
        res = client.post("/api/v1/documents", headers=auth_headers(regular_user), json={"name": " "})
        assert res.status_code == 400

    def test_unknown_project(self, client, regular_user, auth_headers):
        res = client.post("/api/v1/documents", headers=auth_headers(regular_user),
                          json={"name": "x", "project_id": 999})
        assert res.status_code == 400
        assert res.get_json()["message"] == "Project not found"

    def test_unknown_tenant(self, client, regular_user, auth_headers):
        res = client.post("/api/v1/documents", headers=auth_headers(regular_user),
                          json={"name": "x", "tenant_id": 999})
        assert res.status_code == 400
        assert res.get_json()["message"] == "Tenant not found"

    def test_foreign_project_forbidden(self, client, regular_user, projects, auth_headers):
        res = client.post("/api/v1/documents", headers=auth_headers(regular_user),
                          json={"name": "x", "project_id": projects["private"].id})
        assert res.status_code == 403

    def test_foreign_tenant_forbidden(self, client, other_user, tenant, auth_headers):
        res = client.post("/api/v1/documents", headers=auth_headers(other_user),
                          json={"name": "x", "tenant_id": tenant.id})
        assert res.status_code == 403
        assert res.get_json()["message"] == "Access denied to this tenant"


# ═══════════════════════════════════════════════════════════════
# Access
# ═══════════════════════════════════════════════════════════════

class TestDocumentAccess:
    def test_reach_through_tenant_project(self, client, regular_user, projects, auth_headers):
        doc = _doc("rollout.pdf", project=projects["shared"])
        res = client.get(f"/api/v1/documents/{doc.id}", headers=auth_headers(regular_user))
        assert res.status_code == 200

    def test_reach_through_own_tenant(self, client, regular_user, tenant, auth_headers):
        doc = _doc("policy.pdf", tenant=tenant)
        res = client.get(f"/api/v1/documents/{doc.id}", headers=auth_headers(regular_user))
        assert res.status_code == 200

    def test_denied_outside_scope(self, client, regular_user, projects, auth_headers):
        doc = _doc("secret.pdf", project=projects["private"])
        res = client.get(f"/api/v1/documents/{doc.id}", headers=auth_headers(regular_user))
        assert res.status_code == 403
        assert res.get_json()["message"] == "Access denied to this document"

    def test_project_scope_wins_over_tenant(self, client, other_user, projects, auth_headers):
        # project owned by alice, filed under a tenant bob does not belong to either
        south = Tenant(code="T-SOUTH", name="South")
        db.session.add(south)
        db.session.commit()
        doc = _doc("mixed.pdf", project=projects["mine"], tenant=south)
        res = client.get(f"/api/v1/documents/{doc.id}", headers=auth_headers(other_user))
        assert res.status_code == 403

    def test_missing_document(self, client, admin, auth_headers):
        res = client.get("/api/v1/documents/777", headers=auth_headers(admin))
        assert res.status_code == 404

    def test_list_is_scoped(self, client, regular_user, projects, tenant, auth_headers):
        _doc("a.pdf", project=projects["mine"])
        _doc("b.pdf", project=projects["shared"])
        _doc("c.pdf", project=projects["private"])
        _doc("d.pdf", tenant=tenant)
        _doc("e.pdf")
        res = client.get("/api/v1/documents?sort_by=name&sort_order=asc",
                         headers=auth_headers(regular_user))
        assert [d["name"] for d in res.get_json()["data"]] == ["a.pdf", "b.pdf", "d.pdf"]

    def test_admin_lists_everything(self, client, admin, projects, auth_headers):
        _doc("a.pdf", project=projects["mine"])
        _doc("e.pdf")
        res = client.get("/api/v1/documents", headers=auth_headers(admin))
        assert res.get_json()["meta"]["total"] == 2

    def test_search(self, client, admin, projects, auth_headers):
        _doc("budget.xlsx", project=projects["mine"])
        _doc("minutes.docx", project=projects["shared"])
        res = client.get("/api/v1/documents?q=rollout", headers=auth_headers(admin))
        assert [d["name"] for d in res.get_json()["data"]] == ["minutes.docx"]


# ═══════════════════════════════════════════════════════════════
# Update / delete
# ═══════════════════════════════════════════════════════════════

class TestDocumentMutations:
    def test_update_fields(self, client, regular_user, projects, auth_headers):
        doc = _doc("draft.pdf", project=projects["mine"])
        res = client.patch(f"/api/v1/documents/{doc.id}", headers=auth_headers(regular_user),
                           json={"name": "final.pdf", "description": "Signed"})
        assert res.get_json()["data"]["name"] == "final.pdf"

    def test_user_cannot_delete(self, client, regular_user, projects, auth_headers):
        doc = _doc("draft.pdf", project=projects["mine"])
        res = client.delete(f"/api/v1/documents/{doc.id}", headers=auth_headers(regular_user))
        assert res.status_code == 403

    def test_admin_deletes(self, client, admin, projects, auth_headers):
        doc = _doc("draft.pdf", project=projects["mine"])
        assert client.delete(f"/api/v1/documents/{doc.id}", headers=auth_headers(admin)).status_code == 200
        assert db.session.get(Document, doc.id) is None

"""
Indicator tree tests — reparenting rules, delete guards, hierarchy views.
"""

import pytest

from app.core.exceptions import BadRequestError, NotFoundError
from app.models import db
from app.models.indicator import PerformanceIndicator
from app.models.project import Project, ProjectIndicator
from app.services import indicator_service


def _chain(depth):
    """Create a straight line root → ... → leaf and return the ids."""
    ids = []
    parent_id = None
    for i in range(depth):
        ind = PerformanceIndicator(name=f"Level {i}", parent_id=parent_id)
        db.session.add(ind)
        db.session.flush()
        ids.append(ind.id)
        parent_id = ind.id
    db.session.commit()
    return ids


@pytest.fixture()
def tree():
    """root ─┬─ a ── a1
             └─ b
    """
    root = indicator_service.create_indicator({"name": "Root", "pillar": "Operating"})
    a = indicator_service.create_indicator({"name": "A", "parent_id": root.id})
    a1 = indicator_service.create_indicator({"name": "A1", "parent_id": a.id})
    b = indicator_service.create_indicator({"name": "B", "parent_id": root.id})
    return {"root": root, "a": a, "a1": a1, "b": b}


# ═══════════════════════════════════════════════════════════════
# Descendants & reparenting
# ═══════════════════════════════════════════════════════════════

class TestDescendants:
    def test_descendant_ids(self, tree):
        ids = indicator_service.get_descendant_ids(tree["root"].id)
        assert ids == {tree["a"].id, tree["a1"].id, tree["b"].id}
        assert indicator_service.get_descendant_ids(tree["a1"].id) == set()

    def test_deep_chain_has_no_recursion_limit(self):
        ids = _chain(1500)
        assert len(indicator_service.get_descendant_ids(ids[0])) == 1499
        forest = indicator_service.get_hierarchy()
        assert len(forest) == 1


class TestReparenting:
    def test_parent_to_descendant_is_circular(self, tree):
        with pytest.raises(BadRequestError, match="[Cc]ircular"):
            indicator_service.update_indicator(tree["root"].id, {"parent_id": tree["a1"].id})

    def test_parent_to_direct_child_is_circular(self, tree):
        with pytest.raises(BadRequestError, match="[Cc]ircular"):
            indicator_service.update_indicator(tree["a"].id, {"parent_id": tree["a1"].id})

    def test_own_parent_rejected(self, tree):
        with pytest.raises(BadRequestError):
            indicator_service.update_indicator(tree["a"].id, {"parent_id": tree["a"].id})

    def test_unknown_parent_rejected(self, tree):
        with pytest.raises(NotFoundError, match="Parent indicator not found"):
            indicator_service.update_indicator(tree["a"].id, {"parent_id": 99999})

    def test_non_descendant_parent_accepted(self, tree):
        moved = indicator_service.update_indicator(tree["a1"].id, {"parent_id": tree["b"].id})
        assert moved.parent_id == tree["b"].id

    def test_detach_to_root(self, tree):
        moved = indicator_service.update_indicator(tree["a"].id, {"parent_id": None})
        assert moved.parent_id is None

    def test_deep_chain_cycle_detected(self):
        ids = _chain(300)
        with pytest.raises(BadRequestError):
            indicator_service.update_indicator(ids[0], {"parent_id": ids[-1]})


# ═══════════════════════════════════════════════════════════════
# Delete guards
# ═══════════════════════════════════════════════════════════════

class TestDelete:
    def test_delete_with_children_rejected(self, tree):
        with pytest.raises(BadRequestError, match="Cannot delete indicator with child indicators"):
            indicator_service.delete_indicator(tree["root"].id)

    def test_delete_linked_leaf_rejected(self, tree, regular_user):
        project = Project(code="P1", name="P1", owner_id=regular_user.id, domains=[], pillars=[])
        db.session.add(project)
        db.session.flush()
        db.session.add(ProjectIndicator(project_id=project.id, indicator_id=tree["b"].id))
        db.session.commit()
        with pytest.raises(BadRequestError, match="linked to projects"):
            indicator_service.delete_indicator(tree["b"].id)

    def test_delete_free_leaf(self, tree):
        indicator_service.delete_indicator(tree["a1"].id)
        assert db.session.get(PerformanceIndicator, tree["a1"].id) is None

    def test_delete_missing(self, roles):
        with pytest.raises(NotFoundError, match="Performance indicator not found"):
            indicator_service.delete_indicator(12345)


# ═══════════════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════════════

class TestIndicatorApi:
    def test_create_and_duplicate_name(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        res = client.post("/api/v1/indicators", headers=headers,
                          json={"name": "Cost", "pillar": "Operating"})
        assert res.status_code == 201
        dup = client.post("/api/v1/indicators", headers=headers, json={"name": "Cost"})
        assert dup.status_code == 409

    def test_invalid_pillar(self, client, admin, auth_headers):
        res = client.post("/api/v1/indicators", headers=auth_headers(admin),
                          json={"name": "X", "pillar": "Financial"})
        assert res.status_code == 400

    def test_circular_update_over_http(self, client, admin, auth_headers, tree):
        res = client.patch(f"/api/v1/indicators/{tree['root'].id}", headers=auth_headers(admin),
                           json={"parent_id": tree["a1"].id})
        assert res.status_code == 400
        assert res.get_json()["success"] is False

    def test_hierarchy(self, client, regular_user, auth_headers, tree):
        res = client.get("/api/v1/indicators/hierarchy", headers=auth_headers(regular_user))
        roots = res.get_json()["data"]
        assert [r["name"] for r in roots] == ["Root"]
        assert [c["name"] for c in roots[0]["children"]] == ["A", "B"]
        assert roots[0]["children"][0]["children"][0]["name"] == "A1"

    def test_available_parents_excludes_subtree(self, client, admin, auth_headers, tree):
        res = client.get(f"/api/v1/indicators/available-parents?exclude_id={tree['a'].id}",
                         headers=auth_headers(admin))
        names = sorted(p["name"] for p in res.get_json()["data"])
        assert names == ["B", "Root"]

    def test_list_filters_and_paginates(self, client, admin, auth_headers, tree):
        res = client.get("/api/v1/indicators?has_parent=false&limit=10", headers=auth_headers(admin))
        body = res.get_json()
        assert [i["name"] for i in body["data"]] == ["Root"]
        assert body["meta"]["total"] == 1

    def test_statistics(self, client, admin, auth_headers, tree):
        res = client.get("/api/v1/indicators/statistics", headers=auth_headers(admin))
        stats = res.get_json()["data"]
        assert stats["total"] == 4
        assert stats["root_indicators"] == 1
        assert stats["indicators_with_children"] == 2

    def test_user_cannot_create(self, client, regular_user, auth_headers):
        res = client.post("/api/v1/indicators", headers=auth_headers(regular_user), json={"name": "Z"})
        assert res.status_code == 403


# ═══════════════════════════════════════════════════════════════
# Test isolation
# ═══════════════════════════════════════════════════════════════

class TestTreeTeardown:
    """Runs in order: the second test sees nothing the first one built."""

    def test_builds_nested_tree_and_tenant_cycle(self, tree, tenant, regular_user):
        _chain(30)
        tenant.leader_id = regular_user.id
        db.session.commit()
        assert PerformanceIndicator.query.count() == 34

    def test_previous_tree_is_gone(self):
        assert PerformanceIndicator.query.count() == 0
        assert indicator_service.get_hierarchy() == []

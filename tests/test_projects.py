"""
Project registry tests — CRUD, score aggregation, status history,
pyramid and timeline views.
"""

from unittest import mock

import pytest

from app.models import db
from app.models.document import Document
from app.models.email_log import EmailLog
from app.models.indicator import PerformanceIndicator
from app.models.project import Project, ProjectIndicator, ProjectStatus, ProjectTimeline
from app.services import scoring_service
from app.services.scoring_service import aggregate_score


@pytest.fixture()
def indicators():
    rows = [
        PerformanceIndicator(name="Throughput", pillar="Operating"),
        PerformanceIndicator(name="Emissions", pillar="Environmental"),
        PerformanceIndicator(name="Incidents", pillar="Safety"),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


def _create(client, headers, **overrides):
    payload = {"code": "PRJ-1", "name": "Pilot", "country": "Norway"}
    payload.update(overrides)
    return client.post("/api/v1/projects", headers=headers, json=payload)


# ═══════════════════════════════════════════════════════════════
# Score aggregation
# ═══════════════════════════════════════════════════════════════

class TestAggregateScore:
    def test_mean_of_non_null(self):
        assert aggregate_score([80, 60]) == 70.0
        assert aggregate_score([80, None, 60]) == 70.0

    def test_rounded_to_two_places(self):
        assert aggregate_score([10, 20, 20]) == 16.67

    def test_halves_round_up(self):
        assert aggregate_score([70.25, 70.0]) == 70.13
        assert aggregate_score([0.005]) == 0.01
        assert aggregate_score([1.125, 1.125]) == 1.13

    def test_none_when_nothing_scored(self):
        assert aggregate_score([]) is None
        assert aggregate_score([None, None]) is None


class TestProjectScore:
    def test_scores_80_and_60_give_70(self, client, regular_user, auth_headers, indicators):
        headers = auth_headers(regular_user)
        res = _create(client, headers, indicators=[
            {"indicator_id": indicators[0].id, "score": 80},
            {"indicator_id": indicators[1].id, "score": 60},
        ])
        assert res.status_code == 201
        project_id = res.get_json()["data"]["id"]
        assert db.session.get(Project, project_id).score == 70.0

    def test_stored_score_rounds_half_up(self, client, regular_user, auth_headers, indicators):
        res = _create(client, auth_headers(regular_user), indicators=[
            {"indicator_id": indicators[0].id, "score": 70.25},
            {"indicator_id": indicators[1].id, "score": 70},
        ])
        assert db.session.get(Project, res.get_json()["data"]["id"]).score == 70.13

    def test_unscored_links_leave_score_null(self, client, regular_user, auth_headers, indicators):
        res = _create(client, auth_headers(regular_user),
                      indicators=[{"indicator_id": indicators[0].id}])
        assert db.session.get(Project, res.get_json()["data"]["id"]).score is None

    def test_update_indicator_score_recalculates(self, client, regular_user, auth_headers, indicators):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers, indicators=[
            {"indicator_id": indicators[0].id, "score": 80},
            {"indicator_id": indicators[1].id},
        ]).get_json()["data"]["id"]

        res = client.put(f"/api/v1/projects/{project_id}/indicators/{indicators[1].id}/score",
                         headers=headers, json={"score": 61})
        assert res.status_code == 200
        assert res.get_json()["data"]["project_score"] == 70.5

    def test_score_out_of_range(self, client, regular_user, auth_headers, indicators):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers, indicators=[
            {"indicator_id": indicators[0].id},
        ]).get_json()["data"]["id"]
        res = client.put(f"/api/v1/projects/{project_id}/indicators/{indicators[0].id}/score",
                         headers=headers, json={"score": 101})
        assert res.status_code == 400

    def test_score_for_unlinked_indicator(self, client, regular_user, auth_headers, indicators):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers).get_json()["data"]["id"]
        res = client.put(f"/api/v1/projects/{project_id}/indicators/{indicators[0].id}/score",
                         headers=headers, json={"score": 50})
        assert res.status_code == 404
        assert res.get_json()["message"] == "Performance indicator not found for this project"

    def test_recalculation_failure_keeps_committed_change(self, client, regular_user, auth_headers,
                                                          indicators):
        headers = auth_headers(regular_user)
        with mock.patch.object(scoring_service, "recalculate_project_score",
                               side_effect=RuntimeError("boom")):
            res = _create(client, headers, indicators=[
                {"indicator_id": indicators[0].id, "score": 90},
            ])
        assert res.status_code == 201
        project = db.session.get(Project, res.get_json()["data"]["id"])
        assert project.indicators.count() == 1
        assert project.score is None


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════

class TestProjectCrud:
    def test_create_writes_history_timeline_and_documents(self, client, regular_user, auth_headers):
        res = _create(client, auth_headers(regular_user),
                      files=["https://files.example.com/plans/kickoff.pdf"])
        data = res.get_json()["data"]
        assert data["status"] == "Framing"
        assert data["owner_id"] == regular_user.id
        assert ProjectStatus.query.filter_by(project_id=data["id"]).one().description == "Project created"
        assert ProjectTimeline.query.filter_by(project_id=data["id"]).count() == 1
        assert Document.query.filter_by(project_id=data["id"]).one().name == "kickoff.pdf"

    def test_duplicate_code(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        _create(client, headers)
        assert _create(client, headers).status_code == 409

    def test_unknown_status(self, client, regular_user, auth_headers):
        res = _create(client, auth_headers(regular_user), status="Brainstorm")
        assert res.status_code == 400

    def test_unknown_indicator(self, client, regular_user, auth_headers):
        res = _create(client, auth_headers(regular_user), indicators=[{"indicator_id": 999}])
        assert res.status_code == 400

    def test_invalid_domain(self, client, regular_user, auth_headers):
        res = _create(client, auth_headers(regular_user), domains=["Astrology"])
        assert res.status_code == 400

    def test_end_before_start(self, client, regular_user, auth_headers):
        res = _create(client, auth_headers(regular_user),
                      start_date="2025-06-01", end_date="2025-01-01")
        assert res.status_code == 400

    def test_foreign_tenant_forbidden(self, client, other_user, tenant, auth_headers):
        res = _create(client, auth_headers(other_user), tenant_id=tenant.id)
        assert res.status_code == 403

    def test_update_replaces_indicator_set(self, client, regular_user, auth_headers, indicators):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers, indicators=[
            {"indicator_id": indicators[0].id, "score": 40},
            {"indicator_id": indicators[1].id, "score": 60},
        ]).get_json()["data"]["id"]

        res = client.patch(f"/api/v1/projects/{project_id}", headers=headers,
                           json={"indicators": [{"indicator_id": indicators[2].id, "score": 90}]})
        assert res.status_code == 200
        links = ProjectIndicator.query.filter_by(project_id=project_id).all()
        assert [link.indicator_id for link in links] == [indicators[2].id]
        assert db.session.get(Project, project_id).score == 90.0

    def test_status_change_via_update_is_recorded(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers).get_json()["data"]["id"]
        client.patch(f"/api/v1/projects/{project_id}", headers=headers, json={"status": "Testing"})
        statuses = [s.status for s in ProjectStatus.query.filter_by(project_id=project_id)]
        assert sorted(statuses) == ["Framing", "Testing"]

    def test_admin_deletes_with_children(self, client, admin, regular_user, auth_headers, indicators):
        project_id = _create(client, auth_headers(regular_user), indicators=[
            {"indicator_id": indicators[0].id, "score": 50},
        ], files=["https://files.example.com/a.pdf"]).get_json()["data"]["id"]

        res = client.delete(f"/api/v1/projects/{project_id}", headers=auth_headers(admin))
        assert res.status_code == 200
        assert db.session.get(Project, project_id) is None
        assert ProjectIndicator.query.count() == 0
        assert Document.query.count() == 0

    def test_filters(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        _create(client, headers, code="N1", country="Norway", domains=["Emission"])
        _create(client, headers, code="B1", country="Brazil", status="Testing")
        res = client.get("/api/v1/projects?country=Brazil", headers=headers)
        assert [p["code"] for p in res.get_json()["data"]] == ["B1"]
        res = client.get("/api/v1/projects?status=Framing,Testing", headers=headers)
        assert res.get_json()["meta"]["total"] == 2
        res = client.get("/api/v1/projects?domains=Emission", headers=headers)
        assert [p["code"] for p in res.get_json()["data"]] == ["N1"]

    def test_pagination_meta(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        for i in range(3):
            _create(client, headers, code=f"P{i}")
        meta = client.get("/api/v1/projects?page=2&limit=2", headers=headers).get_json()["meta"]
        assert meta == {"total": 3, "page": 2, "limit": 2, "totalPages": 2,
                        "hasNext": False, "hasPrev": True}


# ═══════════════════════════════════════════════════════════════
# Status history & views
# ═══════════════════════════════════════════════════════════════

class TestStatusesAndViews:
    def test_add_status_emails_owner_when_actor_differs(self, client, admin, regular_user, auth_headers):
        project_id = _create(client, auth_headers(regular_user)).get_json()["data"]["id"]
        res = client.post(f"/api/v1/projects/{project_id}/statuses", headers=auth_headers(admin),
                          json={"status": "Qualification", "description": "Gate 1 passed"})
        assert res.status_code == 201
        assert db.session.get(Project, project_id).status == "Qualification"
        log = EmailLog.query.filter_by(template_name="project_status_update").one()
        assert log.recipient_email == "alice@example.com"

    def test_own_status_change_sends_no_email(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers).get_json()["data"]["id"]
        client.post(f"/api/v1/projects/{project_id}/statuses", headers=headers,
                    json={"status": "Qualification"})
        assert EmailLog.query.filter_by(template_name="project_status_update").count() == 0

    def test_status_history_newest_first(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers).get_json()["data"]["id"]
        client.post(f"/api/v1/projects/{project_id}/statuses", headers=headers,
                    json={"status": "Qualification"})
        res = client.get(f"/api/v1/projects/{project_id}/statuses", headers=headers)
        assert [s["status"] for s in res.get_json()["data"]][0] == "Qualification"

    def test_pyramid_has_one_key_per_pillar(self, client, regular_user, auth_headers, indicators):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers).get_json()["data"]["id"]
        data = client.get(f"/api/v1/projects/{project_id}/performance-pyramid",
                          headers=headers).get_json()["data"]
        assert set(data) == {
            "operatingPerformanceData", "environmentalPerformanceData", "safetyPerformanceData",
        }
        assert data["safetyPerformanceData"][0]["name"] == "Incidents"

    def test_timeline_has_seven_phases(self, client, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        project_id = _create(client, headers, start_date="2025-01-01",
                             end_date="2025-07-31").get_json()["data"]["id"]
        phases = client.get(f"/api/v1/projects/{project_id}/timeline", headers=headers).get_json()["data"]
        assert len(phases) == 7
        assert phases[0]["name"] == "Framing"
        assert phases[0]["startDate"] == "2025-01-01"
        assert phases[-1]["endDate"] == "2025-07-31"

    def test_statistics(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        _create(client, headers, code="S1")
        _create(client, headers, code="S2", status="Deployment")
        stats = client.get("/api/v1/projects/statistics", headers=headers).get_json()["data"]
        assert stats["total"] == 2
        assert stats["completed"] == 1
        assert len(stats["recent_projects"]) == 2

    def test_reference_values(self, client, viewer, auth_headers):
        data = client.get("/api/v1/projects/reference", headers=auth_headers(viewer)).get_json()["data"]
        assert len(data["statuses"]) == 7
        assert data["pillars"] == ["Operating", "Environmental", "Safety"]

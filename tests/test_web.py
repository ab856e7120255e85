"""Tests for the JSON API endpoints."""

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from timetrack.core.categorizer import CategoryEngine
from timetrack.core.models import Activity, DailySummary, Project, ProjectTime
from timetrack.persistence.store import ActivityStore
from timetrack.ui.app import UnknownActivityError, UnknownProjectError
from timetrack.ui.web import create_flask_app
import timetrack.ui.web as web_module


@pytest.fixture
def store():
    s = ActivityStore(":memory:")
    s.init_db()
    yield s
    s.close()


@pytest.fixture
def categorizer(store):
    engine = CategoryEngine(store)
    engine.refresh_cache()
    return engine


@pytest.fixture
def activity():
    return Activity(
        timestamp=datetime(2025, 1, 15, 10, 0, 0),
        app_name="Safari",
        duration_seconds=187,
        window_title="Board",
        url="https://app.concepta.com",
        project_id="concepta",
        ai_confidence=1.0,
    )


@pytest.fixture
def app_ref(categorizer, activity):
    """Minimal mock of the app object that the web module expects."""
    ref = MagicMock()
    ref.tracking = True
    ref.categorizer = categorizer
    ref.classifier = None
    ref.status_message = None
    ref.tracker.current_activity = activity
    ref.tracker.today_total_seconds = 3900
    ref.save_project.return_value = True
    ref.deactivate_project.return_value = True
    ref.delete_project.return_value = True
    ref.save_rule.return_value = True
    ref.delete_rule.return_value = True
    return ref


@pytest.fixture
def client(app_ref):
    old = web_module._app_ref
    web_module._app_ref = app_ref
    flask_app = create_flask_app()
    flask_app.config["TESTING"] = True
    with flask_app.test_client() as c:
        yield c
    web_module._app_ref = old


class TestNotReady:

    def test_returns_503_without_app(self):
        old = web_module._app_ref
        web_module._app_ref = None
        try:
            with create_flask_app().test_client() as c:
                assert c.get("/api/status").status_code == 503
        finally:
            web_module._app_ref = old


class TestStatus:

    def test_status_payload(self, client):
        data = client.get("/api/status").get_json()

        assert data["tracking"] is True
        assert data["today_total_seconds"] == 3900
        assert data["today_total"] == "1h 05m"
        assert data["classifier_available"] is False
        assert data["activity"]["app_name"] == "Safari"
        assert data["activity"]["duration"] == "3m 07s"
        assert data["activity"]["timestamp"] == "2025-01-15T10:00:00"

    def test_status_without_activity(self, client, app_ref):
        app_ref.tracker.current_activity = None
        assert client.get("/api/status").get_json()["activity"] is None

    def test_toggle(self, client, app_ref):
        resp = client.post("/api/tracking/toggle")
        assert resp.status_code == 200
        app_ref.toggle_tracking.assert_called_once()


class TestActivityProject:

    def test_set_project(self, client, app_ref, activity):
        app_ref.set_current_project.return_value = activity
        resp = client.post("/api/activity/project", json={"project_id": "concepta", "note": " sprint "})

        assert resp.status_code == 200
        app_ref.set_current_project.assert_called_once_with("concepta", "sprint")

    def test_set_project_requires_id(self, client):
        assert client.post("/api/activity/project", json={}).status_code == 400

    def test_set_unknown_project(self, client, app_ref):
        app_ref.set_current_project.side_effect = UnknownProjectError("ghost")
        assert client.post("/api/activity/project", json={"project_id": "ghost"}).status_code == 404

    def test_clear_project(self, client, app_ref):
        app_ref.clear_current_project.return_value = None
        resp = client.delete("/api/activity/project")
        assert resp.get_json() == {"activity": None}

    def test_voice(self, client, app_ref):
        app_ref.handle_voice_command.return_value = "Categorized as Concepta"
        resp = client.post("/api/voice", json={"text": "projeto concepta"})
        assert resp.get_json() == {"message": "Categorized as Concepta"}

    def test_voice_requires_text(self, client):
        assert client.post("/api/voice", json={"text": "  "}).status_code == 400


class TestPastActivities:

    def test_list_uncategorized(self, client, app_ref, activity):
        app_ref.uncategorized_activities.return_value = [activity]
        data = client.get("/api/activities/uncategorized?limit=5").get_json()

        app_ref.uncategorized_activities.assert_called_once_with(5)
        assert data[0]["app_name"] == "Safari"

    def test_list_uncategorized_rejects_bad_limit(self, client):
        assert client.get("/api/activities/uncategorized?limit=0").status_code == 400

    def test_assign_past_activity(self, client, app_ref, activity):
        app_ref.assign_activity_project.return_value = activity
        resp = client.post("/api/activities/7/project", json={"project_id": "concepta", "note": "review"})

        assert resp.status_code == 200
        app_ref.assign_activity_project.assert_called_once_with(7, "concepta", "review")
        assert resp.get_json()["activity"]["project_id"] == "concepta"

    def test_assign_unknown_activity(self, client, app_ref):
        app_ref.assign_activity_project.side_effect = UnknownActivityError(7)
        assert client.post("/api/activities/7/project", json={"project_id": "concepta"}).status_code == 404

    def test_assign_requires_project(self, client):
        assert client.post("/api/activities/7/project", json={}).status_code == 400


class TestProjects:

    def test_list_projects(self, client):
        data = client.get("/api/projects").get_json()
        assert {p["id"] for p in data} >= {"concepta", "atalho"}

    def test_save_project(self, client, app_ref):
        resp = client.post("/api/projects", json={"id": "estudos", "name": "Estudos"})

        assert resp.status_code == 200
        saved = app_ref.save_project.call_args[0][0]
        assert saved == Project(id="estudos", name="Estudos", color="#8E8E93")

    def test_save_project_requires_name(self, client):
        assert client.post("/api/projects", json={"id": "x"}).status_code == 400

    def test_deactivate_project(self, client, app_ref):
        assert client.delete("/api/projects/remot").status_code == 200
        app_ref.deactivate_project.assert_called_once_with("remot")
        app_ref.delete_project.assert_not_called()

    def test_hard_delete_project(self, client, app_ref):
        assert client.delete("/api/projects/remot?hard=1").status_code == 200
        app_ref.delete_project.assert_called_once_with("remot")
        app_ref.deactivate_project.assert_not_called()

    def test_remove_unknown_project(self, client, app_ref):
        app_ref.get_project.return_value = None
        assert client.delete("/api/projects/ghost").status_code == 404
        app_ref.deactivate_project.assert_not_called()


class TestRules:

    def test_list_rules(self, client):
        data = client.get("/api/rules").get_json()
        assert len(data) == 8
        assert data[0]["priority"] <= data[-1]["priority"]
        assert data[0]["match_kind"] in {"app", "title", "url"}

    def test_save_rule(self, client, app_ref):
        resp = client.post("/api/rules", json={
            "match_kind": "url", "match_pattern": "figma.com", "project_id": "atalho", "priority": 5,
        })
        assert resp.status_code == 200
        rule = app_ref.save_rule.call_args[0][0]
        assert rule.match_pattern == "figma.com"
        assert rule.priority == 5

    def test_save_rule_invalid_kind(self, client):
        resp = client.post("/api/rules", json={
            "match_kind": "regex", "match_pattern": "x", "project_id": "atalho",
        })
        assert resp.status_code == 400

    def test_save_rule_unknown_project(self, client):
        resp = client.post("/api/rules", json={
            "match_kind": "app", "match_pattern": "x", "project_id": "ghost",
        })
        assert resp.status_code == 404

    def test_save_rule_rejects_near_duplicate(self, client, app_ref):
        resp = client.post("/api/rules", json={
            "match_kind": "app", "match_pattern": " WHATSAPP ", "project_id": "whatsapp",
        })
        assert resp.status_code == 409
        app_ref.save_rule.assert_not_called()

    def test_update_existing_rule_skips_duplicate_check(self, client, app_ref, categorizer):
        existing = next(r for r in categorizer.rules if r.project_id == "whatsapp")
        resp = client.post("/api/rules", json={
            "id": existing.id,
            "match_kind": existing.match_kind.value,
            "match_pattern": existing.match_pattern,
            "project_id": "whatsapp",
            "priority": 1,
        })
        assert resp.status_code == 200
        assert app_ref.save_rule.call_args[0][0].priority == 1

    def test_delete_rule(self, client, app_ref):
        assert client.delete("/api/rules/3").status_code == 200
        app_ref.delete_rule.assert_called_once_with(3)


class TestDailySummary:

    def test_daily_summary(self, client, app_ref):
        concepta = Project(id="concepta", name="Concepta", color="#007AFF")
        app_ref.daily_summary.return_value = DailySummary(
            date=date(2025, 1, 15),
            entries=[
                ProjectTime(project=concepta, total_seconds=600, percentage=66.666),
                ProjectTime(project=None, total_seconds=300, percentage=33.333),
            ],
            total_seconds=900,
        )
        data = client.get("/api/summary/daily?date=2025-01-15").get_json()

        app_ref.daily_summary.assert_called_once_with(date(2025, 1, 15))
        assert data["total_time"] == "15m"
        assert data["projects"][0]["name"] == "Concepta"
        assert data["projects"][0]["percentage"] == 66.7
        assert data["projects"][1]["name"] == "Uncategorized"

    def test_invalid_date(self, client):
        assert client.get("/api/summary/daily?date=15/01/2025").status_code == 400


class TestOllamaModels:

    def test_without_classifier(self, client, app_ref):
        app_ref.check_classifier.return_value = False
        data = client.get("/api/ollama/models").get_json()
        assert data == {"available": False, "current": None, "models": []}

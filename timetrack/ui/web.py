"""JSON API for TimeTrack.

A lightweight Flask app that presentation layers (menu bar, voice
input, settings) use to read tracking state and submit corrections:
- tracking status and the live activity
- manual project assignment and voice commands
- uncategorized history and corrections to past activities
- project and rule management
- daily summary
"""

import dataclasses
import logging
import threading
from datetime import date
from typing import Any, Optional

from flask import Flask, jsonify, request

from timetrack.core.models import Activity, CategoryRule, MatchKind, Project
from timetrack.core.rules import RuleMatcher
from timetrack.reporting.formatter import TextFormatter

logger = logging.getLogger(__name__)

# Will be set by start_dashboard()
_app_ref = None  # type: Optional[Any]  # TimeTrackApp


def create_flask_app() -> Flask:
    app = Flask(__name__)

    def _not_ready():
        return jsonify({"error": "not initialized"}), 503

    @app.route("/api/status")
    def api_status():
        if _app_ref is None:
            return _not_ready()
        tracker = _app_ref.tracker
        activity = tracker.current_activity if tracker is not None else None
        today = tracker.today_total_seconds if tracker is not None else 0
        classifier = _app_ref.classifier
        return jsonify({
            "tracking": _app_ref.tracking,
            "activity": _activity_to_dict(activity) if activity else None,
            "today_total_seconds": today,
            "today_total": TextFormatter.format_duration(today),
            "classifier_available": bool(classifier and classifier.is_available),
            "status_message": _app_ref.status_message,
        })

    @app.route("/api/tracking/toggle", methods=["POST"])
    def api_toggle_tracking():
        if _app_ref is None:
            return _not_ready()
        _app_ref.toggle_tracking()
        return jsonify({"tracking": _app_ref.tracking})

    # -- live activity corrections --

    @app.route("/api/activity/project", methods=["POST"])
    def api_set_project():
        if _app_ref is None:
            return _not_ready()
        data = request.get_json(silent=True) or {}
        project_id = str(data.get("project_id") or "").strip()
        if not project_id:
            return jsonify({"error": "project_id required"}), 400
        note = (data.get("note") or "").strip() or None
        try:
            activity = _app_ref.set_current_project(project_id, note)
        except LookupError:
            return jsonify({"error": f"unknown project {project_id}"}), 404
        return jsonify({"activity": _activity_to_dict(activity) if activity else None})

    @app.route("/api/activity/project", methods=["DELETE"])
    def api_clear_project():
        if _app_ref is None:
            return _not_ready()
        activity = _app_ref.clear_current_project()
        return jsonify({"activity": _activity_to_dict(activity) if activity else None})

    # -- past activities --

    @app.route("/api/activities/uncategorized")
    def api_uncategorized():
        if _app_ref is None:
            return _not_ready()
        limit = request.args.get("limit", 100, type=int)
        if limit <= 0:
            return jsonify({"error": "limit must be positive"}), 400
        return jsonify([_activity_to_dict(a) for a in _app_ref.uncategorized_activities(limit)])

    @app.route("/api/activities/<int:activity_id>/project", methods=["POST"])
    def api_assign_activity(activity_id):
        if _app_ref is None:
            return _not_ready()
        data = request.get_json(silent=True) or {}
        project_id = str(data.get("project_id") or "").strip()
        if not project_id:
            return jsonify({"error": "project_id required"}), 400
        note = (data.get("note") or "").strip() or None
        try:
            activity = _app_ref.assign_activity_project(activity_id, project_id, note)
        except LookupError as exc:
            return jsonify({"error": f"not found: {exc}"}), 404
        return jsonify({"activity": _activity_to_dict(activity)})

    @app.route("/api/voice", methods=["POST"])
    def api_voice():
        if _app_ref is None:
            return _not_ready()
        data = request.get_json(silent=True) or {}
        text = (data.get("text") or "").strip()
        if not text:
            return jsonify({"error": "text required"}), 400
        return jsonify({"message": _app_ref.handle_voice_command(text)})

    # -- projects --

    @app.route("/api/projects")
    def api_projects():
        if _app_ref is None:
            return _not_ready()
        return jsonify([dataclasses.asdict(p) for p in _app_ref.categorizer.projects])

    @app.route("/api/projects", methods=["POST"])
    def api_save_project():
        if _app_ref is None:
            return _not_ready()
        data = request.get_json(silent=True) or {}
        project_id = str(data.get("id") or "").strip()
        name = str(data.get("name") or "").strip()
        if not project_id or not name:
            return jsonify({"error": "id and name required"}), 400
        project = Project(
            id=project_id,
            name=name,
            color=data.get("color") or "#8E8E93",
            icon=data.get("icon"),
            is_active=bool(data.get("is_active", True)),
        )
        if not _app_ref.save_project(project):
            return jsonify({"error": "could not save project"}), 500
        return jsonify(dataclasses.asdict(project))

    @app.route("/api/projects/<project_id>", methods=["DELETE"])
    def api_remove_project(project_id):
        if _app_ref is None:
            return _not_ready()
        if _app_ref.get_project(project_id) is None:
            return jsonify({"error": f"unknown project {project_id}"}), 404
        # ?hard=1 deletes; otherwise the project is only hidden
        if request.args.get("hard") in ("1", "true"):
            ok = _app_ref.delete_project(project_id)
        else:
            ok = _app_ref.deactivate_project(project_id)
        if not ok:
            return jsonify({"error": "could not remove project"}), 500
        return jsonify({"ok": True})

    # -- rules --

    @app.route("/api/rules")
    def api_rules():
        if _app_ref is None:
            return _not_ready()
        return jsonify([_rule_to_dict(r) for r in _app_ref.categorizer.rules])

    @app.route("/api/rules", methods=["POST"])
    def api_save_rule():
        if _app_ref is None:
            return _not_ready()
        data = request.get_json(silent=True) or {}
        try:
            kind = MatchKind(data.get("match_kind"))
            priority = int(data.get("priority", 100))
        except (ValueError, TypeError):
            return jsonify({"error": "invalid match_kind or priority"}), 400
        pattern = str(data.get("match_pattern") or "").strip()
        project_id = str(data.get("project_id") or "").strip()
        if not pattern or not project_id:
            return jsonify({"error": "match_pattern and project_id required"}), 400
        if not any(p.id == project_id for p in _app_ref.categorizer.projects):
            return jsonify({"error": f"unknown project {project_id}"}), 404
        rule = CategoryRule(
            match_kind=kind,
            match_pattern=pattern,
            project_id=project_id,
            priority=priority,
            id=data.get("id"),
        )
        if rule.id is None and RuleMatcher(_app_ref.categorizer.rules).has_similar(rule):
            return jsonify({"error": "a similar rule already exists"}), 409
        if not _app_ref.save_rule(rule):
            return jsonify({"error": "could not save rule"}), 500
        return jsonify({"ok": True})

    @app.route("/api/rules/<int:rule_id>", methods=["DELETE"])
    def api_delete_rule(rule_id):
        if _app_ref is None:
            return _not_ready()
        if not _app_ref.delete_rule(rule_id):
            return jsonify({"error": "could not delete rule"}), 500
        return jsonify({"ok": True})

    # -- reports --

    @app.route("/api/summary/daily")
    def api_daily():
        if _app_ref is None:
            return _not_ready()
        date_str = request.args.get("date")
        try:
            target = date.fromisoformat(date_str) if date_str else date.today()
        except ValueError:
            return jsonify({"error": "invalid date"}), 400
        summary = _app_ref.daily_summary(target)
        return jsonify({
            "date": str(summary.date),
            "total_seconds": summary.total_seconds,
            "total_time": TextFormatter.format_duration(summary.total_seconds),
            "projects": [
                {
                    "project_id": e.project.id if e.project else None,
                    "name": e.project.name if e.project else "Uncategorized",
                    "color": e.project.color if e.project else None,
                    "total_seconds": e.total_seconds,
                    "time_str": TextFormatter.format_duration(e.total_seconds),
                    "percentage": round(e.percentage, 1),
                    "activity_count": len(e.activities),
                }
                for e in summary.entries
            ],
        })

    @app.route("/api/ollama/models")
    def api_ollama_models():
        if _app_ref is None:
            return _not_ready()
        classifier = _app_ref.classifier
        return jsonify({
            "available": _app_ref.check_classifier(),
            "current": classifier.model if classifier else None,
            "models": classifier.list_models() if classifier else [],
        })

    return app


def start_dashboard(app_ref, port: int = 5556) -> threading.Thread:
    """Start the Flask API in a daemon thread."""
    global _app_ref
    _app_ref = app_ref
    flask_app = create_flask_app()

    def _run():
        flask_app.run(host="127.0.0.1", port=port, debug=False, use_reloader=False)

    t = threading.Thread(target=_run, daemon=True, name="timetrack-web")
    t.start()
    logger.info("API started at http://127.0.0.1:%d", port)
    return t


def _activity_to_dict(activity: Activity) -> dict:
    data = dataclasses.asdict(activity)
    data["timestamp"] = activity.timestamp.isoformat()
    data["duration"] = TextFormatter.format_activity_duration(activity.duration_seconds)
    return data


def _rule_to_dict(rule: CategoryRule) -> dict:
    return {
        "id": rule.id,
        "priority": rule.priority,
        "match_kind": rule.match_kind.value,
        "match_pattern": rule.match_pattern,
        "project_id": rule.project_id,
    }

"""Application wiring for TimeTrack.

Builds the store, categorizer, classifier, sampler and tracker from the
config, exposes the user-facing correction operations (manual project
assignment, voice commands, project and rule management), and serves
the JSON API on a background thread.
"""

import logging
import os
import sqlite3
import threading
from datetime import date
from typing import Any, Optional

from timetrack.core.categorizer import CategoryEngine
from timetrack.core.config import load_config
from timetrack.core.models import Activity, CategoryRule, DailySummary, Project
from timetrack.core.ollama import OllamaClassifier
from timetrack.core.tracker import ActivityTracker
from timetrack.core.voice import parse_command
from timetrack.persistence.store import ActivityStore
from timetrack.platform.base import Sampler
from timetrack.platform.factory import create_sampler
from timetrack.reporting.summary import SummaryGenerator

logger = logging.getLogger(__name__)

STATUS_MESSAGE_SECONDS = 3.0


class UnknownProjectError(LookupError):
    """Raised when an operation names a project that is not active."""


class UnknownActivityError(LookupError):
    """Raised when an operation names an activity id that is not stored."""


class TimeTrackApp:
    """Owns every TimeTrack component for the lifetime of the process."""

    def __init__(self, config_path: str, config: Optional[dict[str, Any]] = None) -> None:
        self.config_path = config_path
        self.config = config if config is not None else load_config(config_path)
        self.tracker: Optional[ActivityTracker] = None
        self.categorizer: Optional[CategoryEngine] = None
        self.classifier: Optional[OllamaClassifier] = None
        self._store: Optional[ActivityStore] = None
        self._summary_generator: Optional[SummaryGenerator] = None
        self._tracking = False
        self._dashboard_port = self.config.get("dashboard_port", 5556)
        self.status_message: Optional[str] = None
        self._status_timer: Optional[threading.Timer] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Initialize all components, start tracking and the JSON API."""
        self.init_components()
        self.start_tracking()
        self._start_dashboard()

    def stop(self) -> None:
        """Stop tracking and clean up resources."""
        self.stop_tracking()
        if self.tracker is not None:
            self.tracker.shutdown()
        if self._status_timer is not None:
            self._status_timer.cancel()
        if self._store is not None:
            self._store.close()
            self._store = None

    @property
    def tracking(self) -> bool:
        return self._tracking

    # ------------------------------------------------------------------
    # Component initialization
    # ------------------------------------------------------------------

    def init_components(self, sampler: Optional[Sampler] = None) -> None:
        """Wire up all components from config.

        *sampler* overrides platform detection; when none is given and
        the platform has no sampler, tracking is disabled.
        """
        config = self.config

        db_path = os.path.expanduser(config.get("database_path", "~/.timetrack/timetrack.db"))
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._store = ActivityStore(db_path)
        self._store.init_db()

        ollama_cfg = config.get("ollama", {})
        if ollama_cfg.get("enabled", True):
            self.classifier = OllamaClassifier.from_config(config)
            self.classifier.check_availability()

        self.categorizer = CategoryEngine(
            self._store,
            classifier=self.classifier,
            minimum_ai_confidence=config.get("minimum_ai_confidence", 0.7),
        )
        self.categorizer.refresh_cache()

        self._summary_generator = SummaryGenerator(self._store)

        if sampler is None:
            try:
                sampler = create_sampler()
            except OSError:
                logger.warning("No sampler for this platform; tracking disabled")

        if sampler is not None:
            self.tracker = ActivityTracker(
                sampler=sampler,
                categorizer=self.categorizer,
                store=self._store,
                sample_interval=config.get("sample_interval_seconds", 2),
                heartbeat_interval=config.get("heartbeat_interval_seconds", 2),
                checkpoint_interval=config.get("checkpoint_interval_seconds", 30),
                min_shared_words=config.get("title_similarity_shared_words", 2),
            )

    # ------------------------------------------------------------------
    # Tracking control
    # ------------------------------------------------------------------

    def start_tracking(self) -> None:
        if self.tracker is None:
            logger.info("No tracker available; skipping tracking")
            return
        if self._tracking:
            return
        self.tracker.start()
        self._tracking = True

    def stop_tracking(self) -> None:
        if self.tracker is not None:
            self.tracker.stop()
        self._tracking = False

    def toggle_tracking(self) -> None:
        if self._tracking:
            self.stop_tracking()
        else:
            self.start_tracking()

    def check_classifier(self) -> bool:
        """Re-check the classifier; availability is otherwise cached."""
        if self.classifier is None:
            return False
        return self.classifier.check_availability()

    # ------------------------------------------------------------------
    # Manual categorization
    # ------------------------------------------------------------------

    def set_current_project(self, project_id: str, note: Optional[str] = None) -> Optional[Activity]:
        """Assign the live activity to *project_id* and learn rules from it.

        Returns the updated activity, or ``None`` when nothing is live.
        Raises UnknownProjectError for ids that are not active projects.
        """
        self._require_project(project_id)
        if self.tracker is None:
            return None
        activity = self.tracker.set_project(project_id, note)
        if activity is not None:
            self.record_manual_correction(
                activity.app_name, activity.window_title, activity.url, project_id
            )
        return activity

    def clear_current_project(self) -> Optional[Activity]:
        if self.tracker is None:
            return None
        return self.tracker.clear_project()

    def assign_activity_project(
        self, activity_id: int, project_id: str, note: Optional[str] = None
    ) -> Activity:
        """Manually categorize a stored (past) activity and learn from it."""
        self._require_project(project_id)
        activity = self._store.get_activity_by_id(activity_id)
        if activity is None:
            raise UnknownActivityError(activity_id)
        self._store.update_activity_project(
            activity_id, project_id, 1.0, is_manual=True, note=note
        )
        self.record_manual_correction(
            activity.app_name, activity.window_title, activity.url, project_id
        )
        return self._store.get_activity_by_id(activity_id)

    def uncategorized_activities(self, limit: int = 100) -> list[Activity]:
        return self._store.get_uncategorized_activities(limit)

    def record_manual_correction(
        self,
        app_name: str,
        window_title: Optional[str],
        url: Optional[str],
        project_id: str,
    ) -> list[CategoryRule]:
        """Feed a confirmed manual categorization back into the rule set."""
        self._require_project(project_id)
        return self.categorizer.learn_from_manual(app_name, window_title, url, project_id)

    def handle_voice_command(self, transcription: str) -> str:
        """Resolve a spoken project name and assign it; returns the status message."""
        known = [p.name for p in self.categorizer.projects]
        command = parse_command(transcription, known)

        if command.project_name is None:
            message = f"Couldn't understand: {transcription}"
        else:
            project = self.categorizer.find_project(command.project_name)
            if project is None:
                message = f"Project '{command.project_name}' not found"
            else:
                activity = self.set_current_project(project.id, note=command.note)
                if activity is None:
                    message = "No activity to categorize"
                else:
                    message = f"Categorized as {project.name}"

        self.show_status_message(message)
        return message

    def _require_project(self, project_id: str) -> None:
        if not any(p.id == project_id for p in self.categorizer.projects):
            raise UnknownProjectError(project_id)

    # ------------------------------------------------------------------
    # Projects and rules
    # ------------------------------------------------------------------

    def get_project(self, project_id: str) -> Optional[Project]:
        """Look up a project by id, inactive ones included."""
        return self._store.get_project(project_id)

    def save_project(self, project: Project) -> bool:
        return self._write(self._store.save_project, project)

    def deactivate_project(self, project_id: str) -> bool:
        return self._write(self._store.deactivate_project, project_id)

    def delete_project(self, project_id: str) -> bool:
        return self._write(self._store.delete_project, project_id)

    def save_rule(self, rule: CategoryRule) -> bool:
        return self._write(self._store.save_rule, rule)

    def delete_rule(self, rule_id: int) -> bool:
        return self._write(self._store.delete_rule, rule_id)

    def _write(self, operation, *args) -> bool:
        """Run a store write and refresh the category cache."""
        try:
            operation(*args)
        except sqlite3.Error:
            logger.exception("Store write %s failed", operation.__name__)
            return False
        self.categorizer.refresh_cache()
        return True

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def daily_summary(self, day: Optional[date] = None) -> DailySummary:
        return self._summary_generator.daily_summary(day or date.today())

    # ------------------------------------------------------------------
    # UI helpers
    # ------------------------------------------------------------------

    def show_status_message(self, message: str, seconds: float = STATUS_MESSAGE_SECONDS) -> None:
        """Publish a transient message, cleared after *seconds* unless replaced."""
        self.status_message = message
        logger.info(message)
        if self._status_timer is not None:
            self._status_timer.cancel()

        def _clear() -> None:
            if self.status_message == message:
                self.status_message = None

        self._status_timer = threading.Timer(seconds, _clear)
        self._status_timer.daemon = True
        self._status_timer.start()

    def _start_dashboard(self) -> None:
        """Start the JSON API in a background thread."""
        try:
            from timetrack.ui.web import start_dashboard
            start_dashboard(self, port=self._dashboard_port)
        except Exception:
            logger.exception("Failed to start web API")

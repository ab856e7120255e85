"""Summary generation for daily activity reports."""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Optional

from timetrack.core.models import Activity, DailySummary, Project, ProjectTime
from timetrack.persistence.store import ActivityStore


class SummaryGenerator:
    """Produces per-project daily summaries from persisted activities.

    Per-project totals come from the store's aggregate query; each entry
    also carries the activities it was summed from. Activities without a
    project are grouped under a ``None`` project entry.
    """

    def __init__(self, store: ActivityStore) -> None:
        self.store = store

    def daily_summary(self, target_date: date) -> DailySummary:
        """Build a summary for *target_date*, entries sorted by time descending."""
        start = datetime(target_date.year, target_date.month, target_date.day)
        end = start + timedelta(days=1)

        totals = self.store.time_by_project(target_date)
        activities = self.store.get_activities(start, end)
        return self._build_daily(target_date, totals, activities)

    def _build_daily(
        self,
        target_date: date,
        totals: list[tuple[Optional[Project], int]],
        activities: list[Activity],
    ) -> DailySummary:
        grouped: dict[Optional[str], list[Activity]] = defaultdict(list)
        for act in activities:
            grouped[act.project_id].append(act)

        total = sum(seconds for _, seconds in totals)
        entries: list[ProjectTime] = []
        for project, seconds in totals:
            project_id = project.id if project is not None else None
            entries.append(
                ProjectTime(
                    project=project,
                    total_seconds=seconds,
                    percentage=seconds / total * 100 if total > 0 else 0.0,
                    activities=grouped.get(project_id, []),
                )
            )

        entries.sort(key=lambda e: e.total_seconds, reverse=True)
        return DailySummary(date=target_date, entries=entries, total_seconds=total)

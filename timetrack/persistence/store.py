"""SQLite-backed persistence for activities, projects and category rules."""

import sqlite3
from datetime import date, datetime, timedelta
from typing import Optional

from timetrack.core.models import Activity, CategoryRule, MatchKind, Project


DEFAULT_PROJECTS = [
    Project(id="concepta", name="Concepta", color="#007AFF", icon="building.2"),
    Project(id="atalho", name="Atalho", color="#34C759", icon="link"),
    Project(id="remot", name="Remot", color="#AF52DE", icon="network"),
    Project(id="pessoal", name="Pessoal", color="#FFCC00", icon="person"),
    Project(id="pesquisa", name="Pesquisa", color="#FF2D55", icon="magnifyingglass"),
    Project(id="whatsapp", name="WhatsApp", color="#25D366", icon="message"),
]

DEFAULT_RULES = [
    CategoryRule(MatchKind.APP, "whatsapp", "whatsapp", priority=10),
    CategoryRule(MatchKind.TITLE, "whatsapp", "whatsapp", priority=10),
    CategoryRule(MatchKind.TITLE, "concepta", "concepta", priority=20),
    CategoryRule(MatchKind.URL, "concepta", "concepta", priority=20),
    CategoryRule(MatchKind.TITLE, "atalho", "atalho", priority=30),
    CategoryRule(MatchKind.URL, "atalho", "atalho", priority=30),
    CategoryRule(MatchKind.TITLE, "remot", "remot", priority=40),
    CategoryRule(MatchKind.URL, "remot", "remot", priority=40),
]


class ActivityStore:
    """Read/write interface to the local SQLite database.

    Every write commits before returning.  Timestamps are persisted as
    ISO 8601 text and durations as whole seconds.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_db(self, seed_defaults: bool = True) -> None:
        """Create tables and indexes if they don't already exist.

        With *seed_defaults*, an empty projects table is filled with the
        default projects and their starter rules.
        """
        conn = self._get_conn()
        conn.executescript(
            """\
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                color TEXT NOT NULL,
                icon TEXT,
                is_active INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS activities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                duration_seconds INTEGER NOT NULL,
                app_name TEXT NOT NULL,
                app_bundle_id TEXT,
                window_title TEXT,
                url TEXT,
                project_id TEXT REFERENCES projects(id) ON DELETE SET NULL,
                is_manual INTEGER NOT NULL DEFAULT 0,
                manual_note TEXT,
                ai_confidence REAL
            );

            CREATE TABLE IF NOT EXISTS category_rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                priority INTEGER NOT NULL,
                match_kind TEXT NOT NULL,
                match_pattern TEXT NOT NULL,
                project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_activities_timestamp
                ON activities(timestamp);

            CREATE INDEX IF NOT EXISTS idx_activities_project
                ON activities(project_id);

            CREATE INDEX IF NOT EXISTS idx_rules_priority
                ON category_rules(priority);
            """
        )
        conn.commit()

        if seed_defaults:
            self._seed_defaults(conn)

    def _seed_defaults(self, conn: sqlite3.Connection) -> None:
        count = conn.execute("SELECT COUNT(*) FROM projects").fetchone()[0]
        if count:
            return
        for project in DEFAULT_PROJECTS:
            conn.execute(
                "INSERT INTO projects (id, name, color, icon, is_active) VALUES (?, ?, ?, ?, ?)",
                (project.id, project.name, project.color, project.icon, 1),
            )
        for rule in DEFAULT_RULES:
            conn.execute(
                "INSERT INTO category_rules (priority, match_kind, match_pattern, project_id) VALUES (?, ?, ?, ?)",
                (rule.priority, rule.match_kind.value, rule.match_pattern, rule.project_id),
            )
        conn.commit()

    # ------------------------------------------------------------------
    # Activity operations
    # ------------------------------------------------------------------

    def insert_activity(self, activity: Activity) -> int:
        """Persist a new activity. Returns the row id."""
        conn = self._get_conn()
        cursor = conn.execute(
            """\
            INSERT INTO activities
                (timestamp, duration_seconds, app_name, app_bundle_id, window_title,
                 url, project_id, is_manual, manual_note, ai_confidence)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                activity.timestamp.isoformat(),
                activity.duration_seconds,
                activity.app_name,
                activity.app_bundle_id,
                activity.window_title,
                activity.url,
                activity.project_id,
                1 if activity.is_manual else 0,
                activity.manual_note,
                activity.ai_confidence,
            ),
        )
        conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    def update_activity_duration(self, activity_id: int, seconds: int) -> None:
        conn = self._get_conn()
        conn.execute(
            "UPDATE activities SET duration_seconds = ? WHERE id = ?",
            (seconds, activity_id),
        )
        conn.commit()

    def update_activity_project(
        self,
        activity_id: int,
        project_id: Optional[str],
        confidence: Optional[float],
        is_manual: bool = False,
        note: Optional[str] = None,
    ) -> None:
        conn = self._get_conn()
        conn.execute(
            """\
            UPDATE activities
            SET project_id = ?, ai_confidence = ?, is_manual = ?, manual_note = ?
            WHERE id = ?
            """,
            (project_id, confidence, 1 if is_manual else 0, note, activity_id),
        )
        conn.commit()

    def get_activity_by_id(self, activity_id: int) -> Optional[Activity]:
        """Return a single activity by primary key, or ``None``."""
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM activities WHERE id = ?", (activity_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_activity(row)

    def get_activities(self, start: datetime, end: datetime) -> list[Activity]:
        """Return all activities whose timestamp falls in [start, end)."""
        conn = self._get_conn()
        rows = conn.execute(
            """\
            SELECT * FROM activities
            WHERE timestamp >= ? AND timestamp < ?
            ORDER BY timestamp
            """,
            (start.isoformat(), end.isoformat()),
        ).fetchall()
        return [self._row_to_activity(r) for r in rows]

    def get_uncategorized_activities(self, limit: int = 100) -> list[Activity]:
        """Most recent activities without a project, newest first."""
        conn = self._get_conn()
        rows = conn.execute(
            """\
            SELECT * FROM activities
            WHERE project_id IS NULL
            ORDER BY timestamp DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [self._row_to_activity(r) for r in rows]

    def total_seconds_since(self, start: datetime) -> int:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT COALESCE(SUM(duration_seconds), 0) FROM activities WHERE timestamp >= ?",
            (start.isoformat(),),
        ).fetchone()
        return int(row[0])

    def time_by_project(self, day: date) -> list[tuple[Optional[Project], int]]:
        """Seconds per project for *day*, largest first; ``None`` is uncategorized."""
        start = datetime(day.year, day.month, day.day)
        end = start + timedelta(days=1)
        conn = self._get_conn()
        rows = conn.execute(
            """\
            SELECT p.id, p.name, p.color, p.icon, p.is_active,
                   COALESCE(SUM(a.duration_seconds), 0) AS total_seconds
            FROM activities a
            LEFT JOIN projects p ON a.project_id = p.id
            WHERE a.timestamp >= ? AND a.timestamp < ?
            GROUP BY a.project_id
            ORDER BY total_seconds DESC
            """,
            (start.isoformat(), end.isoformat()),
        ).fetchall()
        result = []
        for r in rows:
            project = self._row_to_project(r) if r["id"] is not None else None
            result.append((project, int(r["total_seconds"])))
        return result

    def delete_activities_older_than(self, days: int, now: Optional[datetime] = None) -> int:
        """Delete activities older than *days* days. Returns the number removed."""
        cutoff = (now or datetime.now()) - timedelta(days=days)
        conn = self._get_conn()
        cursor = conn.execute(
            "DELETE FROM activities WHERE timestamp < ?", (cutoff.isoformat(),)
        )
        conn.commit()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Project operations
    # ------------------------------------------------------------------

    def save_project(self, project: Project) -> None:
        """Insert or update a project (upsert by id)."""
        conn = self._get_conn()
        conn.execute(
            """\
            INSERT INTO projects (id, name, color, icon, is_active)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                color = excluded.color,
                icon = excluded.icon,
                is_active = excluded.is_active
            """,
            (project.id, project.name, project.color, project.icon, 1 if project.is_active else 0),
        )
        conn.commit()

    def get_project(self, project_id: str) -> Optional[Project]:
        conn = self._get_conn()
        row = conn.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_project(row)

    def get_projects(self, active_only: bool = True) -> list[Project]:
        """Return projects ordered by name; inactive ones only when asked."""
        conn = self._get_conn()
        if active_only:
            rows = conn.execute(
                "SELECT * FROM projects WHERE is_active = 1 ORDER BY name"
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM projects ORDER BY name").fetchall()
        return [self._row_to_project(r) for r in rows]

    def deactivate_project(self, project_id: str) -> None:
        """Soft-delete: hide the project but keep historical references."""
        conn = self._get_conn()
        conn.execute("UPDATE projects SET is_active = 0 WHERE id = ?", (project_id,))
        conn.commit()

    def delete_project(self, project_id: str) -> None:
        """Hard-delete: activities lose the reference, the project's rules go."""
        conn = self._get_conn()
        conn.execute("UPDATE activities SET project_id = NULL WHERE project_id = ?", (project_id,))
        conn.execute("DELETE FROM category_rules WHERE project_id = ?", (project_id,))
        conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        conn.commit()

    # ------------------------------------------------------------------
    # Rule operations
    # ------------------------------------------------------------------

    def get_rules(self) -> list[CategoryRule]:
        """Return all rules ordered by priority, then insertion order."""
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT * FROM category_rules ORDER BY priority, id"
        ).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def save_rule(self, rule: CategoryRule) -> int:
        """Insert a new rule, or replace the one with the same id. Returns the id."""
        conn = self._get_conn()
        cursor = conn.execute(
            """\
            INSERT OR REPLACE INTO category_rules
                (id, priority, match_kind, match_pattern, project_id)
            VALUES (?, ?, ?, ?, ?)
            """,
            (rule.id, rule.priority, rule.match_kind.value, rule.match_pattern, rule.project_id),
        )
        conn.commit()
        return rule.id if rule.id is not None else cursor.lastrowid  # type: ignore[return-value]

    def delete_rule(self, rule_id: int) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM category_rules WHERE id = ?", (rule_id,))
        conn.commit()

    # ------------------------------------------------------------------
    # Row mapping helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_activity(row: sqlite3.Row) -> Activity:
        return Activity(
            id=row["id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            duration_seconds=row["duration_seconds"],
            app_name=row["app_name"],
            app_bundle_id=row["app_bundle_id"],
            window_title=row["window_title"],
            url=row["url"],
            project_id=row["project_id"],
            is_manual=bool(row["is_manual"]),
            manual_note=row["manual_note"],
            ai_confidence=row["ai_confidence"],
        )

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            color=row["color"],
            icon=row["icon"],
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> CategoryRule:
        return CategoryRule(
            id=row["id"],
            priority=row["priority"],
            match_kind=MatchKind(row["match_kind"]),
            match_pattern=row["match_pattern"],
            project_id=row["project_id"],
        )

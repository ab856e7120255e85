"""Unit tests for ActivityStore."""

import sqlite3
from datetime import date, datetime, timedelta

import pytest

from timetrack.core.models import Activity, CategoryRule, MatchKind, Project
from timetrack.persistence.store import DEFAULT_PROJECTS, DEFAULT_RULES, ActivityStore


@pytest.fixture
def store():
    """Create an in-memory ActivityStore with the default seed."""
    s = ActivityStore(":memory:")
    s.init_db()
    yield s
    s.close()


@pytest.fixture
def empty_store():
    s = ActivityStore(":memory:")
    s.init_db(seed_defaults=False)
    yield s
    s.close()


def _make_activity(**overrides) -> Activity:
    defaults = dict(
        timestamp=datetime(2025, 1, 15, 10, 30, 0),
        app_name="Code",
        duration_seconds=120,
        app_bundle_id="com.microsoft.VSCode",
        window_title="store.py - timetrack",
        url=None,
        project_id="concepta",
    )
    defaults.update(overrides)
    return Activity(**defaults)


# ------------------------------------------------------------------
# Schema / init_db
# ------------------------------------------------------------------

def test_init_db_creates_tables(store: ActivityStore):
    conn = store._get_conn()
    tables = {
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
    }
    assert {"projects", "activities", "category_rules"} <= tables


def test_init_db_creates_indexes(store: ActivityStore):
    conn = store._get_conn()
    indexes = {
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='index'"
        ).fetchall()
    }
    assert "idx_activities_timestamp" in indexes
    assert "idx_activities_project" in indexes
    assert "idx_rules_priority" in indexes


def test_init_db_idempotent(store: ActivityStore):
    """Calling init_db twice neither raises nor re-seeds."""
    store.init_db()
    assert len(store.get_projects()) == len(DEFAULT_PROJECTS)
    assert len(store.get_rules()) == len(DEFAULT_RULES)


def test_seed_skipped_when_projects_exist(empty_store: ActivityStore):
    empty_store.save_project(Project(id="mine", name="Mine", color="#111111"))
    empty_store.init_db()
    assert [p.id for p in empty_store.get_projects()] == ["mine"]
    assert empty_store.get_rules() == []


# ------------------------------------------------------------------
# Activities
# ------------------------------------------------------------------

def test_insert_and_get_activity(store: ActivityStore):
    activity = _make_activity(ai_confidence=0.9)
    row_id = store.insert_activity(activity)

    loaded = store.get_activity_by_id(row_id)
    assert loaded.id == row_id
    assert loaded.timestamp == activity.timestamp
    assert loaded.app_bundle_id == "com.microsoft.VSCode"
    assert loaded.project_id == "concepta"
    assert loaded.ai_confidence == 0.9
    assert loaded.is_manual is False


def test_get_missing_activity_returns_none(store: ActivityStore):
    assert store.get_activity_by_id(999) is None


def test_update_activity_duration(store: ActivityStore):
    row_id = store.insert_activity(_make_activity())
    store.update_activity_duration(row_id, 300)
    assert store.get_activity_by_id(row_id).duration_seconds == 300


def test_update_activity_project_sets_manual_fields(store: ActivityStore):
    row_id = store.insert_activity(_make_activity(project_id=None))
    store.update_activity_project(row_id, "atalho", 1.0, is_manual=True, note="review")

    loaded = store.get_activity_by_id(row_id)
    assert loaded.project_id == "atalho"
    assert loaded.is_manual is True
    assert loaded.manual_note == "review"
    assert loaded.ai_confidence == 1.0


def test_activity_with_unknown_project_rejected(store: ActivityStore):
    with pytest.raises(sqlite3.IntegrityError):
        store.insert_activity(_make_activity(project_id="ghost"))


def test_get_activities_range_is_half_open(store: ActivityStore):
    day = datetime(2025, 1, 15)
    store.insert_activity(_make_activity(timestamp=day))
    store.insert_activity(_make_activity(timestamp=day + timedelta(hours=23, minutes=59)))
    store.insert_activity(_make_activity(timestamp=day + timedelta(days=1)))

    results = store.get_activities(day, day + timedelta(days=1))
    assert len(results) == 2
    assert results[0].timestamp < results[1].timestamp


def test_get_uncategorized_activities_newest_first(store: ActivityStore):
    store.insert_activity(_make_activity(project_id=None, timestamp=datetime(2025, 1, 15, 9)))
    store.insert_activity(_make_activity(project_id=None, timestamp=datetime(2025, 1, 15, 11)))
    store.insert_activity(_make_activity())

    results = store.get_uncategorized_activities()
    assert [a.timestamp.hour for a in results] == [11, 9]
    assert store.get_uncategorized_activities(limit=1)[0].timestamp.hour == 11


def test_total_seconds_since(store: ActivityStore):
    store.insert_activity(_make_activity(timestamp=datetime(2025, 1, 14, 23), duration_seconds=500))
    store.insert_activity(_make_activity(timestamp=datetime(2025, 1, 15, 9), duration_seconds=60))
    store.insert_activity(_make_activity(timestamp=datetime(2025, 1, 15, 10), duration_seconds=40))

    assert store.total_seconds_since(datetime(2025, 1, 15)) == 100
    assert store.total_seconds_since(datetime(2025, 2, 1)) == 0


def test_time_by_project(store: ActivityStore):
    store.insert_activity(_make_activity(duration_seconds=60, project_id="atalho"))
    store.insert_activity(_make_activity(duration_seconds=300, project_id="concepta"))
    store.insert_activity(_make_activity(duration_seconds=30, project_id=None))

    rows = store.time_by_project(date(2025, 1, 15))
    assert [(p.id if p else None, s) for p, s in rows] == [
        ("concepta", 300), ("atalho", 60), (None, 30),
    ]


def test_delete_activities_older_than(store: ActivityStore):
    now = datetime(2025, 3, 1, 12)
    store.insert_activity(_make_activity(timestamp=now - timedelta(days=40)))
    store.insert_activity(_make_activity(timestamp=now - timedelta(days=5)))

    assert store.delete_activities_older_than(30, now=now) == 1
    assert len(store.get_activities(now - timedelta(days=60), now)) == 1


# ------------------------------------------------------------------
# Projects
# ------------------------------------------------------------------

def test_default_projects_seeded(store: ActivityStore):
    names = [p.name for p in store.get_projects()]
    assert names == sorted(p.name for p in DEFAULT_PROJECTS)


def test_save_project_upserts(store: ActivityStore):
    store.save_project(Project(id="concepta", name="Concepta Ltda", color="#000000"))
    project = store.get_project("concepta")
    assert project.name == "Concepta Ltda"
    assert project.icon is None


def test_deactivate_project_hides_but_keeps_history(store: ActivityStore):
    row_id = store.insert_activity(_make_activity(project_id="remot"))
    store.deactivate_project("remot")

    assert "remot" not in {p.id for p in store.get_projects()}
    assert "remot" in {p.id for p in store.get_projects(active_only=False)}
    assert store.get_activity_by_id(row_id).project_id == "remot"


def test_delete_project_clears_references_and_rules(store: ActivityStore):
    row_id = store.insert_activity(_make_activity(project_id="remot"))
    store.delete_project("remot")

    assert store.get_project("remot") is None
    assert store.get_activity_by_id(row_id).project_id is None
    assert all(r.project_id != "remot" for r in store.get_rules())


# ------------------------------------------------------------------
# Rules
# ------------------------------------------------------------------

def test_rules_ordered_by_priority(store: ActivityStore):
    priorities = [r.priority for r in store.get_rules()]
    assert priorities == sorted(priorities)


def test_save_rule_assigns_id(store: ActivityStore):
    rule_id = store.save_rule(CategoryRule(MatchKind.URL, "jira.example.com", "atalho", priority=3))
    assert store.get_rules()[0].id == rule_id
    assert store.get_rules()[0].match_kind is MatchKind.URL


def test_save_rule_with_id_replaces(store: ActivityStore):
    rule_id = store.save_rule(CategoryRule(MatchKind.APP, "figma", "atalho", priority=15))
    store.save_rule(CategoryRule(MatchKind.APP, "figma", "pessoal", priority=15, id=rule_id))

    matching = [r for r in store.get_rules() if r.id == rule_id]
    assert len(matching) == 1
    assert matching[0].project_id == "pessoal"


def test_delete_rule(store: ActivityStore):
    rule_id = store.save_rule(CategoryRule(MatchKind.APP, "figma", "atalho"))
    store.delete_rule(rule_id)
    assert rule_id not in {r.id for r in store.get_rules()}


def test_rule_for_unknown_project_rejected(store: ActivityStore):
    with pytest.raises(sqlite3.IntegrityError):
        store.save_rule(CategoryRule(MatchKind.APP, "figma", "ghost"))

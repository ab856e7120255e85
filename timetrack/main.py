"""TimeTrack application entry point.

Supports two modes:
  - Tracking mode (default): samples the focused window, segments and
    categorizes activities, and serves the JSON API until interrupted
  - CLI mode: prints a report or imports/exports rules, then exits

Usage:
    python -m timetrack.main                      # track
    python -m timetrack.main --today              # print today's summary
    python -m timetrack.main --export-rules r.json
    python -m timetrack.main --import-rules r.json
    python -m timetrack.main --prune 90           # delete activities older than 90 days
"""

import argparse
import logging
import os
import sqlite3
import threading
from datetime import date

from timetrack.core.config import get_default_config_path, load_config
from timetrack.core.rules import RuleMatcher
from timetrack.persistence.store import ActivityStore
from timetrack.reporting.formatter import TextFormatter
from timetrack.reporting.summary import SummaryGenerator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="timetrack",
        description="TimeTrack: automatic project time tracking",
    )
    parser.add_argument(
        "--config",
        help="Path to config.json (defaults to the platform data directory)",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--today",
        action="store_true",
        help="Print today's per-project summary and exit",
    )
    group.add_argument(
        "--export-rules",
        metavar="PATH",
        help="Write all category rules to a JSON file and exit",
    )
    group.add_argument(
        "--import-rules",
        metavar="PATH",
        help="Add the rules from a JSON file, skipping duplicates, and exit",
    )
    group.add_argument(
        "--prune",
        type=int,
        metavar="DAYS",
        help="Delete activities older than DAYS days and exit",
    )
    return parser


def _open_store(config: dict) -> ActivityStore:
    db_path = os.path.expanduser(config.get("database_path", "~/.timetrack/timetrack.db"))
    store = ActivityStore(db_path)
    store.init_db()
    return store


def _print_today_summary(config: dict) -> None:
    """Create a store and summary generator, then print today's summary."""
    store = _open_store(config)
    try:
        summary = SummaryGenerator(store).daily_summary(date.today())
        print(TextFormatter.format_daily(summary))
    finally:
        store.close()


def _export_rules(config: dict, path: str) -> None:
    store = _open_store(config)
    try:
        rules = store.get_rules()
        RuleMatcher.save_rules(rules, path)
        print(f"Exported {len(rules)} rules to {path}")
    finally:
        store.close()


def _import_rules(config: dict, path: str) -> None:
    store = _open_store(config)
    try:
        matcher = RuleMatcher(store.get_rules())
        known_projects = {p.id for p in store.get_projects(active_only=False)}
        added = 0
        for rule in RuleMatcher.load_rules(path):
            if rule.project_id not in known_projects:
                logger.warning("Skipping rule for unknown project %s", rule.project_id)
                continue
            if matcher.has_similar(rule):
                continue
            try:
                rule.id = store.save_rule(rule)
            except sqlite3.Error:
                logger.exception("Failed to import rule %r", rule)
                continue
            matcher.rules = matcher.rules + [rule]
            added += 1
        print(f"Imported {added} rules from {path}")
    finally:
        store.close()


def _prune_activities(config: dict, days: int) -> None:
    store = _open_store(config)
    try:
        deleted = store.delete_activities_older_than(days)
        print(f"Deleted {deleted} activities older than {days} days")
    finally:
        store.close()


def _run_tracker(config_path: str, config: dict) -> None:
    from timetrack.ui.app import TimeTrackApp

    app = TimeTrackApp(config_path, config)
    app.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        app.stop()


def main(args: list[str] | None = None) -> None:
    """Entry point for TimeTrack.

    When *args* is ``None`` the arguments are read from ``sys.argv``.
    """
    parser = build_parser()
    parsed = parser.parse_args(args)

    config_path = parsed.config or str(get_default_config_path())
    config = load_config(config_path)

    logging.basicConfig(
        level=getattr(logging, str(config.get("log_level", "INFO")).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if parsed.today:
        _print_today_summary(config)
    elif parsed.export_rules:
        _export_rules(config, parsed.export_rules)
    elif parsed.import_rules:
        _import_rules(config, parsed.import_rules)
    elif parsed.prune is not None:
        if parsed.prune < 0:
            parser.error("--prune DAYS must not be negative")
        _prune_activities(config, parsed.prune)
    else:
        _run_tracker(config_path, config)


if __name__ == "__main__":
    main()

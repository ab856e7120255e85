"""Deterministic rule matching for TimeTrack.

Maps samples to projects using prioritized substring rules. Rules are
evaluated in ascending priority order (ties keep insertion order); the
first matching rule wins. Returns ``None`` when no rule matches.
"""

import json
from pathlib import Path
from typing import Iterable, Optional

from timetrack.core.models import CategoryRule, MatchKind


class RuleMatcher:
    """Matches app/title/URL fields against a snapshot of CategoryRules."""

    def __init__(self, rules: Iterable[CategoryRule] = ()) -> None:
        self.rules = list(rules)

    @property
    def rules(self) -> list[CategoryRule]:
        return self._rules

    @rules.setter
    def rules(self, rules: list[CategoryRule]) -> None:
        # sorted() is stable, so equal priorities keep their given order
        self._rules = sorted(rules, key=lambda r: r.priority)

    def match(
        self,
        app_name: str,
        window_title: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Optional[CategoryRule]:
        """Return the first rule matching the given fields, or ``None``."""
        for rule in self._rules:
            if rule_matches(rule, app_name, window_title, url):
                return rule
        return None

    def has_similar(self, candidate: CategoryRule) -> bool:
        """True if a rule with the same kind and normalized pattern exists."""
        return any(
            rule.match_kind == candidate.match_kind
            and rule.normalized_pattern == candidate.normalized_pattern
            for rule in self._rules
        )

    @staticmethod
    def load_rules(path: str) -> list[CategoryRule]:
        """Deserialize rules from a JSON file.

        The file must contain a JSON array of objects, each with keys
        ``match_kind``, ``match_pattern`` and ``project_id``, and an
        optional ``priority`` (defaults to 100).
        """
        file_path = Path(path)
        with open(file_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        return [
            CategoryRule(
                match_kind=MatchKind(entry["match_kind"]),
                match_pattern=entry["match_pattern"],
                project_id=entry["project_id"],
                priority=int(entry.get("priority", 100)),
            )
            for entry in data
        ]

    @staticmethod
    def save_rules(rules: list[CategoryRule], path: str) -> None:
        """Serialize rules to a JSON file."""
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        data = [
            {
                "match_kind": rule.match_kind.value,
                "match_pattern": rule.match_pattern,
                "project_id": rule.project_id,
                "priority": rule.priority,
            }
            for rule in rules
        ]
        with open(file_path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)


def rule_matches(
    rule: CategoryRule,
    app_name: str,
    window_title: Optional[str],
    url: Optional[str],
) -> bool:
    """Return True if the rule's field is present and contains its pattern."""
    if rule.match_kind is MatchKind.APP:
        value: Optional[str] = app_name
    elif rule.match_kind is MatchKind.TITLE:
        value = window_title
    else:
        value = url
    if value is None:
        return False
    return rule.normalized_pattern in value.lower()

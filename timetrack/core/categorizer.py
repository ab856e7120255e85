"""Layered activity categorization.

Rules are tried first and are authoritative (confidence 1.0). When no
rule matches, the external classifier is consulted and its guess is
accepted only if it names a known project with enough confidence.
Manual corrections feed back into the rule set through
``learn_from_manual``.
"""

import logging
import re
import sqlite3
from typing import Optional
from urllib.parse import urlparse

from timetrack.core.models import (
    CategorizationResult,
    CategorizationSource,
    CategoryRule,
    MatchKind,
    Project,
)
from timetrack.core.rules import RuleMatcher

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_AI_CONFIDENCE = 0.7

# Priorities for learned rules: URL hosts outrank apps, apps outrank titles.
LEARNED_URL_PRIORITY = 3
LEARNED_APP_PRIORITY = 15
LEARNED_TITLE_PRIORITY = 25

_FUZZY_THRESHOLD = 0.8
_MIN_KEYWORD_LENGTH = 5

_STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "this", "that", "your", "have",
    "are", "was", "were", "will", "would", "could", "should",
})

_TOKEN_SPLIT_RE = re.compile(r"[\W_]+")


class CategoryEngine:
    """Assigns samples to projects using rules, then the classifier.

    Holds snapshots of the active projects and all rules. The snapshots
    are replaced wholesale by ``refresh_cache()``, which callers must
    invoke after any project or rule write.
    """

    def __init__(
        self,
        store,
        classifier=None,
        minimum_ai_confidence: float = DEFAULT_MINIMUM_AI_CONFIDENCE,
    ) -> None:
        self.store = store
        self.classifier = classifier
        self.minimum_ai_confidence = minimum_ai_confidence
        self._matcher = RuleMatcher()
        self._projects: list[Project] = []

    @property
    def projects(self) -> list[Project]:
        return list(self._projects)

    @property
    def rules(self) -> list[CategoryRule]:
        return list(self._matcher.rules)

    def refresh_cache(self) -> None:
        """Reload rules and active projects from the store."""
        try:
            rules = self.store.get_rules()
            projects = self.store.get_projects(active_only=True)
        except sqlite3.Error:
            logger.exception("Failed to refresh category cache")
            return
        self._matcher = RuleMatcher(rules)
        self._projects = projects
        logger.info(
            "Category cache refreshed: %d rules, %d projects", len(rules), len(projects)
        )

    # ------------------------------------------------------------------
    # Categorization
    # ------------------------------------------------------------------

    def categorize(
        self,
        app_name: str,
        window_title: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Optional[CategorizationResult]:
        """Return a project assignment for the given fields, or ``None``.

        May block on the classifier's network round-trip; the tracker
        runs it off the sampling thread.
        """
        logger.debug("Categorizing app=%s title=%s url=%s", app_name, window_title, url)

        rule = self._matcher.match(app_name, window_title, url)
        if rule is not None:
            logger.info("Matched %s rule '%s' -> %s", rule.match_kind.value, rule.match_pattern, rule.project_id)
            return CategorizationResult(
                project_id=rule.project_id,
                confidence=1.0,
                source=CategorizationSource.RULE,
            )

        return self._categorize_by_ai(app_name, window_title, url)

    def _categorize_by_ai(
        self,
        app_name: str,
        window_title: Optional[str],
        url: Optional[str],
    ) -> Optional[CategorizationResult]:
        if self.classifier is None or not self.classifier.is_available:
            return None

        projects = self._projects
        try:
            guess = self.classifier.categorize(
                app_name, window_title, url, [p.name for p in projects]
            )
        except Exception:
            logger.warning("Classifier raised; treating as no result", exc_info=True)
            return None
        if guess is None:
            return None

        wanted = guess.project.lower()
        project = next((p for p in projects if p.name.lower() == wanted), None)
        if project is None:
            logger.info("Classifier returned unknown project: %s", guess.project)
            return None

        if guess.confidence < self.minimum_ai_confidence:
            logger.info(
                "Classifier confidence too low: %.2f < %.2f",
                guess.confidence, self.minimum_ai_confidence,
            )
            return None

        return CategorizationResult(
            project_id=project.id,
            confidence=guess.confidence,
            source=CategorizationSource.AI,
        )

    # ------------------------------------------------------------------
    # Project lookup
    # ------------------------------------------------------------------

    def find_project(self, name: str) -> Optional[Project]:
        """Resolve a (possibly mis-transcribed) spoken project name.

        Tiers, each exhaustive over the cache before the next one runs:
        exact match, substring in either direction, then character-set
        overlap above 0.8.
        """
        normalized = name.strip().lower()
        if not normalized:
            return None
        projects = self._projects

        for project in projects:
            if project.name.lower() == normalized:
                return project

        for project in projects:
            project_name = project.name.lower()
            if normalized in project_name or project_name in normalized:
                return project

        name_chars = set(normalized)
        for project in projects:
            project_chars = set(project.name.lower())
            overlap = len(project_chars & name_chars)
            if overlap / max(len(project_chars), len(name_chars)) > _FUZZY_THRESHOLD:
                return project

        return None

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def learn_from_manual(
        self,
        app_name: str,
        window_title: Optional[str],
        url: Optional[str],
        project_id: str,
    ) -> list[CategoryRule]:
        """Synthesize rules from a confirmed manual categorization.

        Returns the rules that were actually inserted; candidates that
        duplicate an existing rule are skipped.
        """
        logger.info(
            "Learning from manual: app=%s title=%s url=%s -> %s",
            app_name, window_title, url, project_id,
        )
        candidates = build_learned_rules(app_name, window_title, url, project_id)

        inserted: list[CategoryRule] = []
        for rule in candidates:
            if self._matcher.has_similar(rule):
                logger.debug("Skipping duplicate %s rule '%s'", rule.match_kind.value, rule.match_pattern)
                continue
            try:
                rule.id = self.store.save_rule(rule)
            except sqlite3.Error:
                logger.exception("Failed to save learned rule %r", rule)
                continue
            inserted.append(rule)
            logger.info("Learned: %s '%s' -> %s", rule.match_kind.value, rule.match_pattern, project_id)

        self.refresh_cache()
        return inserted


def build_learned_rules(
    app_name: str,
    window_title: Optional[str],
    url: Optional[str],
    project_id: str,
) -> list[CategoryRule]:
    """Return the candidate rules for one manual categorization."""
    rules: list[CategoryRule] = []

    if app_name.strip():
        rules.append(CategoryRule(
            match_kind=MatchKind.APP,
            match_pattern=app_name.strip().lower(),
            project_id=project_id,
            priority=LEARNED_APP_PRIORITY,
        ))

    host = url_host(url)
    if host:
        rules.append(CategoryRule(
            match_kind=MatchKind.URL,
            match_pattern=host,
            project_id=project_id,
            priority=LEARNED_URL_PRIORITY,
        ))

    keyword = first_keyword(window_title)
    if keyword:
        rules.append(CategoryRule(
            match_kind=MatchKind.TITLE,
            match_pattern=keyword,
            project_id=project_id,
            priority=LEARNED_TITLE_PRIORITY,
        ))

    return rules


def url_host(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def first_keyword(title: Optional[str]) -> Optional[str]:
    """First lowercased alphanumeric token of at least five chars that is not a stop word."""
    if not title:
        return None
    for word in _TOKEN_SPLIT_RE.split(title.lower()):
        if len(word) >= _MIN_KEYWORD_LENGTH and word not in _STOP_WORDS:
            return word
    return None

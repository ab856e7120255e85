"""Core data models for TimeTrack.

Defines all dataclasses and enums used across the application:
- Sampling: Sample
- Tracking: Activity
- Categorization: Project, MatchKind, CategoryRule, CategorizationSource,
  CategorizationResult, ClassifierGuess
- Voice input: VoiceCommand
- Reporting: ProjectTime, DailySummary
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

IDLE_APP_NAME = "Idle"


@dataclass(frozen=True)
class Sample:
    """A point-in-time observation of the focused application and window."""
    app_name: str
    app_bundle_id: Optional[str] = None
    window_title: Optional[str] = None
    url: Optional[str] = None  # only set for browsers

    @classmethod
    def idle(cls) -> "Sample":
        """Sample used when nothing is focused or the source is unavailable."""
        return cls(app_name=IDLE_APP_NAME)

    @property
    def is_idle(self) -> bool:
        return self.app_name == IDLE_APP_NAME


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------

@dataclass
class Activity:
    """A continuously-extending record of time spent in one focus context."""
    timestamp: datetime
    app_name: str
    duration_seconds: int = 0
    app_bundle_id: Optional[str] = None
    window_title: Optional[str] = None
    url: Optional[str] = None
    project_id: Optional[str] = None
    is_manual: bool = False
    manual_note: Optional[str] = None
    ai_confidence: Optional[float] = None
    id: Optional[int] = None  # assigned on first durable write

    @classmethod
    def from_sample(cls, sample: Sample, timestamp: datetime) -> "Activity":
        return cls(
            timestamp=timestamp,
            app_name=sample.app_name,
            app_bundle_id=sample.app_bundle_id,
            window_title=sample.window_title,
            url=sample.url,
        )

    @property
    def is_persisted(self) -> bool:
        return self.id is not None


# ---------------------------------------------------------------------------
# Categorization
# ---------------------------------------------------------------------------

@dataclass
class Project:
    """A user-defined bucket that activities are assigned to."""
    id: str
    name: str
    color: str
    icon: Optional[str] = None
    is_active: bool = True  # soft-delete flag


class MatchKind(Enum):
    """Which sample field a CategoryRule inspects."""
    APP = "app"
    TITLE = "title"
    URL = "url"


@dataclass
class CategoryRule:
    """Maps a case-insensitive substring of one sample field to a project."""
    match_kind: MatchKind
    match_pattern: str
    project_id: str
    priority: int = 100  # lower value is evaluated first
    id: Optional[int] = None

    @property
    def normalized_pattern(self) -> str:
        return self.match_pattern.lower()


class CategorizationSource(Enum):
    """Where a categorization decision came from."""
    RULE = "rule"
    AI = "ai"


@dataclass(frozen=True)
class CategorizationResult:
    """Outcome of CategoryEngine.categorize()."""
    project_id: str
    confidence: float
    source: CategorizationSource


@dataclass(frozen=True)
class ClassifierGuess:
    """Raw answer from the external classifier, before name resolution."""
    project: str      # free-text project name
    confidence: float


# ---------------------------------------------------------------------------
# Voice input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VoiceCommand:
    """A transcription split into a spoken project name and an optional note."""
    project_name: Optional[str] = None
    note: Optional[str] = None


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

@dataclass
class ProjectTime:
    """Time spent on one project (or uncategorized, when project is None)."""
    project: Optional[Project]
    total_seconds: int = 0
    percentage: float = 0.0
    activities: list[Activity] = field(default_factory=list)


@dataclass
class DailySummary:
    """Per-project breakdown of a single day."""
    date: date
    entries: list[ProjectTime] = field(default_factory=list)  # sorted by total_seconds descending
    total_seconds: int = 0

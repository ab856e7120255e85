"""Activity segmentation for TimeTrack.

Turns the stream of focused-window samples into discrete activities:
- decides when a sample starts a new activity or extends the live one
- accumulates duration on a heartbeat and checkpoints it to the store
- categorizes each new activity in the background and applies the
  result only if the user is still in the same application
"""

import dataclasses
import logging
import sqlite3
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, time
from functools import partial
from typing import Callable, Optional

from timetrack.core.models import Activity, CategorizationResult, Sample
from timetrack.core.scheduler import RepeatingTimer

logger = logging.getLogger(__name__)

ACTIVITY_CHANGED = "activity_changed"
TODAY_TOTAL_CHANGED = "today_total_changed"

Listener = Callable[[str, object], None]


def titles_are_similar(title1: str, title2: str, min_shared_words: int = 2) -> bool:
    """Whether two window titles describe the same task.

    Similar when one contains the other (case-insensitively) or when
    they share at least *min_shared_words* words longer than 3 chars.
    """
    t1 = title1.lower()
    t2 = title2.lower()
    if t1 in t2 or t2 in t1:
        return True
    words1 = {w for w in t1.split(" ") if len(w) > 3}
    words2 = {w for w in t2.split(" ") if len(w) > 3}
    return len(words1 & words2) >= min_shared_words


class ActivityTracker:
    """Owns the single live Activity and drives its lifecycle.

    All state is guarded by one re-entrant lock; sampling, heartbeat,
    user assignments and classifier completions all funnel through it.
    ``on_sample`` and ``heartbeat`` can also be driven directly;
    ``start()`` drives them from two repeating timers.
    """

    def __init__(
        self,
        sampler,
        categorizer,
        store,
        sample_interval: float = 2,
        heartbeat_interval: int = 2,
        checkpoint_interval: int = 30,
        min_shared_words: int = 2,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.sampler = sampler
        self.categorizer = categorizer
        self.store = store
        self.sample_interval = sample_interval
        self.heartbeat_interval = heartbeat_interval
        self.checkpoint_interval = checkpoint_interval
        self.min_shared_words = min_shared_words
        self._clock = clock

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="timetrack-categorize"
        )

        self._lock = threading.RLock()
        self._running = False
        self._current: Optional[Activity] = None
        self._last_sample: Optional[Sample] = None
        self._persisted_duration = 0
        self._today_total = 0
        self._listeners: list[Listener] = []
        self._sample_timer: Optional[RepeatingTimer] = None
        self._heartbeat_timer: Optional[RepeatingTimer] = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_activity(self) -> Optional[Activity]:
        """Snapshot of the live activity (mutating it has no effect)."""
        with self._lock:
            return dataclasses.replace(self._current) if self._current else None

    @property
    def last_sample(self) -> Optional[Sample]:
        return self._last_sample

    @property
    def today_total_seconds(self) -> int:
        return self._today_total

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(event, payload)``; returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Tracking control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Take an immediate sample, then sample and heartbeat periodically."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._update_today_total()
            self.poll_once()

        self._sample_timer = RepeatingTimer(self.sample_interval, self.poll_once, name="timetrack-sampler")
        self._heartbeat_timer = RepeatingTimer(self.heartbeat_interval, self.heartbeat, name="timetrack-heartbeat")
        self._sample_timer.start()
        self._heartbeat_timer.start()
        logger.info("Activity tracking started")

    def stop(self) -> None:
        """Cancel both timers and checkpoint the live activity."""
        with self._lock:
            if not self._running:
                return
            self._running = False

        # Timers take the lock in their callbacks, so cancel them outside it.
        for timer in (self._sample_timer, self._heartbeat_timer):
            if timer is not None:
                timer.cancel()
        self._sample_timer = None
        self._heartbeat_timer = None

        with self._lock:
            self._checkpoint()
            self._current = None
            self._last_sample = None
            self._emit(ACTIVITY_CHANGED, None)
        logger.info("Activity tracking stopped")

    def shutdown(self) -> None:
        """Stop tracking and release the classification executor."""
        self.stop()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def poll_once(self) -> None:
        """Read one sample from the sampler and feed it to ``on_sample``."""
        try:
            sample = self.sampler.get_sample()
        except Exception:
            logger.exception("Failed to sample the focused window; recording idle")
            sample = None
        self.on_sample(sample if sample is not None else Sample.idle())

    def on_sample(self, sample: Sample) -> None:
        with self._lock:
            if not self._running:
                return
            if self._should_start_new_activity(sample):
                self._checkpoint()
                self._start_new_activity(sample)
            self._last_sample = sample

    def _should_start_new_activity(self, sample: Sample) -> bool:
        current = self._current
        if current is None:
            return True
        if current.app_name != sample.app_name:
            return True
        if (
            current.window_title is not None
            and sample.window_title is not None
            and not titles_are_similar(current.window_title, sample.window_title, self.min_shared_words)
        ):
            return True
        if sample.url is not None and sample.url != current.url:
            return True
        return False

    def _start_new_activity(self, sample: Sample) -> None:
        self._current = Activity.from_sample(sample, self._clock())
        self._persisted_duration = 0
        logger.debug("New activity: %s - %s", sample.app_name, sample.window_title)
        self._emit(ACTIVITY_CHANGED, dataclasses.replace(self._current))

        future = self._executor.submit(
            self.categorizer.categorize, sample.app_name, sample.window_title, sample.url
        )
        future.add_done_callback(partial(self._on_categorized, sample.app_name))

    def _on_categorized(self, app_name: str, future: Future) -> None:
        if future.cancelled():
            return
        try:
            result: Optional[CategorizationResult] = future.result()
        except Exception:
            logger.exception("Categorization failed for %s", app_name)
            return
        if result is None:
            return

        with self._lock:
            current = self._current
            if current is None or current.app_name != app_name:
                logger.info("Discarding stale categorization for %s", app_name)
                return
            if current.is_manual:
                logger.debug("Keeping manual assignment over %s result", result.source.value)
                return
            current.project_id = result.project_id
            current.ai_confidence = result.confidence
            if current.id is not None:
                self._write_project(current)
            logger.info("Categorized %s -> %s (%s)", app_name, result.project_id, result.source.value)
            self._emit(ACTIVITY_CHANGED, dataclasses.replace(current))

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def heartbeat(self) -> None:
        with self._lock:
            current = self._current
            if not self._running or current is None:
                return
            before = current.duration_seconds
            current.duration_seconds += self.heartbeat_interval
            if current.duration_seconds // self.checkpoint_interval > before // self.checkpoint_interval:
                self._checkpoint()
            self._update_today_total()

    def checkpoint(self) -> None:
        """Persist the live activity now."""
        with self._lock:
            self._checkpoint()

    def _checkpoint(self) -> None:
        activity = self._current
        if activity is None or activity.duration_seconds <= 0:
            return
        try:
            if activity.id is None:
                activity.id = self.store.insert_activity(activity)
            else:
                self.store.update_activity_duration(activity.id, activity.duration_seconds)
        except sqlite3.Error:
            logger.exception("Failed to save activity %s", activity.app_name)
            return
        self._persisted_duration = activity.duration_seconds

    # ------------------------------------------------------------------
    # Manual categorization
    # ------------------------------------------------------------------

    def set_project(self, project_id: str, note: Optional[str] = None) -> Optional[Activity]:
        """Manually assign the live activity; returns its snapshot."""
        with self._lock:
            activity = self._current
            if activity is None:
                return None
            activity.project_id = project_id
            activity.is_manual = True
            activity.manual_note = note
            activity.ai_confidence = 1.0
            if activity.id is not None:
                self._write_project(activity)
            self._emit(ACTIVITY_CHANGED, dataclasses.replace(activity))
            return dataclasses.replace(activity)

    def clear_project(self) -> Optional[Activity]:
        with self._lock:
            activity = self._current
            if activity is None:
                return None
            activity.project_id = None
            activity.is_manual = False
            activity.manual_note = None
            activity.ai_confidence = None
            if activity.id is not None:
                self._write_project(activity)
            self._emit(ACTIVITY_CHANGED, dataclasses.replace(activity))
            return dataclasses.replace(activity)

    def _write_project(self, activity: Activity) -> None:
        try:
            self.store.update_activity_project(
                activity.id,
                activity.project_id,
                activity.ai_confidence,
                is_manual=activity.is_manual,
                note=activity.manual_note,
            )
        except sqlite3.Error:
            logger.exception("Failed to update project of activity %s", activity.id)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _update_today_total(self) -> None:
        start_of_day = datetime.combine(self._clock().date(), time.min)
        try:
            total = self.store.total_seconds_since(start_of_day)
        except sqlite3.Error:
            logger.exception("Failed to fetch today total")
            return

        current = self._current
        if current is not None:
            if current.id is not None and current.timestamp >= start_of_day:
                total -= self._persisted_duration
            total += current.duration_seconds

        if total != self._today_total:
            self._today_total = total
            self._emit(TODAY_TOTAL_CHANGED, total)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, event: str, payload: object) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Listener failed for %s", event)

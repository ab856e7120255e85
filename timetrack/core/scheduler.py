"""Periodic callbacks on dedicated daemon threads."""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class RepeatingTimer:
    """Invoke *callback* every *interval* seconds until cancelled.

    Exceptions raised by the callback are logged and the timer keeps
    ticking.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "timetrack-timer") -> None:
        self.interval = interval
        self.callback = callback
        self.name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
        self._thread.start()

    def cancel(self) -> None:
        """Stop ticking; waits for an in-progress callback unless called from it."""
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(self.interval, 1) * 2)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("Timer %s callback failed", self.name)

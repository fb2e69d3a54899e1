"""Periodic timers for polling and backfill."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class ScheduledTask(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule_periodic(self, interval: float, fn: Callable[[], object]) -> ScheduledTask: ...


class _PeriodicThread:
    """Call ``fn`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval: float, fn: Callable[[], object], name: str) -> None:
        self.interval = interval
        self.fn = fn
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.fn()
            except Exception:  # noqa: BLE001 - a failing tick must not end the schedule
                logger.exception("Periodic task %s failed", self._thread.name)

    def cancel(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the schedule and wait for a tick that is already running."""
        self._stop_event.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)


class ThreadScheduler:
    """Scheduler backed by one background thread per periodic task."""

    def __init__(self, name: str = "feed-sync") -> None:
        self.name = name
        self._count = 0

    def schedule_periodic(self, interval: float, fn: Callable[[], object]) -> ScheduledTask:
        if interval <= 0:
            raise ValueError("interval must be positive.")
        self._count += 1
        task = _PeriodicThread(interval, fn, f"{self.name}-timer-{self._count}")
        task.start()
        logger.debug("Scheduled periodic task every %.1fs", interval)
        return task

"""Periodic export scheduling."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass
class ScheduledExportJob:
    interval: float
    initial_delay: float
    action: Callable[[], object]
    cancelled: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    ticks: int = 0

    @property
    def active(self) -> bool:
        return self.thread is not None and self.thread.is_alive() and not self.cancelled.is_set()


class ExportScheduler:
    """Runs at most one periodic job at a time.

    Ticks run at a fixed rate: tick N is due at ``start + initial_delay + N * interval``.
    A tick that overruns is followed immediately by the next one, never by a burst.
    Scheduling again replaces the current job.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, name: str = "export-scheduler") -> None:
        self.logger = logger or logging.getLogger("intake")
        self.name = name
        self._lock = threading.Lock()
        self._job: Optional[ScheduledExportJob] = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._job is not None and self._job.active

    @property
    def job(self) -> Optional[ScheduledExportJob]:
        with self._lock:
            return self._job

    def schedule(self, interval: float, initial_delay: float, action: Callable[[], object]) -> ScheduledExportJob:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if initial_delay < 0:
            raise ValueError(f"initial_delay must not be negative, got {initial_delay}")

        job = ScheduledExportJob(interval=interval, initial_delay=initial_delay, action=action)
        job.thread = threading.Thread(target=self._run, args=(job,), name=self.name, daemon=True)

        with self._lock:
            previous = self._job
            if previous is not None and previous.active:
                self.logger.info("Replacing active export schedule")
            if previous is not None:
                previous.cancelled.set()
            self._job = job
            job.thread.start()

        self.logger.info("Exports scheduled every %ss (first in %ss)", interval, initial_delay)
        return job

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Prevent further ticks. With `wait`, block until a running tick has finished."""
        with self._lock:
            job = self._job
            self._job = None
        if job is None:
            return
        job.cancelled.set()
        if wait and job.thread is not None and job.thread is not threading.current_thread():
            job.thread.join(timeout)
        self.logger.info("Export schedule stopped")

    def _run(self, job: ScheduledExportJob) -> None:
        next_run = time.monotonic() + job.initial_delay
        while True:
            if job.cancelled.wait(max(0.0, next_run - time.monotonic())):
                return
            try:
                job.action()
            except Exception:
                self.logger.exception("Scheduled export failed")
            job.ticks += 1
            next_run += job.interval
            now = time.monotonic()
            if next_run < now:
                next_run = now

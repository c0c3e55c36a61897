"""Input-directory watcher built on watchdog."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Union

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from intake.errors import SetupError


@dataclass(frozen=True)
class WatchEvent:
    path: Path
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WatcherState(str, Enum):
    IDLE = "idle"
    WATCHING = "watching"
    STOPPED = "stopped"


class NewFileHandler(FileSystemEventHandler):
    """Waits for a created file to settle, then passes it to `dispatch`.

    Each event waits at least one settle period, then keeps polling the size
    (up to `max_tries` periods) until two reads agree. Setting `stop_event`
    cuts the wait short and drops the pending file.
    """

    def __init__(
        self,
        dispatch: Callable[[Path], Any],
        logger: logging.Logger,
        stop_event: Optional[threading.Event] = None,
        settle_seconds: float = 0.5,
        max_tries: int = 10,
    ) -> None:
        super().__init__()
        self._dispatch = dispatch
        self.logger = logger
        self.stop_event = stop_event or threading.Event()
        self.settle_seconds = settle_seconds
        self.max_tries = max_tries

    def on_created(self, event):
        # Ignore directories
        if event.is_directory:
            return

        watch_event = WatchEvent(Path(os.fsdecode(event.src_path)))
        path = watch_event.path

        prev_size = -1
        stable = False
        for _ in range(max(self.max_tries, 1)):
            if self.stop_event.wait(self.settle_seconds):
                self.logger.info("Watcher stopping; dropping pending file %s", path)
                return
            try:
                size = os.path.getsize(path)
            except OSError:
                size = -1
            if size == prev_size and size != -1:
                stable = True
                break
            prev_size = size

        if not stable and prev_size == -1:
            self.logger.warning("New file disappeared before processing: %s", path)
            return
        waited = (datetime.now(timezone.utc) - watch_event.detected_at).total_seconds()
        if not stable:
            self.logger.info("New file detected (may be incomplete after %.2fs): %s", waited, path)
        else:
            self.logger.info("New file detected (settled after %.2fs): %s", waited, path)

        try:
            self._dispatch(path)
        except Exception:
            self.logger.exception("Error processing file %s", path)


class DirectoryWatcher:
    """Watches exactly one directory (non-recursive) for new files."""

    def __init__(
        self,
        directory: Union[str, Path],
        dispatch: Callable[[Path], Any],
        logger: Optional[logging.Logger] = None,
        settle_seconds: float = 0.5,
        max_tries: int = 10,
    ) -> None:
        self.directory = Path(directory)
        self.dispatch = dispatch
        self.logger = logger or logging.getLogger("intake")
        self.settle_seconds = settle_seconds
        self.max_tries = max_tries
        self._lock = threading.Lock()
        self._observer: Optional[Observer] = None
        self._stop_event = threading.Event()
        self._state = WatcherState.IDLE

    @property
    def state(self) -> WatcherState:
        with self._lock:
            return self._state

    def start(self) -> None:
        """Start watching in the background. Raises SetupError if the directory can't be watched."""
        with self._lock:
            if self._state is WatcherState.WATCHING:
                self.logger.info("Already watching %s", self.directory)
                return

            stop_event = threading.Event()
            handler = NewFileHandler(
                self.dispatch,
                self.logger,
                stop_event=stop_event,
                settle_seconds=self.settle_seconds,
                max_tries=self.max_tries,
            )
            observer = Observer()
            observer.daemon = True
            try:
                if not self.directory.is_dir():
                    raise FileNotFoundError(f"not a directory: {self.directory}")
                observer.schedule(handler, str(self.directory), recursive=False)
                observer.start()
            except OSError as exc:
                self.logger.error("Could not watch %s: %s", self.directory, exc)
                raise SetupError(f"Could not watch {self.directory}: {exc}") from exc

            self._observer = observer
            self._stop_event = stop_event
            self._state = WatcherState.WATCHING
        self.logger.info("Watching: %s", self.directory)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop watching. A file already being dispatched finishes first."""
        with self._lock:
            if self._state is not WatcherState.WATCHING:
                return
            observer = self._observer
            self._stop_event.set()
            self._observer = None
            self._state = WatcherState.STOPPED

        observer.stop()
        if observer is not threading.current_thread():
            observer.join(timeout)
        self.logger.info("Stopped watching %s", self.directory)

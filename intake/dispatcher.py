"""Format dispatch for a single file.

`Dispatcher.process_file` is what both the watcher and the console call. It
never raises for per-file problems; the outcome is returned as a
`DispatchResult` and logged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from intake.archive import ArchiveManager
from intake.config import ProcessorConfig, active_settings
from intake.errors import ArchiveError, BackupError, HandlerError
from intake.formats import UNKNOWN, detect_format
from intake.handlers import HandlerRegistry


class DispatchStatus(str, Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    UNKNOWN_FORMAT = "unknown_format"
    NO_HANDLER = "no_handler"
    MISSING = "missing"


@dataclass
class DispatchResult:
    """Outcome of dispatching one file."""

    path: Path
    status: DispatchStatus
    format: str = UNKNOWN
    backup_path: Optional[Path] = None
    """Backup copy, when backups were on and the copy succeeded."""
    archive_path: Optional[Path] = None
    """Where the file was archived, if it was."""
    error: Optional[Exception] = None
    """HandlerError on failure; BackupError/ArchiveError on degraded success."""

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.PROCESSED


class Dispatcher:
    def __init__(
        self,
        config: ProcessorConfig,
        handlers: HandlerRegistry,
        archive: ArchiveManager,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.handlers = handlers
        self.archive = archive
        self.logger = logger or logging.getLogger("intake")

    def process_file(self, path: Union[str, Path]) -> DispatchResult:
        """Back up, handle and archive `path`, in that order.

        Flags are read once at the start so a toggle mid-file does not split
        one file's lifecycle across two configurations.
        """
        path = Path(path)
        fmt = detect_format(path, custom=self.handlers.custom_formats())
        if fmt == UNKNOWN:
            self.logger.info("Unknown format, skipping: %s", path)
            return DispatchResult(path, DispatchStatus.UNKNOWN_FORMAT)

        if not path.is_file():
            self.logger.warning("File no longer exists, skipping: %s", path)
            return DispatchResult(path, DispatchStatus.MISSING, fmt)

        settings = self.config.snapshot()
        result = DispatchResult(path, DispatchStatus.PROCESSED, fmt)

        if settings.backup_enabled:
            try:
                result.backup_path = self.archive.backup(path)
            except BackupError as exc:
                self.logger.error("Backup failed, continuing without one: %s", exc)
                result.error = exc

        handler = self.handlers.get(fmt)
        if handler is None:
            self.logger.warning("No handler registered for format %s: %s", fmt, path)
            result.status = DispatchStatus.NO_HANDLER
            return result

        token = active_settings.set(settings)
        try:
            handler.handle(path)
        except Exception as exc:
            error = HandlerError(path, fmt, exc)
            self.logger.exception("Error processing %s file %s", fmt, path)
            result.status = DispatchStatus.FAILED
            result.error = error
            return result
        finally:
            active_settings.reset(token)

        if settings.archive_enabled:
            try:
                result.archive_path = self.archive.archive(path, settings.archive_policy)
            except ArchiveError as exc:
                self.logger.error("Archive failed, file left in place: %s", exc)
                result.error = exc

        self.logger.info("Processed file: %s", path)
        return result

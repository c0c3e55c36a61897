"""Errors raised by the intake pipeline.

Only setup and configuration errors reach callers. Everything that happens
while processing a file or running an export tick is caught and logged.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class IntakeError(Exception):
    """Base class for intake errors."""


class SetupError(IntakeError):
    """A directory could not be created or watched."""


class ConfigError(IntakeError):
    """Unknown flag name or invalid configuration value."""


class BackupError(IntakeError):
    """Copying a file into the backup directory failed."""


class ArchiveError(IntakeError):
    """Moving a processed file into the archive directory failed."""


class CodecError(IntakeError):
    """No codec is registered for a format."""


class ExportError(IntakeError):
    """An export could not be written."""


class HandlerError(IntakeError):
    """A format handler failed on a file."""

    def __init__(self, path: Path, format: str, cause: Optional[BaseException] = None) -> None:
        self.path = Path(path)
        self.format = format
        self.cause = cause
        message = f"{format} handler failed for {self.path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)

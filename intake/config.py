"""Shared processor configuration.

One `ProcessorConfig` is created per processor and passed by reference to the
dispatcher, watcher and scheduler. Directories are fixed at construction;
flags may be toggled at any time from the control console and take effect
for the next file or tick.
"""
from __future__ import annotations

import threading
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from intake.errors import ConfigError

BACKUP_SUBDIR = "backups"


class ArchivePolicy(str, Enum):
    """What to do when the archive already holds a file with the same name."""

    OVERWRITE = "overwrite"
    VERSION = "version"
    REJECT = "reject"


# Short names accepted by set_flag, as used on the console.
FLAG_ALIASES = {
    "archive": "archive_enabled",
    "backup": "backup_enabled",
    "convert": "convert_to_canonical",
    "archive_enabled": "archive_enabled",
    "backup_enabled": "backup_enabled",
    "convert_to_canonical": "convert_to_canonical",
}


@dataclass(frozen=True)
class ConfigSnapshot:
    archive_enabled: bool
    backup_enabled: bool
    convert_to_canonical: bool
    archive_policy: ArchivePolicy


# Flags of the file being dispatched on this thread; set by the dispatcher.
active_settings: ContextVar[Optional[ConfigSnapshot]] = ContextVar("active_settings", default=None)


class ProcessorConfig:
    """Directories plus lock-guarded boolean flags."""

    def __init__(
        self,
        input_dir: Union[str, Path],
        output_dir: Union[str, Path],
        archive_dir: Union[str, Path],
        archive_enabled: bool = True,
        backup_enabled: bool = True,
        convert_to_canonical: bool = False,
        archive_policy: Union[str, ArchivePolicy] = ArchivePolicy.OVERWRITE,
    ) -> None:
        self._input_dir = Path(input_dir)
        self._output_dir = Path(output_dir)
        self._archive_dir = Path(archive_dir)
        self._lock = threading.Lock()
        self._flags: Dict[str, bool] = {
            "archive_enabled": bool(archive_enabled),
            "backup_enabled": bool(backup_enabled),
            "convert_to_canonical": bool(convert_to_canonical),
        }
        self._archive_policy = _coerce_policy(archive_policy)

    @property
    def input_dir(self) -> Path:
        return self._input_dir

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def archive_dir(self) -> Path:
        return self._archive_dir

    @property
    def backup_dir(self) -> Path:
        return self._output_dir / BACKUP_SUBDIR

    @property
    def archive_enabled(self) -> bool:
        return self.get_flag("archive_enabled")

    @property
    def backup_enabled(self) -> bool:
        return self.get_flag("backup_enabled")

    @property
    def convert_to_canonical(self) -> bool:
        return self.get_flag("convert_to_canonical")

    @property
    def archive_policy(self) -> ArchivePolicy:
        with self._lock:
            return self._archive_policy

    @archive_policy.setter
    def archive_policy(self, policy: Union[str, ArchivePolicy]) -> None:
        policy = _coerce_policy(policy)
        with self._lock:
            self._archive_policy = policy

    def get_flag(self, name: str) -> bool:
        key = _flag_key(name)
        with self._lock:
            return self._flags[key]

    def set_flag(self, name: str, value: bool) -> str:
        """Set a flag by short or full name and return the full name."""
        key = _flag_key(name)
        with self._lock:
            self._flags[key] = bool(value)
        return key

    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            return ConfigSnapshot(
                archive_enabled=self._flags["archive_enabled"],
                backup_enabled=self._flags["backup_enabled"],
                convert_to_canonical=self._flags["convert_to_canonical"],
                archive_policy=self._archive_policy,
            )


def _flag_key(name: str) -> str:
    try:
        return FLAG_ALIASES[name.strip().lower()]
    except KeyError:
        raise ConfigError(f"Unknown flag: {name!r} (expected one of: archive, backup, convert)") from None


def _coerce_policy(policy: Union[str, ArchivePolicy]) -> ArchivePolicy:
    try:
        return ArchivePolicy(policy)
    except ValueError:
        valid = ", ".join(p.value for p in ArchivePolicy)
        raise ConfigError(f"Unknown archive policy: {policy!r} (expected one of: {valid})") from None

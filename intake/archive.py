"""Backup and archive handling for processed files.

`backup` copies a file to ``<output>/backups/<stamp>_<name>`` before it is
processed; `archive` moves it to ``<archive>/<name>`` afterwards. Both create
their target directory on first use.
"""
from __future__ import annotations

import errno
import logging
import os
import shutil
import threading
import time
from pathlib import Path
from typing import Optional, Union

from intake.config import ArchivePolicy
from intake.errors import ArchiveError, BackupError

_stamp_lock = threading.Lock()
_last_stamp = 0


def next_timestamp() -> int:
    """Return epoch milliseconds, strictly increasing within this process."""
    global _last_stamp
    with _stamp_lock:
        stamp = int(time.time() * 1000)
        if stamp <= _last_stamp:
            stamp = _last_stamp + 1
        _last_stamp = stamp
        return stamp


def versioned_path(dest: Path) -> Path:
    """Return `dest`, or the first ``name-N.ext`` sibling that does not exist."""
    if not dest.exists():
        return dest
    base, ext = os.path.splitext(str(dest))
    i = 1
    while True:
        candidate = Path(f"{base}-{i}{ext}")
        if not candidate.exists():
            return candidate
        i += 1


def replace_file(src: Path, dest: Path) -> None:
    """Move `src` over an existing `dest`, also across filesystems."""
    try:
        os.replace(src, dest)
    except OSError as exc:
        if exc.errno != errno.EXDEV:
            raise
        shutil.copy2(src, dest)
        os.unlink(src)


class ArchiveManager:
    def __init__(
        self,
        backup_dir: Union[str, Path],
        archive_dir: Union[str, Path],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.backup_dir = Path(backup_dir)
        self.archive_dir = Path(archive_dir)
        self.logger = logger or logging.getLogger("intake")

    def backup(self, path: Union[str, Path]) -> Path:
        """Copy `path` into the backup directory and return the copy's path."""
        path = Path(path)
        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            dest = self.backup_dir / f"{next_timestamp()}_{path.name}"
            shutil.copy2(path, dest)
        except OSError as exc:
            raise BackupError(f"Could not back up {path}: {exc}") from exc
        self.logger.info("Backup created: %s", dest)
        return dest

    def archive(
        self,
        path: Union[str, Path],
        policy: ArchivePolicy = ArchivePolicy.OVERWRITE,
    ) -> Path:
        """Move `path` into the archive directory and return the destination.

        - OVERWRITE replaces an existing file of the same name.
        - VERSION keeps both by adding a numeric suffix (``name-1.ext``).
        - REJECT raises ArchiveError and leaves `path` where it is.
        """
        path = Path(path)
        try:
            os.makedirs(self.archive_dir, exist_ok=True)
        except OSError as exc:
            raise ArchiveError(f"Could not create archive dir {self.archive_dir}: {exc}") from exc

        dest = self.archive_dir / path.name
        if dest.exists():
            if policy is ArchivePolicy.REJECT:
                raise ArchiveError(f"Archive already holds {dest.name}; leaving {path} in place")
            if policy is ArchivePolicy.VERSION:
                dest = versioned_path(dest)

        try:
            if dest.exists():
                replace_file(path, dest)
            else:
                shutil.move(str(path), str(dest))
        except OSError as exc:
            raise ArchiveError(f"Could not archive {path}: {exc}") from exc

        self.logger.info("Moved file to archive: %s", dest)
        return dest

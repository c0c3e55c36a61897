"""The file intake processor.

`FileIntakeProcessor` wires the shared config, the handler and codec
registries, the dispatcher, the directory watcher and the export scheduler
together. Its public methods are the whole API the control console uses.
"""
from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from intake.archive import ArchiveManager, next_timestamp
from intake.codecs import CodecRegistry, Rows, default_codec_registry
from intake.config import ArchivePolicy, ProcessorConfig
from intake.dispatcher import DispatchResult, Dispatcher
from intake.errors import CodecError, ExportError, SetupError
from intake.formats import Format, normalize_format, output_extension
from intake.handlers import FormatHandler, HandlerRegistry, register_default_handlers, rows_to_records
from intake.scheduler import ExportScheduler
from intake.watching import DirectoryWatcher

DEFAULT_INPUT_DIR = "./input"
DEFAULT_OUTPUT_DIR = "./output"
DEFAULT_ARCHIVE_DIR = "./archive"

DEFAULT_EXPORT_INTERVAL = 60 * 60
DEFAULT_EXPORT_DELAY = 60

MANUAL_EXPORT_FORMATS = (Format.CSV.value, Format.JSON.value, Format.XML.value, Format.EXCEL.value)


def sample_rows() -> List[List[str]]:
    """Placeholder export data: a header and two rows stamped with the current time."""
    now = datetime.now().isoformat(timespec="seconds")
    return [
        ["ID", "Name", "Email", "Date"],
        ["1", "Joao Silva", "joao@example.com", now],
        ["2", "Maria Santos", "maria@example.com", now],
    ]


def export_payload(format: str, rows: Rows, stamp: int) -> Any:
    """Shape tabular export rows for the given output format."""
    if format == Format.JSON.value:
        return rows_to_records(rows)
    if format == Format.XML.value:
        return {"timestamp": stamp, "count": max(len(rows) - 1, 0)}
    return rows


class FileIntakeProcessor:
    def __init__(
        self,
        input_dir: Union[str, Path] = DEFAULT_INPUT_DIR,
        output_dir: Union[str, Path] = DEFAULT_OUTPUT_DIR,
        archive_dir: Union[str, Path] = DEFAULT_ARCHIVE_DIR,
        *,
        archive_enabled: bool = True,
        backup_enabled: bool = True,
        convert_to_canonical: bool = False,
        archive_policy: Union[str, ArchivePolicy] = ArchivePolicy.OVERWRITE,
        enable_binary: bool = False,
        codecs: Optional[CodecRegistry] = None,
        export_source: Optional[Callable[[], Rows]] = None,
        settle_seconds: float = 0.5,
        max_tries: int = 10,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger("intake")
        self.config = ProcessorConfig(
            input_dir,
            output_dir,
            archive_dir,
            archive_enabled=archive_enabled,
            backup_enabled=backup_enabled,
            convert_to_canonical=convert_to_canonical,
            archive_policy=archive_policy,
        )
        self._create_directories()

        self.codecs = codecs if codecs is not None else default_codec_registry()
        self.export_source = export_source or sample_rows
        self._handlers = HandlerRegistry()
        register_default_handlers(
            self._handlers, self.codecs, self.config, logger=self.logger, include_binary=enable_binary
        )

        self._archive = ArchiveManager(self.config.backup_dir, self.config.archive_dir, logger=self.logger)
        self._dispatcher = Dispatcher(self.config, self._handlers, self._archive, logger=self.logger)
        self._watcher = DirectoryWatcher(
            self.config.input_dir,
            self._dispatcher.process_file,
            logger=self.logger,
            settle_seconds=settle_seconds,
            max_tries=max_tries,
        )
        self._scheduler = ExportScheduler(logger=self.logger)

    def _create_directories(self) -> None:
        dirs = (self.config.input_dir, self.config.output_dir, self.config.backup_dir, self.config.archive_dir)
        try:
            for d in dirs:
                os.makedirs(d, exist_ok=True)
        except OSError as exc:
            self.logger.error("Could not create directories: %s", exc)
            raise SetupError(f"Could not create directories: {exc}") from exc
        self.logger.info("Directories ready: %s", ", ".join(str(d) for d in dirs))

    # Public API -----------------------------------------------------------------

    def process_file(self, path: Union[str, Path]) -> DispatchResult:
        return self._dispatcher.process_file(path)

    def set_flag(self, name: str, value: bool) -> None:
        key = self.config.set_flag(name, value)
        self.logger.info("%s: %s", key, "on" if value else "off")

    def register_handler(self, format: Union[str, Format], handler: FormatHandler) -> None:
        previous = self._handlers.register(format, handler)
        key = normalize_format(format)
        if previous is not None:
            self.logger.info("Replaced handler for format %s", key)
        else:
            self.logger.info("Custom handler added for format %s", key)

    def start_watching(self) -> None:
        self._watcher.start()

    def schedule_exports(
        self,
        interval: float = DEFAULT_EXPORT_INTERVAL,
        initial_delay: float = DEFAULT_EXPORT_DELAY,
        export_format: Union[str, Format] = Format.CSV,
    ) -> None:
        fmt = normalize_format(export_format)
        if fmt not in self.codecs:
            raise CodecError(f"No codec registered for export format: {fmt}")
        self._scheduler.schedule(interval, initial_delay, lambda: self._scheduled_export(fmt))

    def start(self, **schedule_kwargs: Any) -> None:
        """Start watching and schedule exports."""
        self.start_watching()
        self.schedule_exports(**schedule_kwargs)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop watcher and scheduler and wait for both. Safe to call repeatedly."""
        self._watcher.stop(timeout)
        self._scheduler.stop(wait=True, timeout=timeout)
        self.logger.info("Services stopped")

    def manual_export(self, format: Union[str, Format]) -> Optional[Path]:
        """Export the current export data once. Returns the written path, or None."""
        fmt = normalize_format(format)
        if fmt not in MANUAL_EXPORT_FORMATS:
            self.logger.warning("Format not supported for manual export: %s", fmt)
            return None
        self.logger.info("Running manual export as %s", fmt)
        try:
            out = self._export(fmt, "manual_export")
        except ExportError as exc:
            self.logger.error("Manual export failed: %s", exc)
            return None
        self.logger.info("Manual export finished: %s", out)
        return out

    def status(self) -> Dict[str, Any]:
        settings = self.config.snapshot()
        return {
            "input_dir": str(self.config.input_dir),
            "output_dir": str(self.config.output_dir),
            "archive_dir": str(self.config.archive_dir),
            "convert_to_canonical": settings.convert_to_canonical,
            "archive_enabled": settings.archive_enabled,
            "backup_enabled": settings.backup_enabled,
            "archive_policy": settings.archive_policy.value,
            "watcher": self._watcher.state.value,
            "exports_scheduled": self._scheduler.active,
            "handlers": self._handlers.formats(),
        }

    # Internals ------------------------------------------------------------------

    def _scheduled_export(self, fmt: str) -> Path:
        self.logger.info("Running scheduled export...")
        out = self._export(fmt, "export")
        self.logger.info("Scheduled export finished: %s", out)
        return out

    def _export(self, fmt: str, prefix: str) -> Path:
        stamp = next_timestamp()
        out = self.config.output_dir / f"{prefix}_{stamp}.{output_extension(fmt)}"
        try:
            rows = self.export_source()
            self.codecs.export_file(fmt, export_payload(fmt, rows, stamp), out)
        except Exception as exc:
            raise ExportError(f"Could not write {out}: {exc}") from exc
        return out

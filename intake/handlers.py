"""Format handlers and the registry the dispatcher looks them up in."""
from __future__ import annotations

import logging
import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

from intake.codecs import CodecRegistry, Rows
from intake.config import ProcessorConfig, active_settings
from intake.formats import Format, normalize_format, output_extension


@runtime_checkable
class FormatHandler(Protocol):
    """Processes one file. Raising signals failure."""

    def handle(self, path: Path) -> None:  # pragma: no cover - interface
        ...


class FunctionHandler:
    """Adapts a plain ``func(path)`` to the FormatHandler protocol."""

    def __init__(self, func: Callable[[Path], Any], name: Optional[str] = None) -> None:
        self.func = func
        self.name = name or getattr(func, "__name__", "handler")

    def handle(self, path: Path) -> None:
        self.func(path)

    def __repr__(self) -> str:
        return f"FunctionHandler({self.name})"


class HandlerRegistry:
    """Format key -> handler. The last registration for a key wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: Dict[str, FormatHandler] = {}

    def register(self, format: Union[str, Format], handler: FormatHandler) -> Optional[FormatHandler]:
        """Register `handler` and return the handler it replaced, if any."""
        if not isinstance(handler, FormatHandler):
            raise TypeError(
                f"{handler!r} is not a FormatHandler; wrap plain functions in FunctionHandler"
            )
        key = normalize_format(format)
        with self._lock:
            previous = self._handlers.get(key)
            self._handlers[key] = handler
        return previous

    def get(self, format: Union[str, Format]) -> Optional[FormatHandler]:
        key = normalize_format(format)
        with self._lock:
            return self._handlers.get(key)

    def formats(self) -> List[str]:
        with self._lock:
            return sorted(self._handlers)

    def custom_formats(self) -> List[str]:
        known = {f.value for f in Format}
        return [f for f in self.formats() if f not in known]


def rows_to_records(rows: Rows) -> Dict[str, Any]:
    """Turn header + data rows into ``{"data": [{header: value}, ...]}``."""
    if not rows:
        return {}
    headers = rows[0]
    records = []
    for row in rows[1:]:
        width = min(len(headers), len(row))
        records.append({str(headers[j]): row[j] for j in range(width)})
    return {"data": records}


def cells_to_text(rows: Rows) -> List[List[str]]:
    return [["" if cell is None else str(cell) for cell in row] for row in rows]


# format -> (target format, converter) used when convert_to_canonical is on
CONVERSIONS: Dict[str, tuple] = {
    Format.CSV.value: (Format.JSON.value, rows_to_records),
    Format.EXCEL.value: (Format.CSV.value, cells_to_text),
}


def describe(data: Any) -> str:
    if isinstance(data, ET.Element):
        return f"XML document <{data.tag}> with {len(data)} child elements"
    if isinstance(data, dict):
        return f"{len(data)} fields"
    if isinstance(data, list):
        if data and isinstance(data[0], (list, tuple)):
            # first row is the header
            return f"{len(data) - 1} data rows"
        return f"{len(data)} items"
    return f"object of type {type(data).__name__}"


class CodecHandler:
    """Imports a file through its codec, logs what it got, optionally converts it.

    Conversion writes ``<output>/<stem>.<ext>`` for formats listed in
    CONVERSIONS while convert_to_canonical is on. The flag comes from the
    dispatcher's snapshot for the current file, or the live config when the
    handler is called directly.
    """

    def __init__(
        self,
        format: Union[str, Format],
        codecs: CodecRegistry,
        config: ProcessorConfig,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.format = normalize_format(format)
        self.codecs = codecs
        self.config = config
        self.logger = logger or logging.getLogger("intake")

    def handle(self, path: Path) -> None:
        path = Path(path)
        self.logger.info("Processing %s file: %s", self.format, path)
        data = self.codecs.import_file(self.format, path)
        self.logger.info("Imported %s from %s", describe(data), path.name)

        settings = active_settings.get() or self.config.snapshot()
        if settings.convert_to_canonical and self.format in CONVERSIONS:
            self.convert(path, data)

    def convert(self, path: Path, data: Any) -> Path:
        target, converter = CONVERSIONS[self.format]
        out = self.config.output_dir / f"{path.stem}.{output_extension(target)}"
        self.codecs.export_file(target, converter(data), out)
        self.logger.info("Converted %s to %s: %s", path.name, target, out)
        return out

    def __repr__(self) -> str:
        return f"CodecHandler({self.format})"


def register_default_handlers(
    registry: HandlerRegistry,
    codecs: CodecRegistry,
    config: ProcessorConfig,
    logger: Optional[logging.Logger] = None,
    include_binary: bool = False,
) -> None:
    """Register a CodecHandler per known format.

    The binary handler unpickles whatever lands in the input directory, so it
    is only registered when `include_binary` is set.
    """
    logger = logger or logging.getLogger("intake")
    for fmt in Format:
        if fmt is Format.BINARY and not include_binary:
            continue
        registry.register(fmt, CodecHandler(fmt, codecs, config, logger=logger))
    if include_binary:
        logger.warning(
            "Binary handler enabled: .bin/.ser/.pkl files in the input directory will be unpickled; "
            "only trusted producers should write there"
        )

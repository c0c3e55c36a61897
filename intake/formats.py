"""Format identifiers and detection from file names."""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterable, Union

UNKNOWN = "unknown"


class Format(str, Enum):
    CSV = "csv"
    JSON = "json"
    XML = "xml"
    EXCEL = "excel"
    BINARY = "bin"


EXTENSIONS = {
    ".csv": Format.CSV,
    ".json": Format.JSON,
    ".xml": Format.XML,
    ".xlsx": Format.EXCEL,
    ".xlsm": Format.EXCEL,
    ".xls": Format.EXCEL,
    ".bin": Format.BINARY,
    ".ser": Format.BINARY,
    ".pkl": Format.BINARY,
}

# Extension used when writing a file of the given format.
OUTPUT_EXTENSIONS = {
    Format.CSV: "csv",
    Format.JSON: "json",
    Format.XML: "xml",
    Format.EXCEL: "xlsx",
    Format.BINARY: "bin",
}


def normalize_format(name: Union[str, Format]) -> str:
    """Return the registry key for `name` (known formats map to their enum value)."""
    if isinstance(name, Format):
        return name.value
    key = name.strip().lower()
    if not key:
        raise ValueError("format name must not be empty")
    return key


def detect_format(path: Union[str, Path], custom: Iterable[str] = ()) -> str:
    """Map a file name to a format key, or ``"unknown"``.

    Known extensions win. Otherwise the bare extension is returned when it is
    one of the `custom` keys (formats registered at runtime).
    """
    suffix = Path(path).suffix.lower()
    if not suffix:
        return UNKNOWN
    known = EXTENSIONS.get(suffix)
    if known is not None:
        return known.value
    ext = suffix[1:]
    if ext in {c.lower() for c in custom}:
        return ext
    return UNKNOWN


def output_extension(format: str) -> str:
    try:
        return OUTPUT_EXTENSIONS[Format(format)]
    except ValueError:
        return format

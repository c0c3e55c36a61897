"""Codecs: import/export of one file format.

The processor only ever talks to a `CodecRegistry`. Hosts can replace any
codec (or add new ones) before starting the processor; `default_codec_registry`
covers the built-in formats.
"""
from __future__ import annotations

import csv
import json
import pickle
import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol, Union, runtime_checkable

from openpyxl import Workbook, load_workbook

from intake.errors import CodecError
from intake.formats import Format, normalize_format

Rows = List[List[Any]]


@runtime_checkable
class Codec(Protocol):
    def import_file(self, path: Path) -> Any:  # pragma: no cover - interface
        ...

    def export_file(self, data: Any, path: Path) -> None:  # pragma: no cover - interface
        ...


class CsvCodec:
    """Rows of strings; the first row is normally the header."""

    def import_file(self, path: Path) -> Rows:
        with open(path, "r", newline="", encoding="utf-8") as f:
            return [row for row in csv.reader(f)]

    def export_file(self, data: Rows, path: Path) -> None:
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            for row in data:
                writer.writerow(["" if cell is None else cell for cell in row])


class JsonCodec:
    def import_file(self, path: Path) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def export_file(self, data: Any, path: Path) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)


class XmlCodec:
    """Imports to an Element; exports an Element or a flat mapping.

    A mapping is written as ``<root_tag><key>value</key>...</root_tag>``.
    """

    def __init__(self, root_tag: str = "export") -> None:
        self.root_tag = root_tag

    def import_file(self, path: Path) -> ET.Element:
        return ET.parse(path).getroot()

    def export_file(self, data: Union[ET.Element, Mapping[str, Any]], path: Path) -> None:
        if isinstance(data, ET.Element):
            root = data
        else:
            root = ET.Element(self.root_tag)
            for key, value in data.items():
                child = ET.SubElement(root, str(key))
                child.text = "" if value is None else str(value)
        ET.ElementTree(root).write(path, encoding="utf-8", xml_declaration=True)


class ExcelCodec:
    """First worksheet as rows of cell values."""

    def __init__(self, sheet_name: str = "Export") -> None:
        self.sheet_name = sheet_name

    def import_file(self, path: Path) -> Rows:
        wb = load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb.worksheets[0]
            return [list(row) for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

    def export_file(self, data: Rows, path: Path) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = self.sheet_name
        for row in data:
            ws.append(list(row))
        wb.save(path)


class PickleCodec:
    """Serialized Python objects. Only import files from trusted producers."""

    def import_file(self, path: Path) -> Any:
        with open(path, "rb") as f:
            return pickle.load(f)

    def export_file(self, data: Any, path: Path) -> None:
        with open(path, "wb") as f:
            pickle.dump(data, f)


class CodecRegistry:
    """Thread-safe mapping of format key to codec."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._codecs: Dict[str, Codec] = {}

    def register(self, format: Union[str, Format], codec: Codec) -> None:
        if not isinstance(codec, Codec):
            raise TypeError(f"{codec!r} does not provide import_file/export_file")
        key = normalize_format(format)
        with self._lock:
            self._codecs[key] = codec

    def get(self, format: Union[str, Format]) -> Codec:
        key = normalize_format(format)
        with self._lock:
            codec = self._codecs.get(key)
        if codec is None:
            raise CodecError(f"No codec registered for format: {key}")
        return codec

    def __contains__(self, format: object) -> bool:
        if not isinstance(format, (str, Format)):
            return False
        with self._lock:
            return normalize_format(format) in self._codecs

    def formats(self) -> List[str]:
        with self._lock:
            return sorted(self._codecs)

    def import_file(self, format: Union[str, Format], path: Union[str, Path]) -> Any:
        return self.get(format).import_file(Path(path))

    def export_file(self, format: Union[str, Format], data: Any, path: Union[str, Path]) -> None:
        self.get(format).export_file(data, Path(path))


def default_codec_registry() -> CodecRegistry:
    registry = CodecRegistry()
    registry.register(Format.CSV, CsvCodec())
    registry.register(Format.JSON, JsonCodec())
    registry.register(Format.XML, XmlCodec())
    registry.register(Format.EXCEL, ExcelCodec())
    registry.register(Format.BINARY, PickleCodec())
    return registry

"""Classify uploads as spreadsheets or delimited text."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Literal, Optional

from .errors import EmptyFile, UnsupportedFormat

SPREADSHEET = "spreadsheet"
DELIMITED = "delimited"

XLS_CONTENT_TYPE = "application/vnd.ms-excel"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SPREADSHEET_CONTENT_TYPES = frozenset({XLS_CONTENT_TYPE, XLSX_CONTENT_TYPE})
DELIMITED_CONTENT_TYPES = frozenset(
    {"text/csv", "application/csv", "text/tab-separated-values"}
)
ALLOWED_CONTENT_TYPES = SPREADSHEET_CONTENT_TYPES | DELIMITED_CONTENT_TYPES

_SPREADSHEET_EXTENSIONS = {".xls": "xls", ".xlsx": "xlsx"}
_DELIMITED_EXTENSIONS = {".csv", ".tsv", ".txt"}

_OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
_ZIP_SIGNATURE = b"PK\x03\x04"

# How much of a delimited file is inspected when probing for tabs.
DELIMITER_PROBE_CHARS = 4096


@dataclass(frozen=True)
class DetectedFormat:
    kind: Literal["spreadsheet", "delimited"]
    delimiter: Optional[str] = None
    workbook: Optional[Literal["xls", "xlsx"]] = None


def normalize_content_type(value: Optional[str]) -> str:
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


def _workbook_flavour(content: bytes, extension: str) -> Literal["xls", "xlsx"]:
    if content.startswith(_ZIP_SIGNATURE):
        return "xlsx"
    if content.startswith(_OLE2_SIGNATURE):
        return "xls"
    return "xlsx" if extension == ".xlsx" else "xls"


def probe_delimiter(content: bytes) -> str:
    """Return ``"\\t"`` when a tab shows up early in the content, else ``","``."""

    head = content[: DELIMITER_PROBE_CHARS * 4].decode("utf-8", errors="ignore")
    return "\t" if "\t" in head[:DELIMITER_PROBE_CHARS] else ","


def detect_format(
    content: bytes,
    content_type: Optional[str],
    filename: Optional[str] = None,
) -> DetectedFormat:
    if not content:
        raise EmptyFile("Empty file")

    declared = normalize_content_type(content_type)
    if declared not in ALLOWED_CONTENT_TYPES:
        raise UnsupportedFormat(
            f"Unsupported content type: {declared or 'unknown'}",
            details={"allowed": sorted(ALLOWED_CONTENT_TYPES)},
        )

    extension = PurePath(filename or "").suffix.lower()
    if extension in _SPREADSHEET_EXTENSIONS:
        kind = SPREADSHEET
    elif extension in _DELIMITED_EXTENSIONS:
        kind = DELIMITED
    elif declared in SPREADSHEET_CONTENT_TYPES:
        kind = SPREADSHEET
    else:
        kind = DELIMITED

    if kind == SPREADSHEET:
        return DetectedFormat(kind=SPREADSHEET, workbook=_workbook_flavour(content, extension))
    return DetectedFormat(kind=DELIMITED, delimiter=probe_delimiter(content))


__all__ = [
    "SPREADSHEET",
    "DELIMITED",
    "XLS_CONTENT_TYPE",
    "XLSX_CONTENT_TYPE",
    "ALLOWED_CONTENT_TYPES",
    "DetectedFormat",
    "detect_format",
    "normalize_content_type",
    "probe_delimiter",
]

"""Turn uploaded bytes into raw row records keyed by header label."""
from __future__ import annotations

import csv
from datetime import date, datetime
from io import BytesIO, StringIO
from typing import Any, Dict, Iterator, List, Sequence

import openpyxl
import xlrd

from .errors import EmptyFile, EmptyWorkbook, UnsupportedFormat
from .formats import SPREADSHEET, DetectedFormat

RawRecord = Dict[str, str]


def _header_labels(values: Sequence[Any]) -> List[str]:
    return ["" if value is None else str(value).strip() for value in values]


def _is_blank(record: RawRecord) -> bool:
    return not any(value.strip() for value in record.values())


def _render_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _render_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _render_number(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _build_record(labels: Sequence[str], values: Sequence[str]) -> RawRecord:
    record: RawRecord = {}
    for index, label in enumerate(labels):
        if not label or label in record:
            continue
        record[label] = values[index] if index < len(values) else ""
    return record


def iter_delimited_records(content: bytes, delimiter: str = ",") -> Iterator[RawRecord]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UnsupportedFormat("File must be UTF-8 encoded") from exc

    reader = csv.reader(StringIO(text), delimiter=delimiter)
    labels: List[str] | None = None
    for row in reader:
        if not row:
            continue
        cells = [cell.strip() for cell in row]
        if labels is None:
            labels = _header_labels(cells)
            if not any(labels):
                raise EmptyFile("Missing header row")
            continue
        record = _build_record(labels, cells)
        if _is_blank(record):
            continue
        yield record
    if labels is None:
        raise EmptyFile("Missing header row")


def iter_xls_records(content: bytes) -> Iterator[RawRecord]:
    try:
        workbook = xlrd.open_workbook(file_contents=content)
    except Exception as exc:
        raise UnsupportedFormat("Invalid XLS file") from exc
    if workbook.nsheets == 0:
        raise EmptyWorkbook("Workbook has no worksheets")
    sheet = workbook.sheet_by_index(0)
    if sheet.nrows == 0:
        raise EmptyFile("Missing header row")
    labels = _header_labels(sheet.row_values(0))
    if not any(labels):
        raise EmptyFile("Missing header row")

    for row_index in range(1, sheet.nrows):
        values: List[str] = []
        for col_index in range(len(labels)):
            if col_index >= sheet.ncols:
                values.append("")
                continue
            cell = sheet.cell(row_index, col_index)
            if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                values.append("")
            elif cell.ctype == xlrd.XL_CELL_NUMBER:
                values.append(_render_number(cell.value))
            else:
                values.append(str(cell.value).strip())
        record = _build_record(labels, values)
        if _is_blank(record):
            continue
        yield record


def iter_xlsx_records(content: bytes) -> Iterator[RawRecord]:
    try:
        workbook = openpyxl.load_workbook(BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise UnsupportedFormat("Invalid XLSX file") from exc
    try:
        if not workbook.worksheets:
            raise EmptyWorkbook("Workbook has no worksheets")
        rows = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            raise EmptyFile("Missing header row")
        labels = _header_labels(header)
        if not any(labels):
            raise EmptyFile("Missing header row")
        for row in rows:
            record = _build_record(labels, [_render_cell(value) for value in row])
            if _is_blank(record):
                continue
            yield record
    finally:
        workbook.close()


def iter_records(content: bytes, detected: DetectedFormat) -> Iterator[RawRecord]:
    """Lazily yield one raw record per non-blank data row.

    The iterator is single-pass; format problems surface on the first ``next``.
    """

    if detected.kind == SPREADSHEET:
        if detected.workbook == "xlsx":
            return iter_xlsx_records(content)
        return iter_xls_records(content)
    return iter_delimited_records(content, detected.delimiter or ",")


__all__ = [
    "RawRecord",
    "iter_records",
    "iter_delimited_records",
    "iter_xls_records",
    "iter_xlsx_records",
]

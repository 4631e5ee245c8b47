"""Downloadable import templates."""
from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import xlwt

from .validation import MATERIAL_PROFILE, STANDARD_PROFILE, get_profile

_STANDARD_TEMPLATE: List[Tuple[str, Any]] = [
    ("sku", "RM-001"),
    ("name", "Raw Material A"),
    ("description", "Example raw material"),
    ("category", "raw_materials"),
    ("unit", "kg"),
    ("currentStock", 1000),
    ("minimumStock", 100),
    ("reorderPoint", 200),
    ("cost", 12.5),
    ("leadTime", 14),
    ("binLocation", "A-01-01"),
    ("warehouse", "MAIN"),
    ("supplier", "Acme Supply"),
    ("batchNumber", "B-2024-001"),
    ("notes", ""),
    ("glCode", "1000"),
    ("prodCode", "PRD001"),
    ("vendCode", "VEN001"),
]

_MATERIAL_TEMPLATE: List[Tuple[str, Any]] = [
    ("PartNo", "EXAMPLE-001"),
    ("BinLocation", "A-01-01"),
    ("Warehouse", "MAIN"),
    ("QtyOnHand", 100),
    ("Description", "Example Part"),
    ("GLCode", "1000"),
    ("ProdCode", "PRD001"),
    ("VendCode", "VEN001"),
    ("Cost", 29.99),
]

TEMPLATES: Dict[str, List[Tuple[str, Any]]] = {
    STANDARD_PROFILE: _STANDARD_TEMPLATE,
    MATERIAL_PROFILE: _MATERIAL_TEMPLATE,
}


def template_columns(profile: Optional[str] = None) -> List[str]:
    return [column for column, _ in TEMPLATES[get_profile(profile).name]]


def rows_to_xls(
    fieldnames: Sequence[str],
    rows: Iterable[Dict[str, Any]],
    *,
    sheet_name: str = "Template",
) -> bytes:
    workbook = xlwt.Workbook()
    sheet = workbook.add_sheet(sheet_name)
    header_style = xlwt.easyxf("font: bold on; align: horiz center, vert center")
    for col_index, field in enumerate(fieldnames):
        sheet.write(0, col_index, field, header_style)
        sheet.col(col_index).width = 256 * max(12, len(field) + 2)
    row_index = 1
    for row in rows:
        for col_index, field in enumerate(fieldnames):
            value = row.get(field, "")
            sheet.write(row_index, col_index, "" if value is None else value)
        row_index += 1
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_import_template(profile: Optional[str] = None) -> bytes:
    """Return a single-row example workbook for the given import profile."""

    columns = TEMPLATES[get_profile(profile).name]
    fieldnames = [column for column, _ in columns]
    return rows_to_xls(fieldnames, [dict(columns)])


def template_filename(profile: Optional[str] = None) -> str:
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return f"{get_profile(profile).name}_import_template_{timestamp}.xls"


__all__ = [
    "TEMPLATES",
    "build_import_template",
    "rows_to_xls",
    "template_columns",
    "template_filename",
]

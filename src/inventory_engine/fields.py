"""Map heterogeneous column names onto the canonical item schema."""
from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple


def normalize_key(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).replace("\ufeff", "").strip().lower()
    return re.sub(r"[\s_\-]+", "", text)


# Canonical field -> accepted source columns, in lookup order. The canonical
# name is always listed first so it wins when several aliases are present.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "sku": ("sku", "PartNo", "Part Number", "itemCode", "code"),
    "name": ("name", "itemName", "productName", "title"),
    "description": ("description", "desc"),
    "category": ("category", "itemCategory", "type"),
    "unit": ("unit", "uom", "unitOfMeasure"),
    "current_stock": ("currentStock", "QtyOnHand", "quantity", "qty", "onHand", "stock"),
    "minimum_stock": ("minimumStock", "minStock", "minimum", "minQty"),
    "reorder_point": ("reorderPoint", "reorderLevel", "rop"),
    "cost": ("cost", "unitCost", "price"),
    "lead_time": ("leadTime", "leadTimeDays"),
    "bin_location": ("binLocation", "bin", "location"),
    "warehouse": ("warehouse", "whse", "warehouseCode"),
    "supplier": ("supplier", "vendor", "vendorName"),
    "batch_number": ("batchNumber", "batch", "lotNumber", "lot"),
    "notes": ("notes", "note", "comments"),
    "gl_code": ("glCode", "generalLedgerCode"),
    "product_code": ("prodCode", "productCode"),
    "vendor_code": ("vendCode", "vendorCode"),
    "discontinued": ("discontinued", "inactive"),
}

FIELD_ALIASES_NORMALIZED: Dict[str, Tuple[str, ...]] = {
    canonical: tuple(dict.fromkeys(normalize_key(alias) for alias in (canonical, *aliases)))
    for canonical, aliases in FIELD_ALIASES.items()
}

NUMERIC_FIELDS = ("current_stock", "minimum_stock", "reorder_point", "cost", "lead_time")
STRING_DEFAULTS: Dict[str, str] = {
    "description": "",
    "category": "Uncategorized",
    "unit": "each",
    "bin_location": "",
    "warehouse": "",
    "supplier": "",
    "batch_number": "",
    "notes": "",
    "gl_code": "",
    "product_code": "",
    "vendor_code": "",
}

_TRUTHY = {"1", "true", "yes", "y", "x"}


def parse_number(value: Any) -> Optional[float]:
    """Parse spreadsheet-ish numbers, returning ``None`` when unparsable."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if text[:1] in {"$", "€", "£"}:
            text = text[1:]
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


@dataclass
class ResolvedRow:
    """A fully populated canonical record plus which fields came from the source."""

    source_index: int
    fields: Dict[str, Any]
    provided: FrozenSet[str] = field(default_factory=frozenset)
    # Numeric fields that had a value in the source which did not parse.
    unparsed: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def sku(self) -> str:
        return self.fields["sku"]

    @property
    def name(self) -> str:
        return self.fields["name"]


class FieldResolver:
    """Resolves raw records for one import.

    The SKU fallback timestamp is taken once so that generated SKUs from the
    same upload share a prefix and differ only by row index.
    """

    def __init__(self, timestamp_ms: Optional[int] = None) -> None:
        self.timestamp_ms = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
        self._header_maps: Dict[Tuple[str, ...], Dict[str, Tuple[str, ...]]] = {}

    def _header_map(self, headers: Sequence[str]) -> Dict[str, Tuple[str, ...]]:
        """Every source column per canonical field, in alias order."""

        key = tuple(headers)
        cached = self._header_maps.get(key)
        if cached is not None:
            return cached
        by_normalized: Dict[str, List[str]] = {}
        for header in headers:
            by_normalized.setdefault(normalize_key(header), []).append(header)
        mapping: Dict[str, Tuple[str, ...]] = {}
        for canonical, aliases in FIELD_ALIASES_NORMALIZED.items():
            columns = [column for alias in aliases for column in by_normalized.get(alias, ())]
            if columns:
                mapping[canonical] = tuple(columns)
        self._header_maps[key] = mapping
        return mapping

    def generated_sku(self, source_index: int) -> str:
        return f"SKU-{self.timestamp_ms}-{source_index}"

    def resolve(self, record: Mapping[str, Any], source_index: int) -> ResolvedRow:
        mapping = self._header_map(list(record.keys()))
        raw: Dict[str, str] = {}
        for canonical, columns in mapping.items():
            for column in columns:
                value = record.get(column)
                text = "" if value is None else str(value).strip()
                if text:
                    raw[canonical] = text
                    break

        fields: Dict[str, Any] = {}
        fields["sku"] = raw.get("sku") or self.generated_sku(source_index)
        fields["name"] = raw.get("name") or f"Item {fields['sku']}"
        for name, default in STRING_DEFAULTS.items():
            fields[name] = raw.get(name, default)
        unparsed = set()
        for name in NUMERIC_FIELDS:
            number = parse_number(raw.get(name))
            if number is None and name in raw:
                unparsed.add(name)
            fields[name] = 0.0 if number is None else number
        fields["lead_time"] = int(round(fields["lead_time"]))
        fields["discontinued"] = raw.get("discontinued", "").lower() in _TRUTHY

        return ResolvedRow(
            source_index=source_index,
            fields=fields,
            provided=frozenset(raw),
            unparsed=frozenset(unparsed),
        )


__all__ = [
    "FIELD_ALIASES",
    "FIELD_ALIASES_NORMALIZED",
    "NUMERIC_FIELDS",
    "FieldResolver",
    "ResolvedRow",
    "normalize_key",
    "parse_number",
]

"""Per-row validation rules for bulk imports."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .fields import ResolvedRow

STANDARD_PROFILE = "standard"
MATERIAL_PROFILE = "material"


@dataclass(frozen=True)
class ImportProfile:
    name: str
    # (canonical field, message) pairs that must come from the source file.
    required: Tuple[Tuple[str, str], ...] = ()
    # Numeric fields that must be present and parse as numbers.
    numeric: Tuple[Tuple[str, str], ...] = ()
    require_identifier: bool = True


PROFILES: Dict[str, ImportProfile] = {
    STANDARD_PROFILE: ImportProfile(name=STANDARD_PROFILE),
    MATERIAL_PROFILE: ImportProfile(
        name=MATERIAL_PROFILE,
        required=(
            ("sku", "Part Number is required"),
            ("bin_location", "Bin Location is required"),
            ("warehouse", "Warehouse is required"),
            ("description", "Description is required"),
            ("gl_code", "GL Code is required"),
            ("product_code", "Product Code is required"),
            ("vendor_code", "Vendor Code is required"),
        ),
        numeric=(
            ("current_stock", "Quantity on hand must be a number"),
            ("cost", "Cost must be a number"),
        ),
        require_identifier=False,
    ),
}

_NON_NEGATIVE: Tuple[Tuple[str, str], ...] = (
    ("current_stock", "Quantity on hand must be zero or greater"),
    ("cost", "Cost must be zero or greater"),
    ("minimum_stock", "Minimum stock must be zero or greater"),
    ("reorder_point", "Reorder point must be zero or greater"),
    ("lead_time", "Lead time must be zero or greater"),
)


def get_profile(name: Optional[str]) -> ImportProfile:
    key = (name or STANDARD_PROFILE).strip().lower()
    try:
        return PROFILES[key]
    except KeyError:
        raise ValueError(
            f"Unknown import profile '{name}'. Expected one of: {', '.join(sorted(PROFILES))}"
        ) from None


def validate_row(row: ResolvedRow, profile: ImportProfile) -> List[str]:
    violations: List[str] = []
    if profile.require_identifier and not ({"sku", "name"} & row.provided):
        violations.append("SKU or name is required")
    for field_name, message in profile.required:
        if field_name not in row.provided:
            violations.append(message)
    for field_name, message in profile.numeric:
        if field_name not in row.provided or field_name in row.unparsed:
            violations.append(message)
    for field_name, message in _NON_NEGATIVE:
        if row.fields[field_name] < 0:
            violations.append(message)
    return violations


@dataclass
class RowValidator:
    """Validates rows one at a time while remembering SKUs seen in the upload."""

    profile: ImportProfile
    violations: Dict[int, List[str]] = field(default_factory=dict)
    _seen_skus: Dict[str, int] = field(default_factory=dict, repr=False)

    def check(self, row: ResolvedRow) -> List[str]:
        problems = validate_row(row, self.profile)
        sku_key = row.sku.strip().lower()
        first_seen = self._seen_skus.get(sku_key)
        if first_seen is not None:
            problems.append(f"Duplicate SKU '{row.sku}' (first seen on row {first_seen})")
        elif not problems:
            # Only rows that will be written claim their SKU.
            self._seen_skus[sku_key] = row.source_index
        if problems:
            self.violations[row.source_index] = problems
        return problems


def validate_rows(rows: Iterable[ResolvedRow], profile: ImportProfile) -> Dict[int, List[str]]:
    """Evaluate every row and return the complete violation map."""

    validator = RowValidator(profile)
    for row in rows:
        validator.check(row)
    return validator.violations


__all__ = [
    "STANDARD_PROFILE",
    "MATERIAL_PROFILE",
    "PROFILES",
    "ImportProfile",
    "RowValidator",
    "get_profile",
    "validate_row",
    "validate_rows",
]

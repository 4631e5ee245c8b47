"""Exception taxonomy for the import pipeline and the allocation ledger."""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class InventoryError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ImportFormatError(InventoryError):
    """The uploaded file cannot be read as inventory rows."""


class UnsupportedFormat(ImportFormatError):
    pass


class EmptyFile(ImportFormatError):
    pass


class EmptyWorkbook(EmptyFile):
    pass


class UploadTooLarge(InventoryError):
    pass


class RowValidationFailure(InventoryError):
    """Every row of an upload failed validation."""

    def __init__(self, violations: Dict[int, List[str]], message: Optional[str] = None) -> None:
        super().__init__(message or "Validation failed", details=violations)
        self.violations = violations


class MissingIdentifier(InventoryError):
    """A resolved row ended up without a SKU or a name."""

    def __init__(self, source_index: int) -> None:
        super().__init__(f"Row {source_index} has no usable identifier")
        self.source_index = source_index


class ItemNotFound(InventoryError, LookupError):
    def __init__(self, item_id: str) -> None:
        super().__init__("Inventory item not found", details={"itemId": item_id})
        self.item_id = item_id


class InsufficientInventory(InventoryError):
    def __init__(self, item_id: str, requested: float, available: float) -> None:
        super().__init__(
            "Insufficient inventory",
            details={"itemId": item_id, "requested": requested, "available": available},
        )
        self.requested = requested
        self.available = available


class InvalidDeallocation(InventoryError):
    pass


class AllocationConflict(InventoryError):
    """The item kept changing underneath a stock mutation."""


class PersistenceFailure(InventoryError):
    """The store is unreachable or rejected a write."""


__all__ = [
    "InventoryError",
    "ImportFormatError",
    "UnsupportedFormat",
    "EmptyFile",
    "EmptyWorkbook",
    "UploadTooLarge",
    "RowValidationFailure",
    "MissingIdentifier",
    "ItemNotFound",
    "InsufficientInventory",
    "InvalidDeallocation",
    "AllocationConflict",
    "PersistenceFailure",
]

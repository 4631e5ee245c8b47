"""Pydantic schemas used by the API."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import as_utc


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class InventoryItemOut(CamelModel):
    id: str
    sku: str
    name: str
    description: str = ""
    category: str = "Uncategorized"
    unit: str = "each"
    current_stock: float
    minimum_stock: float = 0
    reorder_point: float = 0
    cost: float = 0
    lead_time: int = 0
    bin_location: str = ""
    warehouse: str = ""
    supplier: str = ""
    batch_number: str = ""
    notes: str = ""
    gl_code: str = ""
    product_code: str = Field("", alias="prodCode")
    vendor_code: str = Field("", alias="vendCode")
    discontinued: bool = False
    status: str
    version: int
    created_at: datetime
    last_updated: datetime

    @field_validator("created_at", "last_updated")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class AllocationRequest(CamelModel):
    item_id: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0, description="Units to move; must be positive.")
    production_line_id: str = Field(
        ..., min_length=1, description="Consumer receiving (or returning) the stock."
    )


class AllocationEventOut(CamelModel):
    id: int
    item_id: str
    quantity: float
    allocated_to: str
    type: Literal["allocation", "deallocation"]
    status: Literal["pending", "completed", "failed"]
    stock_before: float
    stock_after: float
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class UpdateQuantityRequest(CamelModel):
    quantity: float = Field(..., ge=0, description="New absolute stock level.")
    reason: str | None = Field(
        None,
        description="cycle_count, receipt, damage, correction or free text.",
    )
    note: str | None = None


class LedgerEntryOut(CamelModel):
    kind: str
    item_id: str
    previous_quantity: float
    new_quantity: float
    quantity: float | None = None
    reason: str
    consumer: str | None = None
    note: str | None = None
    timestamp: datetime


class RecentUpdate(CamelModel):
    item_id: str
    previous_quantity: float
    new_quantity: float
    reason: str
    timestamp: datetime


class StatsOut(CamelModel):
    total_items: int
    low_stock_items: int
    out_of_stock_items: int
    discontinued_items: int
    total_value: float
    recent_updates: list[RecentUpdate]


class ChunkFailureOut(CamelModel):
    chunk: int
    rows: list[int]
    error: str


class ImportResponse(CamelModel):
    message: str
    count: int
    total_processed: int
    succeeded: int
    failed: int
    dropped: int
    invalid: int
    items: list[InventoryItemOut]
    validation_errors: dict[int, list[str]]
    errors: list[ChunkFailureOut]
    cancelled: bool = False


class HealthStatus(BaseModel):
    status: Literal["ok"] = "ok"
    environment: str


__all__ = [
    "AllocationEventOut",
    "AllocationRequest",
    "ChunkFailureOut",
    "HealthStatus",
    "ImportResponse",
    "InventoryItemOut",
    "LedgerEntryOut",
    "RecentUpdate",
    "StatsOut",
    "UpdateQuantityRequest",
]

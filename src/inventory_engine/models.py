"""Database models for inventory items and their stock events."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base
from .stock import StockStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_item_id() -> str:
    return str(uuid.uuid4())


class EventType(str, enum.Enum):
    ALLOCATION = "allocation"
    DEALLOCATION = "deallocation"


class EventStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AdjustmentReason(str, enum.Enum):
    CYCLE_COUNT = "cycle_count"
    RECEIPT = "receipt"
    DAMAGE = "damage"
    CORRECTION = "correction"
    OTHER = "other"


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_items_stock_non_negative"),
        CheckConstraint("cost >= 0", name="ck_inventory_items_cost_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_item_id)
    sku: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    category: Mapped[str] = mapped_column(String(128), default="Uncategorized", nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="each", nullable=False)
    bin_location: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    warehouse: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    supplier: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    batch_number: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="", nullable=False)
    gl_code: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    product_code: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    vendor_code: Mapped[str] = mapped_column(String(64), default="", nullable=False)

    current_stock: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    minimum_stock: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    reorder_point: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    cost: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    lead_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    discontinued: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), default=StockStatus.OUT_OF_STOCK.value, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    allocations: Mapped[list["AllocationEvent"]] = relationship(back_populates="item")
    adjustments: Mapped[list["StockAdjustment"]] = relationship(back_populates="item")


class AllocationEvent(Base):
    __tablename__ = "allocation_events"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_allocation_events_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), index=True, nullable=False
    )
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    allocated_to: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    stock_before: Mapped[float] = mapped_column(Float, nullable=False)
    stock_after: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    item: Mapped[InventoryItem] = relationship(back_populates="allocations")


class StockAdjustment(Base):
    __tablename__ = "stock_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[str] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), index=True, nullable=False
    )
    previous_quantity: Mapped[float] = mapped_column(Float, nullable=False)
    new_quantity: Mapped[float] = mapped_column(Float, nullable=False)
    delta: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(String(32), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    item: Mapped[InventoryItem] = relationship(back_populates="adjustments")


__all__ = [
    "InventoryItem",
    "AllocationEvent",
    "StockAdjustment",
    "EventType",
    "EventStatus",
    "AdjustmentReason",
    "as_utc",
    "new_item_id",
    "utcnow",
]

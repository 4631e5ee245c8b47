"""Stock mutations: allocations, deallocations and administrative overrides.

Every mutation reads the item, checks the business rule, then writes with a
conditional ``UPDATE`` keyed on the item's ``version``. When another request
got there first the update matches no rows, the transaction is rolled back and
the whole read-check-write is retried with fresh data. The event row is added
in the same transaction as the stock change.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from . import crud
from .config import Settings
from .database import bounded, commit
from .errors import (
    AllocationConflict,
    InsufficientInventory,
    InvalidDeallocation,
    PersistenceFailure,
)
from .models import (
    AdjustmentReason,
    AllocationEvent,
    EventStatus,
    EventType,
    InventoryItem,
    StockAdjustment,
    as_utc,
    utcnow,
)
from .stock import status_for

logger = logging.getLogger(__name__)

# Float tolerance when comparing outstanding allocations.
_EPSILON = 1e-9


def _retrying(settings: Settings) -> AsyncRetrying:
    return AsyncRetrying(
        retry=retry_if_exception_type(AllocationConflict),
        stop=stop_after_attempt(settings.allocation_max_retries),
        reraise=True,
    )


async def _compare_and_swap(
    session: AsyncSession,
    item: InventoryItem,
    new_stock: float,
    settings: Settings,
    *,
    minimum_available: Optional[float] = None,
) -> None:
    status = status_for(
        new_stock,
        reorder_point=item.reorder_point,
        minimum_stock=item.minimum_stock,
        default_threshold=settings.low_stock_threshold,
        discontinued=item.discontinued,
    )
    now = utcnow()
    item_id, version = item.id, item.version
    conditions = [InventoryItem.id == item_id, InventoryItem.version == version]
    if minimum_available is not None:
        conditions.append(InventoryItem.current_stock >= minimum_available)
    stmt = (
        update(InventoryItem)
        .where(*conditions)
        .values(
            current_stock=new_stock,
            status=status.value,
            version=version + 1,
            last_updated=now,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = await bounded(session.execute(stmt))
    except (SQLAlchemyError, asyncio.TimeoutError) as exc:
        await session.rollback()
        raise PersistenceFailure("Failed to update inventory item", details=str(exc)) from exc
    if result.rowcount != 1:
        # Rollback expires the instance; only the captured locals are safe here.
        await session.rollback()
        logger.info("Version conflict on item %s (version %s); retrying", item_id, version)
        raise AllocationConflict(
            "Inventory item changed concurrently", details={"itemId": item_id}
        )
    for key, value in (
        ("current_stock", new_stock),
        ("status", status.value),
        ("version", version + 1),
        ("last_updated", now),
    ):
        set_committed_value(item, key, value)


async def _allocate_once(
    session: AsyncSession,
    item_id: str,
    quantity: float,
    consumer_id: str,
    settings: Settings,
) -> AllocationEvent:
    item = await crud.get_item(session, item_id)
    stock_before = item.current_stock
    if quantity > stock_before:
        logger.info(
            "Rejected allocation of %s from item %s to %s: only %s available",
            quantity,
            item_id,
            consumer_id,
            stock_before,
        )
        raise InsufficientInventory(item_id, quantity, stock_before)

    stock_after = stock_before - quantity
    await _compare_and_swap(
        session, item, stock_after, settings, minimum_available=quantity
    )
    event = AllocationEvent(
        item_id=item_id,
        quantity=quantity,
        allocated_to=consumer_id,
        type=EventType.ALLOCATION.value,
        status=EventStatus.COMPLETED.value,
        stock_before=stock_before,
        stock_after=stock_after,
        timestamp=utcnow(),
    )
    session.add(event)
    await commit(session)
    return event


async def allocate(
    session: AsyncSession,
    *,
    item_id: str,
    quantity: float,
    consumer_id: str,
    settings: Settings,
) -> AllocationEvent:
    """Reserve ``quantity`` of an item for ``consumer_id``.

    Raises :class:`ItemNotFound`, :class:`InsufficientInventory`, or
    :class:`AllocationConflict` once the retry budget is spent.
    """

    if quantity <= 0:
        raise ValueError("Quantity must be greater than zero")
    async for attempt in _retrying(settings):
        with attempt:
            return await _allocate_once(session, item_id, quantity, consumer_id, settings)


async def outstanding_allocation(
    session: AsyncSession, item_id: str, consumer_id: str
) -> float:
    """Quantity currently held by a consumer: completed allocations net of deallocations."""

    signed = func.coalesce(
        func.sum(
            case(
                (AllocationEvent.type == EventType.ALLOCATION.value, AllocationEvent.quantity),
                else_=-AllocationEvent.quantity,
            )
        ),
        0.0,
    )
    stmt = select(signed).where(
        AllocationEvent.item_id == item_id,
        AllocationEvent.allocated_to == consumer_id,
        AllocationEvent.status == EventStatus.COMPLETED.value,
    )
    result = await bounded(session.execute(stmt))
    return float(result.scalar_one())


async def _deallocate_once(
    session: AsyncSession,
    item_id: str,
    quantity: float,
    consumer_id: str,
    settings: Settings,
) -> AllocationEvent:
    item = await crud.get_item(session, item_id)
    held = await outstanding_allocation(session, item_id, consumer_id)
    if quantity > held + _EPSILON:
        raise InvalidDeallocation(
            "Cannot return more than is allocated",
            details={"itemId": item_id, "consumer": consumer_id, "allocated": held},
        )

    stock_before = item.current_stock
    stock_after = stock_before + quantity
    await _compare_and_swap(session, item, stock_after, settings)
    event = AllocationEvent(
        item_id=item_id,
        quantity=quantity,
        allocated_to=consumer_id,
        type=EventType.DEALLOCATION.value,
        status=EventStatus.COMPLETED.value,
        stock_before=stock_before,
        stock_after=stock_after,
        timestamp=utcnow(),
    )
    session.add(event)
    await commit(session)
    return event


async def deallocate(
    session: AsyncSession,
    *,
    item_id: str,
    quantity: float,
    consumer_id: str,
    settings: Settings,
) -> AllocationEvent:
    """Return previously allocated stock from ``consumer_id`` to the item."""

    if quantity <= 0:
        raise ValueError("Quantity must be greater than zero")
    async for attempt in _retrying(settings):
        with attempt:
            return await _deallocate_once(session, item_id, quantity, consumer_id, settings)


def parse_reason(reason: Optional[str], note: Optional[str] = None) -> Tuple[AdjustmentReason, Optional[str]]:
    """Map a caller supplied reason onto a typed code.

    Free text that is not a known code is kept as the note under ``other``.
    """

    text = (reason or "").strip()
    key = text.lower().replace(" ", "_").replace("-", "_")
    try:
        code = AdjustmentReason(key or AdjustmentReason.CORRECTION.value)
    except ValueError:
        code = AdjustmentReason.OTHER
        note = f"{text}: {note}" if note else text
    return code, note


async def _update_quantity_once(
    session: AsyncSession,
    item_id: str,
    new_quantity: float,
    reason: AdjustmentReason,
    note: Optional[str],
    settings: Settings,
) -> InventoryItem:
    item = await crud.get_item(session, item_id)
    previous = item.current_stock
    await _compare_and_swap(session, item, new_quantity, settings)
    session.add(
        StockAdjustment(
            item_id=item_id,
            previous_quantity=previous,
            new_quantity=new_quantity,
            delta=new_quantity - previous,
            reason=reason.value,
            note=note,
            timestamp=utcnow(),
        )
    )
    await commit(session)
    return await crud.get_item(session, item_id)


async def update_quantity(
    session: AsyncSession,
    *,
    item_id: str,
    new_quantity: float,
    reason: Optional[str],
    settings: Settings,
    note: Optional[str] = None,
) -> InventoryItem:
    """Set an item's stock to an absolute value and record a typed adjustment."""

    if new_quantity < 0:
        raise ValueError("Quantity cannot be negative")
    code, note = parse_reason(reason, note)
    async for attempt in _retrying(settings):
        with attempt:
            return await _update_quantity_once(
                session, item_id, new_quantity, code, note, settings
            )


@dataclass
class LedgerEntry:
    """One row of the uniform stock history."""

    kind: str
    item_id: str
    previous_quantity: float
    new_quantity: float
    reason: str
    timestamp: datetime
    quantity: Optional[float] = None
    consumer: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def from_event(cls, event: AllocationEvent) -> "LedgerEntry":
        return cls(
            kind=event.type,
            item_id=event.item_id,
            previous_quantity=event.stock_before,
            new_quantity=event.stock_after,
            reason=event.type,
            timestamp=as_utc(event.timestamp),
            quantity=event.quantity,
            consumer=event.allocated_to,
        )

    @classmethod
    def from_adjustment(cls, adjustment: StockAdjustment) -> "LedgerEntry":
        return cls(
            kind="adjustment",
            item_id=adjustment.item_id,
            previous_quantity=adjustment.previous_quantity,
            new_quantity=adjustment.new_quantity,
            reason=adjustment.reason,
            timestamp=as_utc(adjustment.timestamp),
            quantity=abs(adjustment.delta),
            note=adjustment.note,
        )


async def list_entries(
    session: AsyncSession,
    *,
    item_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[LedgerEntry]:
    """Merge allocation events and adjustments, newest first."""

    events_stmt = select(AllocationEvent).order_by(
        AllocationEvent.timestamp.desc(), AllocationEvent.id.desc()
    )
    adjustments_stmt = select(StockAdjustment).order_by(
        StockAdjustment.timestamp.desc(), StockAdjustment.id.desc()
    )
    if item_id is not None:
        events_stmt = events_stmt.where(AllocationEvent.item_id == item_id)
        adjustments_stmt = adjustments_stmt.where(StockAdjustment.item_id == item_id)
    if limit is not None:
        events_stmt = events_stmt.limit(limit)
        adjustments_stmt = adjustments_stmt.limit(limit)

    events = (await bounded(session.execute(events_stmt))).scalars().all()
    adjustments = (await bounded(session.execute(adjustments_stmt))).scalars().all()
    entries = [LedgerEntry.from_event(event) for event in events]
    entries.extend(LedgerEntry.from_adjustment(adjustment) for adjustment in adjustments)
    entries.sort(key=lambda entry: entry.timestamp, reverse=True)
    if limit is not None:
        return entries[:limit]
    return entries


async def item_history(session: AsyncSession, item_id: str) -> List[LedgerEntry]:
    await crud.get_item(session, item_id)
    return await list_entries(session, item_id=item_id)


__all__ = [
    "LedgerEntry",
    "allocate",
    "deallocate",
    "update_quantity",
    "outstanding_allocation",
    "parse_reason",
    "list_entries",
    "item_history",
]

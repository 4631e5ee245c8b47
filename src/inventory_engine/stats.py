"""On-demand inventory summary figures."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings
from .database import bounded, read_retry
from .ledger import LedgerEntry, list_entries
from .models import InventoryItem
from .stock import StockStatus, status_for

RECENT_UPDATES_LIMIT = 5


@dataclass
class InventoryStats:
    total_items: int = 0
    low_stock_items: int = 0
    out_of_stock_items: int = 0
    discontinued_items: int = 0
    total_value: float = 0.0
    recent_updates: List[LedgerEntry] = field(default_factory=list)


@read_retry
async def collect_stats(session: AsyncSession, settings: Settings) -> InventoryStats:
    """Scan every item and the event logs.

    Status is re-derived from ``current_stock`` and the current threshold
    settings, not read from the stored ``status`` column.
    """

    stats = InventoryStats()
    result = await bounded(session.execute(select(InventoryItem)))
    for item in result.scalars():
        stats.total_items += 1
        stats.total_value += item.current_stock * (item.cost or 0)
        status = status_for(
            item.current_stock,
            reorder_point=item.reorder_point,
            minimum_stock=item.minimum_stock,
            default_threshold=settings.low_stock_threshold,
            discontinued=item.discontinued,
        )
        if item.current_stock <= 0:
            stats.out_of_stock_items += 1
        if status is StockStatus.LOW_STOCK:
            stats.low_stock_items += 1
        elif status is StockStatus.DISCONTINUED:
            stats.discontinued_items += 1

    stats.total_value = round(stats.total_value, 2)
    stats.recent_updates = await list_entries(session, limit=RECENT_UPDATES_LIMIT)
    return stats


__all__ = ["InventoryStats", "collect_stats", "RECENT_UPDATES_LIMIT"]

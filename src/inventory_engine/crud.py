"""Read access to inventory items."""
from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import bounded, read_retry
from .errors import ItemNotFound
from .models import InventoryItem


@read_retry
async def list_items(session: AsyncSession) -> Sequence[InventoryItem]:
    stmt = select(InventoryItem).order_by(InventoryItem.name, InventoryItem.sku)
    result = await bounded(session.execute(stmt))
    return result.scalars().all()


@read_retry
async def get_item(session: AsyncSession, item_id: str) -> InventoryItem:
    """Load an item, always refreshing any copy already held by the session."""

    stmt = (
        select(InventoryItem)
        .where(InventoryItem.id == item_id)
        .execution_options(populate_existing=True)
    )
    result = await bounded(session.execute(stmt))
    item = result.scalar_one_or_none()
    if item is None:
        raise ItemNotFound(item_id)
    return item


__all__ = ["list_items", "get_item"]

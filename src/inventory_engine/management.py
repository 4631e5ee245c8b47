"""Utility helpers for administrative tasks."""
from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .config import Settings, get_settings
from .database import Base, SessionFactory, commit, engine
from .logger import configure_logging
from .models import InventoryItem, new_item_id, utcnow
from .stock import status_for

logger = logging.getLogger(__name__)

SAMPLE_ITEMS = [
    {
        "sku": "RM-001",
        "name": "Raw Material A",
        "description": "High-grade raw material for production",
        "category": "raw_materials",
        "unit": "kg",
        "current_stock": 1000.0,
        "minimum_stock": 100.0,
        "reorder_point": 200.0,
        "cost": 25.5,
        "lead_time": 7,
        "warehouse": "Warehouse A",
        "bin_location": "A-01-01",
        "supplier": "Supplier X",
    },
    {
        "sku": "COMP-002",
        "name": "Component B",
        "description": "Electronic component for assembly",
        "category": "components",
        "unit": "pieces",
        "current_stock": 500.0,
        "minimum_stock": 50.0,
        "reorder_point": 100.0,
        "cost": 12.75,
        "lead_time": 14,
        "warehouse": "Warehouse B",
        "bin_location": "B-02-03",
        "supplier": "Supplier Y",
    },
]


async def init_database(db_engine: AsyncEngine | None = None) -> None:
    """Create database tables for the application."""

    engine_to_use = db_engine or engine
    async with engine_to_use.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_sample_items(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    settings: Settings | None = None,
) -> int:
    """Insert the sample items when the store holds no items yet.

    Returns the number of items created.
    """

    settings = settings or get_settings()
    factory = session_factory or SessionFactory
    async with factory() as session:
        existing = await session.scalar(select(func.count()).select_from(InventoryItem))
        if existing:
            logger.info("Store already holds %s items; skipping sample data", existing)
            return 0
        now = utcnow()
        for sample in SAMPLE_ITEMS:
            status = status_for(
                sample["current_stock"],
                reorder_point=sample["reorder_point"],
                minimum_stock=sample["minimum_stock"],
                default_threshold=settings.low_stock_threshold,
            )
            session.add(
                InventoryItem(
                    id=new_item_id(),
                    status=status.value,
                    version=1,
                    created_at=now,
                    last_updated=now,
                    **sample,
                )
            )
        await commit(session)
    logger.info("Seeded %s sample items", len(SAMPLE_ITEMS))
    return len(SAMPLE_ITEMS)


def cli_init_database(argv: list[str] | None = None) -> None:
    """CLI wrapper executed from :mod:`python -m`."""

    parser = argparse.ArgumentParser(description="Create the inventory tables.")
    parser.add_argument(
        "--seed", action="store_true", help="insert sample items into an empty store"
    )
    args = parser.parse_args(argv)
    configure_logging(get_settings())

    async def _run() -> None:
        await init_database()
        if args.seed:
            await seed_sample_items()
        await engine.dispose()

    asyncio.run(_run())


if __name__ == "__main__":
    cli_init_database()

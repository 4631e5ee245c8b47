from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from inventory_engine.api import create_app, provide_settings
from inventory_engine.config import Settings
from inventory_engine.database import Base, get_session
from inventory_engine.models import InventoryItem, new_item_id, utcnow
from inventory_engine.stock import status_for

ItemFactory = Callable[..., Awaitable[InventoryItem]]


@pytest.fixture()
def settings(tmp_path) -> Settings:
    db_path = tmp_path / "test.db"
    return Settings(
        database_url=f"sqlite+aiosqlite:///{db_path}",
        environment="test",
        app_name="Test Inventory Engine",
        _env_file=None,
    )


@pytest.fixture()
async def session_factory(settings: Settings) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(settings.database_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture()
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def make_item(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> ItemFactory:
    async def factory(
        sku: str = "RM-001",
        *,
        current_stock: float = 10,
        reorder_point: float = 0,
        minimum_stock: float = 0,
        cost: float = 1.0,
        discontinued: bool = False,
        name: str | None = None,
    ) -> InventoryItem:
        now = utcnow()
        status = status_for(
            current_stock,
            reorder_point=reorder_point,
            minimum_stock=minimum_stock,
            default_threshold=settings.low_stock_threshold,
            discontinued=discontinued,
        )
        item = InventoryItem(
            id=new_item_id(),
            sku=sku,
            name=name or f"Item {sku}",
            current_stock=current_stock,
            reorder_point=reorder_point,
            minimum_stock=minimum_stock,
            cost=cost,
            discontinued=discontinued,
            status=status.value,
            version=1,
            created_at=now,
            last_updated=now,
        )
        async with session_factory() as session:
            session.add(item)
            await session.commit()
        return item

    return factory


@pytest.fixture()
def app(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> FastAPI:
    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app = create_app(settings)
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[provide_settings] = lambda: settings
    return app


@pytest.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

"""Database initialization helpers and bounded store calls."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from typing import TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import get_settings
from .errors import PersistenceFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def create_engine() -> AsyncEngine:
    """Create a configured SQLAlchemy async engine."""

    settings = get_settings()
    return create_async_engine(settings.database_url, echo=settings.echo_sql)


engine = create_engine()
SessionFactory = async_sessionmaker(bind=engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield an :class:`AsyncSession` for FastAPI dependencies."""

    async with SessionFactory() as session:
        yield session


async def bounded(awaitable: Awaitable[T], timeout: float | None = None) -> T:
    """Await a store call, giving up after ``store_timeout_seconds``."""

    limit = get_settings().store_timeout_seconds if timeout is None else timeout
    return await asyncio.wait_for(awaitable, limit)


def _log_read_retry(retry_state) -> None:
    logger.warning(
        "Retrying store read %s after %r",
        getattr(retry_state.fn, "__name__", "?"),
        retry_state.outcome.exception(),
    )


# Idempotent reads get exactly one retry on transient failures.
read_retry = retry(
    retry=retry_if_exception_type((OperationalError, asyncio.TimeoutError)),
    stop=stop_after_attempt(2),
    wait=wait_fixed(0.1),
    before_sleep=_log_read_retry,
    reraise=True,
)


async def commit(session: AsyncSession, timeout: float | None = None) -> None:
    """Commit within the store timeout, mapping driver errors to :class:`PersistenceFailure`."""

    try:
        await bounded(session.commit(), timeout)
    except (SQLAlchemyError, asyncio.TimeoutError) as exc:
        await session.rollback()
        raise PersistenceFailure("Failed to persist changes", details=str(exc)) from exc


__all__ = [
    "Base",
    "engine",
    "SessionFactory",
    "get_session",
    "bounded",
    "read_retry",
    "commit",
]

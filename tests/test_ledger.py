import asyncio

import pytest
from sqlalchemy import func, select, update

from inventory_engine import crud, ledger
from inventory_engine.errors import (
    AllocationConflict,
    InsufficientInventory,
    InvalidDeallocation,
    InventoryError,
    ItemNotFound,
)
from inventory_engine.models import AllocationEvent, InventoryItem, StockAdjustment
from inventory_engine.stats import collect_stats
from inventory_engine.stock import StockStatus, derive_status, effective_threshold


async def _event_count(session) -> int:
    return await session.scalar(select(func.count()).select_from(AllocationEvent))


@pytest.mark.parametrize(
    ("stock", "threshold", "expected"),
    [
        (0, 10, StockStatus.OUT_OF_STOCK),
        (-1, 10, StockStatus.OUT_OF_STOCK),
        (10, 10, StockStatus.LOW_STOCK),
        (10.5, 10, StockStatus.IN_STOCK),
    ],
)
def test_derive_status_is_stable(stock, threshold, expected) -> None:
    first = derive_status(stock, threshold)
    assert first is expected
    assert derive_status(stock, threshold) is first


def test_discontinued_flag_overrides_stock_level() -> None:
    assert derive_status(500, 10, discontinued=True) is StockStatus.DISCONTINUED


def test_effective_threshold_precedence() -> None:
    assert effective_threshold(200, 100, 10) == 200
    assert effective_threshold(0, 100, 10) == 100
    assert effective_threshold(0, 0, 10) == 10
    assert effective_threshold(None, None, 3) == 3


async def test_allocation_larger_than_stock_is_rejected(session, settings, make_item) -> None:
    item = await make_item(current_stock=10)

    with pytest.raises(InsufficientInventory) as excinfo:
        await ledger.allocate(
            session, item_id=item.id, quantity=15, consumer_id="line-1", settings=settings
        )

    assert excinfo.value.available == 10
    stored = await crud.get_item(session, item.id)
    assert stored.current_stock == 10
    assert stored.version == 1
    assert await _event_count(session) == 0


async def test_allocation_decrements_stock_and_records_event(session, settings, make_item) -> None:
    item = await make_item(current_stock=10)

    event = await ledger.allocate(
        session, item_id=item.id, quantity=4, consumer_id="line-1", settings=settings
    )

    assert event.type == "allocation"
    assert event.status == "completed"
    assert event.allocated_to == "line-1"
    assert (event.stock_before, event.stock_after) == (10, 6)

    stored = await crud.get_item(session, item.id)
    assert stored.current_stock == 6
    assert stored.status == "low_stock"
    assert stored.version == 2
    assert await _event_count(session) == 1


async def test_allocating_everything_marks_item_out_of_stock(session, settings, make_item) -> None:
    item = await make_item(current_stock=5)

    await ledger.allocate(
        session, item_id=item.id, quantity=5, consumer_id="line-1", settings=settings
    )

    stored = await crud.get_item(session, item.id)
    assert stored.current_stock == 0
    assert stored.status == "out_of_stock"


async def test_allocation_rejects_non_positive_quantity(session, settings, make_item) -> None:
    item = await make_item()
    with pytest.raises(ValueError):
        await ledger.allocate(
            session, item_id=item.id, quantity=0, consumer_id="line-1", settings=settings
        )


async def test_allocation_for_unknown_item(session, settings) -> None:
    with pytest.raises(ItemNotFound):
        await ledger.allocate(
            session, item_id="missing", quantity=1, consumer_id="line-1", settings=settings
        )


async def test_concurrent_allocations_never_oversell(session_factory, settings, make_item) -> None:
    item = await make_item(current_stock=10)

    async def attempt(consumer: str):
        async with session_factory() as session:
            return await ledger.allocate(
                session, item_id=item.id, quantity=6, consumer_id=consumer, settings=settings
            )

    outcomes = await asyncio.gather(
        attempt("line-1"), attempt("line-2"), return_exceptions=True
    )

    successes = [outcome for outcome in outcomes if isinstance(outcome, AllocationEvent)]
    failures = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], (InsufficientInventory, AllocationConflict))

    async with session_factory() as session:
        stored = await crud.get_item(session, item.id)
        assert stored.current_stock == 4
        assert await _event_count(session) == 1


def _race_on_fetch(monkeypatch, session_factory, *, times: int, new_stock: float = 8) -> list:
    """Make another writer bump the item right after each of the first fetches."""

    calls = []
    real_get_item = crud.get_item

    async def get_item(session, item_id):
        item = await real_get_item(session, item_id)
        calls.append(item.version)
        if len(calls) <= times:
            async with session_factory() as other:
                await other.execute(
                    update(InventoryItem)
                    .where(InventoryItem.id == item_id)
                    .values(current_stock=new_stock, version=InventoryItem.version + 1)
                )
                await other.commit()
        return item

    monkeypatch.setattr(crud, "get_item", get_item)
    return calls


async def test_version_conflict_is_retried_on_fresh_stock(
    monkeypatch, session, session_factory, settings, make_item
) -> None:
    item = await make_item(current_stock=10)
    calls = _race_on_fetch(monkeypatch, session_factory, times=1)

    event = await ledger.allocate(
        session, item_id=item.id, quantity=4, consumer_id="line-1", settings=settings
    )

    assert calls == [1, 2]
    assert (event.stock_before, event.stock_after) == (8, 4)
    async with session_factory() as fresh:
        stored = await fresh.get(InventoryItem, item.id)
        assert stored.current_stock == 4
        assert stored.version == 3
        assert await _event_count(fresh) == 1


async def test_conflict_surfaces_once_retries_run_out(
    monkeypatch, session, session_factory, settings, make_item
) -> None:
    item = await make_item(current_stock=10)
    limited = settings.model_copy(update={"allocation_max_retries": 2})
    calls = _race_on_fetch(monkeypatch, session_factory, times=2, new_stock=10)

    with pytest.raises(AllocationConflict) as excinfo:
        await ledger.allocate(
            session, item_id=item.id, quantity=4, consumer_id="line-1", settings=limited
        )

    assert len(calls) == 2
    assert excinfo.value.details == {"itemId": item.id}
    assert await _event_count(session) == 0


async def test_contending_allocations_all_land(session_factory, settings, make_item) -> None:
    item = await make_item(current_stock=10)
    patient = settings.model_copy(update={"allocation_max_retries": 10})

    async def attempt(consumer: str):
        async with session_factory() as session:
            return await ledger.allocate(
                session, item_id=item.id, quantity=2, consumer_id=consumer, settings=patient
            )

    events = await asyncio.gather(*(attempt(f"line-{index}") for index in range(4)))

    assert sorted(event.stock_after for event in events) == [2, 4, 6, 8]
    async with session_factory() as session:
        stored = await crud.get_item(session, item.id)
        assert stored.current_stock == 2
        assert stored.version == 5
        assert await _event_count(session) == 4


async def test_deallocation_returns_stock(session, settings, make_item) -> None:
    item = await make_item(current_stock=10)
    await ledger.allocate(
        session, item_id=item.id, quantity=7, consumer_id="line-1", settings=settings
    )

    event = await ledger.deallocate(
        session, item_id=item.id, quantity=3, consumer_id="line-1", settings=settings
    )

    assert event.type == "deallocation"
    assert (event.stock_before, event.stock_after) == (3, 6)
    assert await ledger.outstanding_allocation(session, item.id, "line-1") == 4
    stored = await crud.get_item(session, item.id)
    assert stored.current_stock == 10 - 7 + 3


async def test_deallocation_cannot_exceed_outstanding(session, settings, make_item) -> None:
    item = await make_item(current_stock=10)
    await ledger.allocate(
        session, item_id=item.id, quantity=2, consumer_id="line-1", settings=settings
    )

    with pytest.raises(InvalidDeallocation):
        await ledger.deallocate(
            session, item_id=item.id, quantity=3, consumer_id="line-1", settings=settings
        )
    with pytest.raises(InvalidDeallocation):
        await ledger.deallocate(
            session, item_id=item.id, quantity=1, consumer_id="line-2", settings=settings
        )

    stored = await crud.get_item(session, item.id)
    assert stored.current_stock == 8


@pytest.mark.parametrize(
    ("reason", "note", "expected"),
    [
        ("cycle count", None, ("cycle_count", None)),
        ("RECEIPT", "PO-77", ("receipt", "PO-77")),
        (None, None, ("correction", None)),
        ("found behind rack", None, ("other", "found behind rack")),
        ("found behind rack", "bay 4", ("other", "found behind rack: bay 4")),
    ],
)
def test_parse_reason(reason, note, expected) -> None:
    code, kept_note = ledger.parse_reason(reason, note)
    assert (code.value, kept_note) == expected


async def test_update_quantity_writes_typed_adjustment(session, settings, make_item) -> None:
    item = await make_item(current_stock=50, reorder_point=20)

    updated = await ledger.update_quantity(
        session,
        item_id=item.id,
        new_quantity=12,
        reason="damage",
        note="water leak",
        settings=settings,
    )

    assert updated.current_stock == 12
    assert updated.status == "low_stock"
    assert updated.version == 2

    adjustment = (await session.scalars(select(StockAdjustment))).one()
    assert adjustment.previous_quantity == 50
    assert adjustment.new_quantity == 12
    assert adjustment.delta == -38
    assert adjustment.reason == "damage"
    assert adjustment.note == "water leak"


async def test_update_quantity_rejects_negative(session, settings, make_item) -> None:
    item = await make_item()
    with pytest.raises(ValueError):
        await ledger.update_quantity(
            session, item_id=item.id, new_quantity=-1, reason="correction", settings=settings
        )


async def test_item_history_is_newest_first(session, settings, make_item) -> None:
    item = await make_item(current_stock=10)
    await ledger.allocate(
        session, item_id=item.id, quantity=2, consumer_id="line-1", settings=settings
    )
    await ledger.update_quantity(
        session, item_id=item.id, new_quantity=20, reason="receipt", settings=settings
    )

    history = await ledger.item_history(session, item.id)

    assert [entry.kind for entry in history] == ["adjustment", "allocation"]
    assert (history[0].previous_quantity, history[0].new_quantity) == (8, 20)
    assert history[1].consumer == "line-1"

    with pytest.raises(ItemNotFound):
        await ledger.item_history(session, "missing")


async def test_stats_report_real_recent_updates(session, settings, make_item) -> None:
    low = await make_item("LOW", current_stock=10, cost=2.0)
    await make_item("EMPTY", current_stock=0, cost=5.0)
    await make_item("PLENTY", current_stock=100, cost=0.5)
    await make_item("OLD", current_stock=30, cost=1.0, discontinued=True)

    await ledger.allocate(
        session, item_id=low.id, quantity=4, consumer_id="line-1", settings=settings
    )

    stats = await collect_stats(session, settings)

    assert stats.total_items == 4
    assert stats.low_stock_items == 1
    assert stats.out_of_stock_items == 1
    assert stats.discontinued_items == 1
    assert stats.total_value == pytest.approx(6 * 2.0 + 100 * 0.5 + 30 * 1.0)
    assert len(stats.recent_updates) == 1
    update = stats.recent_updates[0]
    assert update.item_id == low.id
    assert (update.previous_quantity, update.new_quantity) == (10, 6)
    assert update.reason == "allocation"


async def test_stats_recent_updates_are_capped(session, settings, make_item) -> None:
    item = await make_item(current_stock=100)
    for _ in range(7):
        await ledger.allocate(
            session, item_id=item.id, quantity=1, consumer_id="line-1", settings=settings
        )

    stats = await collect_stats(session, settings)

    assert len(stats.recent_updates) == 5
    assert stats.recent_updates[0].new_quantity == 93


def test_ledger_errors_share_a_base() -> None:
    assert issubclass(InsufficientInventory, InventoryError)
    assert issubclass(ItemNotFound, LookupError)

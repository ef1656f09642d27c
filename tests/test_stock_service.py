import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update

from pressledger.core.config import settings
from pressledger.core.errors import (
    ArithmeticInvariantError,
    BusyError,
    InsufficientStockError,
    InvalidQuantityError,
    MaterialNotFoundError,
    MissingCostContextError,
    ValidationError,
)
from pressledger.db.models.material import Material
from pressledger.db.models.stock_movement import MovementType, StockMovement
from pressledger.services import material_service, stock_service
from pressledger.services.classifier import StockStatus
from pressledger.services.locks import material_locks


async def _movement_count(session, material_id):
    return (
        await session.execute(select(func.count(StockMovement.id)).where(StockMovement.material_id == material_id))
    ).scalar_one()


async def test_purchase_then_oversized_usage_is_rejected(session, make_material):
    m = await make_material(opening_stock_sheets=0)
    mid = m.id

    r = await stock_service.adjust_stock(session, mid, "purchase", 500, purchase_total_cost=Decimal("1000"))
    assert r.material.current_stock_sheets == 500
    assert r.material.unit_cost == Decimal("2")
    assert r.movement.quantity_sheets == 500
    assert r.movement.total_cost == Decimal("1000")

    with pytest.raises(InsufficientStockError) as ei:
        await stock_service.adjust_stock(session, mid, MovementType.usage, 600)
    assert ei.value.detail["available_sheets"] == 500
    assert ei.value.detail["requested_sheets"] == 600

    fresh = await material_service.get_material(session, mid)
    assert fresh.current_stock_sheets == 500
    assert await _movement_count(session, mid) == 1


async def test_purchase_reblends_unit_cost(session, make_material):
    m = await make_material(opening_stock_sheets=1000, unit_cost=Decimal("2.00"))
    r = await stock_service.adjust_stock(session, m.id, "purchase", 1000, purchase_total_cost="4000")
    assert r.material.current_stock_sheets == 2000
    assert r.material.unit_cost == Decimal("3")
    assert r.movement.unit_price_at_time == Decimal("4")
    assert r.movement.unit_cost_after == Decimal("3")


async def test_usage_and_waste_keep_cost_and_value_movement(session, make_material):
    m = await make_material(opening_stock_sheets=1000, unit_cost=Decimal("0.05"))
    usage = await stock_service.adjust_stock(session, m.id, "usage", 200, job_id=uuid.uuid4())
    assert usage.material.unit_cost == Decimal("0.05")
    assert usage.movement.quantity_sheets == -200
    assert usage.movement.total_cost == Decimal("10")
    assert usage.movement.job_id is not None

    waste = await stock_service.adjust_stock(session, m.id, "waste", 30, sub_type="misprint")
    assert waste.material.current_stock_sheets == 770
    assert waste.movement.stock_after_sheets == 770
    assert waste.movement.sub_type == "misprint"


async def test_corrections_need_reason_and_direction(session, make_material):
    m = await make_material(opening_stock_sheets=100)
    with pytest.raises(ValidationError):
        await stock_service.adjust_stock(session, m.id, "adjustment", 5, direction="in")
    with pytest.raises(ValidationError):
        await stock_service.adjust_stock(session, m.id, "adjustment", 5, reason="found a box")

    r = await stock_service.adjust_stock(session, m.id, "adjustment", 5, direction="in", reason="found a box")
    assert r.material.current_stock_sheets == 105
    r = await stock_service.adjust_stock(session, m.id, "adjustment", 15, direction="out", reason="water damage")
    assert r.material.current_stock_sheets == 90
    with pytest.raises(InsufficientStockError):
        await stock_service.adjust_stock(session, m.id, "adjustment", 91, direction="out", reason="recount")


@pytest.mark.parametrize("qty", [0, -5, 1.5, True, "10"])
async def test_invalid_quantities(session, make_material, qty):
    m = await make_material(opening_stock_sheets=100)
    with pytest.raises(InvalidQuantityError):
        await stock_service.adjust_stock(session, m.id, "usage", qty)
    assert await _movement_count(session, m.id) == 0


async def test_purchase_requires_cost(session, make_material):
    m = await make_material()
    with pytest.raises(MissingCostContextError):
        await stock_service.adjust_stock(session, m.id, "purchase", 10)


async def test_unknown_type_and_material(session, make_material):
    m = await make_material(opening_stock_sheets=10)
    with pytest.raises(ValidationError):
        await stock_service.adjust_stock(session, m.id, "theft", 1)
    with pytest.raises(MaterialNotFoundError):
        await stock_service.adjust_stock(session, uuid.uuid4(), "usage", 1)


async def test_inactive_material_rejects_adjustments(session, make_material):
    m = await make_material(opening_stock_sheets=10)
    await material_service.deactivate_material(session, m.id)
    await session.commit()
    with pytest.raises(ValidationError):
        await stock_service.adjust_stock(session, m.id, "usage", 1)


async def test_reconcile_to_count(session, make_material):
    m = await make_material(opening_stock_sheets=1000)
    r = await stock_service.reconcile_to_count(session, m.id, 970, reason="monthly stocktake")
    assert r.material.current_stock_sheets == 970
    assert r.movement.type == "adjustment"
    assert r.movement.sub_type == "physical_count"
    assert r.movement.quantity_sheets == -30

    with pytest.raises(ValidationError):
        await stock_service.reconcile_to_count(session, m.id, 970, reason="again")


async def test_movements_reconcile_with_stock(session, make_material):
    m = await make_material(opening_stock_sheets=250, unit_cost=Decimal("0.10"))
    await stock_service.adjust_stock(session, m.id, "purchase", 500, purchase_total_cost=Decimal("60"))
    await stock_service.adjust_stock(session, m.id, "usage", 300)
    await stock_service.adjust_stock(session, m.id, "waste", 20)
    await stock_service.adjust_stock(session, m.id, "adjustment", 7, direction="in", reason="recount")

    report = await stock_service.audit_material(session, m.id)
    assert report.ok
    assert report.movement_count == 4
    assert report.expected_stock_sheets == 250 + 500 - 300 - 20 + 7 == report.current_stock_sheets

    rows = await stock_service.list_movements(session, m.id)
    assert sorted(r.type for r in rows) == ["adjustment", "purchase", "usage", "waste"]
    assert sum(r.quantity_sheets for r in rows) == report.movement_total_sheets
    assert len(await stock_service.list_movements(session, m.id, types=[MovementType.usage])) == 1


async def test_concurrent_usage_never_oversells(session_factory, make_material):
    m = await make_material(opening_stock_sheets=100)

    async def take():
        async with session_factory() as s:
            try:
                await stock_service.adjust_stock(s, m.id, "usage", 10)
                return True
            except InsufficientStockError:
                return False

    results = await asyncio.gather(*(take() for _ in range(12)))
    assert results.count(True) == 10

    async with session_factory() as s:
        fresh = await material_service.get_material(s, m.id)
        assert fresh.current_stock_sheets == 0
        assert await _movement_count(s, m.id) == 10


async def test_busy_material_surfaces_busy_error(session, make_material, monkeypatch):
    m = await make_material(opening_stock_sheets=100)
    monkeypatch.setattr(settings, "lock_timeout_ms", 20)
    monkeypatch.setattr(settings, "conflict_retry_attempts", 2)

    async with material_locks.hold(m.id, timeout_sec=1.0):
        with pytest.raises(BusyError) as ei:
            await stock_service.adjust_stock(session, m.id, "usage", 1)
    assert ei.value.retryable
    assert ei.value.status_code == 503

    r = await stock_service.adjust_stock(session, m.id, "usage", 1)
    assert r.material.current_stock_sheets == 99


async def test_threshold_crossing_events(session, make_material, low_stock_queue):
    m = await make_material(opening_stock_sheets=1000, threshold_sheets=500, reorder_quantity=2000)

    r = await stock_service.adjust_stock(session, m.id, "usage", 400)
    assert r.current.status is StockStatus.HEALTHY
    assert low_stock_queue.empty()

    r = await stock_service.adjust_stock(session, m.id, "usage", 200)
    assert r.previous.status is StockStatus.HEALTHY
    assert r.current.status is StockStatus.LOW
    ev = low_stock_queue.get_nowait()
    assert ev.material_id == m.id
    assert ev.status is StockStatus.LOW
    assert ev.percentage == 80
    assert ev.reorder_quantity == 2000
    assert ev.movement_id == r.movement.id

    # Still LOW: no repeat signal
    await stock_service.adjust_stock(session, m.id, "usage", 100)
    assert low_stock_queue.empty()

    await stock_service.adjust_stock(session, m.id, "waste", 100)
    ev = low_stock_queue.get_nowait()
    assert ev.previous_status is StockStatus.LOW
    assert ev.status is StockStatus.CRITICAL

    # Recovering is not a crossing
    await stock_service.adjust_stock(session, m.id, "purchase", 1000, purchase_total_cost=Decimal("50"))
    assert low_stock_queue.empty()


async def test_failed_reconciliation_places_audit_hold(session, make_material):
    m = await make_material(opening_stock_sheets=100)
    mid = m.id
    await stock_service.adjust_stock(session, mid, "usage", 10)

    # Out-of-band write that bypasses the ledger
    await session.execute(update(Material).where(Material.id == mid).values(current_stock_sheets=50))
    await session.commit()

    with pytest.raises(ArithmeticInvariantError):
        await stock_service.adjust_stock(session, mid, "usage", 10)

    held = await session.get(Material, mid, populate_existing=True)
    assert held.needs_audit
    assert held.current_stock_sheets == 50
    assert await _movement_count(session, mid) == 1

    with pytest.raises(ArithmeticInvariantError):
        await stock_service.adjust_stock(session, mid, "purchase", 10, purchase_total_cost=Decimal("1"))
    with pytest.raises(ArithmeticInvariantError):
        await material_service.update_material(session, mid, {"threshold_sheets": 10})
    await session.rollback()

    report = await stock_service.audit_material(session, mid)
    assert not report.ok
    assert report.difference_sheets == -40

    with pytest.raises(ArithmeticInvariantError):
        await stock_service.release_audit_hold(session, mid, note="checked shelves")

    report = await stock_service.release_audit_hold(
        session, mid, note="shelf count matches ledger", resync_from_ledger=True
    )
    assert report.ok
    released = await session.get(Material, mid, populate_existing=True)
    assert not released.needs_audit
    assert released.current_stock_sheets == 90

    r = await stock_service.adjust_stock(session, mid, "usage", 10)
    assert r.material.current_stock_sheets == 80


async def test_audit_hold_release_needs_note(session, make_material):
    m = await make_material(opening_stock_sheets=10)
    with pytest.raises(ValidationError):
        await stock_service.release_audit_hold(session, m.id, note="  ")

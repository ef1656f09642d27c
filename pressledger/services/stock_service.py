from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from pressledger.core.config import settings
from pressledger.core.errors import (
    ArithmeticInvariantError,
    BusyError,
    ConflictError,
    InsufficientStockError,
    InvalidQuantityError,
    MaterialNotFoundError,
    MissingCostContextError,
    ValidationError,
)
from pressledger.db.models.material import Material
from pressledger.db.models.stock_movement import MovementType, StockMovement
from pressledger.services.classifier import Classification, classify, is_worse
from pressledger.services.events import LowStockCrossed, low_stock_events
from pressledger.services.locks import material_locks
from pressledger.services.pricing_service import quantize_cost, to_decimal, weighted_average_cost

logger = logging.getLogger(__name__)

# SQLSTATE lock_not_available (SET LOCAL lock_timeout expired)
_PG_LOCK_NOT_AVAILABLE = "55P03"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AdjustmentResult:
    material: Material
    movement: StockMovement
    previous: Classification
    current: Classification
    crossed: LowStockCrossed | None = None


@dataclass(frozen=True)
class ReconciliationReport:
    material_id: UUID
    opening_stock_sheets: int
    movement_total_sheets: int
    movement_count: int
    expected_stock_sheets: int
    current_stock_sheets: int

    @property
    def ok(self) -> bool:
        return self.expected_stock_sheets == self.current_stock_sheets

    @property
    def difference_sheets(self) -> int:
        return self.current_stock_sheets - self.expected_stock_sheets


def parse_movement_type(v: MovementType | str) -> MovementType:
    try:
        return MovementType(v)
    except ValueError:
        raise ValidationError(
            "invalid adjustment type",
            {"field": "type", "value": str(v), "allowed": [t.value for t in MovementType]},
        ) from None


def require_positive_sheets(quantity_sheets: object) -> int:
    if isinstance(quantity_sheets, bool) or not isinstance(quantity_sheets, int):
        raise InvalidQuantityError(
            "quantity must be a whole number of sheets",
            {"field": "quantity_sheets", "value": repr(quantity_sheets)},
        )
    if quantity_sheets <= 0:
        raise InvalidQuantityError(
            "quantity must be > 0", {"field": "quantity_sheets", "value": int(quantity_sheets)}
        )
    return int(quantity_sheets)


def _is_lock_not_available(e: DBAPIError) -> bool:
    orig = getattr(e, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == _PG_LOCK_NOT_AVAILABLE


async def _lock_material(session: AsyncSession, material_id: UUID) -> Material:
    """Row-lock the material for the rest of the transaction (no-op lock on SQLite)."""
    if session.get_bind().dialect.name == "postgresql":
        await session.execute(text(f"SET LOCAL lock_timeout = '{int(settings.lock_timeout_ms)}ms'"))
    try:
        m = (
            await session.execute(
                select(Material)
                .where(Material.id == material_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
    except DBAPIError as e:
        if _is_lock_not_available(e):
            raise BusyError(
                "material row is locked by another transaction, retry later",
                {"material_id": str(material_id)},
            ) from e
        raise
    if m is None:
        raise MaterialNotFoundError(material_id)
    if m.needs_audit:
        raise ArithmeticInvariantError(
            "material is on audit hold; writes are blocked until the audit is released",
            {"material_id": str(material_id), "audit_note": m.audit_note},
        )
    return m


async def verify_reconciliation(session: AsyncSession, material: Material) -> ReconciliationReport:
    await session.flush()
    total, count = (
        await session.execute(
            select(
                func.coalesce(func.sum(StockMovement.quantity_sheets), 0),
                func.count(StockMovement.id),
            ).where(StockMovement.material_id == material.id)
        )
    ).one()
    opening = int(material.opening_stock_sheets)
    return ReconciliationReport(
        material_id=material.id,
        opening_stock_sheets=opening,
        movement_total_sheets=int(total or 0),
        movement_count=int(count or 0),
        expected_stock_sheets=opening + int(total or 0),
        current_stock_sheets=int(material.current_stock_sheets),
    )


def _invariant_error(report: ReconciliationReport) -> ArithmeticInvariantError:
    return ArithmeticInvariantError(
        "stock does not reconcile with movement history",
        {
            "material_id": str(report.material_id),
            "opening_stock_sheets": report.opening_stock_sheets,
            "movement_total_sheets": report.movement_total_sheets,
            "expected_stock_sheets": report.expected_stock_sheets,
            "current_stock_sheets": report.current_stock_sheets,
        },
    )


async def apply_adjustment(
    session: AsyncSession,
    material_id: UUID,
    type: MovementType | str,
    quantity_sheets: int,
    *,
    purchase_total_cost: Decimal | float | str | None = None,
    direction: str | None = None,
    reason: str | None = None,
    sub_type: str | None = None,
    notes: str | None = None,
    actor_id: UUID | None = None,
    job_id: UUID | None = None,
) -> AdjustmentResult:
    """
    Apply one stock adjustment and append its movement, inside the caller's transaction.

    - purchase: stock += qty, unit cost re-blended (weighted average)
    - usage / waste: stock -= qty, unit cost unchanged
    - adjustment: correction in or out (direction), reason required, unit cost unchanged

    quantity_sheets is always positive; the sign comes from the type. Nothing is written if
    any check fails. The caller commits (see adjust_stock).
    """
    kind = parse_movement_type(type)
    qty = require_positive_sheets(quantity_sheets)

    purchase_total: Decimal | None = None
    if kind is MovementType.purchase:
        if purchase_total_cost is None:
            raise MissingCostContextError(
                "purchase requires purchase_total_cost", {"field": "purchase_total_cost"}
            )
        purchase_total = to_decimal(purchase_total_cost)
        if purchase_total is None or not purchase_total.is_finite() or purchase_total < 0:
            raise ValidationError(
                "purchase_total_cost must be a decimal >= 0",
                {"field": "purchase_total_cost", "value": repr(purchase_total_cost)},
            )

    sign = 1
    if kind in (MovementType.usage, MovementType.waste):
        sign = -1
    elif kind is MovementType.adjustment:
        if not (reason or "").strip():
            raise ValidationError("corrections require a reason", {"field": "reason"})
        if direction not in ("in", "out"):
            raise ValidationError(
                "corrections require direction 'in' or 'out'", {"field": "direction", "value": direction}
            )
        sign = 1 if direction == "in" else -1

    m = await _lock_material(session, material_id)
    if not m.is_active:
        raise ValidationError("material is inactive", {"material_id": str(material_id)})

    before_stock = int(m.current_stock_sheets)
    before_cost = Decimal(m.unit_cost)
    before_cls = classify(before_stock, m.threshold_sheets)

    delta = sign * qty
    after_stock = before_stock + delta
    if after_stock < 0:
        raise InsufficientStockError(material_id, before_stock, qty)

    if kind is MovementType.purchase:
        assert purchase_total is not None
        new_cost = weighted_average_cost(
            current_stock_sheets=before_stock,
            current_unit_cost=before_cost,
            incoming_sheets=qty,
            incoming_total_cost=purchase_total,
        )
        unit_price = quantize_cost(purchase_total / Decimal(qty))
        movement_cost = quantize_cost(purchase_total)
    else:
        new_cost = before_cost
        unit_price = quantize_cost(before_cost)
        movement_cost = quantize_cost(before_cost * Decimal(qty))

    logger.info(
        "stock change start: material_id=%s, name=%s, kind=%s, before=%s, delta=%s, after=%s, "
        "unit_cost_before=%s, unit_cost_after=%s, job_id=%s",
        m.id,
        m.material_name,
        kind.value,
        before_stock,
        delta,
        after_stock,
        before_cost,
        new_cost,
        job_id,
    )

    now = _utcnow()
    m.current_stock_sheets = int(after_stock)
    m.unit_cost = new_cost
    m.updated_at = now

    mv = StockMovement(
        material_id=m.id,
        job_id=job_id,
        type=kind.value,
        sub_type=sub_type,
        quantity_sheets=int(delta),
        unit_price_at_time=unit_price,
        total_cost=movement_cost,
        stock_after_sheets=int(after_stock),
        unit_cost_after=new_cost,
        reason=(reason or "").strip() or None,
        notes=notes,
        actor_id=actor_id,
        created_at=now,
    )
    session.add(mv)
    try:
        await session.flush()
    except StaleDataError as e:
        raise ConflictError(
            "material was modified concurrently, retry", {"material_id": str(material_id)}
        ) from e

    if settings.verify_reconciliation_on_write:
        report = await verify_reconciliation(session, m)
        if not report.ok:
            raise _invariant_error(report)

    after_cls = classify(after_stock, m.threshold_sheets)
    crossed = None
    if after_cls.is_alert and is_worse(after_cls.status, before_cls.status):
        crossed = LowStockCrossed(
            material_id=m.id,
            material_name=m.material_name,
            category=m.category,
            previous_status=before_cls.status,
            status=after_cls.status,
            percentage=after_cls.percentage,
            current_stock_sheets=int(after_stock),
            threshold_sheets=int(m.threshold_sheets),
            reorder_quantity=m.reorder_quantity,
            movement_id=mv.id,
            occurred_at=now,
        )

    logger.info(
        "stock change done: material_id=%s, movement_id=%s, stock=%s, status=%s",
        m.id,
        mv.id,
        after_stock,
        after_cls.status.value,
    )
    return AdjustmentResult(material=m, movement=mv, previous=before_cls, current=after_cls, crossed=crossed)


async def apply_count(
    session: AsyncSession,
    material_id: UUID,
    counted_sheets: int,
    *,
    reason: str,
    notes: str | None = None,
    actor_id: UUID | None = None,
) -> AdjustmentResult:
    """Turn a physical count into a correction movement for the difference."""
    if isinstance(counted_sheets, bool) or not isinstance(counted_sheets, int) or counted_sheets < 0:
        raise InvalidQuantityError(
            "counted sheets must be a non-negative whole number",
            {"field": "counted_sheets", "value": repr(counted_sheets)},
        )
    m = await _lock_material(session, material_id)
    diff = int(counted_sheets) - int(m.current_stock_sheets)
    if diff == 0:
        raise ValidationError(
            "count matches current stock; nothing to correct",
            {"field": "counted_sheets", "current_stock_sheets": int(m.current_stock_sheets)},
        )
    return await apply_adjustment(
        session,
        material_id,
        MovementType.adjustment,
        abs(diff),
        direction="in" if diff > 0 else "out",
        reason=reason,
        sub_type="physical_count",
        notes=notes,
        actor_id=actor_id,
    )


async def place_audit_hold(session: AsyncSession, material_id: UUID, note: str) -> None:
    m = await session.get(Material, material_id, populate_existing=True)
    if m is None or m.needs_audit:
        return
    m.needs_audit = True
    m.audit_note = note
    m.updated_at = _utcnow()
    await session.commit()
    logger.error("material placed on audit hold: material_id=%s, note=%s", material_id, note)


async def _run_serialized(
    session: AsyncSession,
    material_id: UUID,
    op: Callable[[], Awaitable[AdjustmentResult]],
) -> AdjustmentResult:
    """
    Run a write on one material under its lock, commit, and publish any threshold crossing.

    BusyError / ConflictError are retried up to conflict_retry_attempts; every other error is
    terminal. A failed reconciliation puts the material on audit hold before re-raising.
    """
    attempts = max(1, int(settings.conflict_retry_attempts))
    timeout_sec = max(0.0, settings.lock_timeout_ms / 1000.0)

    for attempt in range(1, attempts + 1):
        try:
            async with material_locks.hold(material_id, timeout_sec=timeout_sec):
                try:
                    result = await op()
                    await session.commit()
                except StaleDataError as e:
                    await session.rollback()
                    raise ConflictError(
                        "material was modified concurrently, retry", {"material_id": str(material_id)}
                    ) from e
                except BaseException:
                    await session.rollback()
                    raise
        except ConflictError as e:
            if attempt >= attempts:
                logger.warning(
                    "stock write gave up: material_id=%s, attempts=%s, error=%s", material_id, attempt, e.message
                )
                raise
            logger.warning(
                "stock write retry: material_id=%s, attempt=%s/%s, error=%s", material_id, attempt, attempts, e.message
            )
            await asyncio.sleep(0.05 * attempt)
            continue
        except ArithmeticInvariantError as e:
            logger.error("stock write blocked: material_id=%s, error=%s, detail=%s", material_id, e.message, e.detail)
            await place_audit_hold(session, material_id, e.message)
            raise

        if result.crossed is not None:
            low_stock_events.publish(result.crossed)
        return result

    raise AssertionError("unreachable")


async def adjust_stock(
    session: AsyncSession,
    material_id: UUID,
    type: MovementType | str,
    quantity_sheets: int,
    **kwargs,
) -> AdjustmentResult:
    """
    Transactional entry point for apply_adjustment (lock, commit, retry, publish).

    A failed write rolls back the caller's session, which expires every object loaded in it.
    """
    return await _run_serialized(
        session,
        material_id,
        lambda: apply_adjustment(session, material_id, type, quantity_sheets, **kwargs),
    )


async def reconcile_to_count(
    session: AsyncSession,
    material_id: UUID,
    counted_sheets: int,
    *,
    reason: str,
    notes: str | None = None,
    actor_id: UUID | None = None,
) -> AdjustmentResult:
    return await _run_serialized(
        session,
        material_id,
        lambda: apply_count(session, material_id, counted_sheets, reason=reason, notes=notes, actor_id=actor_id),
    )


async def audit_material(session: AsyncSession, material_id: UUID) -> ReconciliationReport:
    """Replay the movement log against the stored stock; put the record on hold on mismatch."""
    m = await session.get(Material, material_id)
    if m is None:
        raise MaterialNotFoundError(material_id)
    report = await verify_reconciliation(session, m)
    if not report.ok:
        logger.error(
            "reconciliation failed: material_id=%s, expected=%s, current=%s",
            material_id,
            report.expected_stock_sheets,
            report.current_stock_sheets,
        )
        await place_audit_hold(session, material_id, "reconciliation mismatch found by audit")
    return report


async def release_audit_hold(
    session: AsyncSession,
    material_id: UUID,
    *,
    note: str,
    resync_from_ledger: bool = False,
) -> ReconciliationReport:
    """
    Clear an audit hold after a manual audit.

    With resync_from_ledger the stored stock is reset to opening + movements (the movement log
    is authoritative). Without it the record must already reconcile.
    """
    if not (note or "").strip():
        raise ValidationError("releasing an audit hold requires a note", {"field": "note"})

    async with material_locks.hold(material_id, timeout_sec=settings.lock_timeout_ms / 1000.0):
        m = await session.get(Material, material_id, populate_existing=True)
        if m is None:
            raise MaterialNotFoundError(material_id)
        report = await verify_reconciliation(session, m)
        if not report.ok:
            if not resync_from_ledger:
                raise _invariant_error(report)
            logger.warning(
                "resyncing stock from ledger: material_id=%s, stored=%s, ledger=%s",
                material_id,
                report.current_stock_sheets,
                report.expected_stock_sheets,
            )
            if report.expected_stock_sheets < 0:
                raise _invariant_error(report)
            m.current_stock_sheets = report.expected_stock_sheets
        m.needs_audit = False
        m.audit_note = None
        m.updated_at = _utcnow()
        try:
            await session.commit()
        except StaleDataError as e:
            await session.rollback()
            raise ConflictError("material was modified concurrently, retry", {"material_id": str(material_id)}) from e
        logger.info("audit hold released: material_id=%s, note=%s", material_id, note.strip())
        return await verify_reconciliation(session, m)


async def list_movements(
    session: AsyncSession,
    material_id: UUID,
    *,
    types: list[MovementType] | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    if await session.get(Material, material_id) is None:
        raise MaterialNotFoundError(material_id)
    stmt = select(StockMovement).where(StockMovement.material_id == material_id)
    if types:
        stmt = stmt.where(StockMovement.type.in_([t.value for t in types]))
    if start is not None:
        stmt = stmt.where(StockMovement.created_at >= start)
    if end is not None:
        stmt = stmt.where(StockMovement.created_at < end)
    stmt = stmt.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit)
    return list((await session.execute(stmt)).scalars().all())

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pressledger.core.errors import ValidationError
from pressledger.db.models.material import Material
from pressledger.db.models.stock_movement import MovementType, StockMovement
from pressledger.services.pricing_service import round2

PERIODS = ("day", "month")


@dataclass
class MaterialCostLine:
    material_id: UUID
    material_name: str
    category: str
    period: str | None
    total_sheets: int = 0
    total_cost: Decimal = Decimal("0")
    movement_count: int = 0


@dataclass
class ReasonCostLine:
    reason: str
    total_sheets: int = 0
    total_cost: Decimal = Decimal("0")
    movement_count: int = 0


@dataclass
class MovementSummary:
    movement_type: str
    start: datetime
    end: datetime
    total_sheets: int
    total_cost: Decimal
    lines: list[MaterialCostLine]
    by_reason: list[ReasonCostLine] = field(default_factory=list)


@dataclass
class CostAnalysis:
    start: datetime
    end: datetime
    total_inventory_value: Decimal
    active_material_count: int
    usage_costs: Decimal
    waste_costs: Decimal
    purchase_costs: Decimal
    usage: MovementSummary
    waste: MovementSummary


def day_range(from_date: date, to_date: date) -> tuple[datetime, datetime]:
    """Inclusive calendar dates -> [start, end) in UTC."""
    if to_date < from_date:
        raise ValidationError(
            "to_date must not be before from_date",
            {"from_date": from_date.isoformat(), "to_date": to_date.isoformat()},
        )
    start = datetime.combine(from_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(date.fromordinal(to_date.toordinal() + 1), time.min, tzinfo=timezone.utc)
    return start, end


def _utc_day(dt: datetime) -> date:
    # SQLite hands back naive values that are already UTC
    if dt.tzinfo is None:
        return dt.date()
    return dt.astimezone(timezone.utc).date()


def _bucket(dt: datetime, period: str | None) -> str | None:
    if period is None:
        return None
    d = _utc_day(dt)
    if period == "day":
        return d.isoformat()
    return d.replace(day=1).isoformat()


async def _summarize(
    session: AsyncSession,
    kind: MovementType,
    start: datetime,
    end: datetime,
    *,
    period: str | None = None,
    material_id: UUID | None = None,
) -> MovementSummary:
    if period is not None and period not in PERIODS:
        raise ValidationError("invalid period", {"field": "period", "value": period, "allowed": list(PERIODS)})
    if end <= start:
        raise ValidationError("end must be after start", {"start": start.isoformat(), "end": end.isoformat()})

    stmt = (
        select(StockMovement, Material.material_name, Material.category)
        .join(Material, Material.id == StockMovement.material_id)
        .where(
            StockMovement.type == kind.value,
            StockMovement.created_at >= start,
            StockMovement.created_at < end,
        )
        .order_by(StockMovement.created_at.asc(), StockMovement.id.asc())
    )
    if material_id is not None:
        stmt = stmt.where(StockMovement.material_id == material_id)
    rows = (await session.execute(stmt)).all()

    lines: dict[tuple[UUID, str | None], MaterialCostLine] = {}
    reasons: dict[str, ReasonCostLine] = {}
    total_sheets = 0
    total_cost = Decimal("0")
    for mv, name, category in rows:
        sheets = abs(int(mv.quantity_sheets))
        cost = Decimal(mv.total_cost)
        bucket = _bucket(mv.created_at, period)

        line = lines.get((mv.material_id, bucket))
        if line is None:
            line = MaterialCostLine(material_id=mv.material_id, material_name=name, category=category, period=bucket)
            lines[(mv.material_id, bucket)] = line
        line.total_sheets += sheets
        line.total_cost += cost
        line.movement_count += 1

        key = (mv.sub_type or mv.reason or "unspecified").strip() or "unspecified"
        r = reasons.get(key)
        if r is None:
            r = ReasonCostLine(reason=key)
            reasons[key] = r
        r.total_sheets += sheets
        r.total_cost += cost
        r.movement_count += 1

        total_sheets += sheets
        total_cost += cost

    out_lines = sorted(lines.values(), key=lambda x: (x.period or "", -x.total_cost, x.material_name))
    for line in out_lines:
        line.total_cost = round2(line.total_cost)
    out_reasons = sorted(reasons.values(), key=lambda x: (-x.total_cost, x.reason))
    for r in out_reasons:
        r.total_cost = round2(r.total_cost)

    return MovementSummary(
        movement_type=kind.value,
        start=start,
        end=end,
        total_sheets=total_sheets,
        total_cost=round2(total_cost),
        lines=out_lines,
        by_reason=out_reasons,
    )


async def usage_trends(
    session: AsyncSession,
    start: datetime,
    end: datetime,
    *,
    period: str | None = None,
    material_id: UUID | None = None,
) -> MovementSummary:
    """Usage movements in [start, end) per material (and per day/month when period is set)."""
    return await _summarize(session, MovementType.usage, start, end, period=period, material_id=material_id)


async def waste_costs(
    session: AsyncSession,
    start: datetime,
    end: datetime,
    *,
    period: str | None = None,
) -> MovementSummary:
    """Waste movements in [start, end) per material, plus a breakdown by waste reason."""
    return await _summarize(session, MovementType.waste, start, end, period=period)


async def inventory_value(session: AsyncSession) -> tuple[Decimal, int]:
    materials = (await session.execute(select(Material).where(Material.is_active.is_(True)))).scalars().all()
    total = sum((Decimal(int(m.current_stock_sheets)) * Decimal(m.unit_cost) for m in materials), Decimal("0"))
    return round2(total), len(materials)


async def cost_analysis(session: AsyncSession, start: datetime, end: datetime) -> CostAnalysis:
    value, count = await inventory_value(session)
    usage = await _summarize(session, MovementType.usage, start, end)
    waste = await _summarize(session, MovementType.waste, start, end)
    purchases = await _summarize(session, MovementType.purchase, start, end)
    return CostAnalysis(
        start=start,
        end=end,
        total_inventory_value=value,
        active_material_count=count,
        usage_costs=usage.total_cost,
        waste_costs=waste.total_cost,
        purchase_costs=purchases.total_cost,
        usage=usage,
        waste=waste,
    )

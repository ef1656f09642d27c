from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pressledger.api.deps import get_db
from pressledger.schemas.report import CostAnalysisOut, MovementSummaryOut
from pressledger.services import report_service


router = APIRouter(prefix="/reports", tags=["reports"])


def _window(from_date: date | None, to_date: date | None, days: int) -> tuple[datetime, datetime]:
    """Inclusive dates; defaults to the last `days` UTC days ending today."""
    end_day = to_date or datetime.now(timezone.utc).date()
    start_day = from_date or (end_day - timedelta(days=days - 1))
    return report_service.day_range(start_day, end_day)


@router.get("/usage-trends", response_model=MovementSummaryOut)
async def usage_trends(
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    days: int = Query(default=30, ge=1, le=366),
    period: Literal["day", "month"] | None = Query(default=None),
    material_id: UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> MovementSummaryOut:
    start, end = _window(from_date, to_date, days)
    summary = await report_service.usage_trends(db, start, end, period=period, material_id=material_id)
    return MovementSummaryOut.model_validate(summary)


@router.get("/waste-costs", response_model=MovementSummaryOut)
async def waste_costs(
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    days: int = Query(default=30, ge=1, le=366),
    period: Literal["day", "month"] | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> MovementSummaryOut:
    start, end = _window(from_date, to_date, days)
    summary = await report_service.waste_costs(db, start, end, period=period)
    return MovementSummaryOut.model_validate(summary)


@router.get("/cost-analysis", response_model=CostAnalysisOut)
async def cost_analysis(
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    days: int = Query(default=30, ge=1, le=366),
    db: AsyncSession = Depends(get_db),
) -> CostAnalysisOut:
    """
    Inventory value right now plus usage, waste and purchase spend in the window.

    - total_inventory_value: sum of stock x unit cost over active materials
    - usage_costs / waste_costs: valued at the unit cost in force when each movement happened
    """
    start, end = _window(from_date, to_date, days)
    return CostAnalysisOut.model_validate(await report_service.cost_analysis(db, start, end))

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pressledger.schemas.common import APIModel


class MaterialCostLineOut(APIModel):
    material_id: UUID
    material_name: str
    category: str
    period: str | None = None
    total_sheets: int
    total_cost: Decimal
    movement_count: int


class ReasonCostLineOut(APIModel):
    reason: str
    total_sheets: int
    total_cost: Decimal
    movement_count: int


class MovementSummaryOut(APIModel):
    movement_type: str
    start: datetime
    end: datetime
    total_sheets: int
    total_cost: Decimal
    lines: list[MaterialCostLineOut]
    by_reason: list[ReasonCostLineOut] = []


class CostAnalysisOut(APIModel):
    start: datetime
    end: datetime
    total_inventory_value: Decimal
    active_material_count: int
    usage_costs: Decimal
    waste_costs: Decimal
    purchase_costs: Decimal
    usage: MovementSummaryOut
    waste: MovementSummaryOut

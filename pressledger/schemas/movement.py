from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pressledger.schemas.common import APIModel


class MovementOut(APIModel):
    id: UUID
    material_id: UUID
    job_id: UUID | None = None
    type: str
    sub_type: str | None = None
    quantity_sheets: int
    unit_price_at_time: Decimal
    total_cost: Decimal
    stock_after_sheets: int
    unit_cost_after: Decimal
    reason: str | None = None
    notes: str | None = None
    actor_id: UUID | None = None
    created_at: datetime

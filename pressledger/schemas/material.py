from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from pressledger.db.models.stock_movement import MovementType
from pressledger.schemas.common import APIModel
from pressledger.schemas.movement import MovementOut
from pressledger.services.classifier import StockStatus


class MaterialCreate(BaseModel):
    material_name: str
    category: str
    unit_of_measure: str = "sheets"
    sheets_per_unit: int | None = None

    # Opening stock: either total sheets, or reams + loose sheets
    opening_stock_sheets: int | None = None
    opening_reams: int | None = None
    opening_loose_sheets: int | None = None

    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    threshold_sheets: int = 0
    reorder_quantity: int | None = None

    paper_size: str | None = None
    paper_type: str | None = None
    grammage: int | None = Field(default=None, ge=1)
    attributes: dict[str, Any] = Field(default_factory=dict)
    supplier: str | None = None
    selling_price: Decimal | None = Field(default=None, ge=0)


class MaterialUpdate(BaseModel):
    # Extra keys are passed through so the service can name refused fields (stock, cost).
    model_config = ConfigDict(extra="allow")

    material_name: str | None = None
    category: str | None = None
    unit_of_measure: str | None = None
    paper_size: str | None = None
    paper_type: str | None = None
    grammage: int | None = None
    attributes: dict[str, Any] | None = None
    supplier: str | None = None
    selling_price: Decimal | None = None
    sheets_per_unit: int | None = None
    threshold_sheets: int | None = None
    reorder_quantity: int | None = None
    is_active: bool | None = None


class DisplayStockOut(APIModel):
    reams: int
    sheets: int
    label: str


class MaterialOut(APIModel):
    id: UUID
    material_name: str
    category: str
    unit_of_measure: str
    paper_size: str | None = None
    paper_type: str | None = None
    grammage: int | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    supplier: str | None = None
    selling_price: Decimal | None = None

    sheets_per_unit: int
    opening_stock_sheets: int
    current_stock_sheets: int
    display_stock: DisplayStockOut
    unit_cost: Decimal
    stock_value: Decimal

    threshold_sheets: int
    reorder_quantity: int | None = None
    status: StockStatus
    percentage: int

    is_active: bool
    needs_audit: bool
    audit_note: str | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class LowStockOut(APIModel):
    material_id: UUID
    material_name: str
    category: str
    status: StockStatus
    percentage: int
    current_stock_sheets: int
    threshold_sheets: int
    display_stock: DisplayStockOut
    reorder_quantity: int | None = None
    supplier: str | None = None


class AttributeFieldOut(APIModel):
    name: str
    label: str
    type: str
    placeholder: str | None = None
    default: Any = None


class AttributeTemplatesOut(BaseModel):
    templates: dict[str, list[AttributeFieldOut]]


class AdjustmentCreate(BaseModel):
    """
    One stock change. Quantity is given either as quantity_sheets or as reams + sheets.

    Purchases need a cost: purchase_total_cost, or price_per_ream together with reams.
    """

    type: MovementType
    quantity_sheets: int | None = None
    reams: int | None = None
    sheets: int | None = None

    purchase_total_cost: Decimal | None = None
    price_per_ream: Decimal | None = None

    direction: Literal["in", "out"] | None = None
    reason: str | None = None
    sub_type: str | None = None
    notes: str | None = None
    actor_id: UUID | None = None
    job_id: UUID | None = None


class CountCreate(BaseModel):
    counted_sheets: int | None = None
    counted_reams: int | None = None
    counted_loose_sheets: int | None = None
    reason: str
    notes: str | None = None
    actor_id: UUID | None = None


class AdjustmentOut(APIModel):
    material: MaterialOut
    movement: MovementOut
    previous_status: StockStatus
    status: StockStatus
    percentage: int
    low_stock_crossed: bool


class ConvertRequest(BaseModel):
    sheets_per_unit: int
    reams: int | None = None
    sheets: int | None = None
    total_sheets: int | None = None


class ConvertOut(APIModel):
    sheets_per_unit: int
    total_sheets: int
    reams: int
    sheets: int
    label: str
    short_label: str


class AuditRelease(BaseModel):
    note: str
    resync_from_ledger: bool = False


class ReconciliationOut(APIModel):
    material_id: UUID
    opening_stock_sheets: int
    movement_total_sheets: int
    movement_count: int
    expected_stock_sheets: int
    current_stock_sheets: int
    difference_sheets: int
    ok: bool
    needs_audit: bool = False

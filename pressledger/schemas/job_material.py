from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from pressledger.schemas.common import APIModel


class JobMaterialLineIn(BaseModel):
    line_id: UUID | None = None
    material_id: UUID | None = None
    material_name: str | None = None
    paper_size: str | None = None
    paper_type: str | None = None
    grammage: int | None = None
    quantity: Decimal | None = None
    unit_cost: Decimal | None = None
    # Computed from quantity x unit_cost when omitted
    total_cost: Decimal | None = None


class JobMaterialsReplace(BaseModel):
    editor_id: UUID | None = None
    edit_reason: str
    lines: list[JobMaterialLineIn] = Field(default_factory=list)


class JobMaterialEditCreate(BaseModel):
    editor_id: UUID | None = None
    edit_reason: str
    previous: list[JobMaterialLineIn] = Field(default_factory=list)
    new: list[JobMaterialLineIn] = Field(default_factory=list)


class JobMaterialLineOut(APIModel):
    id: UUID
    job_id: UUID
    material_id: UUID | None = None
    material_name: str
    paper_size: str | None = None
    paper_type: str | None = None
    grammage: int | None = None
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    created_at: datetime
    updated_at: datetime


class JobMaterialEditOut(APIModel):
    id: UUID
    job_id: UUID
    line_id: UUID | None = None
    editor_id: UUID | None = None
    edited_at: datetime
    edit_reason: str
    change_type: str

    previous_material_name: str | None = None
    previous_paper_size: str | None = None
    previous_paper_type: str | None = None
    previous_grammage: int | None = None
    previous_quantity: Decimal | None = None
    previous_unit_cost: Decimal | None = None
    previous_total_cost: Decimal | None = None

    new_material_name: str | None = None
    new_paper_size: str | None = None
    new_paper_type: str | None = None
    new_grammage: int | None = None
    new_quantity: Decimal | None = None
    new_unit_cost: Decimal | None = None
    new_total_cost: Decimal | None = None


class JobMaterialsReplaceResult(APIModel):
    job_id: UUID
    lines: list[JobMaterialLineOut]
    edits: list[JobMaterialEditOut]

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from pressledger.db.base import Base


class ChangeType(str, enum.Enum):
    ADDED = "ADDED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


class JobMaterialLine(Base):
    """Current cost-estimate line items of a job. Not linked to physical stock."""

    __tablename__ = "job_material_lines"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    # Optional pointer to the inventory record this estimate refers to
    material_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    material_name: Mapped[str] = mapped_column(Text, nullable=False)
    paper_size: Mapped[str | None] = mapped_column(Text, nullable=True)
    paper_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    grammage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class JobMaterialEdit(Base):
    """Append-only before/after record of one job material line change."""

    __tablename__ = "job_material_edits"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    # Line the edit applies to; kept after the line itself is deleted
    line_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    editor_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    edited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    edit_reason: Mapped[str] = mapped_column(Text, nullable=False)
    change_type: Mapped[str] = mapped_column(Text, nullable=False)

    previous_material_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_paper_size: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_paper_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_grammage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    previous_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    previous_unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    previous_total_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    new_material_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_paper_size: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_paper_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_grammage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    new_quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    new_unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    new_total_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)


Index("ix_job_material_lines_job_id", JobMaterialLine.job_id)
Index("ix_job_material_edits_job_id_edited_at", JobMaterialEdit.job_id, JobMaterialEdit.edited_at)

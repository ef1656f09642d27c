from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Index, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from pressledger.db.base import Base


class Material(Base):
    __tablename__ = "materials"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    material_name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(Text, nullable=False, default="sheets")

    # Paper attributes (optional for non-paper categories)
    paper_size: Mapped[str | None] = mapped_column(Text, nullable=True)
    paper_type: Mapped[str | None] = mapped_column(Text, nullable=True)
    grammage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Category specific extras (ink colour, plate size, ...)
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    supplier: Mapped[str | None] = mapped_column(Text, nullable=True)
    selling_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    sheets_per_unit: Mapped[int] = mapped_column(Integer, nullable=False, default=500)

    # Stock is always held in sheets. opening_stock_sheets is the reconciliation baseline:
    # opening_stock_sheets + sum(stock_movements.quantity_sheets) == current_stock_sheets
    opening_stock_sheets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_stock_sheets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Cost per sheet (weighted average)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))

    threshold_sheets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reorder_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Soft-delete
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Write hold after a failed reconciliation; cleared by a manual audit.
    needs_audit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    audit_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("current_stock_sheets >= 0", name="ck_materials_stock_non_negative"),
        CheckConstraint("sheets_per_unit > 0", name="ck_materials_sheets_per_unit_positive"),
    )
    __mapper_args__ = {"version_id_col": version}


Index("ix_materials_category", Material.category)
Index("ix_materials_is_active", Material.is_active)

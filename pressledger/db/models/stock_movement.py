from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from pressledger.db.base import Base


class MovementType(str, enum.Enum):
    purchase = "purchase"
    usage = "usage"
    waste = "waste"
    adjustment = "adjustment"


class StockMovement(Base):
    """Append-only. Rows are never updated or deleted once flushed."""

    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    material_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False
    )
    # Usage charged to a job (no FK: jobs live in the job-ticket service)
    job_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    type: Mapped[str] = mapped_column(Text, nullable=False)
    sub_type: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Signed: + for purchase / correction in, - for usage, waste, correction out
    quantity_sheets: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_at_time: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    stock_after_sheets: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost_after: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


Index("ix_stock_movements_material_id", StockMovement.material_id)
Index("ix_stock_movements_type_created_at", StockMovement.type, StockMovement.created_at)
Index("ix_stock_movements_job_id", StockMovement.job_id)

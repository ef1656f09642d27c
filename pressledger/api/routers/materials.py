from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pressledger.api.deps import get_db
from pressledger.core.config import settings
from pressledger.core.errors import InvalidQuantityError, ValidationError
from pressledger.db.models.material import Material
from pressledger.db.models.stock_movement import MovementType
from pressledger.schemas.material import (
    AdjustmentCreate,
    AdjustmentOut,
    AttributeFieldOut,
    AttributeTemplatesOut,
    AuditRelease,
    ConvertOut,
    ConvertRequest,
    CountCreate,
    DisplayStockOut,
    LowStockOut,
    MaterialCreate,
    MaterialOut,
    MaterialUpdate,
    ReconciliationOut,
)
from pressledger.schemas.movement import MovementOut
from pressledger.services import material_service, stock_service
from pressledger.services.classifier import StockStatus, classify
from pressledger.services.pricing_service import derive_purchase_total, round2
from pressledger.services.report_service import day_range
from pressledger.services.units import to_display, to_sheets


router = APIRouter(prefix="/materials", tags=["materials"])


def _display(total_sheets: int, sheets_per_unit: int) -> DisplayStockOut:
    d = to_display(int(total_sheets), int(sheets_per_unit))
    return DisplayStockOut(reams=d.reams, sheets=d.sheets, label=d.label)


def _material_out(m: Material) -> MaterialOut:
    c = classify(m.current_stock_sheets, m.threshold_sheets)
    return MaterialOut(
        id=m.id,
        material_name=m.material_name,
        category=m.category,
        unit_of_measure=m.unit_of_measure,
        paper_size=m.paper_size,
        paper_type=m.paper_type,
        grammage=m.grammage,
        attributes=m.attributes or {},
        supplier=m.supplier,
        selling_price=m.selling_price,
        sheets_per_unit=m.sheets_per_unit,
        opening_stock_sheets=m.opening_stock_sheets,
        current_stock_sheets=m.current_stock_sheets,
        display_stock=_display(m.current_stock_sheets, m.sheets_per_unit),
        unit_cost=m.unit_cost,
        stock_value=round2(Decimal(int(m.current_stock_sheets)) * Decimal(m.unit_cost)),
        threshold_sheets=m.threshold_sheets,
        reorder_quantity=m.reorder_quantity,
        status=c.status,
        percentage=c.percentage,
        is_active=m.is_active,
        needs_audit=m.needs_audit,
        audit_note=m.audit_note,
        version=m.version,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def _resolve_sheets(
    field: str,
    total: int | None,
    reams: int | None,
    loose: int | None,
    sheets_per_unit: int,
) -> int | None:
    """Accept a quantity as total sheets or as reams + loose sheets, never both."""
    if total is not None:
        if reams is not None or loose is not None:
            raise ValidationError(f"give either {field} or reams + sheets, not both", {"field": field})
        return total
    if reams is None and loose is None:
        return None
    return to_sheets(reams or 0, loose or 0, sheets_per_unit)


def _reconciliation_out(report: stock_service.ReconciliationReport, needs_audit: bool) -> ReconciliationOut:
    return ReconciliationOut(
        material_id=report.material_id,
        opening_stock_sheets=report.opening_stock_sheets,
        movement_total_sheets=report.movement_total_sheets,
        movement_count=report.movement_count,
        expected_stock_sheets=report.expected_stock_sheets,
        current_stock_sheets=report.current_stock_sheets,
        difference_sheets=report.difference_sheets,
        ok=report.ok,
        needs_audit=needs_audit,
    )


@router.get("", response_model=list[MaterialOut])
async def list_materials(
    category: str | None = Query(default=None),
    search: str | None = Query(default=None, description="Match name, category, supplier, paper type or size"),
    status: StockStatus | None = Query(default=None),
    include_inactive: bool = Query(default=False, description="Include deactivated (soft-deleted) materials"),
    db: AsyncSession = Depends(get_db),
) -> list[MaterialOut]:
    materials = await material_service.list_materials(
        db, category=category, search=search, include_inactive=include_inactive
    )
    out = [_material_out(m) for m in materials]
    if status is not None:
        out = [m for m in out if m.status == status]
    return out


@router.get("/categories", response_model=list[str])
async def list_categories(db: AsyncSession = Depends(get_db)) -> list[str]:
    return await material_service.list_categories(db)


@router.get("/attribute-templates", response_model=AttributeTemplatesOut)
async def list_attribute_templates(
    category: str | None = Query(default=None, description="Only this category's template"),
) -> AttributeTemplatesOut:
    templates = material_service.attribute_templates(category)
    return AttributeTemplatesOut(
        templates={k: [AttributeFieldOut.model_validate(f) for f in fields] for k, fields in templates.items()}
    )


@router.get("/low-stock", response_model=list[LowStockOut])
async def list_low_stock(
    status: StockStatus | None = Query(default=None, description="LOW or CRITICAL; both when omitted"),
    category: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[LowStockOut]:
    items = await material_service.list_low_stock(
        db, statuses={status} if status is not None else None, category=category
    )
    return [
        LowStockOut(
            material_id=i.material.id,
            material_name=i.material.material_name,
            category=i.material.category,
            status=i.classification.status,
            percentage=i.classification.percentage,
            current_stock_sheets=i.material.current_stock_sheets,
            threshold_sheets=i.material.threshold_sheets,
            display_stock=_display(i.material.current_stock_sheets, i.material.sheets_per_unit),
            reorder_quantity=i.material.reorder_quantity,
            supplier=i.material.supplier,
        )
        for i in items
    ]


@router.post("/convert", response_model=ConvertOut)
async def convert_units(body: ConvertRequest) -> ConvertOut:
    """Sheets <-> reams + sheets for a given pack size, no material needed."""
    total = _resolve_sheets("total_sheets", body.total_sheets, body.reams, body.sheets, body.sheets_per_unit)
    if total is None:
        raise ValidationError("give total_sheets or reams + sheets", {"field": "total_sheets"})
    d = to_display(total, body.sheets_per_unit)
    return ConvertOut(
        sheets_per_unit=body.sheets_per_unit,
        total_sheets=total,
        reams=d.reams,
        sheets=d.sheets,
        label=d.label,
        short_label=d.short_label,
    )


@router.post("", response_model=MaterialOut, status_code=201)
async def create_material(body: MaterialCreate, db: AsyncSession = Depends(get_db)) -> MaterialOut:
    spu = body.sheets_per_unit if body.sheets_per_unit is not None else settings.default_sheets_per_unit
    opening = _resolve_sheets(
        "opening_stock_sheets", body.opening_stock_sheets, body.opening_reams, body.opening_loose_sheets, spu
    )
    m = await material_service.create_material(
        db,
        material_name=body.material_name,
        category=body.category,
        unit_of_measure=body.unit_of_measure,
        sheets_per_unit=spu,
        opening_stock_sheets=opening or 0,
        unit_cost=body.unit_cost,
        threshold_sheets=body.threshold_sheets,
        reorder_quantity=body.reorder_quantity,
        paper_size=body.paper_size,
        paper_type=body.paper_type,
        grammage=body.grammage,
        attributes=body.attributes,
        supplier=body.supplier,
        selling_price=body.selling_price,
    )
    await db.commit()
    return _material_out(m)


@router.get("/{material_id}", response_model=MaterialOut)
async def get_material(material_id: UUID, db: AsyncSession = Depends(get_db)) -> MaterialOut:
    return _material_out(await material_service.get_material(db, material_id))


@router.patch("/{material_id}", response_model=MaterialOut)
async def update_material(material_id: UUID, body: MaterialUpdate, db: AsyncSession = Depends(get_db)) -> MaterialOut:
    patch = body.model_dump(exclude_unset=True)
    if not patch:
        raise ValidationError("nothing to update", {})
    m = await material_service.update_material(db, material_id, patch)
    await db.commit()
    return _material_out(m)


@router.delete("/{material_id}", response_model=MaterialOut)
async def deactivate_material(material_id: UUID, db: AsyncSession = Depends(get_db)) -> MaterialOut:
    """Soft delete: the record and its movement history are kept."""
    m = await material_service.deactivate_material(db, material_id)
    await db.commit()
    return _material_out(m)


@router.post("/{material_id}/adjustments", response_model=AdjustmentOut)
async def create_adjustment(
    material_id: UUID, body: AdjustmentCreate, db: AsyncSession = Depends(get_db)
) -> AdjustmentOut:
    m = await material_service.get_material(db, material_id)
    qty = _resolve_sheets("quantity_sheets", body.quantity_sheets, body.reams, body.sheets, m.sheets_per_unit)
    if qty is None:
        raise InvalidQuantityError("quantity is required", {"field": "quantity_sheets"})

    purchase_total = None
    if body.type is MovementType.purchase:
        if body.price_per_ream is not None and body.purchase_total_cost is None and body.sheets:
            raise ValidationError(
                "price_per_ream prices whole reams; give purchase_total_cost when buying loose sheets",
                {"field": "price_per_ream"},
            )
        purchase_total = derive_purchase_total(
            units_count=body.reams,
            price_per_unit=body.price_per_ream,
            price_total=body.purchase_total_cost,
        )
    elif body.purchase_total_cost is not None or body.price_per_ream is not None:
        raise ValidationError("purchase cost is only accepted on purchases", {"field": "purchase_total_cost"})

    r = await stock_service.adjust_stock(
        db,
        material_id,
        body.type,
        qty,
        purchase_total_cost=purchase_total,
        direction=body.direction,
        reason=body.reason,
        sub_type=body.sub_type,
        notes=body.notes,
        actor_id=body.actor_id,
        job_id=body.job_id,
    )
    return AdjustmentOut(
        material=_material_out(r.material),
        movement=MovementOut.model_validate(r.movement),
        previous_status=r.previous.status,
        status=r.current.status,
        percentage=r.current.percentage,
        low_stock_crossed=r.crossed is not None,
    )


@router.post("/{material_id}/count", response_model=AdjustmentOut)
async def record_physical_count(material_id: UUID, body: CountCreate, db: AsyncSession = Depends(get_db)) -> AdjustmentOut:
    """Correct stock to a physical count; the difference is logged as a correction."""
    m = await material_service.get_material(db, material_id)
    counted = _resolve_sheets(
        "counted_sheets", body.counted_sheets, body.counted_reams, body.counted_loose_sheets, m.sheets_per_unit
    )
    if counted is None:
        raise InvalidQuantityError("counted quantity is required", {"field": "counted_sheets"})
    r = await stock_service.reconcile_to_count(
        db, material_id, counted, reason=body.reason, notes=body.notes, actor_id=body.actor_id
    )
    return AdjustmentOut(
        material=_material_out(r.material),
        movement=MovementOut.model_validate(r.movement),
        previous_status=r.previous.status,
        status=r.current.status,
        percentage=r.current.percentage,
        low_stock_crossed=r.crossed is not None,
    )


@router.get("/{material_id}/movements", response_model=list[MovementOut])
async def list_movements(
    material_id: UUID,
    type: list[MovementType] | None = Query(default=None),
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> list[MovementOut]:
    start = end = None
    if from_date is not None and to_date is not None:
        start, end = day_range(from_date, to_date)
    elif from_date is not None:
        start = datetime.combine(from_date, time.min, tzinfo=timezone.utc)
    elif to_date is not None:
        end = datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    rows = await stock_service.list_movements(db, material_id, types=type, start=start, end=end, limit=limit)
    return [MovementOut.model_validate(r) for r in rows]


@router.get("/{material_id}/reconciliation", response_model=ReconciliationOut)
async def check_reconciliation(material_id: UUID, db: AsyncSession = Depends(get_db)) -> ReconciliationOut:
    """Replay the movement history; a mismatch puts the material on audit hold."""
    report = await stock_service.audit_material(db, material_id)
    m = await material_service.get_material(db, material_id)
    return _reconciliation_out(report, m.needs_audit)


@router.post("/{material_id}/audit/release", response_model=ReconciliationOut)
async def release_audit_hold(material_id: UUID, body: AuditRelease, db: AsyncSession = Depends(get_db)) -> ReconciliationOut:
    report = await stock_service.release_audit_hold(
        db, material_id, note=body.note, resync_from_ledger=body.resync_from_ledger
    )
    return _reconciliation_out(report, False)

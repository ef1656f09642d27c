from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from pressledger.core.config import settings
from pressledger.core.errors import (
    ArithmeticInvariantError,
    ConflictError,
    MaterialNotFoundError,
    ValidationError,
)
from pressledger.db.models.material import Material
from pressledger.services.classifier import ALERT_STATUSES, Classification, StockStatus, classify
from pressledger.services.pricing_service import quantize_cost, to_decimal

logger = logging.getLogger(__name__)

# Fields that only the stock adjustment engine may change
PROTECTED_FIELDS = frozenset(
    {"current_stock_sheets", "opening_stock_sheets", "unit_cost", "version", "needs_audit", "audit_note"}
)
EDITABLE_FIELDS = frozenset(
    {
        "material_name",
        "category",
        "unit_of_measure",
        "paper_size",
        "paper_type",
        "grammage",
        "attributes",
        "supplier",
        "selling_price",
        "sheets_per_unit",
        "threshold_sheets",
        "reorder_quantity",
        "is_active",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LowStockItem:
    material: Material
    classification: Classification


async def get_material(session: AsyncSession, material_id: UUID, *, for_update: bool = False) -> Material:
    if for_update:
        m = (
            await session.execute(select(Material).where(Material.id == material_id).with_for_update())
        ).scalars().first()
    else:
        m = await session.get(Material, material_id)
    if m is None:
        raise MaterialNotFoundError(material_id)
    return m


def _check_non_negative_int(field: str, v: Any, *, allow_none: bool = False) -> None:
    if v is None and allow_none:
        return
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise ValidationError(f"{field} must be a non-negative integer", {"field": field, "value": repr(v)})


async def create_material(
    session: AsyncSession,
    *,
    material_name: str,
    category: str,
    unit_of_measure: str = "sheets",
    sheets_per_unit: int | None = None,
    opening_stock_sheets: int = 0,
    unit_cost: Decimal | float | str = Decimal("0"),
    threshold_sheets: int = 0,
    reorder_quantity: int | None = None,
    paper_size: str | None = None,
    paper_type: str | None = None,
    grammage: int | None = None,
    attributes: dict | None = None,
    supplier: str | None = None,
    selling_price: Decimal | float | None = None,
) -> Material:
    """
    Create an inventory item. Stock enters the ledger as the opening balance; every later
    change goes through the stock adjustment engine.
    """
    if not (material_name or "").strip():
        raise ValidationError("material_name is required", {"field": "material_name"})
    if not (category or "").strip():
        raise ValidationError("category is required", {"field": "category"})

    spu = settings.default_sheets_per_unit if sheets_per_unit is None else sheets_per_unit
    if isinstance(spu, bool) or not isinstance(spu, int) or spu <= 0:
        raise ValidationError("sheets_per_unit must be > 0", {"field": "sheets_per_unit", "value": repr(spu)})
    _check_non_negative_int("opening_stock_sheets", opening_stock_sheets)
    _check_non_negative_int("threshold_sheets", threshold_sheets)
    _check_non_negative_int("reorder_quantity", reorder_quantity, allow_none=True)

    cost = to_decimal(unit_cost)
    if cost is None or cost < 0:
        raise ValidationError("unit_cost must be a decimal >= 0", {"field": "unit_cost", "value": repr(unit_cost)})

    now = _utcnow()
    m = Material(
        material_name=material_name.strip(),
        category=category.strip(),
        unit_of_measure=unit_of_measure,
        sheets_per_unit=int(spu),
        opening_stock_sheets=int(opening_stock_sheets),
        current_stock_sheets=int(opening_stock_sheets),
        unit_cost=quantize_cost(cost),
        threshold_sheets=int(threshold_sheets),
        reorder_quantity=reorder_quantity,
        paper_size=paper_size,
        paper_type=paper_type,
        grammage=grammage,
        attributes=dict(attributes or {}),
        supplier=supplier,
        selling_price=to_decimal(selling_price),
        is_active=True,
        needs_audit=False,
        created_at=now,
        updated_at=now,
    )
    session.add(m)
    await session.flush()

    c = classify(m.current_stock_sheets, m.threshold_sheets)
    logger.info(
        "material created: material_id=%s, name=%s, category=%s, opening_stock=%s, unit_cost=%s, status=%s",
        m.id,
        m.material_name,
        m.category,
        m.current_stock_sheets,
        m.unit_cost,
        c.status.value,
    )
    return m


async def update_material(session: AsyncSession, material_id: UUID, patch: dict[str, Any]) -> Material:
    """Edit descriptive fields and thresholds. Stock and cost are refused here."""
    protected = sorted(set(patch) & PROTECTED_FIELDS)
    if protected:
        raise ValidationError(
            "stock and cost can only change through stock adjustments",
            {"fields": protected},
        )
    unknown = sorted(set(patch) - EDITABLE_FIELDS)
    if unknown:
        raise ValidationError("unknown material fields", {"fields": unknown})

    m = await get_material(session, material_id, for_update=True)
    if m.needs_audit:
        raise ArithmeticInvariantError(
            "material is on audit hold; writes are blocked until the audit is released",
            {"material_id": str(material_id), "audit_note": m.audit_note},
        )

    if "sheets_per_unit" in patch:
        spu = patch["sheets_per_unit"]
        if isinstance(spu, bool) or not isinstance(spu, int) or spu <= 0:
            raise ValidationError("sheets_per_unit must be > 0", {"field": "sheets_per_unit", "value": repr(spu)})
    if "threshold_sheets" in patch:
        _check_non_negative_int("threshold_sheets", patch["threshold_sheets"])
    if "reorder_quantity" in patch:
        _check_non_negative_int("reorder_quantity", patch["reorder_quantity"], allow_none=True)
    for field in ("material_name", "category", "unit_of_measure"):
        if field in patch and not (patch[field] or "").strip():
            raise ValidationError(f"{field} cannot be empty", {"field": field})
    if "is_active" in patch and not isinstance(patch["is_active"], bool):
        raise ValidationError("is_active must be a boolean", {"field": "is_active"})

    if "attributes" in patch and patch["attributes"] is not None:
        # Merge, don't replace
        patch = {**patch, "attributes": {**(m.attributes or {}), **patch["attributes"]}}
    if "selling_price" in patch:
        patch = {**patch, "selling_price": to_decimal(patch["selling_price"])}

    for k, v in patch.items():
        setattr(m, k, v)
    m.updated_at = _utcnow()
    try:
        await session.flush()
    except StaleDataError as e:
        raise ConflictError("material was modified concurrently, retry", {"material_id": str(material_id)}) from e
    logger.info("material updated: material_id=%s, fields=%s", m.id, ",".join(sorted(patch)))
    return m


async def deactivate_material(session: AsyncSession, material_id: UUID) -> Material:
    m = await get_material(session, material_id, for_update=True)
    if not m.is_active:
        return m
    m.is_active = False
    m.updated_at = _utcnow()
    await session.flush()
    logger.info("material deactivated: material_id=%s, stock=%s", m.id, m.current_stock_sheets)
    return m


async def list_materials(
    session: AsyncSession,
    *,
    category: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
) -> list[Material]:
    stmt = select(Material)
    if not include_inactive:
        stmt = stmt.where(Material.is_active.is_(True))
    if category:
        stmt = stmt.where(Material.category == category)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                Material.material_name.ilike(like),
                Material.category.ilike(like),
                Material.supplier.ilike(like),
                Material.paper_type.ilike(like),
                Material.paper_size.ilike(like),
            )
        )
    stmt = stmt.order_by(Material.material_name.asc(), Material.created_at.asc())
    return list((await session.execute(stmt)).scalars().all())


async def list_categories(session: AsyncSession) -> list[str]:
    rows = (
        await session.execute(
            select(Material.category).where(Material.is_active.is_(True)).distinct().order_by(Material.category)
        )
    ).scalars().all()
    return list(rows)


@dataclass(frozen=True)
class AttributeField:
    name: str
    label: str
    type: str = "text"
    placeholder: str | None = None
    default: Any = None


_DESCRIPTION = AttributeField("description", "Description", placeholder="Additional details")

# Suggested form fields per category; the stored attributes stay free-form
ATTRIBUTE_TEMPLATES: dict[str, tuple[AttributeField, ...]] = {
    "paper": (
        AttributeField("paper_size", "Paper Size", placeholder="A4, A3, etc."),
        AttributeField("paper_type", "Paper Type", placeholder="Glossy, Matte, etc."),
        AttributeField("grammage", "Grammage (g)", "number", "120"),
        AttributeField("sheets_per_unit", "Sheets per Unit", "number", "500", default=500),
    ),
    "ink": (
        AttributeField("color", "Color", placeholder="Cyan, Magenta, etc."),
        AttributeField("volume_ml", "Volume (ml)", "number", "1000"),
        AttributeField("ink_type", "Ink Type", placeholder="Dye-based, Pigment, etc."),
    ),
    "plates": (
        AttributeField("plate_size", "Plate Size", placeholder="10x15, 20x30, etc."),
        AttributeField("material", "Material", placeholder="Aluminum, Polyester, etc."),
    ),
    "chemicals": (
        AttributeField("chemical_type", "Chemical Type", placeholder="Developer, Fixer, etc."),
        AttributeField("concentration", "Concentration", placeholder="1:10, 1:20, etc."),
        AttributeField("volume_l", "Volume (L)", "number", "5"),
    ),
    "consumables": (_DESCRIPTION,),
    "tools": (
        AttributeField("tool_type", "Tool Type", placeholder="Cutting, Measuring, etc."),
        AttributeField("size", "Size", placeholder="Small, Medium, Large"),
    ),
    "packaging": (
        AttributeField("packaging_type", "Packaging Type", placeholder="Box, Envelope, etc."),
        AttributeField("dimensions", "Dimensions", placeholder="10x15x5 cm"),
    ),
    "general": (_DESCRIPTION,),
}


def attribute_templates(category: str | None = None) -> dict[str, tuple[AttributeField, ...]]:
    """All templates, or the one for `category` (case-insensitive, unknown ones get "general")."""
    if category is None:
        return dict(ATTRIBUTE_TEMPLATES)
    key = category.strip().lower()
    if key not in ATTRIBUTE_TEMPLATES:
        key = "general"
    return {key: ATTRIBUTE_TEMPLATES[key]}


async def list_low_stock(
    session: AsyncSession,
    *,
    statuses: set[StockStatus] | None = None,
    category: str | None = None,
) -> list[LowStockItem]:
    """
    Active materials currently classified LOW or CRITICAL, most depleted first.

    Classification is computed on read, never stored.
    """
    wanted = set(statuses or ALERT_STATUSES) & ALERT_STATUSES
    stmt = select(Material).where(Material.is_active.is_(True), Material.threshold_sheets > 0)
    if category:
        stmt = stmt.where(Material.category == category)
    materials = (await session.execute(stmt)).scalars().all()

    out: list[LowStockItem] = []
    for m in materials:
        c = classify(m.current_stock_sheets, m.threshold_sheets)
        if c.status in wanted:
            out.append(LowStockItem(material=m, classification=c))
    out.sort(key=lambda x: (x.classification.percentage, x.material.material_name))
    return out

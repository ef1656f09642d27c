from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pressledger.core.config import settings
from pressledger.core.errors import ValidationError
from pressledger.db.models.job_material import ChangeType, JobMaterialEdit, JobMaterialLine
from pressledger.services.pricing_service import MONEY_QUANT, line_total, round2, to_decimal

logger = logging.getLogger(__name__)

QUANTITY_QUANT = Decimal("0.01")
LINE_COST_QUANT = Decimal("0.0001")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MaterialSnapshot:
    material_name: str | None = None
    paper_size: str | None = None
    paper_type: str | None = None
    grammage: int | None = None
    quantity: Decimal | None = None
    unit_cost: Decimal | None = None
    total_cost: Decimal | None = None

    @property
    def has_name(self) -> bool:
        return bool((self.material_name or "").strip())


@dataclass(frozen=True)
class JobLine:
    """One material line of a job as submitted by a caller or loaded from storage."""

    material_name: str | None
    quantity: Decimal | None = None
    unit_cost: Decimal | None = None
    total_cost: Decimal | None = None
    paper_size: str | None = None
    paper_type: str | None = None
    grammage: int | None = None
    line_id: UUID | None = None
    material_id: UUID | None = None

    def snapshot(self) -> MaterialSnapshot:
        return MaterialSnapshot(
            material_name=self.material_name,
            paper_size=self.paper_size,
            paper_type=self.paper_type,
            grammage=self.grammage,
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
        )

    def identity_key(self) -> tuple:
        return (
            (self.material_name or "").strip().lower(),
            (self.paper_size or "").strip().lower(),
            (self.paper_type or "").strip().lower(),
            self.grammage,
        )


def classify_change(previous: MaterialSnapshot | None, new: MaterialSnapshot | None) -> ChangeType:
    """
    ADDED when only the new side names a material, DELETED when only the previous side does,
    UPDATED otherwise.
    """
    had = previous is not None and previous.has_name
    has = new is not None and new.has_name
    if not had and has:
        return ChangeType.ADDED
    if had and not has:
        return ChangeType.DELETED
    return ChangeType.UPDATED


def validate_reason(reason: str | None) -> str:
    r = (reason or "").strip()
    min_len = int(settings.min_edit_reason_length)
    if len(r) < min_len:
        raise ValidationError(
            f"edit reason is required and must be at least {min_len} characters long",
            {"field": "edit_reason", "min_length": min_len, "length": len(r)},
        )
    return r


def normalize_line(line: JobLine, *, index: int | None = None) -> JobLine:
    """
    Check quantity/cost ranges and total_cost == quantity x unit_cost (to the cent).
    A missing total is computed.
    """
    where = {"line_index": index} if index is not None else {}
    if not (line.material_name or "").strip():
        raise ValidationError("material_name is required", {**where, "field": "material_name"})

    quantity = to_decimal(line.quantity)
    unit_cost = to_decimal(line.unit_cost)
    total_cost = to_decimal(line.total_cost)
    if quantity is None or quantity < 0:
        raise ValidationError("quantity must be a number >= 0", {**where, "field": "quantity"})
    if unit_cost is None or unit_cost < 0:
        raise ValidationError("unit_cost must be a number >= 0", {**where, "field": "unit_cost"})

    # Stored precision: quantity 2 places, unit cost 4
    quantity = quantity.quantize(QUANTITY_QUANT, rounding=ROUND_HALF_UP)
    unit_cost = unit_cost.quantize(LINE_COST_QUANT, rounding=ROUND_HALF_UP)

    expected = line_total(quantity, unit_cost)
    if total_cost is None:
        total_cost = expected
    elif abs(round2(total_cost) - expected) >= MONEY_QUANT:
        raise ValidationError(
            "total_cost must equal quantity x unit_cost",
            {
                **where,
                "field": "total_cost",
                "quantity": str(quantity),
                "unit_cost": str(unit_cost),
                "total_cost": str(total_cost),
                "expected_total": str(expected),
            },
        )
    return replace(
        line,
        material_name=line.material_name.strip(),
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=round2(total_cost),
    )


def pair_lines(previous: list[JobLine], new: list[JobLine]) -> list[tuple[JobLine | None, JobLine | None]]:
    """
    Match previous and new lines, returning only pairs that changed.

    New lines carrying a line_id claim their stored line first. Lines without one then pair by
    (name, size, type, grammage) against what is left. Unmatched new lines are additions,
    unmatched previous lines are deletions.
    """
    unmatched = list(previous)
    matched: dict[int, JobLine] = {}

    for i, n in enumerate(new):
        if n.line_id is None:
            continue
        match = next((p for p in unmatched if p.line_id == n.line_id), None)
        if match is not None:
            unmatched.remove(match)
            matched[i] = match

    for i, n in enumerate(new):
        if n.line_id is not None:
            continue
        key = n.identity_key()
        match = next((p for p in unmatched if p.identity_key() == key), None)
        if match is not None:
            unmatched.remove(match)
            matched[i] = match

    pairs: list[tuple[JobLine | None, JobLine | None]] = []
    for i, n in enumerate(new):
        match = matched.get(i)
        if match is None:
            pairs.append((None, n))
        elif match.snapshot() != n.snapshot():
            pairs.append((match, replace(n, line_id=match.line_id)))

    for p in unmatched:
        pairs.append((p, None))
    return pairs


def _edit_row(
    *,
    job_id: UUID,
    editor_id: UUID | None,
    reason: str,
    previous: JobLine | None,
    new: JobLine | None,
    line_id: UUID | None,
    at: datetime,
) -> JobMaterialEdit:
    ps = previous.snapshot() if previous is not None else MaterialSnapshot()
    ns = new.snapshot() if new is not None else MaterialSnapshot()
    change = classify_change(previous.snapshot() if previous else None, new.snapshot() if new else None)
    return JobMaterialEdit(
        job_id=job_id,
        line_id=line_id,
        editor_id=editor_id,
        edited_at=at,
        edit_reason=reason,
        change_type=change.value,
        previous_material_name=ps.material_name,
        previous_paper_size=ps.paper_size,
        previous_paper_type=ps.paper_type,
        previous_grammage=ps.grammage,
        previous_quantity=ps.quantity,
        previous_unit_cost=ps.unit_cost,
        previous_total_cost=ps.total_cost,
        new_material_name=ns.material_name,
        new_paper_size=ns.paper_size,
        new_paper_type=ns.paper_type,
        new_grammage=ns.grammage,
        new_quantity=ns.quantity,
        new_unit_cost=ns.unit_cost,
        new_total_cost=ns.total_cost,
    )


async def record_edit(
    session: AsyncSession,
    *,
    job_id: UUID,
    editor_id: UUID | None,
    reason: str,
    previous_lines: list[JobLine],
    new_lines: list[JobLine],
) -> list[JobMaterialEdit]:
    """
    Append one history entry per added, changed or removed line. Unchanged lines are skipped.

    Pure audit: neither the job's stored lines nor physical stock are touched.
    """
    r = validate_reason(reason)
    prev = [normalize_line(p, index=i) for i, p in enumerate(previous_lines)]
    new = [normalize_line(n, index=i) for i, n in enumerate(new_lines)]

    now = _utcnow()
    edits: list[JobMaterialEdit] = []
    for p, n in pair_lines(prev, new):
        line_id = (p.line_id if p is not None else None) or (n.line_id if n is not None else None)
        row = _edit_row(job_id=job_id, editor_id=editor_id, reason=r, previous=p, new=n, line_id=line_id, at=now)
        session.add(row)
        edits.append(row)
    await session.flush()

    logger.info("job material edit recorded: job_id=%s, editor_id=%s, entries=%s", job_id, editor_id, len(edits))
    return edits


def _line_from_row(row: JobMaterialLine) -> JobLine:
    return JobLine(
        line_id=row.id,
        material_id=row.material_id,
        material_name=row.material_name,
        paper_size=row.paper_size,
        paper_type=row.paper_type,
        grammage=row.grammage,
        quantity=Decimal(row.quantity),
        unit_cost=Decimal(row.unit_cost),
        total_cost=Decimal(row.total_cost),
    )


async def list_job_materials(session: AsyncSession, job_id: UUID) -> list[JobMaterialLine]:
    stmt = (
        select(JobMaterialLine)
        .where(JobMaterialLine.job_id == job_id)
        .order_by(JobMaterialLine.created_at.asc(), JobMaterialLine.id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def replace_job_materials(
    session: AsyncSession,
    *,
    job_id: UUID,
    editor_id: UUID | None,
    reason: str,
    new_lines: list[JobLine],
) -> tuple[list[JobMaterialLine], list[JobMaterialEdit]]:
    """
    Replace a job's material lines with new_lines, recording the diff against what is stored.

    Lines with a known line_id are updated in place, lines without one are added (or matched by
    name/size/type/grammage), stored lines missing from new_lines are deleted. Physical stock is
    never adjusted here.
    """
    r = validate_reason(reason)
    new = [normalize_line(n, index=i) for i, n in enumerate(new_lines)]

    rows = {row.id: row for row in await list_job_materials(session, job_id)}
    prev = [_line_from_row(row) for row in rows.values()]

    now = _utcnow()
    edits: list[JobMaterialEdit] = []
    for p, n in pair_lines(prev, new):
        if p is None:
            assert n is not None
            row = JobMaterialLine(
                job_id=job_id,
                material_id=n.material_id,
                material_name=n.material_name,
                paper_size=n.paper_size,
                paper_type=n.paper_type,
                grammage=n.grammage,
                quantity=n.quantity,
                unit_cost=n.unit_cost,
                total_cost=n.total_cost,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            await session.flush()
            line_id = row.id
        elif n is None:
            line_id = p.line_id
            await session.delete(rows[p.line_id])
        else:
            line_id = p.line_id
            row = rows[p.line_id]
            row.material_id = n.material_id
            row.material_name = n.material_name
            row.paper_size = n.paper_size
            row.paper_type = n.paper_type
            row.grammage = n.grammage
            row.quantity = n.quantity
            row.unit_cost = n.unit_cost
            row.total_cost = n.total_cost
            row.updated_at = now

        edit = _edit_row(job_id=job_id, editor_id=editor_id, reason=r, previous=p, new=n, line_id=line_id, at=now)
        session.add(edit)
        edits.append(edit)

    await session.flush()
    logger.info(
        "job materials replaced: job_id=%s, editor_id=%s, lines=%s, changes=%s",
        job_id,
        editor_id,
        len(new),
        ",".join(e.change_type for e in edits) or "none",
    )
    return await list_job_materials(session, job_id), edits


async def list_edit_history(session: AsyncSession, job_id: UUID, *, limit: int = 200) -> list[JobMaterialEdit]:
    stmt = (
        select(JobMaterialEdit)
        .where(JobMaterialEdit.job_id == job_id)
        .order_by(JobMaterialEdit.edited_at.desc(), JobMaterialEdit.id.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())

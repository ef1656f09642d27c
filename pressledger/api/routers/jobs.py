from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pressledger.api.deps import get_db
from pressledger.schemas.job_material import (
    JobMaterialEditCreate,
    JobMaterialEditOut,
    JobMaterialLineIn,
    JobMaterialLineOut,
    JobMaterialsReplace,
    JobMaterialsReplaceResult,
)
from pressledger.services import job_material_service
from pressledger.services.job_material_service import JobLine


router = APIRouter(prefix="/jobs", tags=["jobs"])


def _job_line(body: JobMaterialLineIn) -> JobLine:
    return JobLine(
        line_id=body.line_id,
        material_id=body.material_id,
        material_name=body.material_name,
        paper_size=body.paper_size,
        paper_type=body.paper_type,
        grammage=body.grammage,
        quantity=body.quantity,
        unit_cost=body.unit_cost,
        total_cost=body.total_cost,
    )


@router.get("/{job_id}/materials", response_model=list[JobMaterialLineOut])
async def list_job_materials(job_id: UUID, db: AsyncSession = Depends(get_db)) -> list[JobMaterialLineOut]:
    rows = await job_material_service.list_job_materials(db, job_id)
    return [JobMaterialLineOut.model_validate(r) for r in rows]


@router.put("/{job_id}/materials", response_model=JobMaterialsReplaceResult)
async def replace_job_materials(
    job_id: UUID, body: JobMaterialsReplace, db: AsyncSession = Depends(get_db)
) -> JobMaterialsReplaceResult:
    """
    Replace the job's material estimate. Every added, changed or removed line gets an edit
    history entry with the given reason. Physical stock is not touched.
    """
    lines, edits = await job_material_service.replace_job_materials(
        db,
        job_id=job_id,
        editor_id=body.editor_id,
        reason=body.edit_reason,
        new_lines=[_job_line(x) for x in body.lines],
    )
    await db.commit()
    return JobMaterialsReplaceResult(
        job_id=job_id,
        lines=[JobMaterialLineOut.model_validate(r) for r in lines],
        edits=[JobMaterialEditOut.model_validate(e) for e in edits],
    )


@router.post("/{job_id}/material-edits", response_model=list[JobMaterialEditOut], status_code=201)
async def record_material_edit(
    job_id: UUID, body: JobMaterialEditCreate, db: AsyncSession = Depends(get_db)
) -> list[JobMaterialEditOut]:
    edits = await job_material_service.record_edit(
        db,
        job_id=job_id,
        editor_id=body.editor_id,
        reason=body.edit_reason,
        previous_lines=[_job_line(x) for x in body.previous],
        new_lines=[_job_line(x) for x in body.new],
    )
    await db.commit()
    return [JobMaterialEditOut.model_validate(e) for e in edits]


@router.get("/{job_id}/material-edits", response_model=list[JobMaterialEditOut])
async def list_material_edits(
    job_id: UUID,
    limit: int = Query(default=200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> list[JobMaterialEditOut]:
    rows = await job_material_service.list_edit_history(db, job_id, limit=limit)
    return [JobMaterialEditOut.model_validate(r) for r in rows]

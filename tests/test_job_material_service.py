import uuid
from decimal import Decimal

import pytest

from pressledger.core.errors import ValidationError
from pressledger.db.models.job_material import ChangeType
from pressledger.services import job_material_service
from pressledger.services.job_material_service import JobLine, MaterialSnapshot, classify_change, normalize_line


def test_classify_change():
    named = MaterialSnapshot(material_name="A4 Bond", quantity=Decimal("10"))
    assert classify_change(None, named) is ChangeType.ADDED
    assert classify_change(MaterialSnapshot(), named) is ChangeType.ADDED
    assert classify_change(named, None) is ChangeType.DELETED
    assert classify_change(named, MaterialSnapshot(material_name="  ")) is ChangeType.DELETED
    assert classify_change(named, MaterialSnapshot(material_name="A3 Bond")) is ChangeType.UPDATED
    assert classify_change(None, None) is ChangeType.UPDATED


def test_normalize_line_computes_and_checks_total():
    line = normalize_line(JobLine(material_name=" A4 Bond ", quantity=Decimal("3"), unit_cost=Decimal("0.3333")))
    assert line.material_name == "A4 Bond"
    assert line.total_cost == Decimal("1.00")

    ok = normalize_line(JobLine(material_name="A4", quantity=2, unit_cost="1.25", total_cost="2.50"))
    assert ok.total_cost == Decimal("2.50")

    with pytest.raises(ValidationError) as ei:
        normalize_line(JobLine(material_name="A4", quantity=2, unit_cost="1.25", total_cost="2.60"))
    assert ei.value.detail["field"] == "total_cost"
    assert ei.value.detail["expected_total"] == "2.50"

    with pytest.raises(ValidationError):
        normalize_line(JobLine(material_name="A4", quantity=-1, unit_cost=1))


async def test_reason_gate(session):
    job_id = uuid.uuid4()
    line = JobLine(material_name="A4 Bond", quantity=Decimal("100"), unit_cost=Decimal("0.05"))
    with pytest.raises(ValidationError) as ei:
        await job_material_service.record_edit(
            session, job_id=job_id, editor_id=None, reason="bad", previous_lines=[], new_lines=[line]
        )
    assert ei.value.detail["min_length"] == 5
    with pytest.raises(ValidationError):
        await job_material_service.record_edit(
            session, job_id=job_id, editor_id=None, reason="   bad    ", previous_lines=[], new_lines=[line]
        )

    edits = await job_material_service.record_edit(
        session, job_id=job_id, editor_id=uuid.uuid4(), reason="price update", previous_lines=[], new_lines=[line]
    )
    await session.commit()
    assert len(edits) == 1
    assert edits[0].change_type == "ADDED"
    assert edits[0].new_total_cost == Decimal("5.00")
    assert edits[0].previous_material_name is None


async def test_record_edit_pairs_by_description(session):
    job_id = uuid.uuid4()
    before = [
        JobLine(material_name="A4 Bond", paper_size="A4", quantity=100, unit_cost="0.05"),
        JobLine(material_name="Cyan ink", quantity=1, unit_cost="40"),
        JobLine(material_name="Plate", quantity=2, unit_cost="12.5"),
    ]
    after = [
        JobLine(material_name="A4 Bond", paper_size="A4", quantity=150, unit_cost="0.05"),
        JobLine(material_name="Cyan ink", quantity=1, unit_cost="40"),
        JobLine(material_name="Laminate", quantity=10, unit_cost="0.8"),
    ]
    edits = await job_material_service.record_edit(
        session,
        job_id=job_id,
        editor_id=None,
        reason="client doubled the run",
        previous_lines=before,
        new_lines=after,
    )
    await session.commit()
    kinds = sorted(e.change_type for e in edits)
    assert kinds == ["ADDED", "DELETED", "UPDATED"]
    updated = next(e for e in edits if e.change_type == "UPDATED")
    assert updated.previous_quantity == Decimal("100")
    assert updated.new_quantity == Decimal("150")
    assert updated.new_total_cost == Decimal("7.50")
    deleted = next(e for e in edits if e.change_type == "DELETED")
    assert deleted.previous_material_name == "Plate"
    assert deleted.new_material_name is None


async def test_replace_job_materials_keeps_history(session):
    job_id = uuid.uuid4()
    editor = uuid.uuid4()

    lines, edits = await job_material_service.replace_job_materials(
        session,
        job_id=job_id,
        editor_id=editor,
        reason="initial estimate",
        new_lines=[
            JobLine(material_name="SRA3 Silk", grammage=170, quantity=500, unit_cost="0.20"),
            JobLine(material_name="Black ink", quantity=1, unit_cost="35"),
        ],
    )
    await session.commit()
    assert len(lines) == 2
    assert [e.change_type for e in edits] == ["ADDED", "ADDED"]
    assert all(e.line_id is not None for e in edits)

    silk = next(x for x in lines if x.material_name == "SRA3 Silk")
    lines, edits = await job_material_service.replace_job_materials(
        session,
        job_id=job_id,
        editor_id=editor,
        reason="switched to heavier stock",
        new_lines=[
            JobLine(line_id=silk.id, material_name="SRA3 Silk", grammage=250, quantity=500, unit_cost="0.30"),
        ],
    )
    await session.commit()
    assert len(lines) == 1
    assert lines[0].id == silk.id
    assert lines[0].grammage == 250
    assert lines[0].total_cost == Decimal("150.00")
    assert sorted(e.change_type for e in edits) == ["DELETED", "UPDATED"]

    # Same lines again: nothing to record
    lines, edits = await job_material_service.replace_job_materials(
        session,
        job_id=job_id,
        editor_id=editor,
        reason="re-saved unchanged",
        new_lines=[
            JobLine(line_id=silk.id, material_name="SRA3 Silk", grammage=250, quantity=500, unit_cost="0.30"),
        ],
    )
    await session.commit()
    assert edits == []

    history = await job_material_service.list_edit_history(session, job_id)
    assert len(history) == 4
    assert {h.edit_reason for h in history} == {"initial estimate", "switched to heavier stock"}


async def test_replace_rejects_bad_totals_without_writing(session):
    job_id = uuid.uuid4()
    with pytest.raises(ValidationError):
        await job_material_service.replace_job_materials(
            session,
            job_id=job_id,
            editor_id=None,
            reason="typo in total",
            new_lines=[JobLine(material_name="A4", quantity=10, unit_cost="1", total_cost="11")],
        )
    await session.rollback()
    assert await job_material_service.list_job_materials(session, job_id) == []
    assert await job_material_service.list_edit_history(session, job_id) == []


def test_pair_lines_matches_by_id_before_description():
    stored_id = uuid.uuid4()
    stored = JobLine(line_id=stored_id, material_name="A4", quantity=Decimal("100"), unit_cost=Decimal("1"))
    unnamed = JobLine(material_name="A4", quantity=Decimal("50"), unit_cost=Decimal("1"))
    addressed = JobLine(line_id=stored_id, material_name="A4", quantity=Decimal("200"), unit_cost=Decimal("1"))

    pairs = job_material_service.pair_lines([stored], [unnamed, addressed])
    assert pairs == [(None, unnamed), (stored, addressed)]


async def test_replace_updates_line_addressed_by_id(session):
    job_id = uuid.uuid4()
    lines, _ = await job_material_service.replace_job_materials(
        session,
        job_id=job_id,
        editor_id=None,
        reason="initial estimate",
        new_lines=[JobLine(material_name="A4", quantity=100, unit_cost="1")],
    )
    await session.commit()
    stored_id = lines[0].id

    lines, edits = await job_material_service.replace_job_materials(
        session,
        job_id=job_id,
        editor_id=None,
        reason="split the order",
        new_lines=[
            JobLine(material_name="A4", quantity=50, unit_cost="1"),
            JobLine(line_id=stored_id, material_name="A4", quantity=200, unit_cost="1"),
        ],
    )
    await session.commit()

    by_type = {e.change_type: e for e in edits}
    assert sorted(by_type) == ["ADDED", "UPDATED"]
    assert by_type["UPDATED"].line_id == stored_id
    assert by_type["UPDATED"].previous_quantity == Decimal("100")
    assert by_type["UPDATED"].new_quantity == Decimal("200")
    assert by_type["ADDED"].line_id != stored_id
    assert by_type["ADDED"].new_quantity == Decimal("50")

    quantities = {row.id: row.quantity for row in lines}
    assert quantities[stored_id] == Decimal("200")
    assert sorted(quantities.values()) == [Decimal("50"), Decimal("200")]

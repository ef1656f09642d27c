"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "materials",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("material_name", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("unit_of_measure", sa.Text(), nullable=False, server_default=sa.text("'sheets'")),
        sa.Column("paper_size", sa.Text(), nullable=True),
        sa.Column("paper_type", sa.Text(), nullable=True),
        sa.Column("grammage", sa.Integer(), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("supplier", sa.Text(), nullable=True),
        sa.Column("selling_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("sheets_per_unit", sa.Integer(), nullable=False, server_default=sa.text("500")),
        sa.Column("opening_stock_sheets", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_stock_sheets", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_cost", sa.Numeric(18, 6), nullable=False, server_default=sa.text("0")),
        sa.Column("threshold_sheets", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_quantity", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("needs_audit", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("audit_note", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("current_stock_sheets >= 0", name="ck_materials_stock_non_negative"),
        sa.CheckConstraint("sheets_per_unit > 0", name="ck_materials_sheets_per_unit_positive"),
    )
    op.create_index("ix_materials_category", "materials", ["category"])
    op.create_index("ix_materials_is_active", "materials", ["is_active"])

    op.create_table(
        "stock_movements",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "material_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("materials.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("job_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("sub_type", sa.Text(), nullable=True),
        sa.Column("quantity_sheets", sa.Integer(), nullable=False),
        sa.Column("unit_price_at_time", sa.Numeric(18, 6), nullable=False),
        sa.Column("total_cost", sa.Numeric(18, 6), nullable=False),
        sa.Column("stock_after_sheets", sa.Integer(), nullable=False),
        sa.Column("unit_cost_after", sa.Numeric(18, 6), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_stock_movements_material_id", "stock_movements", ["material_id"])
    op.create_index("ix_stock_movements_type_created_at", "stock_movements", ["type", "created_at"])
    op.create_index("ix_stock_movements_job_id", "stock_movements", ["job_id"])

    op.create_table(
        "job_material_lines",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("material_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("material_name", sa.Text(), nullable=False),
        sa.Column("paper_size", sa.Text(), nullable=True),
        sa.Column("paper_type", sa.Text(), nullable=True),
        sa.Column("grammage", sa.Integer(), nullable=True),
        sa.Column("quantity", sa.Numeric(14, 2), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 4), nullable=False),
        sa.Column("total_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_job_material_lines_job_id", "job_material_lines", ["job_id"])

    op.create_table(
        "job_material_edits",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("line_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("editor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("edit_reason", sa.Text(), nullable=False),
        sa.Column("change_type", sa.Text(), nullable=False),
        sa.Column("previous_material_name", sa.Text(), nullable=True),
        sa.Column("previous_paper_size", sa.Text(), nullable=True),
        sa.Column("previous_paper_type", sa.Text(), nullable=True),
        sa.Column("previous_grammage", sa.Integer(), nullable=True),
        sa.Column("previous_quantity", sa.Numeric(14, 2), nullable=True),
        sa.Column("previous_unit_cost", sa.Numeric(14, 4), nullable=True),
        sa.Column("previous_total_cost", sa.Numeric(14, 2), nullable=True),
        sa.Column("new_material_name", sa.Text(), nullable=True),
        sa.Column("new_paper_size", sa.Text(), nullable=True),
        sa.Column("new_paper_type", sa.Text(), nullable=True),
        sa.Column("new_grammage", sa.Integer(), nullable=True),
        sa.Column("new_quantity", sa.Numeric(14, 2), nullable=True),
        sa.Column("new_unit_cost", sa.Numeric(14, 4), nullable=True),
        sa.Column("new_total_cost", sa.Numeric(14, 2), nullable=True),
    )
    op.create_index(
        "ix_job_material_edits_job_id_edited_at", "job_material_edits", ["job_id", "edited_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_job_material_edits_job_id_edited_at", table_name="job_material_edits")
    op.drop_table("job_material_edits")
    op.drop_index("ix_job_material_lines_job_id", table_name="job_material_lines")
    op.drop_table("job_material_lines")
    op.drop_index("ix_stock_movements_job_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_type_created_at", table_name="stock_movements")
    op.drop_index("ix_stock_movements_material_id", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_index("ix_materials_is_active", table_name="materials")
    op.drop_index("ix_materials_category", table_name="materials")
    op.drop_table("materials")
